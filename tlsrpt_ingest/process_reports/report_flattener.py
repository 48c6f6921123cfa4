"""
Report Flattener Module

Parses TLS-RPT aggregate report JSON and expands it into one record per
(policy, failure detail) pair for line-oriented log ingestion.

Record shape:
    {
        "policies": {
            "policy": {...},
            "summary": {...},            # without total-failure-session-count
            "failure-details": {...},    # one detail, absent if none
        },
        "organization-name": ...,
        "date-range": {...},
        "contact-info": ...,
        "report-id": ...,
    }
"""

import json
from typing import Any

import structlog
from pydantic import ValidationError

from tlsrpt_ingest.shared.exceptions import ParseError
from tlsrpt_ingest.shared.models import AggregateReport, Policy

log = structlog.get_logger()

FlattenedRecord = dict[str, Any]


def _describe_validation_error(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"]) or "<root>"
    suffix = f" (+{error.error_count() - 1} more)" if error.error_count() > 1 else ""
    return f"{location}: {first['msg']}{suffix}"


def parse_report(text: str, *, filename: str | None = None) -> AggregateReport:
    """
    Parse decoded attachment text as an aggregate report.

    Args:
        text: Report JSON
        filename: Attachment name, for error context

    Returns:
        Validated AggregateReport

    Raises:
        ParseError: If the text is not JSON or not shaped like a TLS-RPT report
    """
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseError(f"not valid JSON: {e}", filename=filename) from e

    if not isinstance(raw, dict):
        raise ParseError(
            f"report must be a JSON object, not {type(raw).__name__}",
            filename=filename,
        )

    try:
        return AggregateReport.model_validate(raw)
    except ValidationError as e:
        raise ParseError(_describe_validation_error(e), filename=filename) from e


def _policy_records(
    policy: Policy,
    report: AggregateReport,
) -> list[FlattenedRecord]:
    def record(failure_detail: dict[str, Any] | None = None) -> FlattenedRecord:
        policies: dict[str, Any] = {
            "policy": policy.policy.to_json(),
            "summary": policy.summary.without_failure_count(),
        }
        if failure_detail is not None:
            policies["failure-details"] = failure_detail
        return {"policies": policies, **report.metadata()}

    if not policy.failure_details:
        return [record()]

    return [record(detail.to_json()) for detail in policy.failure_details]


def flatten_report(report: AggregateReport) -> list[FlattenedRecord]:
    """
    Expand a report into flattened records.

    Each policy yields one record per failure detail, or a single record
    without failure details when it has none. Records keep policy order,
    and failure details keep their order within a policy.

    Records are built from fresh dumps so they never share mutable
    state with each other or with the parsed report.
    """
    records: list[FlattenedRecord] = []

    for policy in report.policies:
        records.extend(_policy_records(policy, report))

    log.debug(
        "report_flattened",
        report_id=report.report_id,
        organization_name=report.organization_name,
        policy_count=len(report.policies),
        record_count=len(records),
    )

    return records


def flatten_text(text: str, *, filename: str | None = None) -> list[FlattenedRecord]:
    """Parse report text and flatten it."""
    return flatten_report(parse_report(text, filename=filename))
