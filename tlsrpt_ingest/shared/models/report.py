"""
Report Models

Pydantic models for the SMTP TLS Reporting (RFC 8460) aggregate report.
Field aliases keep the hyphenated key names of the report JSON, and
unknown keys are kept (extra="allow") so flattened records carry every
field the reporting organization sent.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

FAILURE_COUNT_KEY = "total-failure-session-count"


class ReportModel(BaseModel):
    """Base class for report sections."""

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    def to_json(self, **kwargs: Any) -> dict[str, Any]:
        """
        Dump with the report's key names.

        Keys the reporter never sent stay absent; keys sent as null are kept.
        """
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True, **kwargs)


class DateRange(ReportModel):
    """Reporting period. Timestamps are kept as sent."""

    start_datetime: str = Field(..., alias="start-datetime")
    end_datetime: str = Field(..., alias="end-datetime")


class PolicyDetails(ReportModel):
    """The policy a sending MTA evaluated for a recipient domain."""

    policy_type: Literal["sts", "tlsa", "no-policy-found"] = Field(
        ...,
        alias="policy-type",
    )
    policy_string: list[str] | None = Field(default=None, alias="policy-string")
    policy_domain: str = Field(..., alias="policy-domain")
    mx_host: str | list[str] | None = Field(default=None, alias="mx-host")


class PolicySummary(ReportModel):
    """Session totals for one policy."""

    total_successful_session_count: int = Field(
        ...,
        ge=0,
        strict=True,
        alias="total-successful-session-count",
    )
    total_failure_session_count: int | None = Field(
        default=None,
        ge=0,
        strict=True,
        alias=FAILURE_COUNT_KEY,
    )

    def without_failure_count(self) -> dict[str, Any]:
        """
        Summary dump without the failure total.

        The total is implied by the flattened records sharing a policy, so
        it is dropped from a new dict rather than deleted from the model.
        """
        return self.to_json(exclude={"total_failure_session_count"})


class FailureDetail(ReportModel):
    """One category of failed sessions under a policy."""

    result_type: str = Field(..., alias="result-type")
    failed_session_count: int = Field(
        ...,
        ge=0,
        strict=True,
        alias="failed-session-count",
    )
    sending_mta_ip: str | None = Field(default=None, alias="sending-mta-ip")
    receiving_mx_hostname: str | None = Field(default=None, alias="receiving-mx-hostname")
    receiving_mx_helo: str | None = Field(default=None, alias="receiving-mx-helo")
    receiving_ip: str | None = Field(default=None, alias="receiving-ip")
    additional_information: str | None = Field(default=None, alias="additional-information")
    failure_reason_code: str | None = Field(default=None, alias="failure-reason-code")


class Policy(ReportModel):
    """A policy with its summary and optional failure breakdown."""

    policy: PolicyDetails
    summary: PolicySummary
    failure_details: list[FailureDetail] | None = Field(
        default=None,
        alias="failure-details",
    )


class AggregateReport(ReportModel):
    """A TLS-RPT aggregate report as delivered by the reporting organization."""

    organization_name: str = Field(..., alias="organization-name")
    date_range: DateRange = Field(..., alias="date-range")
    contact_info: str = Field(..., alias="contact-info")
    report_id: str = Field(..., alias="report-id")
    policies: list[Policy]

    def metadata(self) -> dict[str, Any]:
        """All top-level fields except the policy list."""
        return self.to_json(exclude={"policies"})
