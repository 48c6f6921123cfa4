# Shared Models
"""
Pydantic models for TLS-RPT aggregate reports.
"""

from tlsrpt_ingest.shared.models.report import (
    FAILURE_COUNT_KEY,
    AggregateReport,
    DateRange,
    FailureDetail,
    Policy,
    PolicyDetails,
    PolicySummary,
)

__all__ = [
    "FAILURE_COUNT_KEY",
    "AggregateReport",
    "DateRange",
    "FailureDetail",
    "Policy",
    "PolicyDetails",
    "PolicySummary",
]
