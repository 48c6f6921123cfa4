"""
Pytest Configuration and Shared Fixtures

Provides sample TLS-RPT reports, encoded attachment payloads,
structure trees and settings pointing at a temporary reports directory.
"""

import copy
import json
import os
from pathlib import Path
from typing import Any

import pytest

# Keep developer environment variables out of the tests
for _name in list(os.environ):
    if _name.startswith("TLSRPT_"):
        del os.environ[_name]

from tlsrpt_ingest.process_reports.attachment_locator import BodyPart
from tlsrpt_ingest.shared.config import Settings
from tests.payloads import encode_attachment


# --- Report Fixtures ---


SAMPLE_REPORT: dict[str, Any] = {
    "organization-name": "Company-X",
    "date-range": {
        "start-datetime": "2016-04-01T00:00:00Z",
        "end-datetime": "2016-04-01T23:59:59Z",
    },
    "contact-info": "sts-reporting@company-x.example",
    "report-id": "5065427c-23d3-47ca-b6e0-946ea0e8c4be",
    "policies": [
        {
            "policy": {
                "policy-type": "sts",
                "policy-string": [
                    "version: STSv1",
                    "mode: testing",
                    "mx: *.mail.company-y.example",
                    "max_age: 86400",
                ],
                "policy-domain": "company-y.example",
                "mx-host": ["*.mail.company-y.example"],
            },
            "summary": {
                "total-successful-session-count": 5326,
                "total-failure-session-count": 303,
            },
            "failure-details": [
                {
                    "result-type": "certificate-expired",
                    "sending-mta-ip": "2001:db8:abcd:0012::1",
                    "receiving-mx-hostname": "mx1.mail.company-y.example",
                    "receiving-ip": "203.0.113.56",
                    "failed-session-count": 100,
                },
                {
                    "result-type": "starttls-not-supported",
                    "sending-mta-ip": "2001:db8:abcd:0013::1",
                    "receiving-mx-hostname": "mx2.mail.company-y.example",
                    "receiving-ip": "203.0.113.57",
                    "failed-session-count": 203,
                },
            ],
        },
        {
            "policy": {
                "policy-type": "no-policy-found",
                "policy-domain": "company-z.example",
            },
            "summary": {
                "total-successful-session-count": 12,
                "total-failure-session-count": 0,
            },
        },
    ],
}


@pytest.fixture
def sample_report() -> dict[str, Any]:
    """Report with two policies: two failure details, then none."""
    return copy.deepcopy(SAMPLE_REPORT)


@pytest.fixture
def sample_report_json(sample_report: dict[str, Any]) -> str:
    """Sample report serialized as JSON text."""
    return json.dumps(sample_report)


@pytest.fixture
def gzip_attachment(sample_report_json: str) -> bytes:
    """Sample report, gzipped then base64 encoded."""
    return encode_attachment(sample_report_json)


# --- Structure Fixtures ---


@pytest.fixture
def text_body_part() -> BodyPart:
    """Plain text message body without disposition."""
    return BodyPart(part_id="1", type="text", subtype="plain", params={"charset": "utf-8"}, encoding="7bit")


# --- Settings Fixtures ---


@pytest.fixture
def reports_dir(tmp_path: Path) -> Path:
    """Reports directory that does not exist yet."""
    return tmp_path / "reports"


@pytest.fixture
def settings(reports_dir: Path) -> Settings:
    """Settings writing to a temporary reports directory."""
    return Settings(
        imap_host="imap.example.com",
        imap_user="tlsrpt@example.com",
        imap_password="secret",
        reports_dir=reports_dir,
    )
