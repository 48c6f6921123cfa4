# Shared Infrastructure for TLS-RPT Ingest
"""
Shared infrastructure components.

This package provides:
- Pydantic models for TLS-RPT aggregate reports
- Configuration management
- Structured logging setup
- Custom exceptions
"""

from tlsrpt_ingest.shared.config import Settings, get_settings
from tlsrpt_ingest.shared.exceptions import (
    DecodeError,
    MailboxError,
    ParseError,
    StructureError,
    TlsRptError,
    WriteError,
)
from tlsrpt_ingest.shared.log_config import configure_logging

__all__ = [
    # Exceptions
    "TlsRptError",
    "StructureError",
    "DecodeError",
    "ParseError",
    "WriteError",
    "MailboxError",
    # Config
    "Settings",
    "get_settings",
    # Logging
    "configure_logging",
]
