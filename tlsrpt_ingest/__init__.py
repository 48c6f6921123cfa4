"""Flatten SMTP TLS Reporting (TLS-RPT) aggregate reports from a mailbox into JSON records."""

__version__ = "1.0.0"
