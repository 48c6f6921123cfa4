"""
Custom Exceptions for TLS-RPT Ingest

Each exception maps to one unit of failure in the pipeline: a single
attachment (structure, decode, parse) or a single record (write).
None of them should escape the pipeline handler.
"""

from dataclasses import dataclass
from typing import Any


class TlsRptError(Exception):
    """Base exception for TLS-RPT ingest."""

    def __init__(self, message: str, **context: Any) -> None:
        self.message = message
        self.context = context
        super().__init__(message)

    def __str__(self) -> str:
        if self.context:
            context_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message


@dataclass
class StructureError(TlsRptError):
    """Attachment lacks usable disposition or filename metadata."""

    part_id: str | None = None

    def __init__(self, part_id: str | None, reason: str) -> None:
        self.part_id = part_id
        super().__init__(
            f"Unusable attachment part: {reason}",
            part_id=part_id,
        )


@dataclass
class DecodeError(TlsRptError):
    """Transfer decoding or decompression of an attachment failed."""

    stage: str
    filename: str | None = None

    def __init__(
        self,
        stage: str,
        error_message: str | None = None,
        filename: str | None = None,
    ) -> None:
        self.stage = stage
        self.filename = filename
        super().__init__(
            f"Decoding failed in stage '{stage}': {error_message or 'Unknown error'}",
            stage=stage,
            filename=filename,
        )


@dataclass
class ParseError(TlsRptError):
    """Decoded text is not a TLS-RPT aggregate report."""

    filename: str | None = None

    def __init__(self, error_message: str, filename: str | None = None) -> None:
        self.filename = filename
        super().__init__(
            f"Invalid TLS-RPT report: {error_message}",
            filename=filename,
        )


@dataclass
class WriteError(TlsRptError):
    """Persisting a flattened record failed."""

    path: str

    def __init__(self, path: str, error_message: str | None = None) -> None:
        self.path = path
        super().__init__(
            f"Failed to write record to '{path}': {error_message or 'Unknown error'}",
            path=path,
        )


@dataclass
class MailboxError(TlsRptError):
    """IMAP session operation failed."""

    operation: str  # "connect", "login", "select", "fetch"
    host: str | None = None

    def __init__(
        self,
        operation: str,
        host: str | None = None,
        error_message: str | None = None,
    ) -> None:
        self.operation = operation
        self.host = host
        super().__init__(
            f"IMAP {operation} failed{f' on {host}' if host else ''}: "
            f"{error_message or 'Unknown error'}",
            operation=operation,
            host=host,
        )
