"""
ProcessReports

Turns SMTP TLS Reporting (TLS-RPT) aggregate report emails into
flattened JSON records, one file per (policy, failure detail) pair.

Flow:
    IMAP folder
    → Attachment Locator (BODYSTRUCTURE)
    → Decode Chain (base64, gzip)
    → Report Flattener
    → Record Writer (reports directory)
"""

from tlsrpt_ingest.process_reports.attachment_locator import (
    BodyPart,
    Disposition,
    attachment_basename,
    find_attachments,
    parts_from_bodystructure,
)
from tlsrpt_ingest.process_reports.decode_chain import (
    build_chain,
    decode_bytes,
    decode_stream,
)
from tlsrpt_ingest.process_reports.handler import (
    AttachmentResult,
    BatchResult,
    PendingReport,
    flush_reports,
    process_attachment,
    process_message,
    process_messages,
    run,
)
from tlsrpt_ingest.process_reports.mailbox import FetchedMessage, MailboxSession
from tlsrpt_ingest.process_reports.record_writer import record_filename, write_records
from tlsrpt_ingest.process_reports.report_flattener import (
    flatten_report,
    flatten_text,
    parse_report,
)

__all__ = [
    "AttachmentResult",
    "BatchResult",
    "BodyPart",
    "Disposition",
    "FetchedMessage",
    "MailboxSession",
    "PendingReport",
    "attachment_basename",
    "build_chain",
    "decode_bytes",
    "decode_stream",
    "find_attachments",
    "flatten_report",
    "flatten_text",
    "flush_reports",
    "parse_report",
    "parts_from_bodystructure",
    "process_attachment",
    "process_message",
    "process_messages",
    "record_filename",
    "run",
    "write_records",
]
