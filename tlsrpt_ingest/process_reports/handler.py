"""
ProcessReports Handler

Main entry point for turning TLS-RPT report emails into flattened
record files.

Flow:
1. Open the IMAP session and fetch every message's BODYSTRUCTURE
2. Locate inline/attached parts
3. Stream each part through the decode chain
4. Parse and flatten the report JSON
5. Write one JSON file per record (per attachment in "stream" mode,
   after the session closes in "batch" mode)

A failure in one attachment or record is logged and recorded on the
result; it never stops the other attachments or messages.
"""

import asyncio
from collections.abc import AsyncIterable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from tlsrpt_ingest.process_reports.attachment_locator import (
    BodyPart,
    attachment_basename,
    find_attachments,
)
from tlsrpt_ingest.process_reports.decode_chain import decode_stream
from tlsrpt_ingest.process_reports.mailbox import FetchedMessage, MailboxSession
from tlsrpt_ingest.process_reports.record_writer import write_records
from tlsrpt_ingest.process_reports.report_flattener import FlattenedRecord, flatten_text
from tlsrpt_ingest.shared.config import Settings
from tlsrpt_ingest.shared.exceptions import TlsRptError

log = structlog.get_logger()

ChunkSource = Callable[[int, BodyPart], AsyncIterable[bytes]]


@dataclass
class PendingReport:
    """Flattened records of one attachment, not yet written."""

    base: str
    records: list[FlattenedRecord]
    uid: int | None = None
    part_id: str | None = None


@dataclass
class AttachmentResult:
    """Outcome of processing one attachment."""

    part_id: str
    filename: str | None
    uid: int | None = None
    pending: PendingReport | None = None
    written: list[Path] = field(default_factory=list)
    failed_records: list[tuple[str, Exception]] = field(default_factory=list)
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and not self.failed_records


@dataclass
class BatchResult:
    """Outcome of a whole run."""

    attachments: list[AttachmentResult] = field(default_factory=list)
    written: list[Path] = field(default_factory=list)
    failed: list[tuple[str, Exception]] = field(default_factory=list)
    message_count: int = 0

    @property
    def ok(self) -> bool:
        return not self.failed

    def add(self, result: AttachmentResult) -> None:
        self.attachments.append(result)
        self.written.extend(result.written)
        if result.error is not None:
            self.failed.append((result.filename or result.part_id, result.error))
        self.failed.extend(result.failed_records)

    def to_dict(self) -> dict[str, Any]:
        """Summary for logging."""
        return {
            "message_count": self.message_count,
            "attachment_count": len(self.attachments),
            "written_count": len(self.written),
            "failed_count": len(self.failed),
        }


async def process_attachment(
    part: BodyPart,
    chunks: AsyncIterable[bytes],
    settings: Settings,
    *,
    uid: int | None = None,
    write: bool = True,
) -> AttachmentResult:
    """
    Decode, flatten and (optionally) write one attachment.

    Args:
        part: Attachment part from the structure tree
        chunks: Raw part bytes as they arrive
        settings: Output configuration
        uid: Message UID, for logging
        write: Write records now; otherwise return them as pending

    Returns:
        AttachmentResult; structure, decode and parse errors are captured
        on it rather than raised
    """
    result = AttachmentResult(part_id=part.part_id, filename=part.filename, uid=uid)
    bound_log = log.bind(uid=uid, part_id=part.part_id, filename=part.filename)

    try:
        base = attachment_basename(part)
        text = await decode_stream(chunks, part.encoding, part.subtype, filename=part.filename)
        records = flatten_text(text, filename=part.filename)
    except TlsRptError as e:
        bound_log.error(
            "attachment_failed",
            error_type=type(e).__name__,
            error=str(e),
        )
        result.error = e
        return result
    except Exception as e:
        bound_log.exception("attachment_failed_unexpectedly", error=str(e))
        result.error = e
        return result

    pending = PendingReport(base=base, records=records, uid=uid, part_id=part.part_id)

    if not write:
        result.pending = pending
        bound_log.info("attachment_flattened", record_count=len(records))
        return result

    result.written, result.failed_records = await write_records(
        pending.records, pending.base, settings
    )

    bound_log.info(
        "attachment_processed",
        record_count=len(records),
        written_count=len(result.written),
    )

    return result


async def process_message(
    message: FetchedMessage,
    chunk_source: ChunkSource,
    settings: Settings,
    *,
    write: bool = True,
) -> list[AttachmentResult]:
    """
    Process every attachment of a message concurrently.

    Args:
        message: Message UID and structure tree
        chunk_source: Returns the raw byte stream of a part
        settings: Output configuration
        write: Write records as soon as each attachment is flattened

    Returns:
        One AttachmentResult per located attachment, in structure order
    """
    attachments = find_attachments(message.structure)

    log.info(
        "message_attachments_found",
        uid=message.uid,
        attachment_count=len(attachments),
    )

    return list(
        await asyncio.gather(
            *(
                process_attachment(
                    part,
                    chunk_source(message.uid, part),
                    settings,
                    uid=message.uid,
                    write=write,
                )
                for part in attachments
            )
        )
    )


async def process_messages(
    messages: list[FetchedMessage],
    chunk_source: ChunkSource,
    settings: Settings,
    *,
    write: bool = True,
) -> BatchResult:
    """Process all messages concurrently and aggregate their results."""
    batch = BatchResult(message_count=len(messages))

    per_message = await asyncio.gather(
        *(process_message(message, chunk_source, settings, write=write) for message in messages)
    )
    for results in per_message:
        for result in results:
            batch.add(result)

    return batch


async def flush_reports(
    pending: list[PendingReport],
    settings: Settings,
) -> tuple[list[Path], list[tuple[str, Exception]]]:
    """
    Write reports collected in batch mode.

    Returns:
        Tuple of (written paths, failed (filename, exception) list)
    """
    written: list[Path] = []
    failed: list[tuple[str, Exception]] = []

    for report in pending:
        paths, errors = await write_records(report.records, report.base, settings)
        written.extend(paths)
        failed.extend(errors)

    log.info(
        "pending_reports_flushed",
        report_count=len(pending),
        written_count=len(written),
        failed_count=len(failed),
    )

    return written, failed


async def run(settings: Settings, session: MailboxSession | None = None) -> BatchResult:
    """
    Run the pipeline against the configured mailbox.

    Args:
        settings: Application settings
        session: Pre-built session (tests); defaults to MailboxSession(settings)

    Returns:
        BatchResult for the whole run

    Raises:
        MailboxError: If the session cannot be opened or listed
    """
    session = session or MailboxSession(settings)
    batch_mode = settings.write_mode == "batch"

    def chunk_source(uid: int, part: BodyPart) -> AsyncIterable[bytes]:
        return session.iter_part_chunks(uid, part.part_id)

    await asyncio.to_thread(session.open)
    try:
        messages = await asyncio.to_thread(session.fetch_messages)
        batch = await process_messages(messages, chunk_source, settings, write=not batch_mode)
    finally:
        await asyncio.to_thread(session.close)

    if batch_mode:
        pending = [result.pending for result in batch.attachments if result.pending is not None]
        written, failed = await flush_reports(pending, settings)
        batch.written.extend(written)
        batch.failed.extend(failed)

    log.info("run_completed", write_mode=settings.write_mode, **batch.to_dict())

    return batch
