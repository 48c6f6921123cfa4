"""
Record Writer Module

Persists flattened records as individual JSON files in the reports
directory, optionally handing ownership to a configured user/group.
"""

import asyncio
import json
import os
import re
import tempfile
from pathlib import Path
from typing import Any

import structlog

from tlsrpt_ingest.shared.config import Settings
from tlsrpt_ingest.shared.exceptions import WriteError

log = structlog.get_logger()

_EXTENSION = re.compile(r"(\.[\w-]+)$")


def record_filename(base: str, index: int) -> str:
    """
    Build the filename for the record at a zero-based index.

    The index is inserted before the final extension of base:
    "report.json" -> "report-0.json", "report" -> "report-0".

    Args:
        base: Attachment filename with its compression extension stripped
        index: Position of the record in the flattened sequence

    Returns:
        Filename unique within one attachment's records
    """
    match = _EXTENSION.search(base)
    if not match:
        return f"{base}-{index}"
    return f"{base[:match.start()]}-{index}{match.group(1)}"


def serialize_record(record: dict[str, Any]) -> bytes:
    """Serialize a record as compact JSON."""
    return json.dumps(record, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def ensure_reports_dir(reports_dir: Path) -> Path:
    """Create the reports directory if it does not exist yet."""
    reports_dir.mkdir(parents=True, exist_ok=True)
    return reports_dir


def _write_atomic(path: Path, payload: bytes) -> None:
    """Write payload to a temp file next to path, then rename it into place."""
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as tmp:
            tmp.write(payload)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.chmod(tmp_name, 0o644)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def _change_owner(path: Path, uid: int | None, gid: int | None) -> None:
    """chown a written record; failures are logged and otherwise ignored."""
    try:
        os.chown(path, -1 if uid is None else uid, -1 if gid is None else gid)
    except (OSError, AttributeError) as e:
        # AttributeError: os.chown is unavailable on Windows
        log.warning(
            "record_chown_failed",
            path=str(path),
            uid=uid,
            gid=gid,
            error=str(e),
        )


def write_record(
    record: dict[str, Any],
    path: Path,
    settings: Settings,
) -> Path:
    """
    Write a single record.

    The record is serialized before anything touches the filesystem and
    renamed into place once complete, so a failed write leaves no file.

    Raises:
        WriteError: If serialization or the filesystem write fails
    """
    try:
        payload = serialize_record(record)
        _write_atomic(path, payload)
    except (OSError, TypeError, ValueError) as e:
        raise WriteError(str(path), str(e)) from e

    if settings.changes_ownership:
        _change_owner(path, settings.owner_uid, settings.owner_gid)

    log.debug("record_written", path=str(path), size_bytes=len(payload))

    return path


async def write_records(
    records: list[dict[str, Any]],
    base: str,
    settings: Settings,
) -> tuple[list[Path], list[tuple[str, Exception]]]:
    """
    Write all records of one attachment, in order.

    Blocking file I/O runs in a worker thread. A failed record is logged
    and skipped; the remaining records are still written.

    Args:
        records: Flattened records of one attachment
        base: Attachment filename with its final extension stripped
        settings: Output directory and ownership configuration

    Returns:
        Tuple of (written paths, failed (filename, exception) list)
    """
    written: list[Path] = []
    failed: list[tuple[str, Exception]] = []

    try:
        reports_dir = await asyncio.to_thread(ensure_reports_dir, Path(settings.reports_dir))
    except OSError as e:
        error = WriteError(str(settings.reports_dir), str(e))
        log.error("reports_dir_unavailable", path=str(settings.reports_dir), error=str(e))
        return written, [(record_filename(base, index), error) for index in range(len(records))]

    for index, record in enumerate(records):
        filename = record_filename(base, index)
        try:
            path = await asyncio.to_thread(write_record, record, reports_dir / filename, settings)
            written.append(path)
        except WriteError as e:
            log.error("record_write_failed", filename=filename, error=str(e))
            failed.append((filename, e))

    log.info(
        "records_written",
        base=base,
        written_count=len(written),
        failed_count=len(failed),
    )

    return written, failed
