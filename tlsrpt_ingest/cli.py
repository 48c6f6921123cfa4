"""
Command Line Entry Point

Usage:
    # Read settings from the environment / .env and write records
    python -m tlsrpt_ingest

    # Override output location and ownership
    tlsrpt-ingest --reports-dir /var/log/tlsrpt --owner-uid 1000 --owner-gid 1000

    # Collect every report first, write after the IMAP session closes
    tlsrpt-ingest --write-mode batch

IMAP connection settings come from TLSRPT_IMAP_HOST, TLSRPT_IMAP_USER,
TLSRPT_IMAP_PASSWORD and TLSRPT_IMAP_PORT.
"""

import argparse
import asyncio
import sys
from pathlib import Path

import structlog

from tlsrpt_ingest import __version__
from tlsrpt_ingest.process_reports.handler import run
from tlsrpt_ingest.shared.config import Settings
from tlsrpt_ingest.shared.exceptions import MailboxError
from tlsrpt_ingest.shared.log_config import configure_logging

log = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tlsrpt-ingest",
        description="Flatten TLS-RPT aggregate reports from an IMAP folder into JSON files",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--reports-dir", type=Path, help="Directory records are written to")
    parser.add_argument("--owner-uid", type=int, help="chown written records to this uid")
    parser.add_argument("--owner-gid", type=int, help="chown written records to this gid")
    parser.add_argument("--folder", help="IMAP folder to read (default: INBOX)")
    parser.add_argument(
        "--read-write",
        action="store_true",
        help="Open the folder read-write instead of read-only",
    )
    parser.add_argument(
        "--write-mode",
        choices=["stream", "batch"],
        help="stream: write per attachment; batch: write after the session closes",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    return parser


def load_settings(args: argparse.Namespace) -> Settings:
    """Environment settings with command line overrides applied."""
    overrides = {
        "reports_dir": args.reports_dir,
        "owner_uid": args.owner_uid,
        "owner_gid": args.owner_gid,
        "imap_folder": args.folder,
        "write_mode": args.write_mode,
        "log_level": args.log_level,
    }
    if args.read_write:
        overrides["imap_readonly"] = False

    settings = Settings()
    updates = {key: value for key, value in overrides.items() if value is not None}
    if not updates:
        return settings
    return Settings.model_validate({**settings.model_dump(), **updates})


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings(args)
    configure_logging(settings.log_level)

    if not settings.has_imap_credentials:
        print(
            "IMAP settings are incomplete: set TLSRPT_IMAP_HOST, "
            "TLSRPT_IMAP_USER and TLSRPT_IMAP_PASSWORD (environment or .env)",
            file=sys.stderr,
        )
        return 1

    try:
        result = asyncio.run(run(settings))
    except MailboxError as e:
        log.error("run_failed", error=str(e))
        return 2

    return 0 if result.ok else 1
