"""
Integration test fixtures and configuration.

Provides an in-memory mailbox session and an imapclient mock that
answers BODYSTRUCTURE and BODY.PEEK fetches from canned messages.
"""

from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from tlsrpt_ingest.process_reports.mailbox import FetchedMessage


class FakeMailboxSession:
    """
    MailboxSession stand-in holding messages and part bodies in memory.

    Records the order of session calls and the files present in the
    reports directory when the session is closed.
    """

    def __init__(
        self,
        messages: list[FetchedMessage],
        bodies: dict[tuple[int, str], bytes],
        reports_dir: Path,
    ) -> None:
        self.messages = messages
        self.bodies = bodies
        self.reports_dir = reports_dir
        self.calls: list[str] = []
        self.files_at_close: list[str] | None = None

    def open(self) -> "FakeMailboxSession":
        self.calls.append("open")
        return self

    def fetch_messages(self) -> list[FetchedMessage]:
        self.calls.append("fetch_messages")
        return self.messages

    def close(self) -> None:
        self.calls.append("close")
        if self.reports_dir.exists():
            self.files_at_close = sorted(path.name for path in self.reports_dir.iterdir())
        else:
            self.files_at_close = []

    async def iter_part_chunks(
        self,
        uid: int,
        part_id: str,
        chunk_size: int | None = None,
    ) -> AsyncIterator[bytes]:
        data = self.bodies[(uid, part_id)]
        size = chunk_size or 100
        for offset in range(0, len(data), size):
            yield data[offset:offset + size]


@pytest.fixture
def fake_session_factory(reports_dir):
    """Build a FakeMailboxSession writing to the test reports directory."""

    def factory(
        messages: list[FetchedMessage],
        bodies: dict[tuple[int, str], bytes],
    ) -> FakeMailboxSession:
        return FakeMailboxSession(messages, bodies, reports_dir)

    return factory


@pytest.fixture
def imap_server():
    """
    IMAPClient mock serving canned messages.

    Populate ``structures`` ({uid: BODYSTRUCTURE}) and
    ``bodies`` ({(uid, part_id): bytes}) before running the pipeline.
    """
    structures: dict[int, Any] = {}
    bodies: dict[tuple[int, str], bytes] = {}
    client = MagicMock(name="IMAPClient")

    client.search.side_effect = lambda criteria: sorted(structures)

    def fetch(uids, items):
        if items == ["BODYSTRUCTURE"]:
            return {uid: {b"BODYSTRUCTURE": structures[uid], b"SEQ": uid} for uid in uids}
        part_id = items[0][len("BODY.PEEK["):-1]
        return {
            uid: {f"BODY[{part_id}]".encode(): bodies[(uid, part_id)], b"SEQ": uid}
            for uid in uids
            if (uid, part_id) in bodies
        }

    client.fetch.side_effect = fetch

    return {
        "client": client,
        "factory": MagicMock(return_value=client),
        "structures": structures,
        "bodies": bodies,
    }
