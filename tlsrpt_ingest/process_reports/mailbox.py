"""
Mailbox Module

Thin IMAP session wrapper around imapclient. Lists the messages of the
configured folder with their BODYSTRUCTURE and fetches individual body
parts for the decode chain.
"""

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

import structlog
from imapclient import IMAPClient
from imapclient.exceptions import IMAPClientError

from tlsrpt_ingest.process_reports.attachment_locator import parts_from_bodystructure
from tlsrpt_ingest.shared.config import Settings
from tlsrpt_ingest.shared.exceptions import MailboxError

log = structlog.get_logger()


@dataclass
class FetchedMessage:
    """A message's UID and its MIME structure tree."""

    uid: int
    structure: list[Any] = field(default_factory=list)


class MailboxSession:
    """
    IMAP session for one run.

    Usage:
        with MailboxSession(settings) as session:
            for message in session.fetch_messages():
                ...
    """

    def __init__(self, settings: Settings, client_factory=IMAPClient) -> None:
        self.settings = settings
        self._client_factory = client_factory
        self._client = None
        # IMAPClient is not thread safe; part fetches run in worker threads
        self._lock = asyncio.Lock()

    @property
    def client(self):
        if self._client is None:
            raise MailboxError("fetch", self.settings.imap_host, "session is not open")
        return self._client

    def open(self) -> "MailboxSession":
        settings = self.settings
        host = settings.imap_host

        log.info(
            "imap_connecting",
            host=host,
            port=settings.imap_port,
            folder=settings.imap_folder,
            readonly=settings.imap_readonly,
        )

        try:
            self._client = self._client_factory(**settings.imap_config)
        except (IMAPClientError, OSError) as e:
            raise MailboxError("connect", host, str(e)) from e

        try:
            password = settings.imap_password.get_secret_value() if settings.imap_password else ""
            self._client.login(settings.imap_user, password)
        except (IMAPClientError, OSError) as e:
            self._shutdown()
            raise MailboxError("login", host, str(e)) from e

        try:
            self._client.select_folder(settings.imap_folder, readonly=settings.imap_readonly)
        except (IMAPClientError, OSError) as e:
            self._shutdown()
            raise MailboxError("select", host, str(e)) from e

        return self

    def _shutdown(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            client.logout()
        except (IMAPClientError, OSError) as e:
            log.warning("imap_logout_failed", host=self.settings.imap_host, error=str(e))

    def close(self) -> None:
        self._shutdown()
        log.info("imap_connection_closed", host=self.settings.imap_host)

    def __enter__(self) -> "MailboxSession":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def fetch_messages(self) -> list[FetchedMessage]:
        """
        Fetch the structure of every message in the selected folder.

        Returns:
            Messages in UID order

        Raises:
            MailboxError: If the search or fetch fails
        """
        try:
            uids = self.client.search("ALL")
            if not uids:
                log.info("imap_folder_empty", folder=self.settings.imap_folder)
                return []
            response = self.client.fetch(uids, ["BODYSTRUCTURE"])
        except (IMAPClientError, OSError) as e:
            raise MailboxError("fetch", self.settings.imap_host, str(e)) from e

        messages = []
        for uid in sorted(response):
            body = response[uid].get(b"BODYSTRUCTURE")
            if not body:
                log.warning("message_without_bodystructure", uid=uid)
                continue
            messages.append(FetchedMessage(uid=uid, structure=parts_from_bodystructure(body)))

        log.info("imap_messages_fetched", message_count=len(messages))

        return messages

    def fetch_part(self, uid: int, part_id: str) -> bytes:
        """
        Fetch the raw (still transfer-encoded) body of one part.

        BODY.PEEK leaves the \\Seen flag untouched.
        """
        try:
            response = self.client.fetch([uid], [f"BODY.PEEK[{part_id}]"])
        except (IMAPClientError, OSError) as e:
            raise MailboxError("fetch", self.settings.imap_host, str(e)) from e

        data = response.get(uid, {}).get(f"BODY[{part_id}]".encode())
        if data is None:
            raise MailboxError(
                "fetch",
                self.settings.imap_host,
                f"no body returned for part {part_id} of message {uid}",
            )

        log.debug("imap_part_fetched", uid=uid, part_id=part_id, size_bytes=len(data))

        return data

    async def iter_part_chunks(
        self,
        uid: int,
        part_id: str,
        chunk_size: int | None = None,
    ) -> AsyncIterator[bytes]:
        """
        Fetch a part in a worker thread and yield it in fixed-size chunks.

        The IMAP fetch is a single BODY.PEEK request, so the whole part is
        buffered in memory before the first chunk is yielded. Only the
        decode chain downstream is incremental.
        """
        size = chunk_size or self.settings.chunk_size

        async with self._lock:
            data = await asyncio.to_thread(self.fetch_part, uid, part_id)

        for offset in range(0, len(data), size):
            yield data[offset:offset + size]
            await asyncio.sleep(0)
