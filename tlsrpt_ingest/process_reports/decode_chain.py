"""
Decode Chain Module

Streams attachment bytes through the transfer decoding and decompression
stages declared by the part's metadata, and returns the report text.

Stages are selected from DECODE_STAGES in declared order. Reports are
base64 encoded gzip streams, so base64 always runs before gunzip.
"""

import binascii
import re
import zlib
from collections.abc import AsyncIterable, Callable, Iterable
from typing import Protocol

import structlog

from tlsrpt_ingest.shared.exceptions import DecodeError, MailboxError

log = structlog.get_logger()

_WHITESPACE = re.compile(rb"\s+")


class DecodeStage(Protocol):
    """A streaming bytes-to-bytes transform."""

    name: str

    def feed(self, chunk: bytes) -> bytes: ...

    def finish(self) -> bytes: ...


class Base64DecodeStage:
    """
    Incremental base64 decoder.

    Line breaks may fall anywhere and chunk boundaries need not align
    to 4-character groups; the remainder is carried to the next chunk.
    """

    name = "base64"

    def __init__(self) -> None:
        self._pending = b""

    def _decode(self, data: bytes) -> bytes:
        try:
            return binascii.a2b_base64(data, strict_mode=True)
        except binascii.Error as e:
            raise DecodeError(self.name, str(e)) from e

    def feed(self, chunk: bytes) -> bytes:
        data = self._pending + _WHITESPACE.sub(b"", chunk)
        usable = len(data) - len(data) % 4
        self._pending = data[usable:]
        if not usable:
            return b""
        return self._decode(data[:usable])

    def finish(self) -> bytes:
        if self._pending:
            raise DecodeError(
                self.name,
                f"truncated input ({len(self._pending)} trailing characters)",
            )
        return b""


class GunzipStage:
    """
    Incremental gzip inflater.

    Concatenated gzip members are inflated in sequence; NUL padding after
    the last member is ignored.
    """

    name = "gzip"

    def __init__(self) -> None:
        self._inflater = self._new_inflater()

    @staticmethod
    def _new_inflater():
        # MAX_WBITS | 16 expects a gzip header and trailer
        return zlib.decompressobj(zlib.MAX_WBITS | 16)

    def feed(self, chunk: bytes) -> bytes:
        output = bytearray()
        data = chunk

        while data:
            if self._inflater.eof:
                if not data.strip(b"\x00"):
                    break
                self._inflater = self._new_inflater()
            try:
                output += self._inflater.decompress(data)
            except zlib.error as e:
                raise DecodeError(self.name, str(e)) from e
            data = self._inflater.unused_data if self._inflater.eof else b""

        return bytes(output)

    def finish(self) -> bytes:
        try:
            tail = self._inflater.flush()
        except zlib.error as e:
            raise DecodeError(self.name, str(e)) from e
        if not self._inflater.eof:
            raise DecodeError(self.name, "truncated gzip stream")
        return tail


def _is_base64(encoding: str | None, subtype: str | None) -> bool:
    return (encoding or "").lower() == "base64"


def _is_gzip(encoding: str | None, subtype: str | None) -> bool:
    return "gzip" in (subtype or "").lower()


# Ordered predicate -> stage factory table
DECODE_STAGES: tuple[
    tuple[Callable[[str | None, str | None], bool], Callable[[], DecodeStage]], ...
] = (
    (_is_base64, Base64DecodeStage),
    (_is_gzip, GunzipStage),
)


def build_chain(encoding: str | None, subtype: str | None) -> list[DecodeStage]:
    """
    Build the decode stages for an attachment.

    Args:
        encoding: Content-Transfer-Encoding of the part (e.g. "BASE64")
        subtype: MIME subtype of the part (e.g. "tlsrpt+gzip")

    Returns:
        Fresh stage instances in application order; empty for plain text
    """
    return [factory() for matches, factory in DECODE_STAGES if matches(encoding, subtype)]


class DecodeChain:
    """Pushes chunks through a list of stages and collects the output."""

    def __init__(self, stages: list[DecodeStage]) -> None:
        self.stages = stages
        self._output = bytearray()

    @property
    def stage_names(self) -> list[str]:
        return [stage.name for stage in self.stages]

    def feed(self, chunk: bytes) -> None:
        data = chunk
        for stage in self.stages:
            if not data:
                break
            data = stage.feed(data)
        self._output.extend(data)

    def finish(self) -> str:
        """Flush every stage in order and return the output as UTF-8 text."""
        for index, stage in enumerate(self.stages):
            data = stage.finish()
            for downstream in self.stages[index + 1:]:
                if not data:
                    break
                data = downstream.feed(data)
            self._output.extend(data)

        try:
            return bytes(self._output).decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError("utf-8", str(e)) from e


async def decode_stream(
    chunks: AsyncIterable[bytes],
    encoding: str | None,
    subtype: str | None,
    *,
    filename: str | None = None,
) -> str:
    """
    Decode an attachment byte stream into report text.

    Each chunk is decoded as it arrives; the accumulated output is
    converted to text once the stream is exhausted.

    Args:
        chunks: Async iterable of raw attachment bytes
        encoding: Declared transfer encoding
        subtype: Declared MIME subtype
        filename: Attachment name, for error context

    Returns:
        Decoded report text

    Raises:
        DecodeError: If a stage rejects the input or the stream fails
    """
    chain = DecodeChain(build_chain(encoding, subtype))
    received = 0

    try:
        async for chunk in chunks:
            received += len(chunk)
            chain.feed(chunk)
        text = chain.finish()
    except DecodeError as e:
        e.filename = filename
        e.context["filename"] = filename
        raise
    except (OSError, MailboxError) as e:
        raise DecodeError("read", str(e), filename=filename) from e

    log.debug(
        "attachment_decoded",
        filename=filename,
        stages=chain.stage_names,
        received_bytes=received,
        decoded_chars=len(text),
    )

    return text


def decode_bytes(
    data: bytes | Iterable[bytes],
    encoding: str | None,
    subtype: str | None,
) -> str:
    """Synchronous counterpart of decode_stream for in-memory payloads."""
    chain = DecodeChain(build_chain(encoding, subtype))
    for chunk in [data] if isinstance(data, bytes) else data:
        chain.feed(chunk)
    return chain.finish()
