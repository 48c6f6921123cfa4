"""
Attachment Locator Module

Finds report attachments in a message's MIME structure tree.

The tree is a nested list: leaves are BodyPart instances and every
multipart section is a sub-list. parts_from_bodystructure() builds that
tree from the BODYSTRUCTURE response returned by imapclient.
"""

import os
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from email.header import decode_header, make_header
from email.utils import decode_rfc2231
from typing import Any, Union
from urllib.parse import unquote, unquote_to_bytes

from tlsrpt_ingest.shared.exceptions import StructureError

ATTACHMENT_DISPOSITIONS = frozenset({"INLINE", "ATTACHMENT"})

# RFC 2231 continuation: filename*0, filename*1*, ...
_CONTINUATION = re.compile(r"^(?P<name>[^*]+)\*(?P<index>\d+)(?P<encoded>\*)?$")

# Index of the disposition field in a single-part BODYSTRUCTURE, by media type.
# Text parts carry an extra line count; message/rfc822 carries envelope, body and lines.
_DISPOSITION_INDEX_BASIC = 8
_DISPOSITION_INDEX_TEXT = 9
_DISPOSITION_INDEX_MESSAGE = 11


@dataclass(frozen=True)
class Disposition:
    """Content-Disposition of a body part."""

    type: str
    params: dict[str, str] = field(default_factory=dict)

    @property
    def filename(self) -> str | None:
        return self.params.get("filename")


@dataclass(frozen=True)
class BodyPart:
    """
    A leaf of the MIME structure tree.

    Mirrors the fields IMAP reports for a single body part:
    part_id is the section number used to fetch the part body.
    """

    part_id: str
    type: str
    subtype: str
    params: dict[str, str] = field(default_factory=dict)
    encoding: str | None = None
    size: int | None = None
    disposition: Disposition | None = None

    @property
    def filename(self) -> str | None:
        """Disposition filename, falling back to the Content-Type name parameter."""
        if self.disposition and self.disposition.filename:
            return self.disposition.filename
        return self.params.get("name")


StructureTree = Sequence[Union[BodyPart, "StructureTree"]]


def is_attachment(part: BodyPart) -> bool:
    """Whether a part is marked as inline or attached content."""
    if part.disposition is None or not part.disposition.type:
        return False
    return part.disposition.type.upper() in ATTACHMENT_DISPOSITIONS


def find_attachments(structure: StructureTree) -> list[BodyPart]:
    """
    Collect attachment parts from a structure tree.

    Sub-sequences are walked recursively, so parts come back in
    structure order. Parts without a disposition are skipped; parts
    with a disposition but no filename are kept.

    Args:
        structure: Nested sequence of BodyPart leaves

    Returns:
        Attachment parts in tree order
    """
    attachments: list[BodyPart] = []

    for node in structure:
        if isinstance(node, BodyPart):
            if is_attachment(node):
                attachments.append(node)
        else:
            attachments.extend(find_attachments(node))

    return attachments


def attachment_basename(part: BodyPart) -> str:
    """
    Filename of an attachment with its final extension stripped.

    Path components are removed so the name is safe to use inside
    the output directory.

    Raises:
        StructureError: If the part carries no usable filename
    """
    filename = part.filename
    if not filename:
        raise StructureError(part.part_id, "no filename in disposition")

    # Normalize Windows backslashes to forward slashes for cross-platform support
    safe_name = os.path.basename(filename.replace("\\", "/")).strip()
    base = os.path.splitext(safe_name)[0]

    if not base or base in (".", ".."):
        raise StructureError(part.part_id, f"unusable filename {filename!r}")

    return base


# --- imapclient BODYSTRUCTURE conversion ---


def _text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _decode_param_value(key: str, value: str) -> str:
    """Undo RFC 2231 (key*) and RFC 2047 (=?charset?...?=) parameter encodings."""
    if key.endswith("*"):
        charset, _language, text = decode_rfc2231(value)
        if charset is None:
            return unquote(text)
        try:
            return unquote_to_bytes(text).decode(charset, errors="replace")
        except LookupError:
            return unquote(text)
    if "=?" in value:
        try:
            return str(make_header(decode_header(value)))
        except (LookupError, UnicodeDecodeError, ValueError):
            return value
    return value


def _join_continuations(segments: list[tuple[int, str, bool]]) -> str:
    """
    Join RFC 2231 continuation segments (name*0, name*1*, ...).

    Only the first segment may carry charset'language'. Encoded segments
    are percent-decoded; the joined bytes are decoded with that charset.
    """
    charset = None
    data = bytearray()

    for index, value, encoded in sorted(segments):
        if not encoded:
            data += value.encode("utf-8")
            continue
        if index == 0 and value.count("'") >= 2:
            charset, _language, value = value.split("'", 2)
        data += unquote_to_bytes(value)

    try:
        return data.decode(charset or "utf-8", errors="replace")
    except LookupError:
        return data.decode("utf-8", errors="replace")


def _params(raw: Any) -> dict[str, str]:
    """Convert a flat (key, value, key, value...) parameter list to a dict."""
    if not raw or not isinstance(raw, (list, tuple)):
        return {}

    params: dict[str, str] = {}
    continuations: dict[str, list[tuple[int, str, bool]]] = {}
    items = list(raw)
    for key, value in zip(items[::2], items[1::2]):
        name = (_text(key) or "").lower()
        text = _text(value)
        if not name or text is None:
            continue
        match = _CONTINUATION.match(name)
        if match:
            continuations.setdefault(match["name"], []).append(
                (int(match["index"]), text, bool(match["encoded"]))
            )
            continue
        params[name.rstrip("*")] = _decode_param_value(name, text)

    for name, segments in continuations.items():
        params.setdefault(name, _join_continuations(segments))

    return params


def _disposition(raw: Any) -> Disposition | None:
    if not raw or not isinstance(raw, (list, tuple)):
        return None
    disposition_type = _text(raw[0])
    if not disposition_type:
        return None
    params = _params(raw[1]) if len(raw) > 1 else {}
    return Disposition(type=disposition_type, params=params)


def _split_multipart(node: Sequence[Any]) -> tuple[list[Any], Sequence[Any]]:
    """Separate child parts from the multipart subtype and extension data."""
    # imapclient's BodyData nests children into a list at index 0
    if isinstance(node[0], list):
        return node[0], node[1:]

    children = []
    rest_start = len(node)
    for index, item in enumerate(node):
        if not isinstance(item, (list, tuple)):
            rest_start = index
            break
        children.append(item)
    return children, node[rest_start:]


def _is_multipart(node: Sequence[Any]) -> bool:
    return len(node) > 0 and isinstance(node[0], (list, tuple))


def _single_part(node: Sequence[Any], part_id: str) -> BodyPart:
    media_type = (_text(node[0]) or "").lower()
    subtype = (_text(node[1]) or "").lower()

    if media_type == "text":
        disposition_index = _DISPOSITION_INDEX_TEXT
    elif media_type == "message" and subtype == "rfc822":
        disposition_index = _DISPOSITION_INDEX_MESSAGE
    else:
        disposition_index = _DISPOSITION_INDEX_BASIC

    size = node[6] if len(node) > 6 else None

    return BodyPart(
        part_id=part_id,
        type=media_type,
        subtype=subtype,
        params=_params(node[2] if len(node) > 2 else None),
        encoding=_text(node[5]) if len(node) > 5 else None,
        size=size if isinstance(size, int) else None,
        disposition=_disposition(
            node[disposition_index] if len(node) > disposition_index else None
        ),
    )


def parts_from_bodystructure(body: Sequence[Any], prefix: str = "") -> list[Any]:
    """
    Convert an IMAP BODYSTRUCTURE into a structure tree.

    Section numbers follow RFC 3501: a non-multipart message is part "1",
    the children of a multipart are numbered from 1 and nested multiparts
    extend their parent's number ("2.1", "2.2").

    Args:
        body: BODYSTRUCTURE as returned by imapclient (BodyData or raw tuples)
        prefix: Section number of the enclosing multipart

    Returns:
        Nested list of BodyPart leaves
    """
    if not _is_multipart(body):
        return [_single_part(body, prefix or "1")]

    children, _ = _split_multipart(body)
    tree: list[Any] = []

    for index, child in enumerate(children, start=1):
        part_id = f"{prefix}.{index}" if prefix else str(index)
        if _is_multipart(child):
            tree.append(parts_from_bodystructure(child, part_id))
        else:
            tree.append(_single_part(child, part_id))

    return tree
