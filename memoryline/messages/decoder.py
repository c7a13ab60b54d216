"""Recover plain message text from iMessage ``attributedBody`` blobs.

Newer macOS releases often leave ``message.text`` NULL and store the body
only as an archived ``NSAttributedString``.  Two serializations show up:

- *typedstream* (``NSArchiver``), recognisable by the ``streamtyped`` marker
  near the start of the blob.  This is what chat.db uses in practice.
- *keyed archive* (``NSKeyedArchiver``), a binary plist with ``$objects`` and
  ``$top`` tables.

Decoding is best-effort.  Each strategy takes the raw blob and returns a
candidate string or ``None``; :func:`decode_body` runs them in order and
keeps the first candidate that survives :func:`is_garbage`.  Nothing here
does I/O or keeps state.
"""

from __future__ import annotations

import logging
import plistlib
import re
from collections.abc import Callable, Iterable
from typing import Any

logger = logging.getLogger(__name__)

STREAM_MARKER = b"streamtyped"
STRING_CLASS_MARKER = b"String"

# Class and archive tokens that never appear in a real message body.
ARCHIVE_TOKENS = (
    "streamtyped",
    "NSAttributedString",
    "NSMutableAttributedString",
    "NSString",
    "NSMutableString",
    "NSDictionary",
    "NSMutableDictionary",
    "NSArray",
    "NSNumber",
    "NSValue",
    "NSObject",
    "NSData",
    "NSKeyedArchiver",
    "$archiver",
    "$objects",
    "$classname",
    "__kIM",
    "IMFileTransfer",
)
INTERNAL_PREFIXES = ("__k", "kIM", "NS.", "$null", "IMMessage")
METADATA_MARKERS = ("AttributeName", "MessagePart", "FileTransfer", "DataDetector", "NS.", "__k")
TYPE_WORDS = ("String", "Dictionary", "Array", "Data", "Number", "Object", "Value")

MIN_TEXT_LENGTH = 2
MIN_RUN_LENGTH = 4
MAX_METADATA_MATCHES = 1

# Keyed-archive keys that may hold the root object or the string payload.
ROOT_KEYS = ("root", "NS.string", "NSString", "object")
STRING_KEYS = ("NS.string", "NSString", "NS.bytes")

_PRINTABLE_RUN_RE = re.compile(rb"[\x20-\x7e\t\n\r\x80-\xff]{%d,}" % MIN_RUN_LENGTH)
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

Strategy = Callable[[bytes], "str | None"]


def _clean(text: str) -> str:
    """Drop NULs and attachment placeholders, then trim."""
    return text.replace("\x00", "").replace("\ufffc", "").strip()


def is_garbage(text: str | None) -> bool:
    """Return True if *text* looks like archive metadata rather than a message."""
    if text is None:
        return True
    stripped = text.strip()
    if len(stripped) < MIN_TEXT_LENGTH:
        return True
    if any(token in stripped for token in ARCHIVE_TOKENS):
        return True
    if stripped.startswith(INTERNAL_PREFIXES):
        return True
    if _CONTROL_RE.search(stripped):
        return True
    matches = sum(stripped.count(marker) for marker in METADATA_MARKERS)
    if matches > MAX_METADATA_MATCHES:
        return True
    # Bare type names like "NSMutableString" or "__NSCFDictionary"
    return " " not in stripped and any(word in stripped for word in TYPE_WORDS)


def _first_clean(candidates: Iterable[str | None]) -> str | None:
    for candidate in candidates:
        if candidate is None:
            continue
        cleaned = _clean(candidate)
        if cleaned and not is_garbage(cleaned):
            return cleaned
    return None


# -- Strategy 1: keyed archive -------------------------------------------------


def decode_keyed_archive(blob: bytes) -> str | None:
    """Walk an ``NSKeyedArchiver`` binary plist for its string payload."""
    if not blob.startswith(b"bplist"):
        return None
    try:
        archive = plistlib.loads(blob)
    except (plistlib.InvalidFileException, ValueError, RecursionError):
        return None

    if not isinstance(archive, dict):
        return None
    objects = archive.get("$objects")
    top = archive.get("$top")
    if not isinstance(objects, list) or not isinstance(top, dict):
        return None

    def resolve(value: Any, seen: frozenset[int]) -> tuple[Any, frozenset[int]]:
        current = value
        while isinstance(current, plistlib.UID):
            uid = current.data
            if uid in seen or not 0 <= uid < len(objects):
                return None, seen
            seen = seen | {uid}
            current = objects[uid]
        return current, seen

    def extract(value: Any, seen: frozenset[int] = frozenset()) -> str | None:
        node, seen = resolve(value, seen)
        if isinstance(node, str):
            return None if node == "$null" else node
        if isinstance(node, bytes):
            return node.decode("utf-8", errors="ignore")
        if isinstance(node, dict):
            for key in STRING_KEYS:
                if key in node:
                    found = extract(node[key], seen)
                    if found:
                        return found
            members = node.get("NS.objects")
            for item in members if isinstance(members, list) else []:
                found = extract(item, seen)
                if found and not is_garbage(found):
                    return found
        if isinstance(node, list):
            for item in node:
                found = extract(item, seen)
                if found and not is_garbage(found):
                    return found
        return None

    roots = [top[key] for key in ROOT_KEYS if key in top]
    roots.extend(value for key, value in top.items() if key not in ROOT_KEYS)
    found = _first_clean(extract(root) for root in roots)
    if found:
        return found
    return _first_clean(extract(entry) for entry in objects)


# -- Strategy 2: typedstream scan ------------------------------------------------


def _read_length_prefixed(data: bytes, start: int) -> str | None:
    """Read the ``+``-tagged, length-prefixed UTF-8 string after *start*."""
    plus = data.find(b"+", start, start + 16)
    if plus == -1 or plus + 1 >= len(data):
        return None
    cursor = plus + 1
    length = data[cursor]
    cursor += 1
    if length == 0x81:
        length = int.from_bytes(data[cursor : cursor + 2], "little")
        cursor += 2
    elif length == 0x82:
        length = int.from_bytes(data[cursor : cursor + 4], "little")
        cursor += 4
    raw = data[cursor : cursor + length]
    if not raw or len(raw) != length:
        return None
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw.decode("utf-8", errors="ignore")


def decode_typedstream(blob: bytes) -> str | None:
    """Find the string payload that follows a ``*String`` class tag."""
    marker = blob.find(STREAM_MARKER)
    body = blob[marker + len(STREAM_MARKER) :] if marker != -1 else blob

    candidates = []
    index = body.find(STRING_CLASS_MARKER)
    while index != -1:
        candidates.append(_read_length_prefixed(body, index + len(STRING_CLASS_MARKER)))
        index = body.find(STRING_CLASS_MARKER, index + 1)
    return _first_clean(candidates)


# -- Strategy 3: printable runs --------------------------------------------------


def decode_printable_runs(blob: bytes) -> str | None:
    """Return the longest printable run that is not archive metadata.

    Longer runs are more likely to be the message body than class names or
    attribute keys.
    """
    survivors = []
    for run in _PRINTABLE_RUN_RE.findall(blob):
        text = _clean(run.decode("utf-8", errors="ignore"))
        if len(text) >= MIN_RUN_LENGTH and not is_garbage(text):
            survivors.append(text)
    return max(survivors, key=len, default=None)


DECODE_STRATEGIES: tuple[Strategy, ...] = (
    decode_keyed_archive,
    decode_typedstream,
    decode_printable_runs,
)


def decode_body(
    text: str | None,
    blob: bytes | None,
    strategies: Iterable[Strategy] = DECODE_STRATEGIES,
) -> str | None:
    """Best-effort plain text for one message row.

    Prefers the ``text`` column; otherwise tries each blob strategy in order.
    A zero-length blob counts as absent.  Returns ``None`` when nothing
    plausible can be recovered.
    """
    if text:
        cleaned = _clean(text)
        if not is_garbage(cleaned):
            return cleaned

    if not blob:
        return None

    data = bytes(blob)
    for strategy in strategies:
        result = strategy(data)
        if result and not is_garbage(result):
            return result.strip()

    logger.debug("Could not decode message body (%d bytes)", len(data))
    return None
