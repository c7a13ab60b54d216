"""Shared test fixtures."""

from __future__ import annotations

import plistlib
from datetime import UTC, datetime
from pathlib import Path

import aiosqlite
import pytest

from memoryline.contacts.directory import ContactRecord
from memoryline.integrations.google_auth import GoogleAuthManager

APPLE_EPOCH = datetime(2001, 1, 1, tzinfo=UTC)

_CHAT_DB_SCHEMA = """
CREATE TABLE handle (
    ROWID INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL,
    service TEXT DEFAULT 'iMessage'
);
CREATE TABLE message (
    ROWID INTEGER PRIMARY KEY AUTOINCREMENT,
    guid TEXT UNIQUE NOT NULL,
    text TEXT,
    attributedBody BLOB,
    handle_id INTEGER DEFAULT 0,
    date INTEGER,
    is_from_me INTEGER DEFAULT 0
);
CREATE TABLE chat (
    ROWID INTEGER PRIMARY KEY AUTOINCREMENT,
    guid TEXT UNIQUE NOT NULL
);
CREATE TABLE chat_message_join (chat_id INTEGER, message_id INTEGER);
CREATE TABLE chat_handle_join (chat_id INTEGER, handle_id INTEGER);
"""


def apple_ns(moment: datetime) -> int:
    """Nanoseconds since 2001-01-01, as newer chat.db files store ``date``."""
    return int((moment - APPLE_EPOCH).total_seconds()) * 1_000_000_000


def make_typedstream(text: str) -> bytes:
    """A minimal NSArchiver attributedBody wrapping *text*."""
    payload = text.encode("utf-8")
    if len(payload) < 0x80:
        length = bytes([len(payload)])
    else:
        length = b"\x81" + len(payload).to_bytes(2, "little")
    return (
        b"\x04\x0bstreamtyped\x81\xe8\x03\x84\x01@\x84\x84\x84\x12NSAttributedString\x00"
        b"\x84\x84\x08NSObject\x00\x85\x92\x84\x84\x84\x08NSString\x01\x94\x84\x01+"
        + length
        + payload
        + b"\x86\x84\x02iI\x01\x05\x92\x84\x84\x84\x0cNSDictionary\x00\x94\x84\x01i\x01"
        b"\x92\x84\x96\x96\x1d__kIMMessagePartAttributeName\x86\x92\x84\x84\x84\x08NSNumber"
        b"\x00\x84\x84\x07NSValue\x00\x94\x84\x01*\x84\x99\x99\x00\x86\x86\x86"
    )


def make_keyed_archive(text: str) -> bytes:
    """A binary-plist NSKeyedArchiver attributed string wrapping *text*."""
    archive = {
        "$version": 100000,
        "$archiver": "NSKeyedArchiver",
        "$top": {"root": plistlib.UID(1)},
        "$objects": [
            "$null",
            {
                "$class": plistlib.UID(4),
                "NSString": plistlib.UID(2),
                "NSAttributes": plistlib.UID(0),
            },
            {"$class": plistlib.UID(3), "NS.string": text},
            {"$classname": "NSMutableString", "$classes": ["NSMutableString", "NSObject"]},
            {
                "$classname": "NSMutableAttributedString",
                "$classes": ["NSMutableAttributedString", "NSObject"],
            },
        ],
    }
    return plistlib.dumps(archive, fmt=plistlib.FMT_BINARY)


class ChatDbBuilder:
    """Collects rows for a synthetic chat.db, then writes the file."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._handles: list[str] = []
        self._chats: list[tuple[str, list[int]]] = []
        self._messages: list[dict] = []

    def handle(self, identifier: str) -> int:
        self._handles.append(identifier)
        return len(self._handles)

    def chat(self, guid: str, handles: list[int]) -> int:
        self._chats.append((guid, handles))
        return len(self._chats)

    def message(
        self,
        guid: str,
        date: int,
        *,
        text: str | None = None,
        blob: bytes | None = None,
        handle: int = 0,
        chat: int | None = None,
        from_me: bool = False,
    ) -> None:
        self._messages.append(
            {
                "guid": guid,
                "date": date,
                "text": text,
                "blob": blob,
                "handle": handle,
                "chat": chat,
                "from_me": int(from_me),
            }
        )

    async def write(self) -> Path:
        db = await aiosqlite.connect(self.path)
        try:
            await db.executescript(_CHAT_DB_SCHEMA)
            for identifier in self._handles:
                await db.execute("INSERT INTO handle (id) VALUES (?)", (identifier,))
            for chat_id, (guid, handles) in enumerate(self._chats, start=1):
                await db.execute("INSERT INTO chat (guid) VALUES (?)", (guid,))
                for handle_id in handles:
                    await db.execute(
                        "INSERT INTO chat_handle_join (chat_id, handle_id) VALUES (?, ?)",
                        (chat_id, handle_id),
                    )
            for row_id, msg in enumerate(self._messages, start=1):
                await db.execute(
                    "INSERT INTO message (guid, text, attributedBody, handle_id, date, is_from_me)"
                    " VALUES (?, ?, ?, ?, ?, ?)",
                    (
                        msg["guid"],
                        msg["text"],
                        msg["blob"],
                        msg["handle"],
                        msg["date"],
                        msg["from_me"],
                    ),
                )
                if msg["chat"] is not None:
                    await db.execute(
                        "INSERT INTO chat_message_join (chat_id, message_id) VALUES (?, ?)",
                        (msg["chat"], row_id),
                    )
            await db.commit()
        finally:
            await db.close()
        return self.path


class FakeDirectory:
    """In-memory contact directory that counts lookups."""

    def __init__(self) -> None:
        self.phones: dict[str, ContactRecord] = {}
        self.emails: dict[str, ContactRecord] = {}
        self.calls: list[str] = []
        self.fail = False

    async def lookup_phone(self, phone: str) -> ContactRecord | None:
        self.calls.append(phone)
        if self.fail:
            raise RuntimeError("directory offline")
        return self.phones.get(phone)

    async def lookup_email(self, email: str) -> ContactRecord | None:
        self.calls.append(email)
        if self.fail:
            raise RuntimeError("directory offline")
        return self.emails.get(email)


@pytest.fixture
def chat_db(tmp_path: Path) -> ChatDbBuilder:
    """Builder for a throwaway chat.db under tmp_path."""
    return ChatDbBuilder(tmp_path / "chat.db")


@pytest.fixture
def fake_directory() -> FakeDirectory:
    return FakeDirectory()


@pytest.fixture
def typedstream():
    return make_typedstream


@pytest.fixture
def keyed_archive():
    return make_keyed_archive


@pytest.fixture
def to_apple_ns():
    return apple_ns


@pytest.fixture(autouse=True)
def _reset_google_auth():
    """Clear the GoogleAuthManager instance cache between tests."""
    GoogleAuthManager._instances = {}
    yield
    GoogleAuthManager._instances = {}
