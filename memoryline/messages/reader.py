"""Read-only access to the local iMessage chat.db."""

from __future__ import annotations

import logging
import os
import uuid
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import aiosqlite

from memoryline.config import settings
from memoryline.messages.decoder import decode_body
from memoryline.models import ConversationItem, Source

logger = logging.getLogger(__name__)

APPLE_EPOCH = datetime(2001, 1, 1, tzinfo=UTC)
# Seconds since 2001 stay far below this for any plausible date; nanosecond
# values pass it roughly seventeen minutes after the epoch.
NANOSECOND_THRESHOLD = 1_000_000_000_000
SELF_SPEAKER = "You"
UNKNOWN_SPEAKER = "Unknown"

_BASE_QUERY = """
SELECT
    message.guid AS guid,
    message.date AS date,
    message.is_from_me AS is_from_me,
    message.text AS text,
    message.attributedBody AS attributed_body,
    handle.id AS handle,
    chat.guid AS chat_guid
FROM message
LEFT JOIN handle ON message.handle_id = handle.ROWID
LEFT JOIN chat_message_join ON chat_message_join.message_id = message.ROWID
LEFT JOIN chat ON chat.ROWID = chat_message_join.chat_id
WHERE (message.text IS NOT NULL OR message.attributedBody IS NOT NULL)
"""

_ONE_TO_ONE_CLAUSE = """
  AND (
    chat.ROWID IS NULL
    OR (SELECT COUNT(*) FROM chat_handle_join
        WHERE chat_handle_join.chat_id = chat.ROWID) <= 1
  )
"""


class DataSourceError(Exception):
    """Base class for local message store failures."""

    description = "The local message store could not be read."

    def __str__(self) -> str:
        return self.description


class MissingPermissionsError(DataSourceError):
    description = "Grant Full Disk Access to read iMessage history."


class ConnectionFailedError(DataSourceError):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message
        self.description = f"Unable to open chat.db: {message}"


class QueryFailedError(DataSourceError):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message
        self.description = f"Failed to query chat.db: {message}"


def apple_time_to_datetime(raw_value: int | float) -> datetime:
    """Convert a chat.db ``date`` value to an aware UTC datetime.

    chat.db stores seconds since 2001-01-01 on older macOS versions and
    nanoseconds since then on newer ones; the unit is detected by magnitude.
    """
    value = float(raw_value)
    seconds = value / 1_000_000_000 if abs(value) > NANOSECOND_THRESHOLD else value
    return APPLE_EPOCH + timedelta(seconds=seconds)


def build_query(
    chat_guids: Sequence[str] = (),
    handles: Sequence[str] = (),
    include_group_threads: bool = True,
) -> tuple[str, list[Any]]:
    """Return the SQL and bound parameters for a filtered message scan.

    Filters combine with AND.  Messages you sent are kept regardless of the
    handle filter.  Rows come back newest first.
    """
    sql = _BASE_QUERY
    params: list[Any] = []

    if chat_guids:
        placeholders = ", ".join("?" for _ in chat_guids)
        sql += f"  AND chat.guid IN ({placeholders})\n"
        params.extend(chat_guids)

    if handles:
        placeholders = ", ".join("?" for _ in handles)
        sql += f"  AND (message.is_from_me = 1 OR handle.id IN ({placeholders}))\n"
        params.extend(handles)

    if not include_group_threads:
        sql += _ONE_TO_ONE_CLAUSE

    sql += "ORDER BY message.date DESC\n"
    return sql, params


def _item_id(guid: str | None) -> str:
    """Use the message GUID when it is a UUID, otherwise mint a fresh one."""
    if guid:
        try:
            return str(uuid.UUID(guid))
        except ValueError:
            pass
    return str(uuid.uuid4())


def _row_to_item(row: aiosqlite.Row) -> ConversationItem | None:
    body = decode_body(row["text"], row["attributed_body"])
    if not body:
        return None

    is_from_me = bool(row["is_from_me"])
    handle = row["handle"] or None
    return ConversationItem(
        id=_item_id(row["guid"]),
        timestamp=apple_time_to_datetime(row["date"] or 0),
        speaker=SELF_SPEAKER if is_from_me else (handle or UNKNOWN_SPEAKER),
        text=body,
        source=Source.IMESSAGE,
        participant_identifier=None if is_from_me else handle,
        conversation_group_id=row["chat_guid"],
        is_self_authored=is_from_me,
    )


class MessageStoreReader:
    """Reads recent messages from chat.db without ever writing to it.

    A fresh read-only connection is opened for every call, since Messages.app
    keeps modifying the database underneath us.  Default filters come from the
    constructor; each call may override them.
    """

    def __init__(
        self,
        db_path: Path | None = None,
        *,
        chat_guids: Sequence[str] = (),
        handles: Sequence[str] = (),
        include_group_threads: bool = True,
    ) -> None:
        self._db_path = Path(db_path or settings.imessage_db_path).expanduser()
        self._chat_guids = tuple(chat_guids)
        self._handles = tuple(handles)
        self._include_group_threads = include_group_threads

    @classmethod
    def from_settings(cls) -> MessageStoreReader:
        return cls(
            settings.imessage_db_path,
            chat_guids=settings.get_chat_guids(),
            handles=settings.get_handle_filters(),
            include_group_threads=settings.imessage_include_groups,
        )

    @property
    def db_path(self) -> Path:
        return self._db_path

    def is_readable(self) -> bool:
        return self._db_path.is_file() and os.access(self._db_path, os.R_OK)

    async def fetch_recent_messages(
        self,
        limit: int,
        chat_guids: Sequence[str] | None = None,
        handles: Sequence[str] | None = None,
        include_group_threads: bool | None = None,
    ) -> list[ConversationItem]:
        """Return up to *limit* decodable messages, oldest first.

        Rows whose body cannot be decoded are skipped and do not count
        against *limit*.

        Raises ``MissingPermissionsError`` if the file is unreadable,
        ``ConnectionFailedError`` if SQLite cannot open it and
        ``QueryFailedError`` if the query fails.
        """
        if not self.is_readable():
            raise MissingPermissionsError

        sql, params = build_query(
            self._chat_guids if chat_guids is None else chat_guids,
            self._handles if handles is None else handles,
            self._include_group_threads
            if include_group_threads is None
            else include_group_threads,
        )

        uri = f"{self._db_path.resolve().as_uri()}?mode=ro"
        try:
            db = await aiosqlite.connect(uri, uri=True)
        except aiosqlite.Error as exc:
            raise ConnectionFailedError(str(exc)) from exc

        items: list[ConversationItem] = []
        seen: set[str] = set()
        skipped = 0
        try:
            db.row_factory = aiosqlite.Row
            async with db.execute(sql, params) as cursor:
                async for row in cursor:
                    if len(items) >= limit:
                        break
                    guid = row["guid"]
                    if guid and guid in seen:
                        continue
                    item = _row_to_item(row)
                    if item is None:
                        skipped += 1
                        continue
                    if guid:
                        seen.add(guid)
                    items.append(item)
        except aiosqlite.Error as exc:
            raise QueryFailedError(str(exc)) from exc
        finally:
            await db.close()

        logger.info(
            "Read %d messages from %s (%d undecodable rows skipped)",
            len(items),
            self._db_path,
            skipped,
        )
        return sorted(items, key=lambda item: item.timestamp)
