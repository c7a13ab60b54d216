"""Data models for the merged conversation timeline."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Source(StrEnum):
    """Where a conversation item came from."""

    IMESSAGE = "imessage"
    OMI = "omi"
    DEMO = "demo"


def new_item_id() -> str:
    return str(uuid.uuid4())


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC; aware ones are converted."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class ConversationItem(BaseModel):
    """A single utterance pulled from iMessage, Omi transcripts or demo data.

    Attributes:
        id: Unique within one ingestion run (UUID string).
        timestamp: Timezone-aware UTC instant.
        speaker: Best display name known at read time (raw handle if unresolved).
        text: Decoded plain text, never empty.
        source: Origin of the item.
        participant_identifier: Raw phone/e-mail handle used for contact lookup.
            ``None`` for self-authored items.
        conversation_group_id: Opaque thread identifier (chat GUID, transcript ID).
        is_self_authored: True when the local user wrote the item.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_item_id)
    timestamp: datetime
    speaker: str
    text: str = Field(min_length=1)
    source: Source
    participant_identifier: str | None = None
    conversation_group_id: str | None = None
    is_self_authored: bool = False

    @field_validator("timestamp")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @field_validator("text")
    @classmethod
    def _reject_blank(cls, value: str) -> str:
        if not value.strip():
            msg = "text must not be blank"
            raise ValueError(msg)
        return value

    def with_speaker(self, speaker: str) -> ConversationItem:
        """Return a copy with a different speaker name."""
        return self.model_copy(update={"speaker": speaker})
