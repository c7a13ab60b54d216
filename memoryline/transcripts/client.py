"""Omi transcript API client using httpx."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Protocol

import httpx
from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from memoryline.config import settings
from memoryline.models import ConversationItem, Source, as_utc

logger = logging.getLogger(__name__)

DEFAULT_SPEAKER = "Omi"


class TranscriptError(Exception):
    """Base class for remote transcript failures."""


class MissingAPIKeyError(TranscriptError):
    def __init__(self) -> None:
        super().__init__("Add your Omi API key (OMI_API_KEY) before running ingestion.")


class TranscriptRequestError(TranscriptError):
    def __init__(self, status: int, message: str) -> None:
        super().__init__(f"Omi API request failed (status: {status}): {message}")
        self.status = status
        self.message = message


class TranscriptDecodingError(TranscriptError):
    def __init__(self, detail: str = "") -> None:
        msg = "Could not decode Omi transcripts. Verify the API response structure."
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(msg)


# -- Response models -----------------------------------------------------------


class Utterance(BaseModel):
    speaker: str | None = None
    text: str = ""
    started_at: datetime | None = Field(
        default=None, validation_alias=AliasChoices("startedAt", "started_at")
    )

    @field_validator("started_at")
    @classmethod
    def _ensure_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None


class Transcript(BaseModel):
    id: str
    started_at: datetime = Field(validation_alias=AliasChoices("startedAt", "started_at"))
    speaker: str | None = None
    text: str | None = None
    utterances: list[Utterance] | None = None
    entries: list[Utterance] | None = None

    @field_validator("started_at")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class TranscriptEnvelope(BaseModel):
    data: list[Transcript]


def transcripts_to_items(transcripts: list[Transcript]) -> list[ConversationItem]:
    """Flatten transcripts into conversation items, oldest transcript first.

    Utterance lists win over the flat ``text``/``speaker`` fields; blank
    text is dropped.
    """
    items: list[ConversationItem] = []
    for transcript in sorted(transcripts, key=lambda t: t.started_at):
        utterances = transcript.utterances or transcript.entries
        if utterances:
            for utterance in utterances:
                spoken = utterance.text.strip()
                if not spoken:
                    continue
                items.append(
                    ConversationItem(
                        timestamp=utterance.started_at or transcript.started_at,
                        speaker=utterance.speaker or transcript.speaker or DEFAULT_SPEAKER,
                        text=spoken,
                        source=Source.OMI,
                        participant_identifier=utterance.speaker,
                        conversation_group_id=transcript.id,
                    )
                )
            continue

        spoken = (transcript.text or "").strip()
        if not spoken:
            continue
        items.append(
            ConversationItem(
                timestamp=transcript.started_at,
                speaker=transcript.speaker or DEFAULT_SPEAKER,
                text=spoken,
                source=Source.OMI,
                participant_identifier=transcript.speaker,
                conversation_group_id=transcript.id,
            )
        )
    return items


# -- Clients -------------------------------------------------------------------


class TranscriptSource(Protocol):
    async def fetch_recent_transcripts(self, limit: int) -> list[ConversationItem]: ...


class OmiClient:
    """Fetches recent transcripts from the Omi API.

    *transport* is handed to ``httpx.AsyncClient`` (tests pass an
    ``httpx.MockTransport``).
    """

    def __init__(
        self,
        api_key: str | None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key or None
        self._base_url = (base_url or settings.omi_base_url).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.omi_timeout_seconds
        self._transport = transport

    async def fetch_recent_transcripts(self, limit: int) -> list[ConversationItem]:
        if not self._api_key:
            raise MissingAPIKeyError

        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Accept": "application/json",
        }
        params = {"limit": str(limit), "order": "desc"}

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                resp = await client.get(
                    f"{self._base_url}/transcripts", headers=headers, params=params
                )
        except httpx.HTTPError as exc:
            raise TranscriptRequestError(-1, str(exc)) from exc

        if not 200 <= resp.status_code < 300:
            raise TranscriptRequestError(resp.status_code, resp.text[:300] or "Unknown error")

        try:
            envelope = TranscriptEnvelope.model_validate_json(resp.content)
        except ValidationError as exc:
            raise TranscriptDecodingError(f"{exc.error_count()} validation errors") from exc

        items = transcripts_to_items(envelope.data)
        logger.info(
            "Fetched %d transcripts (%d utterances) from Omi", len(envelope.data), len(items)
        )
        return items


class DisabledTranscriptClient:
    """Stand-in used when no Omi API key is configured."""

    def __init__(self) -> None:
        self._warned = False

    async def fetch_recent_transcripts(self, limit: int) -> list[ConversationItem]:  # noqa: ARG002
        if not self._warned:
            logger.warning("OMI_API_KEY not set, skipping remote transcripts")
            self._warned = True
        return []


def create_transcript_client(
    api_key: str | None = None,
) -> OmiClient | DisabledTranscriptClient:
    """Return an ``OmiClient`` when a key is available, else a disabled client."""
    key = api_key if api_key is not None else settings.omi_api_key
    if not key:
        return DisabledTranscriptClient()
    return OmiClient(api_key=key)
