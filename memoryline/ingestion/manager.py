"""Merges iMessage and Omi into one chronological stream.

Flow for one ``ingest()`` call:

1. Fetch local messages and remote transcripts concurrently.  Each source
   fails on its own: an error or timeout becomes an empty list for that
   source only.
2. Concatenate and stable-sort by timestamp, oldest first.  This ascending
   order is the contract for every consumer.
3. Replace raw handles with contact names where the resolver knows them.
4. Non-empty result: write it to the snapshot cache and return it.
   Empty result: return whatever the snapshot cache holds (maybe nothing).

``ingest()`` never raises.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Protocol

from memoryline.config import settings
from memoryline.contacts.directory import create_directory
from memoryline.contacts.resolver import ContactResolver
from memoryline.ingestion.cache import SnapshotCache
from memoryline.messages.reader import DataSourceError, MessageStoreReader
from memoryline.models import ConversationItem
from memoryline.transcripts.client import (
    TranscriptError,
    TranscriptSource,
    create_transcript_client,
)

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 200
SAMPLE_SIZE = 3


class MessageSource(Protocol):
    async def fetch_recent_messages(self, limit: int) -> list[ConversationItem]: ...


@dataclass
class IngestionReport:
    """What happened during the most recent ``ingest()`` call."""

    status: str = "idle"  # "success", "cached", "empty"
    message_count: int = 0
    transcript_count: int = 0
    total: int = 0
    used_cache: bool = False
    errors: dict[str, str] = field(default_factory=dict)
    sample: list[ConversationItem] = field(default_factory=list)


class IngestionManager:
    """Pulls recent conversations from every source into a single timeline.

    The resolver is passed in so one contact cache can be shared across
    ingestions for the whole run.
    """

    def __init__(
        self,
        messages: MessageSource,
        transcripts: TranscriptSource,
        resolver: ContactResolver,
        cache: SnapshotCache,
        source_timeout: float | None = None,
    ) -> None:
        self._messages = messages
        self._transcripts = transcripts
        self._resolver = resolver
        self._cache = cache
        self._source_timeout = source_timeout
        self.last_report = IngestionReport()

    @classmethod
    def from_settings(cls, resolver: ContactResolver | None = None) -> IngestionManager:
        """Wire every collaborator from environment configuration."""
        return cls(
            messages=MessageStoreReader.from_settings(),
            transcripts=create_transcript_client(),
            resolver=resolver or ContactResolver(create_directory()),
            cache=SnapshotCache(),
            source_timeout=settings.ingest_source_timeout_seconds or None,
        )

    async def ingest(self, limit: int = DEFAULT_LIMIT) -> list[ConversationItem]:
        report = IngestionReport()

        messages, transcripts = await asyncio.gather(
            self._fetch("imessage", self._messages.fetch_recent_messages, limit, report),
            self._fetch("omi", self._transcripts.fetch_recent_transcripts, limit, report),
        )
        report.message_count = len(messages)
        report.transcript_count = len(transcripts)

        merged = sorted([*messages, *transcripts], key=lambda item: item.timestamp)
        enriched = await self._enrich(merged)

        if enriched:
            self._cache.save(enriched)
            result = enriched
            report.status = "success"
        else:
            result = self._cache.load()
            report.used_cache = True
            report.status = "cached" if result else "empty"
            if result:
                logger.info("No live conversations; serving %d cached items", len(result))
            else:
                logger.warning("No conversations available from any source or the cache")

        report.total = len(result)
        report.sample = result[:SAMPLE_SIZE]
        self.last_report = report
        logger.info(
            "Ingestion %s: %d messages, %d transcript items, %d returned",
            report.status,
            report.message_count,
            report.transcript_count,
            report.total,
        )
        return result

    async def _fetch(
        self,
        name: str,
        fetch: Callable[[int], Awaitable[list[ConversationItem]]],
        limit: int,
        report: IngestionReport,
    ) -> list[ConversationItem]:
        """Run one source, turning any failure into an empty list."""
        try:
            return await asyncio.wait_for(fetch(limit), timeout=self._source_timeout)
        except (DataSourceError, TranscriptError) as exc:
            logger.warning("%s source unavailable: %s", name, exc)
            report.errors[name] = str(exc)
        except TimeoutError:
            logger.warning("%s source timed out after %ss", name, self._source_timeout)
            report.errors[name] = f"timed out after {self._source_timeout}s"
        except Exception as exc:
            logger.exception("%s source failed unexpectedly", name)
            report.errors[name] = str(exc) or type(exc).__name__
        return []

    async def _enrich(self, items: list[ConversationItem]) -> list[ConversationItem]:
        handles = sorted({i.participant_identifier for i in items if i.participant_identifier})
        if not handles:
            return items

        names = await asyncio.gather(*(self._resolver.display_name(h) for h in handles))
        resolved = dict(zip(handles, names, strict=True))

        enriched = []
        for item in items:
            name = resolved.get(item.participant_identifier or "", "").strip()
            enriched.append(item.with_speaker(name) if name and name != item.speaker else item)
        return enriched
