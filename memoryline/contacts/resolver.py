"""Memoised handle to display name lookups."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from memoryline.contacts.directory import normalize_phone

if TYPE_CHECKING:
    from memoryline.contacts.directory import ContactDirectory

logger = logging.getLogger(__name__)


def cache_key(handle: str) -> str:
    """E-mail handles are lowercased; phone handles keep only digits and ``+``."""
    stripped = handle.strip()
    if "@" in stripped:
        return stripped.lower()
    return normalize_phone(stripped) or stripped


class ContactResolver:
    """Resolves raw iMessage handles to contact names.

    One instance lives for the whole application run and is shared by every
    ingestion.  Answers (including misses) are cached for the life of the
    object and never invalidated.  A single ``asyncio.Lock`` guards the cache,
    so concurrent callers asking for the same handle trigger at most one
    directory query.  Lookup failures never propagate: the raw handle is
    returned instead.
    """

    def __init__(self, directory: ContactDirectory) -> None:
        self._directory = directory
        self._cache: dict[str, str | None] = {}
        self._lock = asyncio.Lock()

    async def display_name(self, handle: str) -> str:
        key = cache_key(handle)
        if not key:
            return handle
        async with self._lock:
            if key not in self._cache:
                self._cache[key] = await self._lookup(key)
            name = self._cache[key]
        return name or handle

    async def _lookup(self, key: str) -> str | None:
        try:
            if "@" in key:
                record = await self._directory.lookup_email(key)
            else:
                record = await self._directory.lookup_phone(key)
        except Exception:
            logger.warning("Contact lookup failed for %s", key, exc_info=True)
            return None
        if record is None:
            return None
        return record.display_name or None

    @property
    def cache_size(self) -> int:
        return len(self._cache)
