"""Demo conversations for when no real history is available."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime, timedelta
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from memoryline.config import settings
from memoryline.models import ConversationItem, Source

logger = logging.getLogger(__name__)

_ITEMS = TypeAdapter(list[ConversationItem])


class DemoDataLoader:
    """Loads sample conversations from a JSON file, or built-in ones."""

    def __init__(self, path: Path | None = None) -> None:
        configured = settings.demo_data_path
        self._path = path or (Path(configured) if configured else None)

    def load(self) -> list[ConversationItem]:
        if self._path is None or not self._path.exists():
            return self.fallback()
        try:
            items = _ITEMS.validate_python(json.loads(self._path.read_text("utf-8")))
        except (OSError, ValueError, RecursionError, ValidationError):
            logger.warning("Could not load demo data from %s", self._path, exc_info=True)
            return self.fallback()
        return sorted(items, key=lambda item: item.timestamp)

    @staticmethod
    def fallback(now: datetime | None = None) -> list[ConversationItem]:
        now = now or datetime.now(UTC)
        lines = [
            (60, "Lewis", "We should remix the Omi logs into something fun tonight!"),
            (30, "Omi", "Reminder: you promised to stretch before coding."),
            (10, "Lewis", "Okay fine, but only if the newspaper roasts me."),
        ]
        return [
            ConversationItem(
                timestamp=now - timedelta(minutes=minutes),
                speaker=speaker,
                text=text,
                source=Source.DEMO,
            )
            for minutes, speaker, text in lines
        ]
