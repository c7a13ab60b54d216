"""JSON copy of the last successful merged timeline."""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from memoryline.config import settings
from memoryline.models import ConversationItem

logger = logging.getLogger(__name__)

_ITEMS = TypeAdapter(list[ConversationItem])


class SnapshotCache:
    """Keeps the most recent merged conversation history on disk.

    The whole file is replaced atomically on every save.  A missing or
    corrupt file reads as an empty cache, and write failures are logged and
    ignored: this is a convenience copy, not a source of truth.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or settings.cache_path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> list[ConversationItem]:
        if not self._path.exists():
            return []
        try:
            raw = json.loads(self._path.read_text("utf-8"))
            return _ITEMS.validate_python(raw)
        except (OSError, ValueError, RecursionError, ValidationError):
            logger.warning("Ignoring unreadable snapshot cache at %s", self._path, exc_info=True)
            return []

    def save(self, items: list[ConversationItem]) -> None:
        payload = json.dumps(
            _ITEMS.dump_python(items, mode="json"),
            indent=2,
            sort_keys=True,
            ensure_ascii=False,
        )
        tmp_name = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp_name, self._path)
            tmp_name = None
            logger.debug("Saved %d items to snapshot cache %s", len(items), self._path)
        except OSError:
            logger.warning("Could not write snapshot cache at %s", self._path, exc_info=True)
        finally:
            if tmp_name is not None:
                with contextlib.suppress(OSError):
                    Path(tmp_name).unlink(missing_ok=True)
