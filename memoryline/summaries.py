"""Per-contact rollups of the iMessage part of a timeline."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from memoryline.models import ConversationItem, Source

PREVIEW_LENGTH = 80


@dataclass(frozen=True)
class ContactSummary:
    id: str
    display_name: str
    message_count: int
    last_message: datetime
    preview: str


def _preview(text: str) -> str:
    flat = " ".join(text.split())
    if len(flat) <= PREVIEW_LENGTH:
        return flat
    return flat[: PREVIEW_LENGTH - 3] + "..."


def summarize_contacts(items: list[ConversationItem]) -> list[ContactSummary]:
    """Group messages from other people by handle, most recent contact first.

    Only incoming iMessage items count; the display name and preview come
    from each contact's latest message.
    """
    groups: dict[str, list[ConversationItem]] = {}
    for item in items:
        if item.source != Source.IMESSAGE or item.is_self_authored:
            continue
        key = item.participant_identifier or item.speaker
        groups.setdefault(key, []).append(item)

    summaries = []
    for key, group in groups.items():
        latest = max(group, key=lambda i: i.timestamp)
        summaries.append(
            ContactSummary(
                id=key,
                display_name=latest.speaker,
                message_count=len(group),
                last_message=latest.timestamp,
                preview=_preview(latest.text),
            )
        )
    return sorted(summaries, key=lambda s: s.last_message, reverse=True)


def contact_summary(items: list[ConversationItem], contact_id: str) -> ContactSummary | None:
    """Return the summary for one handle, or None if it has no messages."""
    return next((s for s in summarize_contacts(items) if s.id == contact_id), None)
