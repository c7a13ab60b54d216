"""Tests for per-contact summaries."""

from datetime import UTC, datetime, timedelta

from memoryline.models import ConversationItem, Source
from memoryline.summaries import contact_summary, summarize_contacts

BASE = datetime(2024, 5, 1, 10, 0, tzinfo=UTC)


def _incoming(minutes, text, handle, speaker=None, source=Source.IMESSAGE):
    return ConversationItem(
        timestamp=BASE + timedelta(minutes=minutes),
        speaker=speaker or handle,
        text=text,
        source=source,
        participant_identifier=handle,
    )


def _timeline():
    return [
        _incoming(0, "first from lewis", "+15551234567", "Lewis Clements"),
        ConversationItem(
            timestamp=BASE + timedelta(minutes=1),
            speaker="You",
            text="my reply",
            source=Source.IMESSAGE,
            is_self_authored=True,
        ),
        _incoming(2, "hey it's maya", "maya@example.com"),
        _incoming(3, "latest from lewis", "+15551234567", "Lewis Clements"),
        _incoming(4, "omi heard this", "Desk mic", source=Source.OMI),
    ]


class TestSummarizeContacts:
    def test_groups_incoming_messages_by_handle(self):
        summaries = summarize_contacts(_timeline())

        assert [s.id for s in summaries] == ["+15551234567", "maya@example.com"]
        lewis = summaries[0]
        assert lewis.display_name == "Lewis Clements"
        assert lewis.message_count == 2
        assert lewis.preview == "latest from lewis"
        assert lewis.last_message == BASE + timedelta(minutes=3)

    def test_empty_timeline(self):
        assert summarize_contacts([]) == []

    def test_long_preview_is_truncated(self):
        text = "word " * 40
        [summary] = summarize_contacts([_incoming(0, text, "+15551234567")])
        assert len(summary.preview) == 80
        assert summary.preview.endswith("...")

    def test_preview_collapses_whitespace(self):
        [summary] = summarize_contacts([_incoming(0, "line one\n\nline   two", "+15551234567")])
        assert summary.preview == "line one line two"


class TestContactSummary:
    def test_found(self):
        summary = contact_summary(_timeline(), "maya@example.com")
        assert summary is not None
        assert summary.message_count == 1

    def test_missing(self):
        assert contact_summary(_timeline(), "nobody@example.com") is None
