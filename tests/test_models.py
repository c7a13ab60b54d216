"""Tests for ConversationItem."""

from datetime import UTC, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from memoryline.models import ConversationItem, Source


def _item(**overrides) -> ConversationItem:
    fields = {
        "timestamp": datetime(2024, 5, 1, 10, 0, tzinfo=UTC),
        "speaker": "You",
        "text": "hello",
        "source": Source.IMESSAGE,
    }
    fields.update(overrides)
    return ConversationItem(**fields)


class TestConversationItem:
    def test_defaults(self):
        item = _item()
        assert item.participant_identifier is None
        assert item.conversation_group_id is None
        assert item.is_self_authored is False
        assert len(item.id) == 36

    def test_ids_are_unique(self):
        assert _item().id != _item().id

    def test_naive_timestamp_is_treated_as_utc(self):
        item = _item(timestamp=datetime(2024, 5, 1, 10, 0))
        assert item.timestamp == datetime(2024, 5, 1, 10, 0, tzinfo=UTC)

    def test_offset_timestamp_is_converted(self):
        eastern = timezone(timedelta(hours=-4))
        item = _item(timestamp=datetime(2024, 5, 1, 6, 0, tzinfo=eastern))
        assert item.timestamp.utcoffset() == timedelta(0)
        assert item.timestamp.hour == 10

    @pytest.mark.parametrize("text", ["", "   ", "\n"])
    def test_blank_text_rejected(self, text):
        with pytest.raises(ValidationError):
            _item(text=text)

    def test_frozen(self):
        item = _item()
        with pytest.raises(ValidationError):
            item.speaker = "Someone"

    def test_with_speaker(self):
        item = _item(participant_identifier="+15551234567", speaker="+15551234567")
        renamed = item.with_speaker("Lewis Clements")
        assert renamed.speaker == "Lewis Clements"
        assert renamed.id == item.id
        assert item.speaker == "+15551234567"

    def test_json_round_trip_keeps_source(self):
        item = _item(source=Source.OMI)
        assert ConversationItem.model_validate_json(item.model_dump_json()) == item
