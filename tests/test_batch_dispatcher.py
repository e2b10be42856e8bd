"""
Tests for batch partitioning, delivery and the recording reply sink.

INVARIANTS:
- A batch holds at most 10 cards and at most 6000 characters
- The first batch edits the placeholder, later batches are follow-ups
- Empty input sends nothing
"""

import pytest

from cardherald.models.visual_card import CardField, ReplyPayload, VisualCard
from cardherald.services.batch_dispatcher import (
    LONG_RESULT_NOTICE,
    LONG_TEXT_NOTICE,
    BatchDispatcher,
    chunk_text,
)
from cardherald.services.reply_sink import RecordingReplySink
from cardherald.services.size_constraint import CARD_SIZE_BUDGET, card_size


def _cards(count: int, description_length: int = 10) -> list[VisualCard]:
    return [VisualCard(title=f"Card {i}", description="d" * description_length) for i in range(count)]


class TestChunkText:
    def test_chunks_in_order(self) -> None:
        assert chunk_text("abcdefg", 3) == ["abc", "def", "g"]

    def test_empty_text(self) -> None:
        assert chunk_text("", 3) == []

    def test_rejects_non_positive_size(self) -> None:
        with pytest.raises(ValueError):
            chunk_text("abc", 0)


class TestPartition:
    def setup_method(self) -> None:
        self.dispatcher = BatchDispatcher()

    def test_count_cap(self) -> None:
        batches = self.dispatcher.partition(_cards(25))
        assert [len(b) for b in batches] == [10, 10, 5]

    def test_size_cap(self) -> None:
        batches = self.dispatcher.partition(_cards(3, description_length=2500))

        assert [len(b) for b in batches] == [2, 1]
        for batch in batches:
            assert sum(card_size(c) for c in batch) <= 6000

    def test_order_preserved(self) -> None:
        cards = _cards(23)
        batches = self.dispatcher.partition(cards)
        assert [c for batch in batches for c in batch] == cards

    def test_empty(self) -> None:
        assert self.dispatcher.partition([]) == []


class TestDispatch:
    def setup_method(self) -> None:
        self.dispatcher = BatchDispatcher()

    async def test_eleven_cards(self, sink: RecordingReplySink) -> None:
        cards = _cards(11)

        sent = await self.dispatcher.dispatch(cards, sink)

        assert sent is True
        assert [m.kind for m in sink.messages] == ["edit", "follow_up"]
        assert sink.edits[0].cards == tuple(cards[:10])
        assert sink.follow_ups[0].cards == (cards[10],)

    async def test_empty_sends_nothing(self, sink: RecordingReplySink) -> None:
        assert await self.dispatcher.dispatch([], sink) is False
        assert sink.messages == []

    async def test_short_text_is_single_edit(self, sink: RecordingReplySink) -> None:
        await self.dispatcher.dispatch_text("Dark Magician is a Normal Monster.", sink)

        assert sink.edits == [ReplyPayload(text="Dark Magician is a Normal Monster.")]
        assert sink.follow_ups == []

    async def test_long_text_chunked(self, sink: RecordingReplySink) -> None:
        text = "x" * 5000

        await self.dispatcher.dispatch_text(text, sink)

        assert sink.edits == [ReplyPayload(text=LONG_RESULT_NOTICE)]
        chunks = [p.text for p in sink.follow_ups]
        assert [len(c or "") for c in chunks] == [1900, 1900, 1200]
        assert "".join(c or "" for c in chunks) == text

    async def test_card_without_overflow(self, sink: RecordingReplySink) -> None:
        card = VisualCard(title="Dark Magician")

        await self.dispatcher.dispatch_card_with_overflow(card, "short text", sink)

        assert sink.messages[0].payload == ReplyPayload(cards=(card,))
        assert len(sink.messages) == 1

    async def test_card_with_overflow(self, sink: RecordingReplySink) -> None:
        card = VisualCard(title="Long Card")
        text = "t" * 4001

        await self.dispatcher.dispatch_card_with_overflow(card, text, sink)

        assert sink.edits == [ReplyPayload(text=LONG_TEXT_NOTICE, cards=(card,))]
        assert "".join(p.text or "" for p in sink.follow_ups) == text

    async def test_overflow_threshold_inclusive(self, sink: RecordingReplySink) -> None:
        card = VisualCard(title="Edge")
        await self.dispatcher.dispatch_card_with_overflow(card, "t" * 4000, sink)
        assert sink.follow_ups == []


class TestRecordingReplySink:
    async def test_clips_text(self, sink: RecordingReplySink) -> None:
        await sink.send_follow_up(ReplyPayload(text="x" * 2500))
        assert len(sink.follow_ups[0].text or "") == 2000

    async def test_clips_card_count(self, sink: RecordingReplySink) -> None:
        await sink.edit_placeholder(ReplyPayload(cards=tuple(_cards(12))))
        assert len(sink.edits[0].cards) == 10

    async def test_oversized_card_fitted(self, sink: RecordingReplySink) -> None:
        fields = tuple(CardField(name=f"F{i}", value="v" * 1024) for i in range(25))
        await sink.edit_placeholder(ReplyPayload(cards=(VisualCard(title="Big", fields=fields),)))

        assert card_size(sink.edits[0].cards[0]) <= CARD_SIZE_BUDGET

    async def test_compliant_payload_recorded_as_is(self, sink: RecordingReplySink) -> None:
        payload = ReplyPayload(text="ok", cards=(VisualCard(title="A"),))
        await sink.edit_placeholder(payload)
        assert sink.messages[0].payload is payload

    def test_payload_to_dict(self) -> None:
        card = VisualCard(
            title="Dark Magician",
            thumbnail_url="https://img.io/s.jpg",
            fields=(CardField(name="ATK", value="2500"),),
            footer_text="Archetype: Dark Magician",
            color=0x2F3136,
        )

        assert ReplyPayload(cards=(card,)).to_dict() == {
            "text": None,
            "cards": [
                {
                    "title": "Dark Magician",
                    "color": 0x2F3136,
                    "thumbnail": {"url": "https://img.io/s.jpg"},
                    "fields": [{"name": "ATK", "value": "2500", "inline": True}],
                    "footer": {"text": "Archetype: Dark Magician"},
                }
            ],
        }
