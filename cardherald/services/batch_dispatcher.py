"""
Batch dispatch service.

Cards go out in ordered batches. The first batch replaces the pending
placeholder reply; every later batch is a follow-up message. Text longer
than one message is split into fixed-size chunks sent in order.

INVARIANTS:
- A batch holds at most CARDS_PER_BATCH cards
- A batch's total serialized size is at most BATCH_SIZE_CAP
- Card order and text order are preserved
- Empty input sends nothing and reports it to the caller
"""

import logging
from collections.abc import Sequence

from cardherald.config import (
    BATCH_SIZE_CAP,
    CARDS_PER_BATCH,
    LONG_TEXT_FOLLOW_UP_THRESHOLD,
    MESSAGE_CHAR_LIMIT,
    TEXT_CHUNK_SIZE,
)
from cardherald.models.visual_card import Batch, ReplyPayload, VisualCard
from cardherald.services.reply_sink import ReplySink
from cardherald.services.size_constraint import card_size

logger = logging.getLogger(__name__)

LONG_RESULT_NOTICE = "Result too long; sending full result in follow-up messages."
LONG_TEXT_NOTICE = "Result too long; sending full text in follow-up messages."


def chunk_text(text: str, chunk_size: int = TEXT_CHUNK_SIZE) -> list[str]:
    """Split text into consecutive chunks of chunk_size characters (the last may be shorter)."""
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    return [text[i : i + chunk_size] for i in range(0, len(text), chunk_size)]


class BatchDispatcher:
    """Partitions cards into batches and sends them through a reply sink."""

    def __init__(
        self,
        cards_per_batch: int = CARDS_PER_BATCH,
        batch_size_cap: int = BATCH_SIZE_CAP,
        message_char_limit: int = MESSAGE_CHAR_LIMIT,
        chunk_size: int = TEXT_CHUNK_SIZE,
    ) -> None:
        self.cards_per_batch = cards_per_batch
        self.batch_size_cap = batch_size_cap
        self.message_char_limit = message_char_limit
        self.chunk_size = chunk_size

    def partition(self, cards: Sequence[VisualCard]) -> list[Batch]:
        """
        Group cards greedily into batches.

        A new batch starts when adding the next card would exceed either
        the count or the size cap. A card is never split.
        """
        batches: list[Batch] = []
        current: list[VisualCard] = []
        current_size = 0

        for card in cards:
            size = card_size(card)
            if current and (
                len(current) >= self.cards_per_batch
                or current_size + size > self.batch_size_cap
            ):
                batches.append(tuple(current))
                current = []
                current_size = 0
            current.append(card)
            current_size += size

        if current:
            batches.append(tuple(current))
        return batches

    async def dispatch(self, cards: Sequence[VisualCard], sink: ReplySink) -> bool:
        """
        Send cards, first batch as the placeholder edit.

        Returns:
            False when there was nothing to send (the sink was not called)
        """
        batches = self.partition(cards)
        if not batches:
            return False

        await sink.edit_placeholder(ReplyPayload(cards=batches[0]))
        for batch in batches[1:]:
            await sink.send_follow_up(ReplyPayload(cards=batch))

        logger.info(
            "cards_dispatched",
            extra={"card_count": len(cards), "batch_count": len(batches)},
        )
        return True

    async def dispatch_text(self, text: str, sink: ReplySink) -> None:
        """
        Send plain text.

        Short text replaces the placeholder. Longer text leaves a notice in
        the placeholder and follows up with the text in chunks.
        """
        if len(text) <= self.message_char_limit:
            await sink.edit_placeholder(ReplyPayload(text=text))
            return

        chunks = chunk_text(text, self.chunk_size)
        await sink.edit_placeholder(ReplyPayload(text=LONG_RESULT_NOTICE))
        for chunk in chunks:
            await sink.send_follow_up(ReplyPayload(text=chunk))

        logger.info(
            "long_text_dispatched",
            extra={"length": len(text), "chunk_count": len(chunks)},
        )

    async def dispatch_card_with_overflow(
        self,
        card: VisualCard,
        full_text: str,
        sink: ReplySink,
        threshold: int = LONG_TEXT_FOLLOW_UP_THRESHOLD,
    ) -> None:
        """
        Send one card; when its full text is very long, follow with the text.

        The card itself only carries a truncated excerpt, so text above
        the threshold is sent in chunks after it.
        """
        if not full_text or len(full_text) <= threshold:
            await sink.edit_placeholder(ReplyPayload(cards=(card,)))
            return

        await sink.edit_placeholder(ReplyPayload(text=LONG_TEXT_NOTICE, cards=(card,)))
        for chunk in chunk_text(full_text, self.chunk_size):
            await sink.send_follow_up(ReplyPayload(text=chunk))
