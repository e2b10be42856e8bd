"""
Reply sinks.

The chat platform adapter implements ReplySink. It owns the transport and
must stay defensive: the dispatcher pre-partitions, but the sink still
enforces the per-message limits at the point of sending.

RecordingReplySink is the in-process implementation used by the HTTP
surface (delivered messages are returned in the response body) and by
tests.
"""

import logging
from dataclasses import dataclass, field
from typing import Literal, Protocol

from cardherald.config import CARDS_PER_BATCH, MESSAGE_CHAR_LIMIT
from cardherald.models.visual_card import ReplyPayload
from cardherald.services.size_constraint import fit_card

logger = logging.getLogger(__name__)

DeliveryKind = Literal["edit", "follow_up"]


class ReplySink(Protocol):
    """Delivers reply payloads to one conversation."""

    async def edit_placeholder(self, payload: ReplyPayload) -> None:
        """Replace the pending "thinking" reply."""
        ...

    async def send_follow_up(self, payload: ReplyPayload) -> None:
        """Send an additional message after the placeholder."""
        ...


@dataclass(frozen=True)
class DeliveredMessage:
    kind: DeliveryKind
    payload: ReplyPayload


@dataclass
class RecordingReplySink:
    """
    Collects delivered messages in order.

    Payloads are clipped to the platform limits before they are recorded,
    and each clip is logged.
    """

    messages: list[DeliveredMessage] = field(default_factory=list)

    async def edit_placeholder(self, payload: ReplyPayload) -> None:
        self.messages.append(DeliveredMessage(kind="edit", payload=self._clip(payload)))

    async def send_follow_up(self, payload: ReplyPayload) -> None:
        self.messages.append(DeliveredMessage(kind="follow_up", payload=self._clip(payload)))

    @property
    def edits(self) -> list[ReplyPayload]:
        return [m.payload for m in self.messages if m.kind == "edit"]

    @property
    def follow_ups(self) -> list[ReplyPayload]:
        return [m.payload for m in self.messages if m.kind == "follow_up"]

    def _clip(self, payload: ReplyPayload) -> ReplyPayload:
        text = payload.text
        cards = payload.cards

        if text is not None and len(text) > MESSAGE_CHAR_LIMIT:
            logger.warning(
                "reply_text_clipped",
                extra={"length": len(text), "limit": MESSAGE_CHAR_LIMIT},
            )
            text = text[:MESSAGE_CHAR_LIMIT]

        if len(cards) > CARDS_PER_BATCH:
            logger.warning(
                "reply_cards_clipped",
                extra={"count": len(cards), "limit": CARDS_PER_BATCH},
            )
            cards = cards[:CARDS_PER_BATCH]

        cards = tuple(fit_card(card) for card in cards)
        if text is payload.text and cards == payload.cards:
            return payload
        return ReplyPayload(text=text, cards=cards)
