"""
Response Processor — Envelope to Delivered Reply.

Composes the rendering pipeline for one upstream answer:

    envelope -> extract -> normalize -> render -> dispatch

and owns the fallbacks when no card can be built:

1. The envelope's message text, as plain text (chunked when long)
2. Creatures: a fixed "not found" message
3. Cards: the envelope itself, pretty-printed
4. A fixed "not found" message

Everything here is synchronous except the sink calls, and nothing here
raises on malformed upstream data.
"""

import json
import logging
from collections.abc import Mapping
from dataclasses import replace
from enum import Enum
from typing import Any

from cardherald.models.failure import NOT_FOUND_MESSAGE
from cardherald.models.item import ItemKind, NormalizedItem
from cardherald.models.visual_card import ReplyPayload, VisualCard
from cardherald.services.batch_dispatcher import BatchDispatcher
from cardherald.services.card_renderer import CardRenderer
from cardherald.services.field_normalizer import get_normalizer
from cardherald.services.markdown_tables import looks_tabular, parse_markdown_items
from cardherald.services.reply_sink import ReplySink
from cardherald.services.response_extractor import ExtractionResult, ResponseExtractor
from cardherald.services.text import extract_url

logger = logging.getLogger(__name__)

NOT_FOUND_SUBJECTS: dict[ItemKind, str] = {
    ItemKind.CARD: "card",
    ItemKind.CREATURE: "Pokemon",
}


class ReplyOutcome(str, Enum):
    """What the processor ended up sending."""

    CARDS = "cards"
    TEXT = "text"
    RAW = "raw"
    NOT_FOUND = "not_found"


class ResponseProcessor:
    """Turns upstream envelopes into replies on a sink."""

    def __init__(
        self,
        extractor: ResponseExtractor | None = None,
        renderer: CardRenderer | None = None,
        dispatcher: BatchDispatcher | None = None,
    ) -> None:
        self.extractor = extractor or ResponseExtractor()
        self.renderer = renderer or CardRenderer()
        self.dispatcher = dispatcher or BatchDispatcher()

    def build_cards(
        self, envelope: Any, kind: ItemKind = ItemKind.CARD
    ) -> tuple[ExtractionResult, list[tuple[VisualCard, NormalizedItem, dict[str, Any]]]]:
        """
        Extract, normalize and render without sending anything.

        Items with nothing to identify them (no name, id, image or text)
        are dropped.

        Returns:
            The extraction result and one (card, item, raw record) per item
        """
        result = self.extractor.extract_result(envelope)
        normalizer = get_normalizer(kind)

        items: list[tuple[NormalizedItem, dict[str, Any]]] = []
        for record in result.items:
            item = normalizer.normalize(record)
            if not item.has_identity:
                logger.debug("item_dropped_without_identity", extra={"keys": list(record)[:20]})
                continue
            items.append((item, record))

        if kind is ItemKind.CREATURE and items and result.message_text:
            first, raw = items[0]
            items[0] = (enrich_creature(first, result.message_text), raw)

        rendered = [
            (
                self.renderer.render(item, raw, group_listing=result.is_group_listing),
                item,
                raw,
            )
            for item, raw in items
        ]
        return result, rendered

    async def process(
        self,
        envelope: Any,
        sink: ReplySink,
        kind: ItemKind = ItemKind.CARD,
    ) -> ReplyOutcome:
        """
        Deliver the reply for one envelope.

        Args:
            envelope: Upstream answer, any shape
            sink: Where the reply goes
            kind: Which normalizer and renderer layout to use

        Returns:
            Which path produced the reply
        """
        result, rendered = self.build_cards(envelope, kind)

        if len(rendered) == 1:
            card, item, raw = rendered[0]
            full_text = item.long_text or _raw_text(raw)
            await self.dispatcher.dispatch_card_with_overflow(card, full_text, sink)
            return self._done(ReplyOutcome.CARDS, kind, card_count=1)

        if await self.dispatcher.dispatch([card for card, _, _ in rendered], sink):
            return self._done(ReplyOutcome.CARDS, kind, card_count=len(rendered))

        message_text = (result.message_text or "").strip()
        if message_text:
            await self.dispatcher.dispatch_text(message_text, sink)
            return self._done(ReplyOutcome.TEXT, kind)

        not_found = NOT_FOUND_MESSAGE.format(subject=NOT_FOUND_SUBJECTS[kind])
        if kind is ItemKind.CREATURE:
            await sink.edit_placeholder(ReplyPayload(text=not_found))
            return self._done(ReplyOutcome.NOT_FOUND, kind)

        raw_text = render_raw_envelope(envelope).strip()
        if raw_text:
            await self.dispatcher.dispatch_text(raw_text, sink)
            return self._done(ReplyOutcome.RAW, kind)

        await sink.edit_placeholder(ReplyPayload(text=not_found))
        return self._done(ReplyOutcome.NOT_FOUND, kind)

    def _done(self, outcome: ReplyOutcome, kind: ItemKind, card_count: int = 0) -> ReplyOutcome:
        logger.info(
            "reply_delivered",
            extra={"outcome": outcome.value, "kind": kind.value, "card_count": card_count},
        )
        return outcome


# =============================================================================
# FALLBACK HELPERS
# =============================================================================


def enrich_creature(item: NormalizedItem, message_text: str) -> NormalizedItem:
    """
    Fill a creature's missing basics from a markdown table in the message.

    Only type, height, weight, identifier and image are filled, and only
    when absent from the structured item.
    """
    if item.primary_type and item.height and item.weight:
        return item
    if not looks_tabular(message_text):
        return item

    parsed = parse_markdown_items(message_text)
    if not parsed:
        return item
    table_item = get_normalizer(ItemKind.CREATURE).normalize(parsed[0])

    updates: dict[str, Any] = {}
    if not item.primary_type and table_item.primary_type:
        updates["primary_type"] = table_item.primary_type
    if not item.height and table_item.height:
        updates["height"] = table_item.height
    if not item.weight and table_item.weight:
        updates["weight"] = table_item.weight
    if item.identifier is None and table_item.identifier is not None:
        updates["identifier"] = table_item.identifier
        updates["identifier_display"] = table_item.identifier_display
    if item.image_refs is None:
        if table_item.image_refs is not None:
            updates["image_refs"] = table_item.image_refs
        else:
            url = extract_url(message_text)
            if url:
                updates["image_refs"] = get_normalizer(ItemKind.CREATURE).normalize(
                    {"image_url": url}
                ).image_refs

    if not updates:
        return item
    logger.debug("creature_enriched_from_table", extra={"fields": sorted(updates)})
    return replace(item, **updates)


def _raw_text(record: Mapping[str, Any]) -> str:
    for key in ("desc", "card_text", "text"):
        value = record.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


def render_raw_envelope(envelope: Any) -> str:
    """Best-effort text form of an envelope, for the last-resort reply."""
    if envelope is None:
        return ""
    if isinstance(envelope, str):
        return envelope
    if isinstance(envelope, Mapping) and envelope.get("message"):
        message = envelope["message"]
        if isinstance(message, str):
            return message
        if isinstance(message, Mapping) and isinstance(message.get("text"), str):
            return message["text"]
        return _pretty_json(message)
    if isinstance(envelope, (Mapping, list)):
        return _pretty_json(envelope)
    return str(envelope)


def _pretty_json(value: Any) -> str:
    try:
        return json.dumps(value, indent=2, ensure_ascii=False, default=str)
    except (TypeError, ValueError, RecursionError):
        return str(value)
