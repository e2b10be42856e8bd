"""
Card size accounting and shrink-to-fit.

The chat platform rejects a whole message when any card in it is over its
size cap. Every card leaving the renderer passes through fit_card, which
guarantees:

    card_size(fit_card(card)) <= CARD_SIZE_CAP - CARD_SIZE_SAFETY_MARGIN

fit_card is idempotent. A card that already fits is returned unchanged.
"""

import logging
from dataclasses import replace

from cardherald.config import (
    CARD_FIELD_VALUE_LIMIT,
    CARD_SIZE_CAP,
    CARD_SIZE_SAFETY_MARGIN,
    SHRINK_DESCRIPTION_TARGET,
    SHRINK_FIELD_VALUE_TARGET,
    SHRINK_MIN_FIELDS,
)
from cardherald.models.visual_card import CardField, VisualCard
from cardherald.services.text import truncate

logger = logging.getLogger(__name__)

CARD_SIZE_BUDGET = CARD_SIZE_CAP - CARD_SIZE_SAFETY_MARGIN

TRUNCATION_NOTICE = "\n(truncated: some fields were omitted)"


def card_size(card: VisualCard) -> int:
    """Title + description + footer + every field name and value, in characters."""
    size = len(card.title)
    size += len(card.description or "")
    size += len(card.footer_text or "")
    for card_field in card.fields:
        size += len(card_field.name) + len(card_field.value)
    return size


def fits(card: VisualCard, budget: int = CARD_SIZE_BUDGET) -> bool:
    return card_size(card) <= budget


def fit_card(card: VisualCard, budget: int = CARD_SIZE_BUDGET) -> VisualCard:
    """
    Shrink a card until it fits the size budget.

    Order:
        1. Truncate the description
        2. Truncate field values, least important (last) first
        3. Drop trailing fields while more than SHRINK_MIN_FIELDS remain,
           noting the cut on the last kept field
        4. Clamp description, footer, field values and title outright

    Args:
        card: Card to shrink
        budget: Maximum serialized size

    Returns:
        The same card when it fits, otherwise a smaller copy
    """
    if fits(card, budget):
        return card

    original_size = card_size(card)

    # 1. Description
    if card.description and len(card.description) > SHRINK_DESCRIPTION_TARGET:
        card = replace(card, description=truncate(card.description, SHRINK_DESCRIPTION_TARGET))
    if fits(card, budget):
        return _logged(card, original_size, "description")

    # 2. Field values, last to first
    fields = list(card.fields)
    for index in range(len(fields) - 1, -1, -1):
        current = fields[index]
        if len(current.value) > SHRINK_FIELD_VALUE_TARGET:
            fields[index] = replace(
                current, value=truncate(current.value, SHRINK_FIELD_VALUE_TARGET)
            )
            card = replace(card, fields=tuple(fields))
            if fits(card, budget):
                return _logged(card, original_size, "field_values")

    # 3. Trailing fields
    dropped = False
    while not fits(card, budget) and len(fields) > SHRINK_MIN_FIELDS:
        fields.pop()
        dropped = True
        card = replace(card, fields=tuple(fields))
    if dropped and fields:
        fields[-1] = _with_notice(fields[-1])
        card = replace(card, fields=tuple(fields))
    if fits(card, budget):
        return _logged(card, original_size, "drop_fields")

    # 4. Hard clamp
    card = _clamp(card, budget)
    return _logged(card, original_size, "clamp")


def _with_notice(card_field: CardField) -> CardField:
    if "truncated" in card_field.value.lower():
        return card_field
    room = CARD_FIELD_VALUE_LIMIT - len(TRUNCATION_NOTICE)
    return replace(card_field, value=truncate(card_field.value, room) + TRUNCATION_NOTICE)


def _clamp(card: VisualCard, budget: int) -> VisualCard:
    overflow = card_size(card) - budget
    if overflow > 0 and card.description:
        keep = max(len(card.description) - overflow, 0)
        card = replace(card, description=truncate(card.description, keep) or None)
        overflow = card_size(card) - budget
    if overflow > 0 and card.footer_text:
        keep = max(len(card.footer_text) - overflow, 0)
        card = replace(card, footer_text=truncate(card.footer_text, keep) or None)
        overflow = card_size(card) - budget
    if overflow > 0:
        fields = list(card.fields)
        for index in range(len(fields) - 1, -1, -1):
            if overflow <= 0:
                break
            current = fields[index]
            keep = max(len(current.value) - overflow, 1)
            overflow -= len(current.value) - keep
            fields[index] = replace(current, value=truncate(current.value, keep))
        card = replace(card, fields=tuple(fields))
        overflow = card_size(card) - budget
    if overflow > 0:
        card = replace(card, title=truncate(card.title, max(len(card.title) - overflow, 1)))
    return card


def _logged(card: VisualCard, original_size: int, stage: str) -> VisualCard:
    logger.info(
        "card_shrunk",
        extra={
            "title": card.title,
            "stage": stage,
            "original_size": original_size,
            "final_size": card_size(card),
        },
    )
    return card
