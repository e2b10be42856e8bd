"""
Card rendering service.

One item in, one card out. The renderer decides what goes where (title,
images, fields, description, footer); size_constraint.fit_card then makes
sure the result fits the platform's size cap.

Field order is fixed. Fields appear only when their value is present,
except the creature basics (Type, Height, Weight) which show a
placeholder so creature cards keep a stable layout.
"""

from collections.abc import Mapping
from typing import Any

from cardherald.config import (
    CARD_FIELD_NAME_LIMIT,
    CARD_FIELD_VALUE_LIMIT,
    CARD_FOOTER_LIMIT,
    CARD_MAX_FIELDS,
    CARD_TITLE_LIMIT,
    DESCRIPTION_PLACEMENT_THRESHOLD,
    GROUP_LISTING_DESCRIPTION_LIMIT,
)
from cardherald.models.item import ItemKind, NormalizedItem
from cardherald.models.visual_card import CardField, VisualCard
from cardherald.services.size_constraint import fit_card
from cardherald.services.text import parse_stringified, sanitize_text, truncate

CARD_COLOR = 0x2F3136
CREATURE_COLOR = 0xFFCB05

PLACEHOLDER_TITLES: dict[ItemKind, str] = {
    ItemKind.CARD: "Card",
    ItemKind.CREATURE: "Pokemon",
}

MISSING_VALUE = "—"

LONG_TEXT_FIELD_NAME = "Card Text (truncated)"

# Raw keys consulted when the normalized item carries no long text
_FALLBACK_TEXT_KEYS = ("desc", "description", "card_text", "text")


class CardRenderer:
    """Builds size-bounded visual cards from normalized items."""

    def render(
        self,
        item: NormalizedItem,
        fallback: Mapping[str, Any] | None = None,
        *,
        group_listing: bool = False,
    ) -> VisualCard:
        """
        Render one item.

        Args:
            item: Normalized item
            fallback: The raw record the item came from, consulted for a
                name or long text the normalizer could not derive
            group_listing: The item is a row of an archetype-style listing

        Returns:
            A card that satisfies the size invariant
        """
        fallback = fallback if isinstance(fallback, Mapping) else {}

        if item.kind == ItemKind.CREATURE:
            fields = self._creature_fields(item)
            color = CREATURE_COLOR
            footer = None
        else:
            fields = self._card_fields(item)
            color = CARD_COLOR
            footer = (
                truncate(f"Archetype: {sanitize_text(item.group_tag)}", CARD_FOOTER_LIMIT)
                if item.group_tag
                else None
            )

        fields = [
            CardField(
                name=truncate(f.name, CARD_FIELD_NAME_LIMIT),
                value=truncate(f.value, CARD_FIELD_VALUE_LIMIT),
                inline=f.inline,
            )
            for f in fields
        ]

        description = None
        long_text = sanitize_text(item.long_text or _fallback_text(fallback))
        if long_text:
            if group_listing:
                description = truncate(long_text, GROUP_LISTING_DESCRIPTION_LIMIT)
            elif len(long_text) <= DESCRIPTION_PLACEMENT_THRESHOLD:
                description = long_text
            else:
                fields.append(
                    CardField(
                        name=LONG_TEXT_FIELD_NAME,
                        value=truncate(long_text, CARD_FIELD_VALUE_LIMIT),
                        inline=False,
                    )
                )

        # Drop from the end, the text field included, once over the cap
        fields = fields[:CARD_MAX_FIELDS]

        thumbnail_url, image_url = self._images(item)
        card = VisualCard(
            title=self._title(item, fallback),
            thumbnail_url=thumbnail_url,
            image_url=image_url,
            fields=tuple(fields),
            description=description,
            footer_text=footer,
            color=color,
        )
        return fit_card(card)

    # =========================================================================
    # TITLE AND IMAGES
    # =========================================================================

    def _title(self, item: NormalizedItem, fallback: Mapping[str, Any]) -> str:
        name = sanitize_text(item.name) or sanitize_text(fallback.get("name"))
        title = name or PLACEHOLDER_TITLES[item.kind]
        if item.kind == ItemKind.CREATURE and item.identifier_display:
            title = f"{title} {item.identifier_display}"
        return truncate(title, CARD_TITLE_LIMIT)

    def _images(self, item: NormalizedItem) -> tuple[str | None, str | None]:
        refs = item.image_refs
        if refs is None:
            return None, None
        thumbnail = refs.small or refs.full or refs.cropped or None
        image = refs.full or refs.cropped or None
        return thumbnail, image

    # =========================================================================
    # FIELDS
    # =========================================================================

    def _card_fields(self, item: NormalizedItem) -> list[CardField]:
        rows: list[tuple[str, Any]] = [
            ("Card Type", ", ".join(item.primary_type) if item.primary_type else None),
            ("Attribute", item.category),
            ("Type", item.subtype),
            ("Level", item.rank),
            ("ATK", item.power),
            ("DEF", item.defense),
            ("Archetype", item.group_tag),
            ("Banlist Info", _banlist_text(item.extra.get("banlist_info"))),
        ]
        fields = []
        for name, value in rows:
            if value is None:
                continue
            text = sanitize_text(value)
            if text:
                fields.append(CardField(name=name, value=text))
        return fields

    def _creature_fields(self, item: NormalizedItem) -> list[CardField]:
        types = " / ".join(sanitize_text(t) for t in item.primary_type if sanitize_text(t))
        fields = [
            CardField(name="Type", value=types or MISSING_VALUE),
            CardField(name="Height", value=sanitize_text(item.height) or MISSING_VALUE),
            CardField(name="Weight", value=sanitize_text(item.weight) or MISSING_VALUE),
        ]
        abilities = ", ".join(sanitize_text(a) for a in item.abilities if sanitize_text(a))
        if abilities:
            fields.append(CardField(name="Abilities", value=abilities, inline=False))
        if item.stats:
            stats_text = "\n".join(
                f"{sanitize_text(str(name).replace('-', ' '))}: {sanitize_text(value)}"
                for name, value in item.stats
            )
            fields.append(CardField(name="Stats", value=stats_text, inline=False))
        return fields


def _fallback_text(record: Mapping[str, Any]) -> str:
    for key in _FALLBACK_TEXT_KEYS:
        value = record.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return ""


def _banlist_text(value: Any) -> str | None:
    """'OCG: Limited | TCG: Forbidden' from a banlist_info object."""
    value = parse_stringified(value)
    if isinstance(value, Mapping):
        parts = []
        for key, label in (("ban_ocg", "OCG"), ("ban_tcg", "TCG")):
            if value.get(key):
                parts.append(f"{label}: {value[key]}")
        return " | ".join(parts) or None
    if isinstance(value, str) and value.strip():
        return value
    return None
