from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ItemKind(str, Enum):
    """Which normalizer produced an item."""

    CARD = "card"
    CREATURE = "creature"


@dataclass(frozen=True, slots=True)
class ImageRefs:
    """
    Image references of one item.

    small and cropped fall back to full when the source has no distinct variant.
    """

    full: str
    small: str
    cropped: str


@dataclass(frozen=True)
class NormalizedItem:
    """
    Canonical shape of one extracted item.

    Attributes:
        kind: Card or creature
        name: Sanitized display name ("" when the source has none)
        primary_type: Type/category values in source order
        category: Attribute or category (e.g., "DARK")
        subtype: Race or typeline (e.g., "Spellcaster")
        rank: Level/rank/link rating
        power: ATK value
        defense: DEF value
        long_text: Description or effect text
        image_refs: Image references, at most one ordered set
        group_tag: Archetype or grouping label
        identifier: Numeric id when parseable, else the raw value
        identifier_display: Zero-padded "#NNN" form of a numeric identifier
        height: Height with its length unit
        weight: Weight with its mass unit
        abilities: Ability names
        stats: Stat name -> value, in source order
        extra: Unrecognized source fields, verbatim
    """

    kind: ItemKind
    name: str
    primary_type: tuple[str, ...] = ()
    category: str | None = None
    subtype: str | None = None
    rank: int | str | None = None
    power: int | str | None = None
    defense: int | str | None = None
    long_text: str | None = None
    image_refs: ImageRefs | None = None
    group_tag: str | None = None
    identifier: int | str | None = None
    identifier_display: str | None = None
    height: str | None = None
    weight: str | None = None
    abilities: tuple[str, ...] = ()
    stats: tuple[tuple[str, int | str], ...] = ()
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def has_identity(self) -> bool:
        """Whether anything identifies this item well enough to render it."""
        return bool(
            self.name
            or self.identifier is not None
            or self.image_refs is not None
            or self.long_text
        )

    def to_record(self) -> dict[str, Any]:
        """
        Convert back to a raw-record shape with canonical keys.

        Normalizing the returned record yields an equal item.
        """
        record: dict[str, Any] = dict(self.extra)
        if self.name:
            record["name"] = self.name
        if self.primary_type:
            record["type"] = list(self.primary_type)
        if self.category is not None:
            record["attribute"] = self.category
        if self.subtype is not None:
            record["race"] = self.subtype
        if self.rank is not None:
            record["level"] = self.rank
        if self.power is not None:
            record["atk"] = self.power
        if self.defense is not None:
            record["def"] = self.defense
        if self.long_text is not None:
            record["desc"] = self.long_text
        if self.image_refs is not None:
            record["image_url"] = self.image_refs.full
            record["image_url_small"] = self.image_refs.small
            record["image_url_cropped"] = self.image_refs.cropped
        if self.group_tag is not None:
            record["archetype"] = self.group_tag
        if self.identifier is not None:
            record["id"] = self.identifier
        if self.height is not None:
            record["height"] = self.height
        if self.weight is not None:
            record["weight"] = self.weight
        if self.abilities:
            record["abilities"] = list(self.abilities)
        if self.stats:
            record["stats"] = dict(self.stats)
        return record
