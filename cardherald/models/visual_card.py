from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class CardField:
    """One name/value row of a visual card."""

    name: str
    value: str
    inline: bool = True


@dataclass(frozen=True)
class VisualCard:
    """
    A render-ready, size-bounded display unit.

    Built from exactly one normalized item. Immutable once built; the size
    helpers in services.size_constraint return new cards.

    Attributes:
        title: Card title, never empty
        thumbnail_url: Small image shown beside the title
        image_url: Large image shown below the fields
        fields: Ordered name/value rows
        description: Body text
        footer_text: Small print under the card
        color: Accent color as 0xRRGGBB
    """

    title: str
    thumbnail_url: str | None = None
    image_url: str | None = None
    fields: tuple[CardField, ...] = ()
    description: str | None = None
    footer_text: str | None = None
    color: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the chat platform's rich message shape."""
        data: dict[str, Any] = {"title": self.title}
        if self.description:
            data["description"] = self.description
        if self.color is not None:
            data["color"] = self.color
        if self.thumbnail_url:
            data["thumbnail"] = {"url": self.thumbnail_url}
        if self.image_url:
            data["image"] = {"url": self.image_url}
        if self.fields:
            data["fields"] = [
                {"name": f.name, "value": f.value, "inline": f.inline} for f in self.fields
            ]
        if self.footer_text:
            data["footer"] = {"text": self.footer_text}
        return data


# An ordered group of cards sent in one message
Batch = tuple[VisualCard, ...]


@dataclass(frozen=True)
class ReplyPayload:
    """One outgoing chat message: text, cards, or both."""

    text: str | None = None
    cards: Batch = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "cards": [card.to_dict() for card in self.cards],
        }
