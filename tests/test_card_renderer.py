"""Tests for rendering normalized items into visual cards."""

from typing import Any

from cardherald.config import CARD_MAX_FIELDS, CARD_TITLE_LIMIT
from cardherald.models.item import ImageRefs, ItemKind, NormalizedItem
from cardherald.services.card_renderer import (
    CARD_COLOR,
    CREATURE_COLOR,
    LONG_TEXT_FIELD_NAME,
    MISSING_VALUE,
    CardRenderer,
)
from cardherald.services.field_normalizer import CardNormalizer, CreatureNormalizer
from cardherald.services.size_constraint import CARD_SIZE_BUDGET, card_size


def _names(card: Any) -> list[str]:
    return [f.name for f in card.fields]


class TestCardLayout:
    def setup_method(self) -> None:
        self.renderer = CardRenderer()

    def test_dark_magician(self, dark_magician: dict[str, Any]) -> None:
        item = CardNormalizer().normalize(dark_magician)

        card = self.renderer.render(item, dark_magician)

        assert card.title == "Dark Magician"
        assert card.color == CARD_COLOR
        assert _names(card) == ["Card Type", "Attribute", "Type", "Level", "ATK", "DEF", "Archetype"]
        assert card.fields[4].value == "2500"
        assert card.description == "The ultimate wizard in terms of attack and defense."
        assert card.footer_text == "Archetype: Dark Magician"
        assert card.thumbnail_url == "https://images.ygoprodeck.com/images/cards_small/46986414.jpg"
        assert card.image_url == "https://images.ygoprodeck.com/images/cards/46986414.jpg"

    def test_missing_values_skipped(self) -> None:
        item = NormalizedItem(kind=ItemKind.CARD, name="Pot of Greed", primary_type=("Spell Card",))

        card = self.renderer.render(item, {})

        assert _names(card) == ["Card Type"]
        assert card.footer_text is None
        assert card.thumbnail_url is None
        assert card.image_url is None

    def test_zero_atk_shown(self) -> None:
        item = NormalizedItem(kind=ItemKind.CARD, name="Kuriboh", power=300, defense=0)
        card = self.renderer.render(item)
        assert [(f.name, f.value) for f in card.fields] == [("ATK", "300"), ("DEF", "0")]

    def test_banlist_info(self) -> None:
        item = CardNormalizer().normalize(
            {"name": "Pot of Greed", "banlist_info": {"ban_ocg": "Forbidden", "ban_tcg": "Forbidden"}}
        )
        card = self.renderer.render(item)
        assert card.fields[-1].name == "Banlist Info"
        assert card.fields[-1].value == "OCG: Forbidden | TCG: Forbidden"

    def test_title_placeholder_and_fallback(self) -> None:
        nameless = NormalizedItem(kind=ItemKind.CARD, name="", power=100)

        assert self.renderer.render(nameless, {}).title == "Card"
        assert self.renderer.render(nameless, {"name": "**Raw** Name"}).title == "Raw Name"

    def test_title_truncated(self) -> None:
        item = NormalizedItem(kind=ItemKind.CARD, name="N" * 400)
        assert len(self.renderer.render(item).title) == CARD_TITLE_LIMIT

    def test_images_fall_back(self) -> None:
        only_cropped = ImageRefs(full="", small="", cropped="https://img.io/c.jpg")
        item = NormalizedItem(kind=ItemKind.CARD, name="X", image_refs=only_cropped)

        card = self.renderer.render(item)

        assert card.thumbnail_url == "https://img.io/c.jpg"
        assert card.image_url == "https://img.io/c.jpg"


class TestLongText:
    def setup_method(self) -> None:
        self.renderer = CardRenderer()

    def test_medium_text_in_description(self) -> None:
        item = NormalizedItem(kind=ItemKind.CARD, name="X", long_text="t" * 1500)
        card = self.renderer.render(item)
        assert card.description == "t" * 1500
        assert LONG_TEXT_FIELD_NAME not in _names(card)

    def test_long_text_becomes_truncated_field(self) -> None:
        item = NormalizedItem(kind=ItemKind.CARD, name="X", long_text="t" * 2500)

        card = self.renderer.render(item)

        assert card.description is None
        assert card.fields[-1].name == LONG_TEXT_FIELD_NAME
        assert len(card.fields[-1].value) == 1024
        assert card.fields[-1].value.endswith("...")

    def test_fallback_record_text(self) -> None:
        item = NormalizedItem(kind=ItemKind.CARD, name="X")
        card = self.renderer.render(item, {"card_text": "From the raw record."})
        assert card.description == "From the raw record."

    def test_group_listing_short_description_no_text_field(self) -> None:
        item = NormalizedItem(kind=ItemKind.CARD, name="X", long_text="t" * 2500)

        card = self.renderer.render(item, group_listing=True)

        assert card.description is not None
        assert len(card.description) == 800
        assert LONG_TEXT_FIELD_NAME not in _names(card)


class TestLimits:
    def test_field_count_capped(self) -> None:
        item = NormalizedItem(
            kind=ItemKind.CARD,
            name="X",
            primary_type=("Effect Monster",),
            category="DARK",
            subtype="Dragon",
            rank=8,
            power=3000,
            defense=2500,
            group_tag="Blue-Eyes",
        )
        card = CardRenderer().render(item)
        assert len(card.fields) <= CARD_MAX_FIELDS

    def test_size_invariant_with_huge_values(self) -> None:
        item = NormalizedItem(
            kind=ItemKind.CARD,
            name="X" * 1000,
            primary_type=tuple("T" * 500 for _ in range(10)),
            category="C" * 3000,
            subtype="S" * 3000,
            rank="R" * 3000,
            power="P" * 3000,
            defense="D" * 3000,
            group_tag="G" * 3000,
            long_text="L" * 10000,
        )

        card = CardRenderer().render(item)

        assert card_size(card) <= CARD_SIZE_BUDGET
        assert len(card.fields) >= 3


class TestCreatureLayout:
    def setup_method(self) -> None:
        self.renderer = CardRenderer()

    def test_pikachu(self) -> None:
        record = {
            "name": "Pikachu",
            "id": "25",
            "types": ["electric"],
            "height": "0.4",
            "weight": "6",
            "abilities": ["static", "lightning-rod"],
            "stats": {"hp": 35, "special-attack": 50},
            "image_url": "https://img.io/25.png",
            "description": "It stores electricity in its cheeks.",
        }
        item = CreatureNormalizer().normalize(record)

        card = self.renderer.render(item, record)

        assert card.title == "Pikachu #025"
        assert card.color == CREATURE_COLOR
        assert [(f.name, f.value) for f in card.fields] == [
            ("Type", "electric"),
            ("Height", "0.4 m"),
            ("Weight", "6 kg"),
            ("Abilities", "static, lightning-rod"),
            ("Stats", "hp: 35\nspecial attack: 50"),
        ]
        assert card.fields[3].inline is False
        assert card.image_url == "https://img.io/25.png"
        assert card.description == "It stores electricity in its cheeks."
        assert card.footer_text is None

    def test_placeholders_and_default_title(self) -> None:
        item = NormalizedItem(kind=ItemKind.CREATURE, name="", primary_type=("Cỏ", "Độc"))

        card = self.renderer.render(item)

        assert card.title == "Pokemon"
        assert [(f.name, f.value) for f in card.fields] == [
            ("Type", "Cỏ / Độc"),
            ("Height", MISSING_VALUE),
            ("Weight", MISSING_VALUE),
        ]
