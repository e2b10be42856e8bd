"""
Tests for field normalization.

INVARIANTS:
- normalize() never raises and never mutates its input
- normalize(normalize(x)) == normalize(x)
- Units and identifiers are applied exactly once
"""

import copy
from typing import Any

import pytest

from cardherald.models.item import ImageRefs, ItemKind, NormalizedItem
from cardherald.services.field_normalizer import (
    CardNormalizer,
    CreatureNormalizer,
    FieldNormalizer,
    get_normalizer,
    match_creature_alias,
    normalize_height,
    normalize_identifier,
    normalize_weight,
)


class TestIdentifier:
    def test_prefixed_number(self) -> None:
        assert normalize_identifier("No. 025") == (25, "#025")

    def test_plain_int(self) -> None:
        assert normalize_identifier(6) == (6, "#006")

    def test_wide_number_not_cut(self) -> None:
        assert normalize_identifier("1025") == (1025, "#1025")

    def test_non_numeric_preserved(self) -> None:
        assert normalize_identifier("MEW-ALPHA") == ("MEW-ALPHA", None)

    def test_missing(self) -> None:
        assert normalize_identifier(None) == (None, None)
        assert normalize_identifier("   ") == (None, None)


class TestUnits:
    def test_height_unit_appended(self) -> None:
        assert normalize_height("0.4") == "0.4 m"

    def test_height_number(self) -> None:
        assert normalize_height(1.7) == "1.7 m"

    def test_height_unit_not_doubled(self) -> None:
        assert normalize_height("0.4 m") == "0.4 m"

    def test_height_other_unit_kept(self) -> None:
        assert normalize_height("40 cm") == "40 cm"

    def test_weight_unit_appended(self) -> None:
        assert normalize_weight("6") == "6 kg"

    def test_weight_unit_not_doubled(self) -> None:
        assert normalize_weight("6 kg") == "6 kg"
        assert normalize_weight("13.2 lbs") == "13.2 lbs"

    def test_no_leading_number_passthrough(self) -> None:
        assert normalize_height("unknown") == "unknown"
        assert normalize_weight("about 6") == "about 6"

    def test_applying_twice_is_stable(self) -> None:
        once = normalize_weight("6")
        assert normalize_weight(once) == once

    def test_unit_attached_to_number_not_doubled(self) -> None:
        assert normalize_height("0.4m") == "0.4m"
        assert normalize_height("1.7M") == "1.7M"
        assert normalize_height("40cm") == "40cm"
        assert normalize_weight("6kg") == "6kg"
        assert normalize_weight("6.0kg") == "6.0kg"
        assert normalize_weight("13.2lbs") == "13.2lbs"

    def test_localized_record_with_attached_units(self) -> None:
        record = {"Tên": "Pikachu", "Chiều cao": "0.4m", "Cân nặng": "6.0kg"}
        item = CreatureNormalizer().normalize(record)

        assert item.height == "0.4m"
        assert item.weight == "6.0kg"
        assert CreatureNormalizer().normalize(item) == item


class TestCardNormalizer:
    def setup_method(self) -> None:
        self.normalizer = CardNormalizer()

    def test_dark_magician(self, dark_magician: dict[str, Any]) -> None:
        item = self.normalizer.normalize(dark_magician)

        assert item.kind is ItemKind.CARD
        assert item.name == "Dark Magician"
        assert item.power == 2500
        assert item.defense == 2100
        assert item.rank == 7
        assert item.category == "DARK"
        assert item.subtype == "Spellcaster"
        assert item.group_tag == "Dark Magician"
        assert item.primary_type == ("Normal Monster",)
        assert item.image_refs == ImageRefs(
            full="https://images.ygoprodeck.com/images/cards/46986414.jpg",
            small="https://images.ygoprodeck.com/images/cards_small/46986414.jpg",
            cropped="https://images.ygoprodeck.com/images/cards_cropped/46986414.jpg",
        )

    def test_input_not_mutated(self, dark_magician: dict[str, Any]) -> None:
        before = copy.deepcopy(dark_magician)
        self.normalizer.normalize(dark_magician)
        assert dark_magician == before

    def test_markdown_stripped_from_name(self) -> None:
        item = self.normalizer.normalize({"name": "  **Blue-Eyes**  White Dragon "})
        assert item.name == "Blue-Eyes White Dragon"

    def test_human_readable_type_fallback(self) -> None:
        item = self.normalizer.normalize({"name": "Pot of Greed", "humanReadableCardType": "Normal Spell"})
        assert item.primary_type == ("Normal Spell",)

    def test_type_split_on_delimiters(self) -> None:
        item = self.normalizer.normalize({"name": "X", "type": "Effect Monster / Tuner"})
        assert item.primary_type == ("Effect Monster", "Tuner")

    def test_typeline_list_becomes_subtype(self) -> None:
        item = self.normalizer.normalize({"name": "X", "typeline": ["Dragon", "Effect"]})
        assert item.subtype == "Dragon / Effect"

    def test_numeric_strings_coerced(self) -> None:
        item = self.normalizer.normalize({"name": "X", "atk": "3000", "def": "?", "level": "8"})
        assert item.power == 3000
        assert item.defense == "?"
        assert item.rank == 8

    def test_stringified_card_images(self) -> None:
        record = {
            "name": "Kuriboh",
            "card_images": "[{'image_url': 'https://img.io/k.jpg', 'image_url_small': 'https://img.io/k_s.jpg'}]",
        }
        item = self.normalizer.normalize(record)
        assert item.image_refs == ImageRefs(
            full="https://img.io/k.jpg",
            small="https://img.io/k_s.jpg",
            cropped="https://img.io/k.jpg",
        )

    def test_markdown_image_value(self) -> None:
        item = self.normalizer.normalize({"name": "X", "Hình ảnh": "![X](https://img.io/x.png)"})
        assert item.image_refs is not None
        assert item.image_refs.full == "https://img.io/x.png"
        assert item.image_refs.small == "https://img.io/x.png"

    def test_any_image_key(self) -> None:
        item = self.normalizer.normalize({"name": "X", "card_image_link": "https://img.io/x.png"})
        assert item.image_refs is not None
        assert item.image_refs.full == "https://img.io/x.png"

    def test_banlist_kept_in_extra(self) -> None:
        item = self.normalizer.normalize({"name": "X", "banlist_info": {"ban_ocg": "Limited"}})
        assert item.extra["banlist_info"] == {"ban_ocg": "Limited"}

    def test_unparseable_stringified_value_kept(self) -> None:
        item = self.normalizer.normalize({"name": "X", "card_sets": "{broken: [}"})
        assert item.extra["card_sets"] == "{broken: [}"

    def test_non_mapping_gives_empty_item(self) -> None:
        item = self.normalizer.normalize(["not", "a", "record"])
        assert item.name == ""
        assert not item.has_identity

    def test_idempotent(self, dark_magician: dict[str, Any]) -> None:
        once = self.normalizer.normalize(dark_magician)
        assert self.normalizer.normalize(once) == once

    def test_idempotent_with_extras(self) -> None:
        record = {
            "name": "**Ash Blossom**",
            "type": "Effect Monster|Tuner",
            "image_url": "https://img.io/a.jpg",
            "image_url_small": "https://img.io/a_s.jpg",
            "banlist_info": "{'ban_tcg': 'Limited'}",
            "frameType": "effect",
        }
        once = self.normalizer.normalize(record)
        assert self.normalizer.normalize(once) == once
        assert self.normalizer.normalize(once.to_record()) == once


class TestCreatureNormalizer:
    def setup_method(self) -> None:
        self.normalizer = CreatureNormalizer()

    def test_vietnamese_keys(self) -> None:
        record = {
            "Tên": "Pikachu",
            "Mã số": "No. 025",
            "Loại": "Điện",
            "Chiều cao": "0.4",
            "Cân nặng": "6",
            "Khả năng": "Static, Lightning Rod",
        }
        item = self.normalizer.normalize(record)

        assert item.kind is ItemKind.CREATURE
        assert item.name == "Pikachu"
        assert item.identifier == 25
        assert item.identifier_display == "#025"
        assert item.primary_type == ("Điện",)
        assert item.height == "0.4 m"
        assert item.weight == "6 kg"
        assert item.abilities == ("Static", "Lightning Rod")

    def test_keys_without_diacritics(self) -> None:
        item = self.normalizer.normalize({"ten": "Eevee", "chieu_cao": "0.3"})
        assert item.name == "Eevee"
        assert item.height == "0.3 m"

    def test_explicit_english_key_wins(self) -> None:
        item = self.normalizer.normalize({"Loại": "Cỏ", "type": "grass/poison", "name": "Bulbasaur"})
        assert item.primary_type == ("grass", "poison")

    def test_pokeapi_shapes(self) -> None:
        record = {
            "name": "pikachu",
            "id": 25,
            "types": [{"slot": 1, "type": {"name": "electric"}}],
            "abilities": [{"ability": {"name": "static"}}, {"ability": {"name": "lightning-rod"}}],
            "stats": [
                {"base_stat": 35, "stat": {"name": "hp"}},
                {"base_stat": 55, "stat": {"name": "attack"}},
            ],
            "sprites": {
                "front_default": "https://img.io/front/25.png",
                "other": {"official-artwork": {"front_default": "https://img.io/art/25.png"}},
            },
            "height": 4,
            "weight": 60,
        }
        item = self.normalizer.normalize(record)

        assert item.primary_type == ("electric",)
        assert item.abilities == ("static", "lightning-rod")
        assert item.stats == (("hp", 35), ("attack", 55))
        assert item.image_refs is not None
        assert item.image_refs.full == "https://img.io/art/25.png"
        assert item.identifier_display == "#025"

    def test_unparseable_stats_kept(self) -> None:
        item = self.normalizer.normalize({"name": "X", "stats": "strong"})
        assert item.stats == ()
        assert item.extra["stats"] == "strong"

    def test_idempotent(self) -> None:
        record = {
            "Tên": "Pikachu",
            "ID (Mã số)": "#25",
            "Loại (Type)": "Điện",
            "Chiều cao": "0.4",
            "Cân nặng": "6.0",
            "Hình ảnh": "https://img.io/25.png",
            "Ghi chú": "Mascot",
        }
        once = self.normalizer.normalize(record)
        twice = self.normalizer.normalize(once)

        assert twice == once
        assert twice.height == "0.4 m"
        assert twice.weight == "6.0 kg"
        assert twice.extra == {"Ghi chú": "Mascot"}


class TestAliasMatching:
    @pytest.mark.parametrize(
        ("key", "expected"),
        [
            ("Tên chính xác", "name"),
            ("ID (Mã số)", "identifier"),
            ("Loại (Type)", "type"),
            ("Hệ", "type"),
            ("Chiều cao", "height"),
            ("Cân nặng", "weight"),
            ("Mô tả", "long_text"),
            ("Chỉ số", "stats"),
            ("Ghi chú", None),
        ],
    )
    def test_alias(self, key: str, expected: str | None) -> None:
        assert match_creature_alias(key) == expected


class TestGetNormalizer:
    def test_base_class_is_abstract(self) -> None:
        with pytest.raises(TypeError):
            FieldNormalizer()  # type: ignore[abstract]

    def test_kinds(self) -> None:
        assert isinstance(get_normalizer(ItemKind.CARD), CardNormalizer)
        assert isinstance(get_normalizer(ItemKind.CREATURE), CreatureNormalizer)

    def test_normalized_item_accepted(self) -> None:
        item = NormalizedItem(kind=ItemKind.CARD, name="X", power=100)
        assert CardNormalizer().normalize(item) == item
