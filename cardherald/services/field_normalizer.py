"""
Field Normalizer — Raw Item Records to NormalizedItem.

Upstream pipelines return item records in whatever shape the model felt
like producing: stringified sub-objects, localized field names, markdown
decorated values, inconsistent units. This module turns one such record
into the canonical NormalizedItem.

INVARIANTS:
- The input record is never mutated
- normalize() never raises; unparseable values are kept as-is
- normalize(normalize(x)) == normalize(x) (units, identifiers and image
  references are applied exactly once)
- Fields the normalizer does not recognize survive in NormalizedItem.extra
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from typing import Any, ClassVar

from cardherald.models.item import ImageRefs, ItemKind, NormalizedItem
from cardherald.services.text import (
    extract_url,
    fold_key,
    is_blank,
    key_contains,
    parse_stringified,
    sanitize_text,
)

logger = logging.getLogger(__name__)

# =============================================================================
# IMAGE DISCOVERY
# =============================================================================

# Keys holding the main image, in priority order (matched on folded keys)
FULL_IMAGE_KEYS: tuple[str, ...] = (
    "image_url",
    "image",
    "img",
    "imageurl",
    "image url",
    "sprite_url",
    "sprites",
    "artwork",
    "hình ảnh",
)
SMALL_IMAGE_KEYS: tuple[str, ...] = ("image_url_small", "image_small", "thumbnail")
CROPPED_IMAGE_KEYS: tuple[str, ...] = ("image_url_cropped", "image_cropped")

# =============================================================================
# UNITS
# =============================================================================

HEIGHT_UNIT = "m"
WEIGHT_UNIT = "kg"

# Any unit already present means the value is left alone. A unit may follow
# the number directly ("0.4m", "6kg").
_HEIGHT_UNIT_PATTERN = re.compile(
    r"(?:(?<=\d)|\b)(?:m|cm|mm|km|meters?|metres?|mét|ft|feet|foot|inch(?:es)?)\b|['\"]",
    re.IGNORECASE,
)
_WEIGHT_UNIT_PATTERN = re.compile(
    r"(?:(?<=\d)|\b)(?:kg|g|mg|kilograms?|grams?|lbs?|pounds?|oz)\b",
    re.IGNORECASE,
)
_LEADING_NUMBER = re.compile(r"^([-+]?\d+(?:[.,]\d+)?)")

_DIGITS = re.compile(r"\d+")
_INTEGER = re.compile(r"[-+]?\d+")
_TYPE_DELIMITERS = re.compile(r"[,/|]")

IDENTIFIER_DISPLAY_WIDTH = 3


# =============================================================================
# VALUE COERCION
# =============================================================================


def apply_unit(value: Any, unit: str, existing_unit: re.Pattern[str]) -> str | None:
    """
    Append a unit after the leading number of a value, exactly once.

    Values that already carry a unit, or have no leading number, pass
    through unchanged.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return f"{value:g} {unit}"

    text = sanitize_text(value)
    if not text:
        return None
    if existing_unit.search(text):
        return text

    match = _LEADING_NUMBER.match(text)
    if not match:
        return text
    rest = text[match.end() :].strip()
    normalized = f"{match.group(1)} {unit}"
    return f"{normalized} {rest}" if rest else normalized


def normalize_height(value: Any) -> str | None:
    return apply_unit(value, HEIGHT_UNIT, _HEIGHT_UNIT_PATTERN)


def normalize_weight(value: Any) -> str | None:
    return apply_unit(value, WEIGHT_UNIT, _WEIGHT_UNIT_PATTERN)


def normalize_identifier(value: Any) -> tuple[int | str | None, str | None]:
    """
    Normalize an identifier.

    The first run of digits becomes the numeric id and a zero-padded
    display string ("No. 025" -> (25, "#025")). Non-numeric identifiers
    are kept with no display string.
    """
    if value is None or isinstance(value, bool):
        return None, None
    if isinstance(value, int):
        return value, _format_identifier(value)

    text = sanitize_text(value)
    if not text:
        return None, None
    match = _DIGITS.search(text)
    if not match:
        return text, None
    number = int(match.group(0))
    return number, _format_identifier(number)


def _format_identifier(number: int) -> str:
    return f"#{abs(number):0{IDENTIFIER_DISPLAY_WIDTH}d}"


def coerce_number(value: Any) -> int | str | None:
    """Integers stay integers, digit strings become integers, anything else text."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else f"{value:g}"
    text = sanitize_text(value)
    if not text:
        return None
    if _INTEGER.fullmatch(text):
        return int(text)
    return text


def coerce_text(value: Any) -> str | None:
    """Sanitized text, or None when empty."""
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        value = ", ".join(sanitize_text(v) for v in value if not is_blank(v))
    text = sanitize_text(value)
    return text or None


def coerce_list(value: Any) -> tuple[str, ...]:
    """
    Coerce a type/category value to an ordered tuple of strings.

    Strings are split on ',', '/' and '|'. PokeAPI-style entries
    ({"type": {"name": "electric"}}) contribute their name.
    """
    if value is None:
        return ()
    if isinstance(value, str):
        parts: Iterable[Any] = _TYPE_DELIMITERS.split(value)
    elif isinstance(value, (list, tuple)):
        parts = (_entry_name(v) for v in value)
    else:
        parts = (value,)

    result: list[str] = []
    for part in parts:
        text = sanitize_text(part)
        if text:
            result.append(text)
    return tuple(result)


def _entry_name(entry: Any) -> Any:
    if isinstance(entry, Mapping):
        for key in ("type", "ability", "stat"):
            nested = entry.get(key)
            if isinstance(nested, Mapping) and nested.get("name"):
                return nested["name"]
        if entry.get("name"):
            return entry["name"]
    return entry


def coerce_stats(value: Any) -> tuple[tuple[str, int | str], ...] | None:
    """
    Coerce stats to ordered (name, value) pairs.

    Accepts a mapping or a PokeAPI list ({"stat": {"name"}, "base_stat"}).
    Returns None when the value has neither shape.
    """
    pairs: list[tuple[str, int | str]] = []
    if isinstance(value, Mapping):
        for name, stat_value in value.items():
            number = coerce_number(stat_value)
            if number is not None:
                pairs.append((sanitize_text(name), number))
        return tuple(pairs)
    if isinstance(value, list):
        for entry in value:
            if not isinstance(entry, Mapping):
                continue
            name = _entry_name(entry)
            number = coerce_number(entry.get("base_stat", entry.get("value")))
            if isinstance(name, str) and number is not None:
                pairs.append((sanitize_text(name), number))
        return tuple(pairs)
    return None


def _sprite_url(sprites: Mapping[str, Any]) -> str | None:
    other = sprites.get("other")
    if isinstance(other, Mapping):
        for variant in ("official-artwork", "home"):
            nested = other.get(variant)
            if isinstance(nested, Mapping):
                url = extract_url(nested.get("front_default"))
                if url:
                    return url
    url = extract_url(sprites.get("front_default"))
    if url:
        return url
    for candidate in sprites.values():
        url = extract_url(candidate)
        if url:
            return url
    return None


def url_from_value(value: Any) -> str | None:
    """Find an image URL in a string, sprite mapping, or list of either."""
    if isinstance(value, str):
        return extract_url(value)
    if isinstance(value, Mapping):
        if "image_url" in value:
            return extract_url(value.get("image_url"))
        return _sprite_url(value)
    if isinstance(value, list):
        for entry in value[:5]:
            if isinstance(entry, (str, Mapping)):
                url = url_from_value(entry)
                if url:
                    return url
    return None


# =============================================================================
# RECORD READER
# =============================================================================


class _FieldReader:
    """
    Read-only view over a raw record with folded-key lookup.

    Values are parsed once (stringified JSON); keys handed out by take()
    are marked consumed so that remaining() yields the unrecognized rest.
    """

    def __init__(self, record: Mapping[Any, Any]) -> None:
        self.values: dict[str, Any] = {
            str(key): parse_stringified(value) for key, value in record.items()
        }
        self._keys_by_fold: dict[str, list[str]] = {}
        for key in self.values:
            self._keys_by_fold.setdefault(fold_key(key), []).append(key)
        self.consumed: set[str] = set()

    def keys_for(self, name: str) -> list[str]:
        return self._keys_by_fold.get(fold_key(name), [])

    def take(self, *names: str) -> Any:
        """
        Return the first non-blank value among names.

        Every key matching one of the names is consumed, blank or not.
        """
        found: Any = None
        for name in names:
            for key in self.keys_for(name):
                if key in self.consumed:
                    continue
                self.consumed.add(key)
                if found is None and not is_blank(self.values[key]):
                    found = self.values[key]
        return found

    def unconsumed(self) -> list[str]:
        return [key for key in self.values if key not in self.consumed]

    def remaining(self) -> dict[str, Any]:
        return {key: self.values[key] for key in self.unconsumed()}


def resolve_images(reader: _FieldReader) -> ImageRefs | None:
    """
    Discover image references in a record.

    Order: card_images (first entry), then the fixed candidate keys, then
    any key containing "image". The first URL found is the full image;
    small and cropped default to it unless distinct variants exist.
    """
    full: str | None = None
    small: str | None = None
    cropped: str | None = None

    for key in reader.keys_for("card_images"):
        entries = reader.values[key]
        if isinstance(entries, Mapping):
            entries = [entries]
        if not isinstance(entries, list) or not entries:
            continue
        entry = parse_stringified(entries[0])
        if isinstance(entry, Mapping):
            full = extract_url(entry.get("image_url"))
            small = extract_url(entry.get("image_url_small"))
            cropped = extract_url(entry.get("image_url_cropped"))
        else:
            full = extract_url(entry)
        if full or small or cropped:
            reader.consumed.add(key)
            break

    if small is None:
        small = _take_url(reader, SMALL_IMAGE_KEYS)
    if cropped is None:
        cropped = _take_url(reader, CROPPED_IMAGE_KEYS)
    if full is None:
        full = _take_url(reader, FULL_IMAGE_KEYS)
    if full is None:
        for key in reader.unconsumed():
            if "image" in fold_key(key):
                url = url_from_value(reader.values[key])
                if url:
                    reader.consumed.add(key)
                    full = url
                    break

    full = full or small or cropped
    if full is None:
        return None

    # Leftover image keys with URLs are redundant once refs are resolved
    image_keys = {fold_key(k) for k in (*FULL_IMAGE_KEYS, *SMALL_IMAGE_KEYS, *CROPPED_IMAGE_KEYS)}
    for key in reader.unconsumed():
        folded = fold_key(key)
        if (folded in image_keys or "image" in folded) and url_from_value(reader.values[key]):
            reader.consumed.add(key)

    return ImageRefs(full=full, small=small or full, cropped=cropped or full)


def _take_url(reader: _FieldReader, names: Iterable[str]) -> str | None:
    for name in names:
        for key in reader.keys_for(name):
            if key in reader.consumed:
                continue
            url = url_from_value(reader.values[key])
            if url:
                reader.consumed.add(key)
                return url
    return None


# =============================================================================
# NORMALIZERS
# =============================================================================


class FieldNormalizer(ABC):
    """
    Base normalizer. Subclasses implement _normalize for one item kind.

    Usage:
        item = CardNormalizer().normalize(raw_record)
    """

    kind: ClassVar[ItemKind]

    def normalize(self, record: Any) -> NormalizedItem:
        """
        Normalize a raw record (or re-normalize a NormalizedItem).

        Never raises: an unexpected failure is logged and a minimal item
        carrying the best-effort name is returned.
        """
        if isinstance(record, NormalizedItem):
            record = record.to_record()
        if not isinstance(record, Mapping):
            return NormalizedItem(kind=self.kind, name="")
        try:
            return self._normalize(_FieldReader(record))
        except Exception:
            logger.exception(
                "normalization_failed",
                extra={"kind": self.kind.value, "keys": list(record.keys())[:20]},
            )
            return NormalizedItem(kind=self.kind, name=sanitize_text(record.get("name")))

    @abstractmethod
    def _normalize(self, reader: _FieldReader) -> NormalizedItem:
        """Build the item from a record reader."""


class CardNormalizer(FieldNormalizer):
    """Normalizer for trading-card records (YGOPRODeck-style fields)."""

    kind = ItemKind.CARD

    def _normalize(self, reader: _FieldReader) -> NormalizedItem:
        name = coerce_text(reader.take("name", "card name", "cardname"))
        primary_type = coerce_list(reader.take("type", "card type", "humanReadableCardType"))
        category = coerce_text(reader.take("attribute"))

        race = coerce_text(reader.take("race"))
        typeline = reader.take("typeline")
        if race is None and typeline is not None:
            if isinstance(typeline, list):
                race = " / ".join(coerce_list(typeline)) or None
            else:
                race = coerce_text(typeline)

        rank = coerce_number(reader.take("level", "rank", "linkval", "level/rank/link"))
        power = coerce_number(reader.take("atk"))
        defense = coerce_number(reader.take("def"))
        long_text = coerce_text(reader.take("desc", "description", "card_text", "text"))
        group_tag = coerce_text(reader.take("archetype"))
        identifier, identifier_display = normalize_identifier(reader.take("id"))
        image_refs = resolve_images(reader)

        return NormalizedItem(
            kind=self.kind,
            name=name or "",
            primary_type=primary_type,
            category=category,
            subtype=race,
            rank=rank,
            power=power,
            defense=defense,
            long_text=long_text,
            image_refs=image_refs,
            group_tag=group_tag,
            identifier=identifier,
            identifier_display=identifier_display,
            extra=reader.remaining(),
        )


# Localized field names -> canonical field, matched diacritic-insensitively
# on word boundaries. Checked in this order; the first match wins.
CREATURE_FIELD_ALIASES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("name", ("ten", "name")),
    ("identifier", ("ma so", "id", "number")),
    ("type", ("loai", "he", "type", "types")),
    ("height", ("chieu cao", "height")),
    ("weight", ("can nang", "weight")),
    ("long_text", ("mo ta", "description", "desc")),
    ("abilities", ("kha nang", "abilities", "ability")),
    ("stats", ("chi so", "stats")),
)

_CREATURE_EXPLICIT_KEYS: dict[str, tuple[str, ...]] = {
    "name": ("name",),
    "identifier": ("id", "number", "no", "pokedex_number", "national_number"),
    "type": ("type", "types"),
    "height": ("height",),
    "weight": ("weight",),
    "long_text": ("description", "desc", "flavor_text"),
    "abilities": ("abilities",),
    "stats": ("stats",),
}


def match_creature_alias(key: str) -> str | None:
    """Canonical field for a (possibly localized) key, or None."""
    folded = fold_key(key)
    for field_name, aliases in CREATURE_FIELD_ALIASES:
        if any(key_contains(folded, alias) for alias in aliases):
            return field_name
    return None


class CreatureNormalizer(FieldNormalizer):
    """Normalizer for creature/species records (Pokemon, localized tables)."""

    kind = ItemKind.CREATURE

    def _normalize(self, reader: _FieldReader) -> NormalizedItem:
        values: dict[str, Any] = {
            field_name: reader.take(*keys) for field_name, keys in _CREATURE_EXPLICIT_KEYS.items()
        }
        image_refs = resolve_images(reader)

        # Explicit English keys win; localized keys only fill gaps
        for key in reader.unconsumed():
            field_name = match_creature_alias(key)
            if field_name is None or values.get(field_name) is not None:
                continue
            value = reader.values[key]
            reader.consumed.add(key)
            if not is_blank(value):
                values[field_name] = value

        identifier, identifier_display = normalize_identifier(values["identifier"])
        stats = coerce_stats(values["stats"])
        extra = reader.remaining()
        if stats is None:
            stats = ()
            if values["stats"] is not None:
                extra["stats"] = values["stats"]

        abilities = values["abilities"]
        if isinstance(abilities, str):
            abilities = abilities.split(",")

        return NormalizedItem(
            kind=self.kind,
            name=coerce_text(values["name"]) or "",
            primary_type=coerce_list(values["type"]),
            long_text=coerce_text(values["long_text"]),
            image_refs=image_refs,
            identifier=identifier,
            identifier_display=identifier_display,
            height=normalize_height(values["height"]),
            weight=normalize_weight(values["weight"]),
            abilities=coerce_list(abilities),
            stats=stats,
            extra=extra,
        )


def get_normalizer(kind: ItemKind) -> FieldNormalizer:
    """Normalizer for an item kind."""
    if kind is ItemKind.CREATURE:
        return CreatureNormalizer()
    return CardNormalizer()
