"""
Markdown Table Parser.

THIS MODULE HANDLES SYNTAX ONLY.

Upstream pipelines sometimes answer with markdown instead of JSON: one
block per item, separated by horizontal rules, each block an optional
"!Title" line followed by a two-column "| Field | Value |" table.

    !Pikachu
    | Thông tin | Giá trị |
    | :--- | :--- |
    | Loại | Điện |
    | Chiều cao | 0.4 |
    ---
    !Bulbasaur
    | Loại | Cỏ |

The output is a list of raw item records. Recognized English keys are
folded into canonical names; every other key is kept verbatim for the
field normalizer to interpret.

Detection is a heuristic driven by the label tables below. New upstream
formats are not recognized without extending them.
"""

from __future__ import annotations

import re
from typing import Any

from cardherald.services.text import extract_url, fold_key, sanitize_text

# A block separator: a line of three or more dashes
_BLOCK_SEPARATOR = re.compile(r"^[ \t]*-{3,}[ \t]*$", re.MULTILINE)

# "| :--- | ---: |" and friends
_DIVIDER_ROW = re.compile(r"^[|:\s-]+$")

# "!Title" but not a markdown image "![alt](url)"
_TITLE_LINE = re.compile(r"^!+(?!\[)\s*(.+)$")

_MARKDOWN_IMAGE_LINE = re.compile(r"^!\[[^\]]*\]\((https?://[^\s)]+)\)")

_TABLE_ROW = re.compile(r"^\|?[^|\n]+\|[^|\n]*\|?$", re.MULTILINE)

# Table header labels (folded), in English and Vietnamese
HEADER_LABELS: frozenset[str] = frozenset(
    {
        "field",
        "value",
        "key",
        "property",
        "thong tin",
        "gia tri",
        "truong",
    }
)

# Image labels are headers unless the row carries a URL
IMAGE_LABELS: frozenset[str] = frozenset({"image", "image url", "hinh anh", "anh"})

# Case-insensitive substring -> canonical key, checked in order
CANONICAL_KEY_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("name",), "name"),
    (("type",), "type"),
    (("attribute",), "attribute"),
    (("level",), "level"),
    (("race",), "race"),
    (("atk",), "atk"),
    (("def",), "def"),
    (("description", "desc"), "desc"),
)

_NUMERIC_KEYS = frozenset({"atk", "def"})


def looks_tabular(text: str) -> bool:
    """
    Heuristic: does this text hold markdown item tables?

    True when it has pipe-delimited rows, a header divider row, or a
    leading "!Title" line.
    """
    if not text:
        return False
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if "|" in stripped and _DIVIDER_ROW.match(stripped) and "-" in stripped:
            return True
        if _TITLE_LINE.match(stripped):
            return True
    return bool(_TABLE_ROW.search(text))


def canonical_key(key: str) -> str:
    """Fold a recognized table key to its canonical name; others stay verbatim."""
    lowered = key.lower()
    for needles, canonical in CANONICAL_KEY_RULES:
        if any(needle in lowered for needle in needles):
            return canonical
    return key


def parse_markdown_items(text: str) -> list[dict[str, Any]]:
    """
    Parse markdown item blocks into raw records.

    Args:
        text: Markdown text, possibly with several blocks

    Returns:
        One record per block that has a title or at least one table row
    """
    if not text or not isinstance(text, str):
        return []

    normalized = text.replace("\r\n", "\n")
    records: list[dict[str, Any]] = []
    for block in _BLOCK_SEPARATOR.split(normalized):
        record = _parse_block(block)
        if record:
            records.append(record)
    return records


def _parse_block(block: str) -> dict[str, Any] | None:
    lines = [line.strip() for line in block.strip().split("\n") if line.strip()]
    if not lines:
        return None

    title = ""
    image: str | None = None
    rows: dict[str, str] = {}

    for line in lines:
        if not title:
            title_match = _TITLE_LINE.match(line)
            if title_match:
                title = sanitize_text(title_match.group(1).lstrip("!"))
                continue

        image_match = _MARKDOWN_IMAGE_LINE.match(line)
        if image_match:
            image = image or image_match.group(1)
            continue

        if "|" not in line or _DIVIDER_ROW.match(line):
            continue

        row = _parse_row(line)
        if row is not None:
            key, value = row
            rows.setdefault(key, value)

    if not rows:
        if title:
            record: dict[str, Any] = {"name": title}
            if image:
                record["image"] = image
            return record
        return None

    record = {}
    for key, value in rows.items():
        canonical = canonical_key(key)
        if canonical in record:
            continue
        record[canonical] = _coerce_cell(canonical, value)

    if "name" not in record and title:
        record["name"] = title
    if image and not any("image" in fold_key(k) or fold_key(k) in IMAGE_LABELS for k in record):
        record["image"] = image
    return record


def _parse_row(line: str) -> tuple[str, str] | None:
    parts = [part.strip() for part in line.split("|")]
    parts = [part for part in parts if part]
    if len(parts) < 2:
        return None

    key = sanitize_text(parts[0])
    raw_value = parts[1].replace("**", "").strip()
    folded_key = fold_key(key)
    folded_value = fold_key(raw_value)

    if folded_key in HEADER_LABELS or folded_value in HEADER_LABELS:
        return None
    if folded_key in IMAGE_LABELS or folded_value in IMAGE_LABELS:
        url = extract_url(raw_value)
        if url is None:
            return None
        return key, url
    if not key or not raw_value:
        return None

    # URLs keep their underscores; everything else is display text
    value = raw_value if extract_url(raw_value) == raw_value else sanitize_text(raw_value)
    return key, value


def _coerce_cell(canonical: str, value: str) -> Any:
    if canonical in _NUMERIC_KEYS and re.fullmatch(r"[-+]?\d+", value):
        return int(value)
    return value
