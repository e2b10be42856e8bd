"""
Text helpers shared by extraction, normalization and rendering.

All functions here are total: they accept any value and never raise.
"""

import ast
import json
import re
import unicodedata
from typing import Any

# Markers that are always markdown, wherever they appear
_PAIRED_MARKERS = re.compile(r"\*\*|__|~~|`")

# Single * and ~ carry no meaning in card text
_LONE_MARKERS = re.compile(r"[*~]")

# _ only counts as emphasis next to a non-word character ("_x_"), so
# identifiers and URLs such as image_url_small survive
_EMPHASIS_UNDERSCORE = re.compile(r"(?<!\w)_|_(?!\w)")

_WHITESPACE = re.compile(r"\s+")

_URL_PATTERN = re.compile(r"https?://[^\s)\]>\"'<]+", re.IGNORECASE)

# Single-quoted keys and string values inside a JSON-like literal
_SINGLE_QUOTED_TOKEN = re.compile(r"([\[{,:]\s*)'((?:[^'\\]|\\.)*)'(?=\s*[:,\]}])")

_NON_ALNUM = re.compile(r"[^0-9a-z]+")


def sanitize_text(value: Any) -> str:
    """
    Strip markdown emphasis/code/strike markers and collapse whitespace.

    Punctuation is left alone. Applying this twice gives the same result
    as applying it once.
    """
    if value is None:
        return ""
    text = str(value)
    while True:
        stripped = _PAIRED_MARKERS.sub("", text)
        stripped = _LONE_MARKERS.sub("", stripped)
        stripped = _EMPHASIS_UNDERSCORE.sub("", stripped)
        if stripped == text:
            break
        text = stripped
    return _WHITESPACE.sub(" ", text).strip()


def truncate(text: str, limit: int) -> str:
    """Cut text to at most limit characters, marking the cut with '...'."""
    if len(text) <= limit:
        return text
    if limit <= 3:
        return text[:limit]
    return text[: limit - 3] + "..."


def strip_diacritics(text: str) -> str:
    """Remove combining marks ('tên' -> 'ten'). 'đ' has no decomposition."""
    decomposed = unicodedata.normalize("NFD", text)
    without_marks = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return without_marks.replace("đ", "d").replace("Đ", "D")


def fold_key(key: Any) -> str:
    """
    Fold a field name for matching.

    Lowercases, strips diacritics and reduces punctuation to single spaces,
    so 'Chiều cao (m)' and 'chieu_cao m' both fold to 'chieu cao m'.
    """
    folded = strip_diacritics(str(key)).casefold()
    return _NON_ALNUM.sub(" ", folded).strip()


def key_contains(folded_key: str, phrase: str) -> bool:
    """Word-boundary substring test on folded keys."""
    return f" {phrase} " in f" {folded_key} "


def extract_url(value: Any) -> str | None:
    """Return the first http(s) URL in a string, including markdown images."""
    if not isinstance(value, str):
        return None
    match = _URL_PATTERN.search(value)
    return match.group(0) if match else None


def parse_stringified(value: Any) -> Any:
    """
    Parse a string that holds a JSON object or array.

    Tries, in order: JSON as-is, a Python literal, JSON after quoting
    single-quoted keys and strings, JSON after replacing every single quote.
    Returns the raw value when nothing parses to a dict or list.
    """
    if not isinstance(value, str):
        return value
    text = value.strip()
    if not text or not _looks_like_container(text):
        return value

    candidates = (
        lambda: json.loads(text),
        lambda: ast.literal_eval(text),
        lambda: json.loads(_SINGLE_QUOTED_TOKEN.sub(r'\1"\2"', text)),
        lambda: json.loads(text.replace("'", '"')),
    )
    for attempt in candidates:
        try:
            parsed = attempt()
        except (ValueError, SyntaxError, TypeError, MemoryError, RecursionError):
            continue
        if isinstance(parsed, (dict, list)):
            return parsed
    return value


def _looks_like_container(text: str) -> bool:
    return (text[0] == "{" and text[-1] == "}") or (text[0] == "[" and text[-1] == "]")


def is_blank(value: Any) -> bool:
    """None, empty/whitespace strings and empty containers are blank."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False
