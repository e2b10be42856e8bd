"""
Response Extractor — Envelope to Raw Item Records.

Upstream pipelines answer with whatever shape their last node produced:
a bare data array, a wrapped result, a multi-branch pipeline output, a
markdown table inside a chat message, or an item buried somewhere deep.
This module turns any of those into an ordered, deduplicated list of raw
item records.

INVARIANTS:
- Extraction never raises, whatever the envelope holds
- Probes are pure and tried in a fixed order
- Recursion is bounded by depth and tracks visited containers
- First occurrence of a duplicate wins; discovery order is kept

An empty result is a normal outcome. The caller falls back to replying
with the message text.
"""

import json
import logging
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from cardherald.services.field_normalizer import (
    CROPPED_IMAGE_KEYS,
    FULL_IMAGE_KEYS,
    SMALL_IMAGE_KEYS,
)
from cardherald.services.markdown_tables import looks_tabular, parse_markdown_items
from cardherald.services.text import extract_url, fold_key, is_blank, key_contains

logger = logging.getLogger(__name__)

# =============================================================================
# LIMITS AND KEY TABLES
# =============================================================================

MAX_SCAN_DEPTH = 32
MAX_MESSAGE_SEARCH_DEPTH = 8

# Keys whose string values count as a chat message
TEXT_LIKE_KEYS: tuple[str, ...] = ("message", "text", "content", "output", "answer", "result")

# Descriptive-text keys that make a named object look like an item
DESCRIPTIVE_KEYS: tuple[str, ...] = ("desc", "description", "text", "card_text")

# Name keys of item-like objects, folded (English and Vietnamese)
NAME_KEYS: tuple[str, ...] = ("name", "ten")

# Image keys of item-like objects, folded
_IMAGE_KEYS = frozenset(
    fold_key(key)
    for key in ("card_images", *FULL_IMAGE_KEYS, *SMALL_IMAGE_KEYS, *CROPPED_IMAGE_KEYS)
)

# Column headers of archetype-style listings (folded) -> canonical keys
TABLE_COLUMN_KEYS: dict[str, str] = {
    "card name": "name",
    "cardname": "name",
    "card type": "type",
    "cardtype": "type",
    "attribute": "attribute",
    "level rank link": "level",
    "level rank": "level",
    "level": "level",
    "atk": "atk",
    "def": "def",
    "description": "desc",
    "image": "image_url",
    "image url": "image_url",
}

_TABLE_NAME_COLUMNS = frozenset({"card name", "cardname"})


# =============================================================================
# RESULT TYPES
# =============================================================================


@dataclass(frozen=True)
class Probe:
    """
    One envelope shape the extractor understands.

    Attributes:
        name: Label used in logs and in ExtractionResult.sources
        matches: Cheap shape test
        extract: Pulls raw records out of a matching envelope
    """

    name: str
    matches: Callable[[Any], bool]
    extract: Callable[[Any], list[Any]]


@dataclass
class ExtractionResult:
    """
    Outcome of one extraction.

    Attributes:
        items: Deduplicated raw records in discovery order
        sources: Names of the probes that contributed records
        is_group_listing: True when records came from a column-style listing
        message_text: Chat message text found in the envelope, if any
    """

    items: list[dict[str, Any]] = field(default_factory=list)
    sources: list[str] = field(default_factory=list)
    is_group_listing: bool = False
    message_text: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.items


# =============================================================================
# STRUCTURED PROBES
# =============================================================================


def _list_at(value: Any, *path: str) -> list[Any] | None:
    current = value
    for key in path:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    return current if isinstance(current, list) else None


def _iter_pipeline_results(envelope: Any) -> Iterator[Mapping[str, Any]]:
    """Yield every outputs[].outputs[].results mapping, across all branches."""
    outer = _list_at(envelope, "outputs")
    if not outer:
        return
    for branch in outer:
        inner = _list_at(branch, "outputs")
        if not inner:
            continue
        for node in inner:
            if not isinstance(node, Mapping):
                continue
            results = node.get("results")
            if isinstance(results, Mapping):
                yield results


def _extract_pipeline(envelope: Any) -> list[Any]:
    found: list[Any] = []
    for results in _iter_pipeline_results(envelope):
        for path in (("data",), ("result", "data"), ("message", "data")):
            items = _list_at(results, *path)
            if items:
                found.extend(items)
    return found


def looks_like_item(value: Mapping[str, Any]) -> bool:
    """A named object with an image reference or descriptive text."""
    if not _has_name(value):
        return False
    if _has_image_reference(value):
        return True
    return any(
        isinstance(value.get(key), str) and value[key].strip() for key in DESCRIPTIVE_KEYS
    )


def _has_name(value: Mapping[str, Any]) -> bool:
    for key, candidate in value.items():
        folded = fold_key(key)
        if any(key_contains(folded, alias) for alias in NAME_KEYS):
            if isinstance(candidate, str) and candidate.strip():
                return True
    return False


def _has_image_reference(value: Mapping[str, Any]) -> bool:
    for key, candidate in value.items():
        if is_blank(candidate):
            continue
        folded = fold_key(key)
        if folded in _IMAGE_KEYS or "image" in folded:
            return True
    return False


def deep_scan(envelope: Any, max_depth: int = MAX_SCAN_DEPTH) -> list[dict[str, Any]]:
    """
    Collect item-like objects reachable from the envelope.

    A matching object is not descended into. Containers already visited
    are skipped, so cyclic structures terminate.
    """
    found: list[dict[str, Any]] = []
    visited: set[int] = set()

    def scan(node: Any, depth: int) -> None:
        if depth > max_depth or not isinstance(node, (Mapping, list, tuple)):
            return
        if id(node) in visited:
            return
        visited.add(id(node))

        if isinstance(node, Mapping):
            if looks_like_item(node):
                found.append(dict(node))
                return
            children = list(node.values())
        else:
            children = list(node)

        for child in children:
            try:
                scan(child, depth + 1)
            except Exception:
                logger.debug("deep_scan_branch_skipped", exc_info=True, extra={"depth": depth})

    scan(envelope, 0)
    return found


DEFAULT_PROBES: tuple[Probe, ...] = (
    Probe(
        name="data",
        matches=lambda env: _list_at(env, "data") is not None,
        extract=lambda env: list(_list_at(env, "data") or []),
    ),
    Probe(
        name="result.data",
        matches=lambda env: _list_at(env, "result", "data") is not None,
        extract=lambda env: list(_list_at(env, "result", "data") or []),
    ),
    Probe(
        name="pipeline_outputs",
        matches=lambda env: _list_at(env, "outputs") is not None,
        extract=_extract_pipeline,
    ),
    Probe(
        name="deep_scan",
        matches=lambda env: isinstance(env, (Mapping, list)),
        extract=deep_scan,
    ),
)


# =============================================================================
# MESSAGE TEXT
# =============================================================================


def _non_blank_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def find_message_text(envelope: Any, depth: int = 0) -> str | None:
    """
    Find the chat message text of an envelope.

    Checks, in order: the envelope itself when it is a string, a top-level
    message, artifacts.message, each pipeline branch's results.message,
    then text-like keys and nested containers.

    Args:
        envelope: Response envelope, any shape
        depth: Current recursion depth

    Returns:
        The first non-blank message text, or None
    """
    if depth > MAX_MESSAGE_SEARCH_DEPTH:
        return None
    if isinstance(envelope, str):
        return _non_blank_str(envelope)

    if isinstance(envelope, list):
        for entry in envelope:
            if isinstance(entry, (Mapping, list)):
                text = find_message_text(entry, depth + 1)
                if text:
                    return text
        return None

    if not isinstance(envelope, Mapping):
        return None

    message = envelope.get("message")
    text = _non_blank_str(message)
    if text is None and isinstance(message, Mapping):
        text = _non_blank_str(message.get("text"))
    if text:
        return text

    artifacts = envelope.get("artifacts")
    if isinstance(artifacts, Mapping):
        artifact_message = artifacts.get("message")
        text = _non_blank_str(artifact_message)
        if text is None and isinstance(artifact_message, Mapping):
            text = _non_blank_str(artifact_message.get("message"))
        if text:
            return text

    for results in _iter_pipeline_results(envelope):
        result_message = results.get("message")
        text = _non_blank_str(result_message)
        if text is None and isinstance(result_message, Mapping):
            text = _non_blank_str(result_message.get("text"))
            data = result_message.get("data")
            if text is None and isinstance(data, Mapping):
                text = _non_blank_str(data.get("text"))
        if text:
            return text

    for key, value in envelope.items():
        if key in TEXT_LIKE_KEYS:
            text = _non_blank_str(value)
            if text:
                return text
        if isinstance(value, (Mapping, list)):
            text = find_message_text(value, depth + 1)
            if text:
                return text
    return None


# =============================================================================
# LISTINGS AND DEDUPLICATION
# =============================================================================


def is_listing_row(record: Mapping[str, Any]) -> bool:
    """True for rows of an archetype-style listing ("Card Name", "Card Type", ...)."""
    return any(fold_key(key) in _TABLE_NAME_COLUMNS for key in record)


def fold_listing_row(record: Mapping[str, Any]) -> dict[str, Any]:
    """Rename listing columns to canonical keys; other keys stay verbatim."""
    folded: dict[str, Any] = {}
    for key, value in record.items():
        canonical = TABLE_COLUMN_KEYS.get(fold_key(key))
        if canonical is None:
            folded.setdefault(key, value)
        elif canonical == "image_url":
            url = extract_url(value) if isinstance(value, str) else None
            if url:
                folded.setdefault(canonical, url)
        else:
            folded.setdefault(canonical, value)
    return folded


def dedup_key(record: Mapping[str, Any]) -> tuple[str, str]:
    """Identity of a record: id, then _id, then name, then its full structure."""
    for field_name in ("id", "_id", "name"):
        value = record.get(field_name)
        if not is_blank(value):
            return field_name, str(value)
    return "structure", json.dumps(record, sort_keys=True, default=str)


def dedupe(records: list[Any]) -> list[dict[str, Any]]:
    """Drop non-mappings and later duplicates, keeping first-seen order."""
    seen: set[tuple[str, str]] = set()
    unique: list[dict[str, Any]] = []
    for record in records:
        if not isinstance(record, Mapping):
            continue
        try:
            key = dedup_key(record)
        except (TypeError, ValueError):
            # Unserializable structure: keep it, identity unknown
            key = ("object", str(id(record)))
        if key in seen:
            continue
        seen.add(key)
        unique.append(dict(record))
    return unique


# =============================================================================
# EXTRACTOR
# =============================================================================


class ResponseExtractor:
    """
    Runs the probe chain over an envelope.

    Every structured probe that matches contributes records. The markdown
    parser only runs when the structured probes found nothing.
    """

    def __init__(self, probes: tuple[Probe, ...] = DEFAULT_PROBES) -> None:
        self.probes = probes

    def extract(self, envelope: Any) -> list[dict[str, Any]]:
        """Raw item records of an envelope, deduplicated."""
        return self.extract_result(envelope).items

    def extract_result(self, envelope: Any) -> ExtractionResult:
        result = ExtractionResult()
        collected: list[Any] = []

        for probe in self.probes:
            try:
                if not probe.matches(envelope):
                    continue
                found = probe.extract(envelope)
            except Exception:
                logger.warning(
                    "probe_failed",
                    exc_info=True,
                    extra={"probe": probe.name},
                )
                continue
            if found:
                collected.extend(found)
                result.sources.append(probe.name)

        records: list[Any] = []
        for record in collected:
            if isinstance(record, Mapping) and is_listing_row(record):
                result.is_group_listing = True
                records.append(fold_listing_row(record))
            else:
                records.append(record)
        result.items = dedupe(records)

        try:
            result.message_text = find_message_text(envelope)
        except Exception:
            logger.warning("message_text_search_failed", exc_info=True)

        if not result.items and result.message_text and looks_tabular(result.message_text):
            result.items = dedupe(parse_markdown_items(result.message_text))
            if result.items:
                result.sources.append("tabular")

        logger.debug(
            "extraction_complete",
            extra={
                "item_count": len(result.items),
                "sources": result.sources,
                "group_listing": result.is_group_listing,
            },
        )
        return result


def extract_items(envelope: Any) -> list[dict[str, Any]]:
    """Extract raw item records with the default probe chain."""
    return ResponseExtractor().extract(envelope)
