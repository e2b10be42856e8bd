"""
CardHerald services.

Response extraction, normalization, rendering and delivery, plus the
request queue and upstream client.
"""

from cardherald.services.batch_dispatcher import BatchDispatcher, chunk_text
from cardherald.services.card_renderer import CardRenderer
from cardherald.services.field_normalizer import (
    CardNormalizer,
    CreatureNormalizer,
    FieldNormalizer,
    get_normalizer,
)
from cardherald.services.markdown_tables import looks_tabular, parse_markdown_items
from cardherald.services.reply_sink import RecordingReplySink, ReplySink
from cardherald.services.request_queue import RequestQueue
from cardherald.services.response_extractor import (
    ExtractionResult,
    Probe,
    ResponseExtractor,
    extract_items,
    find_message_text,
)
from cardherald.services.response_processor import ReplyOutcome, ResponseProcessor
from cardherald.services.size_constraint import card_size, fit_card
from cardherald.services.upstream_client import UpstreamClient

__all__ = [
    # Extraction
    "ExtractionResult",
    "Probe",
    "ResponseExtractor",
    "extract_items",
    "find_message_text",
    "looks_tabular",
    "parse_markdown_items",
    # Normalization
    "CardNormalizer",
    "CreatureNormalizer",
    "FieldNormalizer",
    "get_normalizer",
    # Rendering and delivery
    "BatchDispatcher",
    "CardRenderer",
    "RecordingReplySink",
    "ReplyOutcome",
    "ReplySink",
    "ResponseProcessor",
    "card_size",
    "chunk_text",
    "fit_card",
    # Execution
    "RequestQueue",
    "UpstreamClient",
]
