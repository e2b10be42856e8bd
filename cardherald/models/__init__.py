from cardherald.models.failure import (
    GENERIC_FAILURE_MESSAGE,
    NOT_FOUND_MESSAGE,
    FailureDetail,
    FailureKind,
    KnownError,
    QueueFullError,
    RateLimitExceededError,
    RequestTimeoutError,
    UpstreamError,
    UpstreamNotConfiguredError,
    describe_failure,
)
from cardherald.models.item import ImageRefs, ItemKind, NormalizedItem
from cardherald.models.visual_card import Batch, CardField, ReplyPayload, VisualCard

__all__ = [
    # Failures
    "GENERIC_FAILURE_MESSAGE",
    "NOT_FOUND_MESSAGE",
    "FailureDetail",
    "FailureKind",
    "KnownError",
    "QueueFullError",
    "RateLimitExceededError",
    "RequestTimeoutError",
    "UpstreamError",
    "UpstreamNotConfiguredError",
    "describe_failure",
    # Items
    "ImageRefs",
    "ItemKind",
    "NormalizedItem",
    # Cards
    "Batch",
    "CardField",
    "ReplyPayload",
    "VisualCard",
]
