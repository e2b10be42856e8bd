"""
Query endpoint.

POST /query/{command} runs one lookup end to end: admission through the
request queue, the upstream pipeline call, then extraction and rendering.
The delivered chat messages are returned in order, exactly as a chat
platform adapter would send them.

Rejections map to HTTP errors carrying the same short message a chat
user would see.
"""

import logging
from enum import Enum
from typing import Annotated, Any

import httpx
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from cardherald.api.dependencies import (
    get_request_queue,
    get_response_processor,
    get_upstream_client,
)
from cardherald.config import settings
from cardherald.models.failure import (
    GENERIC_FAILURE_MESSAGE,
    FailureKind,
    KnownError,
    RateLimitExceededError,
    UpstreamNotConfiguredError,
    describe_failure,
)
from cardherald.models.item import ItemKind
from cardherald.services.reply_sink import RecordingReplySink
from cardherald.services.request_queue import RequestQueue
from cardherald.services.response_processor import ReplyOutcome, ResponseProcessor
from cardherald.services.upstream_client import UpstreamClient

logger = logging.getLogger(__name__)

router = APIRouter(tags=["query"])


class Command(str, Enum):
    CARD = "card"
    ARCHETYPE = "archetype"
    POKEMON = "pokemon"
    SEARCH = "search"
    TIERLIST = "tierlist"


# Settings attribute holding each command's pipeline endpoint
COMMAND_ENDPOINT_SETTINGS: dict[Command, str] = {
    Command.CARD: "card_api_url",
    Command.ARCHETYPE: "archetype_api_url",
    Command.POKEMON: "pokemon_api_url",
    Command.SEARCH: "search_api_url",
    Command.TIERLIST: "tier_list_api_url",
}

# The tier list pipeline takes no user input, only this fixed prompt
TIER_LIST_PROMPT = (
    "TRÌNH BÀY TIER LIST HIỆN TẠI CỦA YU-GI-OH! THEO PHIÊN BẢN MỚI NHẤT BẰNG TIẾNG VIỆT."
)

DEFAULT_SEARCH_LIMIT = 5
MAX_SEARCH_LIMIT = 10


# =============================================================================
# REQUEST / RESPONSE MODELS
# =============================================================================


class QueryRequest(BaseModel):
    """One chat command invocation."""

    user_id: str = Field(..., min_length=1, description="Chat user id, the rate-limit key")
    display_name: str = Field(..., min_length=1, description="Chat user display name")
    query: str = Field(default="", max_length=2000, description="Command input")
    limit: int | None = Field(
        default=None,
        ge=1,
        le=MAX_SEARCH_LIMIT,
        description="Result count for /search",
    )


class DeliveredMessageResponse(BaseModel):
    """One message as delivered to the chat."""

    kind: str = Field(..., description="'edit' for the placeholder reply, else 'follow_up'")
    text: str | None = None
    cards: list[dict[str, Any]] = Field(default_factory=list)


class QueryResponse(BaseModel):
    command: Command
    outcome: ReplyOutcome
    messages: list[DeliveredMessageResponse]


# =============================================================================
# ENDPOINT
# =============================================================================


def _http_error(exc: KnownError, command: Command) -> HTTPException:
    detail = exc.to_detail().model_copy(update={"message": describe_failure(exc, command.value)})
    headers = None
    if isinstance(exc, RateLimitExceededError):
        headers = {"Retry-After": str(exc.retry_after_seconds)}
    return HTTPException(
        status_code=exc.status_code,
        detail=detail.model_dump(mode="json"),
        headers=headers,
    )


def _generic_error(command: Command, status_code: int) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={
            "kind": FailureKind.UNKNOWN.value,
            "message": GENERIC_FAILURE_MESSAGE.format(command=command.value),
        },
    )


@router.post("/query/{command}", response_model=QueryResponse)
async def run_query(
    command: Command,
    body: QueryRequest,
    queue: Annotated[RequestQueue, Depends(get_request_queue)],
    client: Annotated[UpstreamClient, Depends(get_upstream_client)],
    processor: Annotated[ResponseProcessor, Depends(get_response_processor)],
) -> QueryResponse:
    """
    Run a lookup command.

    Returns the messages delivered for it. Failures are HTTP errors:
    - 422: Missing query
    - 429: Rate limited (with Retry-After)
    - 502: Upstream pipeline failed
    - 503: Queue full, or no endpoint configured for the command
    - 504: Request timed out in the queue
    """
    setting_name = COMMAND_ENDPOINT_SETTINGS[command]
    endpoint_url = getattr(settings, setting_name)
    if not endpoint_url:
        raise _http_error(UpstreamNotConfiguredError(command.value, setting_name), command)

    if command is Command.TIERLIST:
        query_text = TIER_LIST_PROMPT
    else:
        query_text = body.query.strip()
        if not query_text:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail={"message": f"/{command.value} needs a query."},
            )

    metadata = None
    if command is Command.SEARCH:
        metadata = {"limit": body.limit or DEFAULT_SEARCH_LIMIT}

    async def call_upstream() -> Any:
        return await client.call(
            body.user_id,
            body.display_name,
            query_text,
            endpoint_url,
            metadata=metadata,
        )

    try:
        envelope = await queue.enqueue(body.user_id, body.display_name, call_upstream)
    except KnownError as exc:
        raise _http_error(exc, command) from exc
    except httpx.HTTPError as exc:
        logger.warning(
            "upstream_request_failed",
            extra={"command": command.value, "error": str(exc)},
        )
        raise _generic_error(command, status.HTTP_502_BAD_GATEWAY) from exc
    except Exception as exc:
        logger.exception("query_failed", extra={"command": command.value})
        raise _generic_error(command, status.HTTP_500_INTERNAL_SERVER_ERROR) from exc

    kind = ItemKind.CREATURE if command is Command.POKEMON else ItemKind.CARD
    sink = RecordingReplySink()
    outcome = await processor.process(envelope, sink, kind)

    return QueryResponse(
        command=command,
        outcome=outcome,
        messages=[
            DeliveredMessageResponse(
                kind=message.kind,
                text=message.payload.text,
                cards=[card.to_dict() for card in message.payload.cards],
            )
            for message in sink.messages
        ],
    )
