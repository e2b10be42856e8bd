"""
Health and status endpoints.

/health is a liveness probe with no dependencies. /status reports the
request queue's current load.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from cardherald.api.dependencies import get_request_queue
from cardherald.services.request_queue import RequestQueue

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str


class QueueStatusResponse(BaseModel):
    """Request queue load."""

    active_count: int
    queued_count: int
    concurrency_limit: int
    distinct_users_tracked: int


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """
    Liveness probe.

    Returns healthy if the service is running.
    Does not check upstream pipelines.
    """
    return HealthResponse(status="healthy")


@router.get("/status", response_model=QueueStatusResponse)
async def queue_status(
    queue: Annotated[RequestQueue, Depends(get_request_queue)],
) -> QueueStatusResponse:
    """Current queue load. Reading it changes nothing."""
    return QueueStatusResponse(**queue.get_status())
