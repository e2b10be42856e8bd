import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from importlib.metadata import version as pkg_version

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cardherald.api import health_router, query_router
from cardherald.config import settings
from cardherald.services.request_queue import RequestQueue
from cardherald.services.upstream_client import UpstreamClient

logger = logging.getLogger(__name__)


def build_request_queue() -> RequestQueue:
    """Request queue configured from settings."""
    return RequestQueue(
        max_concurrent=settings.queue_max_concurrent,
        max_queue_size=settings.queue_max_size,
        request_timeout_seconds=settings.queue_request_timeout_seconds,
        rate_limit_window_seconds=settings.rate_limit_window_seconds,
        rate_limit_max_requests=settings.rate_limit_max_requests,
        cleanup_interval_seconds=settings.rate_limit_cleanup_interval_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    queue = build_request_queue()
    client = UpstreamClient()
    queue.start()
    app.state.request_queue = queue
    app.state.upstream_client = client
    logger.info("app_started", extra={"status": queue.get_status()})
    try:
        yield
    finally:
        await queue.close()
        await client.aclose()
        logger.info("app_stopped")


app = FastAPI(
    title=settings.app_name,
    version=pkg_version("cardherald"),
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(query_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Tighten in production
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
