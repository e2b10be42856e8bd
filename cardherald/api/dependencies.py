"""
Request-scoped access to the process-wide components.

The queue and upstream client are built once by the application
lifespan and kept on app.state; endpoints receive them through these
dependencies so tests can override them.
"""

from fastapi import Request

from cardherald.services.request_queue import RequestQueue
from cardherald.services.response_processor import ResponseProcessor
from cardherald.services.upstream_client import UpstreamClient

_processor = ResponseProcessor()


def get_request_queue(request: Request) -> RequestQueue:
    queue: RequestQueue = request.app.state.request_queue
    return queue


def get_upstream_client(request: Request) -> UpstreamClient:
    client: UpstreamClient = request.app.state.upstream_client
    return client


def get_response_processor() -> ResponseProcessor:
    """Processing is stateless, so one instance serves every request."""
    return _processor
