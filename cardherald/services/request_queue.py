"""
Request Queue — Admission Control and Serialized Upstream Calls.

The upstream pipelines are slow and expensive, so every lookup goes
through one queue:

    submit() -> admission -> Pending -> Running -> Fulfilled | Rejected

ADMISSION (synchronous, before anything is queued):
- Per-user sliding window: at most rate_limit_max_requests per window
- Queue depth: at most max_queue_size pending requests
Rejected requests never enter the queue and are never retried.

EXECUTION:
- FIFO in admission order, at most max_concurrent running at once
- Each request has a deadline armed at admission. Past the deadline a
  pending request is dropped and a running one is detached: its slot is
  released, its caller gets RequestTimeoutError, and whatever the task
  later returns is discarded. The task itself is not cancelled.
- Completion schedules the next advancement with loop.call_soon rather
  than recursing, so bursts do not grow the call stack.

All state is owned by the queue and mutated only on the event loop
thread, so no locking is needed.
"""

import asyncio
import contextlib
import logging
import math
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from cardherald.config import (
    DEFAULT_CLEANUP_INTERVAL_SECONDS,
    DEFAULT_MAX_CONCURRENT,
    DEFAULT_MAX_QUEUE_SIZE,
    DEFAULT_RATE_LIMIT_MAX_REQUESTS,
    DEFAULT_RATE_LIMIT_WINDOW_SECONDS,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
)
from cardherald.models.failure import QueueFullError, RateLimitExceededError, RequestTimeoutError

logger = logging.getLogger(__name__)

Task = Callable[[], Awaitable[Any]]


class RequestState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"


@dataclass(eq=False)
class QueuedRequest:
    """One admitted request. Owned by the queue."""

    user_id: str
    display_name: str
    task: Task
    created_at: float
    future: asyncio.Future[Any]
    timeout_handle: asyncio.TimerHandle | None = None
    state: RequestState = RequestState.PENDING
    holds_slot: bool = False


@dataclass
class RequestQueue:
    """
    Bounded-concurrency FIFO queue with per-user rate limiting.

    Construct one per process (the FastAPI lifespan does) and call start()
    to begin periodic ledger pruning.
    """

    max_concurrent: int = DEFAULT_MAX_CONCURRENT
    max_queue_size: int = DEFAULT_MAX_QUEUE_SIZE
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    rate_limit_window_seconds: float = DEFAULT_RATE_LIMIT_WINDOW_SECONDS
    rate_limit_max_requests: int = DEFAULT_RATE_LIMIT_MAX_REQUESTS
    cleanup_interval_seconds: float = DEFAULT_CLEANUP_INTERVAL_SECONDS
    clock: Callable[[], float] = time.monotonic

    # State
    _pending: deque[QueuedRequest] = field(default_factory=deque, init=False, repr=False)
    _active_count: int = field(default=0, init=False, repr=False)
    _ledger: dict[str, deque[float]] = field(default_factory=dict, init=False, repr=False)
    _running: set[asyncio.Task[None]] = field(default_factory=set, init=False, repr=False)
    _cleanup_task: asyncio.Task[None] | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_concurrent < 1:
            raise ValueError(f"max_concurrent must be at least 1, got {self.max_concurrent}")
        if self.max_queue_size < 1:
            raise ValueError(f"max_queue_size must be at least 1, got {self.max_queue_size}")

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> None:
        """Start periodic ledger pruning. Must be called on a running loop."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.get_running_loop().create_task(self._cleanup_loop())

    async def close(self) -> None:
        """Stop periodic pruning."""
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._cleanup_task
            self._cleanup_task = None

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval_seconds)
            removed = self.prune_ledger()
            if removed:
                logger.debug("rate_limit_ledger_pruned", extra={"users_removed": removed})

    # =========================================================================
    # ADMISSION
    # =========================================================================

    def submit(self, user_id: str, display_name: str, task: Task) -> asyncio.Future[Any]:
        """
        Admit a request and return a future for its result.

        Admission happens before this returns, so rejections raise here
        rather than through the future.

        Args:
            user_id: Rate-limit key
            display_name: Shown in logs
            task: Zero-argument coroutine function doing the actual work

        Returns:
            Future resolved with the task's result, or rejected with the
            task's exception or RequestTimeoutError

        Raises:
            RateLimitExceededError: User's window is full
            QueueFullError: Pending queue is at capacity
        """
        loop = asyncio.get_running_loop()

        retry_after = self._check_rate_limit(user_id)
        if retry_after is not None:
            logger.info(
                "request_rate_limited",
                extra={"user_id": user_id, "retry_after_seconds": retry_after},
            )
            raise RateLimitExceededError(
                user_id=user_id,
                limit=self.rate_limit_max_requests,
                retry_after_seconds=retry_after,
            )

        if len(self._pending) >= self.max_queue_size:
            logger.warning("queue_full", extra={"queued_count": len(self._pending)})
            raise QueueFullError(queue_size=len(self._pending))

        now = self.clock()
        self._ledger.setdefault(user_id, deque()).append(now)

        request = QueuedRequest(
            user_id=user_id,
            display_name=display_name,
            task=task,
            created_at=now,
            future=loop.create_future(),
        )
        request.timeout_handle = loop.call_later(
            self.request_timeout_seconds, self._on_timeout, request
        )
        self._pending.append(request)

        logger.info(
            "request_enqueued",
            extra={
                "user": display_name,
                "active_count": self._active_count,
                "queued_count": len(self._pending),
            },
        )
        self._advance()
        return request.future

    async def enqueue(self, user_id: str, display_name: str, task: Task) -> Any:
        """Admit a request and wait for its result."""
        return await self.submit(user_id, display_name, task)

    def _check_rate_limit(self, user_id: str) -> int | None:
        """Seconds until the user may retry, or None when under the limit."""
        timestamps = self._ledger.get(user_id)
        if timestamps is None:
            return None

        now = self.clock()
        self._prune(timestamps, now)
        if not timestamps:
            del self._ledger[user_id]
            return None

        if len(timestamps) >= self.rate_limit_max_requests:
            remaining = self.rate_limit_window_seconds - (now - timestamps[0])
            return max(1, math.ceil(remaining))
        return None

    def _prune(self, timestamps: deque[float], now: float) -> None:
        while timestamps and now - timestamps[0] >= self.rate_limit_window_seconds:
            timestamps.popleft()

    def prune_ledger(self) -> int:
        """
        Drop expired timestamps for every user.

        Returns:
            Number of users removed from the ledger
        """
        now = self.clock()
        removed = 0
        for user_id in list(self._ledger):
            timestamps = self._ledger[user_id]
            self._prune(timestamps, now)
            if not timestamps:
                del self._ledger[user_id]
                removed += 1
        return removed

    # =========================================================================
    # EXECUTION
    # =========================================================================

    def _advance(self) -> None:
        while self._active_count < self.max_concurrent and self._pending:
            request = self._pending.popleft()
            if request.future.done():
                # Caller went away while the request was pending
                self._cancel_timeout(request)
                continue

            request.state = RequestState.RUNNING
            request.holds_slot = True
            self._active_count += 1
            runner = asyncio.get_running_loop().create_task(self._run(request))
            self._running.add(runner)
            runner.add_done_callback(self._running.discard)

    async def _run(self, request: QueuedRequest) -> None:
        started = self.clock()
        logger.info(
            "request_started",
            extra={
                "user": request.display_name,
                "active_count": self._active_count,
                "queued_count": len(self._pending),
                "waited_seconds": round(started - request.created_at, 3),
            },
        )
        try:
            result = await request.task()
        except Exception as exc:
            logger.warning(
                "request_failed",
                extra={
                    "user": request.display_name,
                    "elapsed_seconds": round(self.clock() - started, 3),
                    "error": str(exc),
                },
            )
            self._settle(request, error=exc)
        else:
            logger.info(
                "request_completed",
                extra={
                    "user": request.display_name,
                    "elapsed_seconds": round(self.clock() - started, 3),
                },
            )
            self._settle(request, result=result)
        finally:
            self._cancel_timeout(request)
            self._release(request)

    def _settle(
        self,
        request: QueuedRequest,
        result: Any = None,
        error: BaseException | None = None,
    ) -> None:
        if request.future.done():
            logger.info("request_result_discarded", extra={"user": request.display_name})
            return
        if error is not None:
            request.state = RequestState.REJECTED
            request.future.set_exception(error)
        else:
            request.state = RequestState.FULFILLED
            request.future.set_result(result)

    def _release(self, request: QueuedRequest) -> None:
        """Give back a running request's slot, at most once."""
        if not request.holds_slot:
            return
        request.holds_slot = False
        self._active_count -= 1
        asyncio.get_running_loop().call_soon(self._advance)

    def _on_timeout(self, request: QueuedRequest) -> None:
        request.timeout_handle = None
        if request.state == RequestState.PENDING:
            with contextlib.suppress(ValueError):
                self._pending.remove(request)
        elif request.state == RequestState.RUNNING:
            self._release(request)

        if not request.future.done():
            request.state = RequestState.REJECTED
            request.future.set_exception(
                RequestTimeoutError(timeout_seconds=self.request_timeout_seconds)
            )
            logger.warning(
                "request_timed_out",
                extra={
                    "user": request.display_name,
                    "timeout_seconds": self.request_timeout_seconds,
                },
            )

    def _cancel_timeout(self, request: QueuedRequest) -> None:
        if request.timeout_handle is not None:
            request.timeout_handle.cancel()
            request.timeout_handle = None

    # =========================================================================
    # STATUS
    # =========================================================================

    def get_status(self) -> dict[str, int]:
        """Current load. Reads only; never prunes."""
        return {
            "active_count": self._active_count,
            "queued_count": len(self._pending),
            "concurrency_limit": self.max_concurrent,
            "distinct_users_tracked": len(self._ledger),
        }
