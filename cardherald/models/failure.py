"""
Failure Classification — Known Errors and User-Facing Messages.

Every rejection that can reach a chat user is classified here and mapped
to a short, specific message. Raw exceptions and stack traces never reach
the user.

Sources of rejection:
- Admission control (rate limit, queue full)
- Deadline expiry of a queued or running request
- Upstream pipeline errors (non-2xx responses)

Extraction and normalization never produce failures. An empty extraction
is a normal outcome handled by falling back to a plain-text reply.
"""

from enum import Enum

from pydantic import BaseModel, Field


class FailureKind(str, Enum):
    """Classification of failure types."""

    # Admission control
    RATE_LIMITED = "rate_limited"
    BUSY = "busy"

    # Execution
    TIMEOUT = "timeout"

    # Upstream
    UPSTREAM_ERROR = "upstream_error"
    NOT_CONFIGURED = "not_configured"

    # Unknown
    UNKNOWN = "unknown"


class FailureDetail(BaseModel):
    """Detailed information about a failure."""

    kind: FailureKind = Field(
        ...,
        description="Classification of the failure",
    )
    message: str = Field(
        ...,
        description="User-appropriate explanation of what went wrong",
    )
    detail: str | None = Field(
        default=None,
        description="Additional technical detail (optional)",
    )
    suggestion: str | None = Field(
        default=None,
        description="Suggested action for the user",
    )


class KnownError(Exception):
    """
    Base class for exceptions that represent known, explainable failures.

    Subclass this for errors where the system knows exactly what went wrong.
    """

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
        status_code: int = 400,
    ):
        self.kind = kind
        self.message = message
        self.detail = detail
        self.suggestion = suggestion
        self.status_code = status_code
        super().__init__(message)

    def to_detail(self) -> FailureDetail:
        """Convert to a FailureDetail."""
        return FailureDetail(
            kind=self.kind,
            message=self.message,
            detail=self.detail,
            suggestion=self.suggestion,
        )


class RateLimitExceededError(KnownError):
    """
    Raised when a user has used up their sliding-window request budget.

    Never retried internally.
    """

    def __init__(self, user_id: str, limit: int, retry_after_seconds: int):
        self.user_id = user_id
        self.limit = limit
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            kind=FailureKind.RATE_LIMITED,
            message=(
                f"Rate limit exceeded. Please try again in {retry_after_seconds} seconds."
            ),
            detail=f"User rate limit: {limit} requests per window",
            suggestion="Wait for the indicated time before sending another request.",
            status_code=429,
        )


class QueueFullError(KnownError):
    """Raised when the pending queue has reached its cap."""

    def __init__(self, queue_size: int):
        self.queue_size = queue_size
        super().__init__(
            kind=FailureKind.BUSY,
            message="Server is busy. Please try again in a moment.",
            detail=f"Queue full: {queue_size} pending requests",
            status_code=503,
        )


class RequestTimeoutError(KnownError):
    """
    Raised when a request passes its deadline before completing.

    The underlying task is detached, not cancelled.
    """

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            kind=FailureKind.TIMEOUT,
            message="The server is busy and your request timed out. Please try again shortly.",
            detail=f"Request exceeded {timeout_seconds:g}s deadline",
            status_code=504,
        )


class UpstreamError(KnownError):
    """
    Raised when the upstream pipeline answers with a non-2xx status.

    Status and body are preserved for diagnostic logging.
    """

    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        super().__init__(
            kind=FailureKind.UPSTREAM_ERROR,
            message="The lookup service returned an error.",
            detail=f"Upstream returned {status}: {body[:200]}",
            status_code=502,
        )


class UpstreamNotConfiguredError(KnownError):
    """Raised when no upstream endpoint is configured for a command."""

    def __init__(self, command: str, setting_name: str):
        self.command = command
        self.setting_name = setting_name
        super().__init__(
            kind=FailureKind.NOT_CONFIGURED,
            message=f"{setting_name.upper()} is not configured on this bot.",
            detail=f"No endpoint for /{command}",
            status_code=503,
        )


# =============================================================================
# USER-FACING MESSAGES
# =============================================================================

# Fixed, boring, predictable. These MUST NOT vary based on upstream output.
GENERIC_FAILURE_MESSAGE = "Sorry, I could not process your /{command} request."
NOT_FOUND_MESSAGE = "Could not find {subject} information in the response."


def describe_failure(exc: BaseException, command: str) -> str:
    """
    Map a rejection to a short human-readable message.

    Args:
        exc: The exception that ended the request
        command: Command name, used in the generic notice

    Returns:
        Message safe to show to the chat user
    """
    if isinstance(exc, (RateLimitExceededError, QueueFullError, RequestTimeoutError)):
        return exc.message
    if isinstance(exc, UpstreamNotConfiguredError):
        return exc.message
    return GENERIC_FAILURE_MESSAGE.format(command=command)
