"""
Error types and classification.

Errors raised inside NarratoFlow carry their category explicitly. Errors
coming from the model SDK or the network do not, so they are classified
from their message and HTTP status instead.
"""

from typing import Optional

from ..storage.models import ErrorCategory


class NarratoFlowError(Exception):
    """Base class for errors raised by NarratoFlow."""
    category: Optional[ErrorCategory] = None

    def __init__(self, message: str, category: Optional[ErrorCategory] = None):
        super().__init__(message)
        self.message = message
        if category is not None:
            self.category = category


class RateLimitedError(NarratoFlowError):
    """Raised when local admission control denies a request."""
    category = ErrorCategory.RATE_LIMIT

    def __init__(self, message: str, wait_millis: int = 0):
        super().__init__(message)
        self.wait_millis = wait_millis


class QuotaExceededError(NarratoFlowError):
    """Raised when the provider reports the account quota is exhausted."""
    category = ErrorCategory.QUOTA


class StoryGenerationError(NarratoFlowError):
    """Raised when a story could not be produced."""


class RetryCancelledError(NarratoFlowError):
    """Raised when the caller abandons a retry loop during backoff."""


class ConcurrentUpdateError(NarratoFlowError):
    """Raised when persisted state changed between read and write."""


def error_message(error: BaseException) -> str:
    """Human-readable message of any exception."""
    message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(error)


def error_status(error: BaseException) -> Optional[int]:
    """HTTP-style status carried by an error, if any.

    Checks ``status``, ``status_code`` (openai.APIStatusError) and
    ``response.status_code``.
    """
    for attr in ("status", "status_code"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    if isinstance(value, int):
        return value
    return None


def classify_error(error: BaseException) -> ErrorCategory:
    """Map an error to exactly one category.

    Order matters: the first matching rule wins.

    1. explicit ``category`` attribute
    2. "rate limit" in message
    3. "insufficient_quota" in message
    4. status 401
    5. status >= 500
    6. "network error" in message
    7. other
    """
    category = getattr(error, "category", None)
    if isinstance(category, ErrorCategory):
        return category

    message = error_message(error)
    lowered = message.lower()
    status = error_status(error)

    if "rate limit" in lowered:
        return ErrorCategory.RATE_LIMIT
    if "insufficient_quota" in message:
        return ErrorCategory.QUOTA
    if status == 401:
        return ErrorCategory.AUTH
    if status is not None and status >= 500:
        return ErrorCategory.SERVER
    if "network error" in lowered:
        return ErrorCategory.NETWORK
    return ErrorCategory.OTHER
