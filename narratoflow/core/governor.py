"""
Admission control and retry policy for outbound model requests.

Flow for one request:
1. admit() - sliding-window rate limit, checked by the caller first
2. execute_with_retry() - bounded exponential backoff around the call
3. the caller records the outcome in the UsageStore
"""

import logging
import math
import threading
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Optional, TypeVar

from ..config.loader import RetryStrategy
from ..storage.models import ErrorCategory, UsageSnapshot
from .clock import Clock, to_millis
from .errors import QuotaExceededError, RetryCancelledError, classify_error
from .usage_store import UsageStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

WINDOW_MILLIS = 60000
QUOTA_EXCEEDED_MESSAGE = "Monthly quota exceeded. Please upgrade your plan."


@dataclass(frozen=True)
class AdmissionDecision:
    """Result of a rate-limit check."""
    allowed: bool
    wait_millis: int = 0
    message: Optional[str] = None


@dataclass(frozen=True)
class RateLimitStatus:
    """Current state of the sliding window."""
    current_requests: int
    max_requests: int
    is_limited: bool
    time_to_reset: int


@dataclass(frozen=True)
class DisplaySnapshot:
    """Everything the usage panel renders."""
    usage: UsageSnapshot
    rate_limit: RateLimitStatus


class RequestGovernor:
    """Session-scoped rate limiter and retry wrapper.

    Owns the window of admitted request start times; shares the
    UsageStore with whoever else renders it. Not thread-safe: callers with
    real parallelism must serialize admit() and the store updates.
    """

    def __init__(
        self,
        usage_store: UsageStore,
        rate_limit_per_min: int,
        retry_strategy: RetryStrategy,
        clock: Optional[Clock] = None,
    ):
        if rate_limit_per_min <= 0:
            raise ValueError("rate_limit_per_min must be > 0")
        self.usage_store = usage_store
        self.rate_limit_per_min = rate_limit_per_min
        self.retry_strategy = retry_strategy
        self.clock = clock or usage_store.clock
        self._request_timestamps: Deque[int] = deque()

    def admit(self) -> AdmissionDecision:
        """Admit a new request if the window has room.

        A denied attempt is not recorded in the window.
        """
        decision = self._check(record=True)
        if not decision.allowed:
            logger.info("Request denied by rate limit, retry in %d ms", decision.wait_millis)
        return decision

    def peek(self) -> AdmissionDecision:
        """Same decision as admit() without consuming a slot."""
        return self._check(record=False)

    def execute_with_retry(
        self,
        operation: Callable[[], T],
        cancel_event: Optional[threading.Event] = None,
    ) -> T:
        """Run ``operation`` with bounded exponential backoff.

        Quota exhaustion is never retried. Other failures are retried up
        to ``max_attempts`` invocations in total, after which the last
        failure is re-raised unchanged.

        Args:
            operation: Zero-argument callable performing the request
            cancel_event: Set it to abandon the loop during a backoff wait

        Returns:
            Whatever ``operation`` returns

        Raises:
            QuotaExceededError: On a quota-exhaustion failure
            RetryCancelledError: If cancel_event is set while waiting
            Exception: The last failure once attempts are exhausted
        """
        strategy = self.retry_strategy
        attempt = 0
        delay = strategy.initial_delay

        while True:
            try:
                return operation()
            except Exception as error:
                attempt += 1
                category = classify_error(error)

                if category == ErrorCategory.QUOTA:
                    raise QuotaExceededError(QUOTA_EXCEEDED_MESSAGE) from error
                if attempt >= strategy.max_attempts:
                    raise

                if category == ErrorCategory.RATE_LIMIT:
                    logger.warning("Rate limit hit, waiting %dms before retry %d", delay, attempt)
                else:
                    logger.info("Attempt %d failed (%s), retrying in %dms", attempt, error, delay)

                if self.clock.sleep(delay / 1000, cancel_event):
                    raise RetryCancelledError(
                        f"Retry cancelled after {attempt} attempt(s)"
                    ) from error
                delay = min(delay * strategy.backoff_multiplier, strategy.max_delay)

    def snapshot_for_display(self) -> DisplaySnapshot:
        """Usage snapshot plus window state, without consuming a slot."""
        decision = self.peek()
        return DisplaySnapshot(
            usage=self.usage_store.snapshot(),
            rate_limit=RateLimitStatus(
                current_requests=len(self._request_timestamps),
                max_requests=self.rate_limit_per_min,
                is_limited=not decision.allowed,
                time_to_reset=decision.wait_millis,
            ),
        )

    def _check(self, record: bool) -> AdmissionDecision:
        now = to_millis(self.clock.now())
        window = self._request_timestamps
        while window and now - window[0] >= WINDOW_MILLIS:
            window.popleft()

        if len(window) >= self.rate_limit_per_min:
            wait_millis = WINDOW_MILLIS - (now - window[0])
            return AdmissionDecision(
                allowed=False,
                wait_millis=wait_millis,
                message=(
                    f"Rate limit exceeded. Please wait "
                    f"{math.ceil(wait_millis / 1000)} seconds."
                ),
            )

        if record:
            window.append(now)
        return AdmissionDecision(allowed=True)
