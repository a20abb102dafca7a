"""
Monthly usage accounting.

Tracks tokens, request outcomes and errors for the current billing period
and persists them across sessions. The billing period is the calendar
month; a record from an earlier month is reset lazily the next time it is
read.
"""

import logging
from typing import Any, Callable, Dict, Optional

from ..config.loader import MonitoringConfig
from ..storage.models import (
    ErrorCategory,
    ErrorLogEntry,
    TokenUsageResult,
    UsageRecord,
    UsageSnapshot,
)
from ..storage.repository import StateRepository
from .clock import Clock
from .errors import ConcurrentUpdateError, classify_error, error_message

logger = logging.getLogger(__name__)

RECENT_ERROR_COUNT = 5
MAX_WRITE_ATTEMPTS = 3


class UsageStore:
    """Persisted usage statistics for one storage key.

    Every operation reads the stored document, applies its change and
    writes the whole document back with a version check. On a conflict the
    change is re-applied to a fresh read.
    """

    def __init__(
        self,
        repository: StateRepository,
        config: MonitoringConfig,
        clock: Optional[Clock] = None,
    ):
        self.repository = repository
        self.config = config
        self.clock = clock or Clock()
        self.key = config.storage.key
        self.repository.initialize_schema()

    def load(self) -> UsageRecord:
        """Return current stats, starting a new billing period if needed."""
        stored = self.repository.read(self.key)
        if stored is None:
            return self._start_period(expected_version=0)

        document, version = stored
        record = UsageRecord.from_document(document, version=version)
        if self._should_reset(record):
            logger.info("New billing period, resetting usage stats (last reset %s)",
                        record.last_reset.isoformat())
            return self._start_period(expected_version=version)
        return record

    def reset(self) -> UsageRecord:
        """Start a new billing period immediately."""
        return self._update(self._zero)

    def record_token_usage(self, tokens: int) -> TokenUsageResult:
        """Add tokens to the period total and count the request.

        Exceeding the quota is advisory only: the call never blocks.

        Args:
            tokens: Tokens consumed by one request

        Returns:
            TokenUsageResult with the new usage percentage

        Raises:
            ValueError: If tokens is negative
        """
        if tokens < 0:
            raise ValueError("tokens cannot be negative")

        def apply(record: UsageRecord) -> None:
            record.token_usage += tokens
            record.request_count += 1

        return self._token_result(self._update(apply))

    def record_success(self, tokens: int) -> TokenUsageResult:
        """Count a successful request and its tokens in one write.

        Equivalent to record_outcome(True) followed by
        record_token_usage(tokens), but the stored record never holds
        success_count > request_count in between.

        Raises:
            ValueError: If tokens is negative
        """
        if tokens < 0:
            raise ValueError("tokens cannot be negative")

        def apply(record: UsageRecord) -> None:
            record.token_usage += tokens
            record.request_count += 1
            record.success_count += 1

        return self._token_result(self._update(apply))

    def record_outcome(self, success: bool, error: Optional[BaseException] = None) -> None:
        """Count a request as succeeded or failed.

        Successful requests are counted in request_count by
        record_token_usage(); a failed one never reaches it, so it is
        counted here. Prefer record_success() for a success with tokens. A failure with an error also increments exactly one
        error category.
        """
        category = classify_error(error) if (not success and error is not None) else None

        def apply(record: UsageRecord) -> None:
            if success:
                record.success_count += 1
                return
            record.failure_count += 1
            record.request_count += 1
            if category is not None:
                record.error_categories[category] = record.error_categories.get(category, 0) + 1

        self._update(apply)

    def log_error(self, error: BaseException, context: Optional[Dict[str, Any]] = None) -> None:
        """Append an error to the bounded history, evicting the oldest."""
        entry = ErrorLogEntry(
            timestamp=self.clock.now(),
            message=error_message(error),
            context=dict(context or {}),
        )
        limit = self.config.storage.error_history_limit

        def apply(record: UsageRecord) -> None:
            record.errors.append(entry)
            if len(record.errors) > limit:
                del record.errors[:len(record.errors) - limit]

        self._update(apply)
        logger.error("API error: %s (context=%s)", entry.message, entry.context)

    def classify(self, error: BaseException) -> ErrorCategory:
        return classify_error(error)

    def snapshot(self) -> UsageSnapshot:
        """Counters plus derived quota and success-rate figures."""
        record = self.load()
        quota_limit = self.config.quota_limit
        if record.request_count > 0:
            success_rate = record.success_count * 100 / record.request_count
        else:
            success_rate = 100.0

        return UsageSnapshot(
            token_usage=record.token_usage,
            request_count=record.request_count,
            success_count=record.success_count,
            failure_count=record.failure_count,
            error_categories=dict(record.error_categories),
            last_reset=record.last_reset,
            quota_limit=quota_limit,
            remaining_quota=quota_limit - record.token_usage,
            usage_percentage=self._usage_percentage(record),
            success_rate=success_rate,
            recent_errors=list(record.errors[-RECENT_ERROR_COUNT:]),
        )

    def _update(self, mutate: Callable[[UsageRecord], None]) -> UsageRecord:
        """Read-modify-write the whole record with a version check."""
        attempt = 0
        while True:
            attempt += 1
            record = self.load()
            expected_version = record.version
            mutate(record)
            try:
                record.version = self.repository.write(
                    self.key, record.to_document(), expected_version
                )
                return record
            except ConcurrentUpdateError:
                if attempt >= MAX_WRITE_ATTEMPTS:
                    raise
                logger.debug("Usage state changed concurrently, retrying update (%d)", attempt)

    def _start_period(self, expected_version: int) -> UsageRecord:
        record = UsageRecord.fresh(self.clock.now())
        try:
            record.version = self.repository.write(self.key, record.to_document(), expected_version)
        except ConcurrentUpdateError:
            # Another writer started the period first; use theirs.
            document, version = self.repository.read(self.key)
            return UsageRecord.from_document(document, version=version)
        return record

    def _zero(self, record: UsageRecord) -> None:
        fresh = UsageRecord.fresh(self.clock.now())
        record.last_reset = fresh.last_reset
        record.token_usage = 0
        record.request_count = 0
        record.success_count = 0
        record.failure_count = 0
        record.error_categories = fresh.error_categories
        record.errors = []

    def _should_reset(self, record: UsageRecord) -> bool:
        now = self.clock.now()
        last = record.last_reset
        return (last.year, last.month) != (now.year, now.month)

    def _token_result(self, record: UsageRecord) -> TokenUsageResult:
        usage_percentage = self._usage_percentage(record)
        warning = usage_percentage >= self.config.token_usage_warning_threshold
        if warning:
            logger.warning("Token usage at %.1f%% of monthly quota", usage_percentage)
        return TokenUsageResult(warning_triggered=warning, usage_percentage=usage_percentage)

    def _usage_percentage(self, record: UsageRecord) -> float:
        return record.token_usage * 100 / self.config.quota_limit
