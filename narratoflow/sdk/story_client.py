"""
Governed OpenAI story client.

Every request goes through the RequestGovernor and every outcome is
recorded in the UsageStore. Failures are recorded and then re-raised.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Optional

from openai import OpenAI

from ..config.loader import AppConfig
from ..core.errors import (
    QuotaExceededError,
    RateLimitedError,
    RetryCancelledError,
    StoryGenerationError,
    classify_error,
    error_message,
)
from ..core.governor import RequestGovernor
from ..core.story import SYSTEM_PROMPT, THEME_PROMPTS, CsvSample, build_prompt
from ..storage.models import TokenUsageResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoryResult:
    """A generated story and what it cost."""
    text: str
    total_tokens: int
    usage: TokenUsageResult


class StoryGenerator:
    """Turns CSV samples into narratives under usage governance."""

    def __init__(
        self,
        config: AppConfig,
        governor: RequestGovernor,
        client: Optional[Any] = None,
    ):
        """Initialize the story generator.

        Args:
            config: Application configuration
            governor: Governor shared with whoever renders usage stats
            client: OpenAI-compatible client (defaults to ``OpenAI()``)
        """
        self.config = config
        self.governor = governor
        self.usage_store = governor.usage_store
        self.client = client if client is not None else OpenAI(
            timeout=config.api.timeout / 1000,
            max_retries=0,
        )

    def generate(
        self,
        sample: CsvSample,
        theme: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> StoryResult:
        """Generate a story for a CSV sample.

        Args:
            sample: Rows to narrate
            theme: One of THEME_PROMPTS
            cancel_event: Abandons retries while backing off

        Returns:
            StoryResult with the narrative and token accounting

        Raises:
            ValueError: If the theme is unknown
            RateLimitedError: If admission control denies the request
            QuotaExceededError: If the provider quota is exhausted
            RetryCancelledError: If cancelled during backoff
            StoryGenerationError: For any other failure
        """
        if theme not in THEME_PROMPTS:
            raise ValueError(f"Unknown theme: {theme}. Choose one of: {list(THEME_PROMPTS)}")
        prompt = build_prompt(sample, theme)

        try:
            decision = self.governor.admit()
            if not decision.allowed:
                raise RateLimitedError(decision.message, wait_millis=decision.wait_millis)

            started = time.monotonic()
            completion = self.governor.execute_with_retry(
                lambda: self._create_completion(prompt),
                cancel_event=cancel_event,
            )
            self._check_latency(started)

            text = _completion_text(completion)
            if not text or not text.strip():
                raise StoryGenerationError("AI returned empty response")
            total_tokens = _total_tokens(completion)
        except (RateLimitedError, QuotaExceededError, RetryCancelledError,
                StoryGenerationError) as error:
            self._record_failure(error, theme, sample)
            raise
        except Exception as error:
            self._record_failure(error, theme, sample)
            raise _wrap(error) from error

        usage = self.usage_store.record_success(total_tokens)
        logger.info("Generated story (%d tokens, %.1f%% of quota)",
                    total_tokens, usage.usage_percentage)
        return StoryResult(text=text, total_tokens=total_tokens, usage=usage)

    def _create_completion(self, prompt: str) -> Any:
        model = self.config.model
        return self.client.chat.completions.create(
            model=model.name,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=model.temperature,
            max_tokens=model.max_tokens,
            presence_penalty=model.presence_penalty,
            frequency_penalty=model.frequency_penalty,
        )

    def _check_latency(self, started: float) -> None:
        elapsed_ms = (time.monotonic() - started) * 1000
        threshold = self.config.monitoring.performance.slow_request_threshold
        if elapsed_ms > threshold:
            logger.warning("Slow model request: %.0fms (threshold %dms)", elapsed_ms, threshold)

    def _record_failure(self, error: Exception, theme: str, sample: CsvSample) -> None:
        self.usage_store.record_outcome(False, error)
        self.usage_store.log_error(error, {"theme": theme, "dataSize": sample.row_count})


def _wrap(error: Exception) -> StoryGenerationError:
    """Wrap an SDK or network failure, keeping its category."""
    return StoryGenerationError(
        f"Story generation failed: {error_message(error)}",
        category=classify_error(error),
    )


def _completion_text(completion: Any) -> Optional[str]:
    choices = getattr(completion, "choices", None)
    if not choices:
        return None
    message = getattr(choices[0], "message", None)
    return getattr(message, "content", None)


def _total_tokens(completion: Any) -> int:
    usage = getattr(completion, "usage", None)
    if usage is None:
        raise StoryGenerationError("OpenAI response missing usage information")
    return int(usage.total_tokens or 0)
