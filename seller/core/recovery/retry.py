"""
Retry with exponential backoff for outbound HTTP calls.

Delay before retry ``n`` (0-indexed) is ``initial_delay * 2**n``; there is no
jitter so the schedule is deterministic. Only transport failures and the
transient statuses in ``RETRYABLE_STATUS_CODES`` are retried.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Coroutine, List, Optional, TypeVar

from .errors import is_retryable

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[Any]]
RetryCallback = Callable[[int, float, BaseException], None]


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_retries: int = 3
    initial_delay_ms: int = 1000
    exponential_base: float = 2.0

    def get_delay_ms(self, attempt: int) -> float:
        """Delay before the retry that follows attempt ``attempt`` (0-indexed)."""
        return self.initial_delay_ms * (self.exponential_base ** attempt)

    def schedule_ms(self) -> List[float]:
        return [self.get_delay_ms(attempt) for attempt in range(self.max_retries)]


async def retry_with_backoff(
    operation: Callable[[], Coroutine[Any, Any, T]],
    max_retries: int = 3,
    initial_delay_ms: int = 1000,
    *,
    sleep: Optional[SleepFn] = None,
    on_retry: Optional[RetryCallback] = None,
    logger: Optional[logging.Logger] = None,
) -> T:
    """Run ``operation`` up to ``max_retries + 1`` times.

    Non-retryable errors propagate immediately. After the last retryable
    failure the original exception is re-raised unchanged.
    """

    config = RetryConfig(max_retries=max_retries, initial_delay_ms=initial_delay_ms)
    sleep_fn = sleep or asyncio.sleep
    log = logger or logging.getLogger(__name__)

    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as exc:
            if not is_retryable(exc) or attempt >= config.max_retries:
                raise

            delay_ms = config.get_delay_ms(attempt)
            log.warning(
                "Request failed (attempt %d/%d), retrying in %.0fms: %s",
                attempt + 1,
                config.max_retries + 1,
                delay_ms,
                type(exc).__name__,
            )
            if on_retry is not None:
                on_retry(attempt, delay_ms, exc)
            await sleep_fn(delay_ms / 1000.0)
            attempt += 1


class RetryPolicy:
    """Bound retry settings shared by the routing and RPC clients."""

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        *,
        sleep: Optional[SleepFn] = None,
        on_retry: Optional[RetryCallback] = None,
    ) -> None:
        self.config = config or RetryConfig()
        self._sleep = sleep
        self.on_retry = on_retry

    async def run(self, operation: Callable[[], Coroutine[Any, Any, T]]) -> T:
        return await retry_with_backoff(
            operation,
            max_retries=self.config.max_retries,
            initial_delay_ms=self.config.initial_delay_ms,
            sleep=self._sleep,
            on_retry=self.on_retry,
        )
