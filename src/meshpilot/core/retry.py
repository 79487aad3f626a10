"""Backoff for model calls.

Only model calls are retried. Remote tool calls may have side effects
and are attempted at most once per model turn, so they never come
through here.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from meshpilot.core.errors import (
    ProviderOverloadedError,
    ProviderRateLimitError,
    ProviderTimeoutError,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS: tuple[type[Exception], ...] = (
    ProviderRateLimitError,
    ProviderTimeoutError,
    ProviderOverloadedError,
)


@dataclass(frozen=True, slots=True)
class RetryConfig:
    """How often and how long to back off after a transient provider error."""

    max_retries: int = 2
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: bool = True

    def delay_for(self, attempt: int, error: Exception) -> float:
        """Seconds to wait before retry number *attempt* (0-based).

        A rate limit with ``retry_after`` waits that long, capped at
        ``max_delay``. Otherwise the delay doubles per attempt.
        """
        retry_after = getattr(error, "retry_after", None)
        if isinstance(error, ProviderRateLimitError) and retry_after is not None:
            return min(retry_after, self.max_delay)
        delay = min(self.base_delay * 2**attempt, self.max_delay)
        if self.jitter:
            delay *= random.uniform(0.5, 1.5)
        return delay


def is_retryable(error: Exception) -> bool:
    """True for rate limits, timeouts and overloads."""
    return isinstance(error, TRANSIENT_ERRORS)


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    *,
    on_retry: Callable[[int, float, Exception], None] | None = None,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> T:
    """Await ``fn()``, retrying transient provider errors.

    Args:
        fn: Zero-arg callable returning an awaitable, called once per attempt.
        config: Backoff settings. Defaults to :class:`RetryConfig`.
        on_retry: Called as ``(attempt, delay, error)`` before each wait.
        sleep: Awaitable delay function.

    Raises:
        The last error once ``max_retries`` is used up, or any
        non-transient error right away.
    """
    cfg = config or RetryConfig()
    attempt = 0
    while True:
        try:
            return await fn()
        except TRANSIENT_ERRORS as e:
            if attempt >= cfg.max_retries:
                logger.warning("Giving up after %d retries: %s", attempt, e)
                raise
            delay = cfg.delay_for(attempt, e)
            attempt += 1
            logger.info("Model call failed (%s), retry %d in %.1fs", e, attempt, delay)
            if on_retry is not None:
                on_retry(attempt, delay, e)
            await sleep(delay)
