"""
Retry with capped exponential backoff for model-server calls.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from thoughtlands.utils.errors import BackendError
from thoughtlands.utils.logging import setup_logging

logger = setup_logging(__name__)

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try a call and how long to wait in between."""
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 5.0

    def delay_for(self, attempt: int) -> float:
        """Backoff before retrying after the zero-based ``attempt`` failed."""
        return min(self.base_delay * (2 ** attempt), self.max_delay)


def is_retryable(error: Exception) -> bool:
    """Only backend errors flagged retryable are retried."""
    return isinstance(error, BackendError) and error.retryable


async def retry_async(
    func: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    should_retry: Callable[[Exception], bool] = is_retryable,
    sleep: SleepFunc = asyncio.sleep,
    description: str = "request",
) -> T:
    """Run ``func`` until it succeeds or the policy is exhausted.

    Non-retryable errors propagate immediately. After the final attempt
    the last error propagates unchanged.
    """
    attempts = max(1, policy.max_attempts)
    for attempt in range(attempts):
        try:
            return await func()
        except Exception as e:
            if not should_retry(e) or attempt == attempts - 1:
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                f"{description} attempt {attempt + 1}/{attempts} failed: {e}; "
                f"retrying in {delay:.1f}s"
            )
            await sleep(delay)

    raise BackendError(f"{description}: max retries exceeded")
