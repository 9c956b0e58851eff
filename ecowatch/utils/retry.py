"""
Timeout + retry policy for store writes and uploads.

Only transient errors (StoreUnavailable, NetworkError, timeouts) are retried.
Validation, permission, not-found and conflict errors propagate immediately.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from ecowatch.core.errors import EcoWatchError, StoreUnavailable
from ecowatch.core.settings import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    timeout: float = 10.0
    max_retries: int = 3
    backoff: float = 0.5

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            timeout=settings.STORE_TIMEOUT_SECONDS,
            max_retries=settings.STORE_MAX_RETRIES,
            backoff=settings.STORE_RETRY_BACKOFF_SECONDS,
        )

    def delay_for(self, attempt: int) -> float:
        return self.backoff * (2 ** attempt)


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    description: str = "store operation"
) -> T:
    """
    Await `operation()` under `policy`.

    `operation` is a zero-argument factory so every attempt gets a fresh
    coroutine.

    Raises:
        StoreUnavailable: on timeout once retries are exhausted
        the last transient error once retries are exhausted
        any non-transient error immediately
    """
    attempt = 0
    while True:
        try:
            return await asyncio.wait_for(operation(), timeout=policy.timeout)
        except asyncio.TimeoutError:
            error: EcoWatchError = StoreUnavailable(f"{description} timed out after {policy.timeout}s")
        except EcoWatchError as e:
            if not e.retryable:
                raise
            error = e

        if attempt >= policy.max_retries:
            logger.error(f"{description} failed after {attempt + 1} attempt(s): {error}")
            raise error

        delay = policy.delay_for(attempt)
        logger.warning(f"⚠️ {description} failed ({error}); retrying in {delay:.2f}s")
        await asyncio.sleep(delay)
        attempt += 1
