"""Bounded retry with increasing backoff for remote calls."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from brollindex.exceptions import RetryExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try an operation and how long to wait in between.

    Args:
        max_attempts: Total attempts, including the first one.
        base_delay: Seconds multiplied into the backoff step.
        delay_offset: Added to the failed attempt number before multiplying,
            so ``base_delay * (attempt + delay_offset)`` is the wait after
            attempt ``attempt`` (1-based) fails.
    """

    max_attempts: int = 3
    base_delay: float = 5.0
    delay_offset: int = 0

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * (attempt + self.delay_offset)


# Upload waits 5s, 10s; classification waits 10s, 15s.
UPLOAD_RETRY = RetryPolicy(max_attempts=3, base_delay=5.0, delay_offset=0)
CLASSIFY_RETRY = RetryPolicy(max_attempts=3, base_delay=5.0, delay_offset=1)


async def retry_async(
    operation: str,
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
) -> T:
    """Await ``fn()`` until it succeeds or ``policy.max_attempts`` is reached.

    Attempts never overlap. Any exception counts as a failure. When the last
    attempt fails a :class:`RetryExhaustedError` naming the final cause is
    raised.
    """
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await fn()
        except Exception as e:
            if attempt >= policy.max_attempts:
                raise RetryExhaustedError(operation, policy.max_attempts, e) from e
            delay = policy.delay_for(attempt)
            logger.warning(
                "%s attempt %d/%d failed: %s; retrying in %.0fs",
                operation,
                attempt,
                policy.max_attempts,
                e,
                delay,
            )
            await asyncio.sleep(delay)
    raise RetryExhaustedError(operation, policy.max_attempts, RuntimeError("no attempts made"))
