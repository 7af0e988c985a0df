"""
Retry Wrapper
=============

Bounded-attempt, fixed-delay retry for any fallible coroutine. Failures
are assumed to be short-lived (rate limiting, connection resets), so the
delay does not grow between attempts.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleeper = Callable[[float], Awaitable[None]]


async def with_retry(
    op: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    delay: float = 2.0,
    *,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    description: str = "operation",
    sleep: Sleeper = asyncio.sleep,
) -> T:
    """
    Await ``op()`` up to ``max_attempts`` times.

    Args:
        op: Zero-argument callable returning a fresh awaitable per attempt
        max_attempts: Total number of attempts (not retries)
        delay: Seconds to wait between attempts
        retry_on: Exception types that trigger another attempt; anything
            else propagates immediately
        description: Text used in log messages
        sleep: Coroutine used to wait (injectable for tests)

    Returns:
        The value of the first successful attempt

    Raises:
        The last exception once all attempts are used up
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    attempt = 1
    while True:
        try:
            return await op()
        except retry_on as e:
            remaining = max_attempts - attempt
            if remaining <= 0:
                logger.error(f"{description} failed after {max_attempts} attempts: {e}")
                raise
            logger.warning(
                f"{description} failed ({e}); {remaining} attempt(s) remaining, "
                f"retrying in {delay}s"
            )
            await sleep(delay)
            attempt += 1


class RetryPolicy:
    """A reusable retry configuration bound to a set of retryable errors."""

    def __init__(
        self,
        max_attempts: int = 3,
        delay: float = 2.0,
        retry_on: tuple[type[BaseException], ...] = (Exception,),
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.max_attempts = max_attempts
        self.delay = delay
        self.retry_on = retry_on
        self.sleep = sleep

    async def run(self, op: Callable[[], Awaitable[T]], description: str = "operation") -> T:
        """Run ``op`` under this policy."""
        return await with_retry(
            op,
            self.max_attempts,
            self.delay,
            retry_on=self.retry_on,
            description=description,
            sleep=self.sleep,
        )
