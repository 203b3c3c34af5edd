"""Retry with exponential backoff for outbound HTTP calls."""

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable(error: BaseException) -> bool:
    """Retry on rate limiting, server errors, timeouts and connection resets."""
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return status == 429 or 500 <= status < 600
    return isinstance(error, (httpx.TimeoutException, httpx.ReadError, httpx.WriteError))


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retry ``attempt`` (1-based): base * 2^attempt plus up to 10% jitter."""
    delay = base_delay * (2 ** attempt)
    return min(delay * (1 + random.random() * 0.1), max_delay)


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 10.0,
    deadline: float | None = None,
    retryable: Callable[[BaseException], bool] = is_retryable,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Call ``fn`` until it succeeds, fails with a non-retryable error or runs out of attempts.

    Args:
        fn: Zero-argument coroutine function to call
        attempts: Total number of calls, including the first
        base_delay: Backoff base in seconds
        max_delay: Cap on any single backoff in seconds
        deadline: Absolute ``time.monotonic()`` value after which no call
            or wait may run
        retryable: Predicate deciding whether an error is worth retrying
        sleep: Awaitable used to wait between attempts

    Raises:
        TimeoutError: If the deadline passes before a call succeeds
    """
    attempt = 0
    while True:
        remaining = None
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise TimeoutError("Deadline exceeded before the call could complete")

        try:
            if remaining is None:
                return await fn()
            return await asyncio.wait_for(fn(), timeout=remaining)
        except Exception as error:
            attempt += 1
            if attempt >= attempts or not retryable(error):
                raise

            delay = backoff_delay(attempt, base_delay, max_delay)
            if deadline is not None and time.monotonic() + delay >= deadline:
                raise TimeoutError("Deadline exceeded while waiting to retry") from error

            logger.warning(
                f"Retry attempt {attempt} after {delay:.2f}s delay due to error: "
                f"{type(error).__name__}: {error}"
            )
            await sleep(delay)
