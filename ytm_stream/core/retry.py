"""
Bounded retry with exponential backoff for async operations.

Used by the stream proxy for upstream media fetches. The attempt count
is a hard ceiling (the first try included) and every delay is capped,
so a failing upstream costs a bounded amount of time.

Delay schedule (base_delay=1, multiplier=2, max_delay=8):
    after attempt 1: 1s
    after attempt 2: 2s
    after attempt 3: 4s
    (attempt 4 is the last; no delay follows it)
"""

import asyncio
from typing import Awaitable, Callable, TypeVar

from ytm_stream.core.logger import get_logger


logger = get_logger(__name__)

T = TypeVar("T")


# =============================================================================
# DEFAULTS
# =============================================================================

MAX_ATTEMPTS = 4
BASE_DELAY = 1.0
MULTIPLIER = 2.0
MAX_DELAY = 8.0


def backoff_delay(
    attempt: int,
    base_delay: float = BASE_DELAY,
    multiplier: float = MULTIPLIER,
    max_delay: float = MAX_DELAY
) -> float:
    """
    Calculate the delay before the next attempt.

    Args:
        attempt: Number of the attempt that just failed (0-indexed).
        base_delay: Delay after the first failure.
        multiplier: Growth factor per further failure.
        max_delay: Cap on the returned delay.

    Returns:
        Delay in seconds, never negative.
    """
    return max(0.0, min(base_delay * (multiplier ** attempt), max_delay))


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = MAX_ATTEMPTS,
    base_delay: float = BASE_DELAY,
    multiplier: float = MULTIPLIER,
    max_delay: float = MAX_DELAY,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    description: str = "operation"
) -> T:
    """
    Await operation() until it succeeds or max_attempts is reached.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt.
        max_attempts: Hard ceiling on attempts (first try included).
        base_delay: See backoff_delay().
        multiplier: See backoff_delay().
        max_delay: See backoff_delay().
        retry_on: Exception types that trigger another attempt. Anything
                  else propagates immediately.
        sleep: Awaitable sleep function (injected by tests).
        description: Label used in log messages.

    Returns:
        The result of the first successful attempt.

    Raises:
        The exception of the last attempt once all attempts have failed.
        asyncio.CancelledError is never retried.

    Example:
        response = await retry_with_backoff(
            lambda: session.get(url),
            max_attempts=4,
            retry_on=(aiohttp.ClientError,)
        )
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(max_attempts):
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except retry_on as e:
            if attempt + 1 >= max_attempts:
                logger.debug(f"{description} failed after {max_attempts} attempts: {e}")
                raise
            delay = backoff_delay(attempt, base_delay, multiplier, max_delay)
            logger.debug(
                f"{description} failed (attempt {attempt + 1}/{max_attempts}): {e}. "
                f"Retrying in {delay:.1f}s"
            )
            await sleep(delay)

    # Unreachable: the loop either returns or raises
    raise RuntimeError("retry loop exited without result")
