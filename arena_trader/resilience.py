"""
Explicit failure policies for side effects.

best_effort: attempt, log failure, continue. Used for retrieval-store and
audit writes whose failure must never discard a computed decision.
with_retry: jittered exponential backoff for transient network errors.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger("arena_trader.resilience")

T = TypeVar("T")

DEFAULT_BEST_EFFORT_TIMEOUT = 30.0


async def best_effort(
    func: Callable[[], Awaitable[T]],
    description: str,
    timeout: Optional[float] = DEFAULT_BEST_EFFORT_TIMEOUT,
    default: Any = None,
) -> Optional[T]:
    """
    Run an async side effect, bounded by timeout.

    Any exception (including the timeout) is logged and swallowed and
    `default` is returned. Cancellation is propagated.
    """
    try:
        if timeout is None:
            return await func()
        return await asyncio.wait_for(func(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"{description} timed out after {timeout}s (ignored)")
    except Exception as e:
        logger.warning(f"{description} failed (ignored): {e}")
    return default


def best_effort_sync(func: Callable[[], T], description: str, default: Any = None) -> Optional[T]:
    """Synchronous counterpart of best_effort."""
    try:
        return func()
    except Exception as e:
        logger.warning(f"{description} failed (ignored): {e}")
        return default


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    base_delay_sec: float = 1.0
    max_delay_sec: float = 30.0
    jitter_factor: float = 0.5

    retryable_exceptions: tuple = (
        ConnectionError,
        TimeoutError,
        asyncio.TimeoutError,
    )


def jittered_backoff(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    jitter_factor: float = 0.5,
) -> float:
    """
    Exponential backoff with random jitter.

    Args:
        attempt: Current attempt number (0-indexed)
        base_delay: Base delay in seconds
        max_delay: Maximum delay cap
        jitter_factor: Amount of random variation (0-1)
    """
    capped_delay = min(base_delay * (2 ** attempt), max_delay)
    jitter_range = capped_delay * jitter_factor
    final_delay = max(0.1, capped_delay + random.uniform(-jitter_range, jitter_range))
    return min(final_delay, max_delay)


async def with_retry(
    func: Callable[[], Awaitable[T]],
    description: str = "function",
    config: Optional[RetryConfig] = None,
) -> T:
    """
    Execute an async function, retrying retryable exceptions.

    Raises:
        Exception: the final exception once attempts are exhausted, or any
        non-retryable exception immediately
    """
    config = config or RetryConfig()

    for attempt in range(config.max_attempts):
        try:
            return await func()
        except config.retryable_exceptions as e:
            if attempt >= config.max_attempts - 1:
                logger.error(f"All {config.max_attempts} attempts failed for {description}. Final error: {e}")
                raise
            delay = jittered_backoff(
                attempt,
                config.base_delay_sec,
                config.max_delay_sec,
                config.jitter_factor,
            )
            logger.warning(
                f"Retry {attempt + 1}/{config.max_attempts} for {description} after {delay:.2f}s. Error: {e}"
            )
            await asyncio.sleep(delay)

    raise RuntimeError("Unexpected: no result and no exception")
