"""
Bounded retry with exponential backoff.

Every retry loop in the pipeline is capped; once the attempts are exhausted
the last error propagates to the caller, which decides whether to dead-letter
or log a delivery failure.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from phi_claims.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[Any]]


async def retry_async(
    func: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    delay: float = 0.5,
    backoff_factor: float = 2.0,
    max_delay: float | None = None,
    exceptions: tuple[type[BaseException], ...] = (Exception,),
    sleep: SleepFunc = asyncio.sleep,
    operation: str = "operation",
) -> T:
    """Call ``func`` until it succeeds or ``max_attempts`` is reached.

    Args:
        func: Zero-argument coroutine factory
        max_attempts: Total attempts including the first
        delay: Delay before the second attempt
        backoff_factor: Multiplier applied after each failure
        max_delay: Optional ceiling for a single delay
        exceptions: Exception types that trigger a retry
        sleep: Awaitable sleep, injectable for tests
        operation: Label used in log lines

    Raises:
        The last exception once all attempts fail.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    current_delay = delay
    for attempt in range(1, max_attempts + 1):
        try:
            return await func()
        except exceptions as e:
            if attempt == max_attempts:
                logger.error(f"{operation}: all {max_attempts} attempts failed. Last error: {e}")
                raise
            logger.warning(
                f"{operation}: attempt {attempt}/{max_attempts} failed: {e}. "
                f"Retrying in {current_delay:.2f}s..."
            )
            await sleep(current_delay)
            current_delay *= backoff_factor
            if max_delay is not None:
                current_delay = min(current_delay, max_delay)

    raise AssertionError("unreachable")  # pragma: no cover
