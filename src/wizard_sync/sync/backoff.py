"""Generic retry-with-exponential-delay around an attempt-numbered operation.

Every exception triggers the same retry path: no jitter and no error
classification. After attempt ``n`` fails the executor sleeps
``base_delay * 2 ** (n - 1)`` seconds; once ``max_attempts`` attempts have
failed the last error is re-raised unchanged.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_exponential

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "backoff.retrying",
        attempt=retry_state.attempt_number,
        delay_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
        error=str(exc) if exc else None,
        error_type=type(exc).__name__ if exc else None,
    )


async def run_with_backoff(
    operation: Callable[[int], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 0.5,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation(attempt_index)`` until it succeeds or attempts run out.

    Args:
        operation: Async callable receiving the zero-based attempt index.
        max_attempts: Total attempts including the first.
        base_delay: Delay in seconds before the second attempt.
        sleep: Awaitable sleep function (injectable for tests).

    Returns:
        The operation's result.

    Raises:
        Exception: The last error raised by ``operation``.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(max(1, max_attempts)),
        wait=wait_exponential(multiplier=base_delay, exp_base=2, min=0),
        sleep=sleep,
        before_sleep=_log_retry,
        reraise=True,
    )

    async for attempt in retrying:
        with attempt:
            result = await operation(attempt.retry_state.attempt_number - 1)
    return result
