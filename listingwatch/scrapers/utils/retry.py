"""Retry utilities with exponential backoff."""

import asyncio
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from listingwatch.config import settings

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def _log_before_sleep(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "retry_scheduled",
        attempt=retry_state.attempt_number,
        wait_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
        error=str(exc),
        error_type=type(exc).__name__ if exc else None,
    )


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    max_attempts: Optional[int] = None,
    base_delay: Optional[float] = None,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` until it succeeds or attempts run out.

    After failed attempt i (0-based) that is not the last, waits
    ``base_delay * 2**i`` seconds. There is no jitter. The final error is
    re-raised unchanged.

    Args:
        operation: Zero-argument coroutine factory
        max_attempts: Total attempts (settings.MAX_RETRY_ATTEMPTS if omitted)
        base_delay: Seconds before the first retry (settings.RETRY_BASE_DELAY)
        retry_on: Exception types that trigger a retry; others propagate at once
        sleep: Async sleep, replaceable in tests

    Returns:
        The operation's result
    """
    if max_attempts is None:
        max_attempts = settings.MAX_RETRY_ATTEMPTS
    if base_delay is None:
        base_delay = settings.RETRY_BASE_DELAY
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=base_delay, exp_base=2, min=0),
        retry=retry_if_exception_type(retry_on),
        before_sleep=_log_before_sleep,
        sleep=sleep,
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            return await operation()
