"""Minimum-interval rate limiter keyed by source name."""

import asyncio
import time
from typing import Awaitable, Callable, Dict, Optional

import structlog

from listingwatch.config import settings

logger = structlog.get_logger(__name__)


class SourceRateLimiter:
    """Spaces successive calls to the same source by a minimum delay.

    Each key (e.g. "marketplace", "aliexpress") keeps the monotonic time of
    its last permitted call. A caller arriving too early sleeps for the
    remainder of the interval. Keys never block each other, and callers on
    the same key are serialized by a per-key lock so concurrent cycles are
    spaced correctly.
    """

    def __init__(
        self,
        min_delay: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize rate limiter.

        Args:
            min_delay: Default seconds between calls per key
                (settings.SUPPLIER_RATE_LIMIT_DELAY if omitted)
            clock: Monotonic clock, replaceable in tests
            sleep: Async sleep, replaceable in tests
        """
        self.min_delay = settings.SUPPLIER_RATE_LIMIT_DELAY if min_delay is None else min_delay
        self._clock = clock
        self._sleep = sleep
        self._last_call: Dict[str, float] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._delays: Dict[str, float] = {}

    def _get_lock(self, source_key: str) -> asyncio.Lock:
        if source_key not in self._locks:
            self._locks[source_key] = asyncio.Lock()
        return self._locks[source_key]

    def get_min_delay(self, source_key: str) -> float:
        return self._delays.get(source_key, self.min_delay)

    def set_min_delay(self, source_key: str, seconds: float) -> None:
        """Override the minimum delay for one key."""
        self._delays[source_key] = seconds

    async def wait(self, source_key: str) -> None:
        """Block until a call to ``source_key`` is permitted, then record it.

        Args:
            source_key: Name of the upstream source
        """
        async with self._get_lock(source_key):
            last = self._last_call.get(source_key)
            if last is not None:
                remaining = self.get_min_delay(source_key) - (self._clock() - last)
                if remaining > 0:
                    logger.debug("rate_limit_wait", source=source_key, seconds=round(remaining, 3))
                    await self._sleep(remaining)
            self._last_call[source_key] = self._clock()

    def reset(self, source_key: str = None) -> None:
        """Forget call history for one key, or for all keys."""
        if source_key is None:
            self._last_call.clear()
        else:
            self._last_call.pop(source_key, None)
