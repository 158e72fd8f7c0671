"""Rate limiting utilities for external API calls."""

import asyncio
import time
from typing import Callable, Dict, Mapping, Optional
from ..logging_config import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """Minimum-spacing rate limiter keyed by provider.

    Successive ``acquire`` calls for one key are at least ``min_delay(key)``
    seconds apart. Keys are independent: waiting on one never delays another.
    """

    def __init__(
        self,
        delays: Optional[Mapping[str, float]] = None,
        default_delay: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize rate limiter.

        Args:
            delays: Minimum seconds between calls, per provider key
            default_delay: Delay for keys missing from ``delays``
            clock: Monotonic time source
        """
        self.delays: Dict[str, float] = dict(delays or {})
        self.default_delay = default_delay
        self._clock = clock
        self._next_permitted: Dict[str, float] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def min_delay(self, key: str) -> float:
        return self.delays.get(key, self.default_delay)

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    async def acquire(self, key: str) -> None:
        """
        Wait until a call for ``key`` is permitted, then claim the slot.

        Args:
            key: Provider identity
        """
        # The lock is held across the sleep so concurrent callers queue up
        # behind each other instead of reading the same timestamp.
        async with self._lock_for(key):
            now = self._clock()
            wait_time = self._next_permitted.get(key, 0.0) - now
            if wait_time > 0:
                logger.debug(f"Rate limit for {key}, waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)
                now = self._clock()
            self._next_permitted[key] = now + self.min_delay(key)

    def penalize(self, key: str, seconds: float) -> None:
        """Push the next permitted call for ``key`` at least ``seconds`` out."""
        target = self._clock() + seconds
        if target > self._next_permitted.get(key, 0.0):
            logger.warning(f"{key} signalled rate limiting, backing off {seconds:.1f}s")
            self._next_permitted[key] = target

    def time_until_ready(self, key: str) -> float:
        """Seconds until ``key`` may be called again (0 if ready)."""
        return max(0.0, self._next_permitted.get(key, 0.0) - self._clock())

    def reset(self, key: Optional[str] = None) -> None:
        """Forget call history for one key, or all keys."""
        if key is None:
            self._next_permitted.clear()
        else:
            self._next_permitted.pop(key, None)
