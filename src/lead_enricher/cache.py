"""Disk caching utilities using diskcache."""

import time
from typing import Any, Optional
import diskcache as dc
from .config import settings
from .logging_config import get_logger
from .models import TokenCacheEntry

logger = get_logger(__name__)

# Global cache instance
_cache: Optional[dc.Cache] = None


def get_cache() -> dc.Cache:
    """Get or create the global cache instance."""
    global _cache
    if _cache is None:
        _cache = dc.Cache(
            directory=settings.cache_dir,
            size_limit=64 * 1024 * 1024,  # 64MB
            eviction_policy="least-recently-used",
        )
    return _cache


class TokenStore:
    """Persists bearer tokens across process restarts.

    Entries expire in the cache at the token's own expiry, so a stale token is
    never handed back after a restart.
    """

    def __init__(self, cache: Optional[dc.Cache] = None, key_prefix: str = "token"):
        self._cache = cache
        self.key_prefix = key_prefix

    @property
    def cache(self) -> dc.Cache:
        return self._cache if self._cache is not None else get_cache()

    def _key(self, name: str) -> str:
        return f"{self.key_prefix}:{name}"

    def load(self, name: str) -> Optional[TokenCacheEntry]:
        try:
            data = self.cache.get(self._key(name))
        except Exception as e:
            logger.warning(f"Could not read stored token '{name}': {e}")
            return None
        if not data:
            return None
        return TokenCacheEntry(
            token=data["token"],
            issued_at=data["issued_at"],
            expires_at=data["expires_at"],
        )

    def save(self, name: str, entry: TokenCacheEntry, now: Optional[float] = None) -> None:
        ttl = entry.expires_at - (time.time() if now is None else now)
        if ttl <= 0:
            return
        try:
            self.cache.set(
                self._key(name),
                {"token": entry.token, "issued_at": entry.issued_at, "expires_at": entry.expires_at},
                expire=ttl,
            )
            logger.debug(f"Token '{name}' saved to persistent storage")
        except Exception as e:
            # Losing persistence only costs a refresh on the next run
            logger.warning(f"Could not persist token '{name}': {e}")

    def clear(self, name: str) -> None:
        try:
            self.cache.delete(self._key(name))
        except Exception as e:
            logger.warning(f"Could not delete stored token '{name}': {e}")


def clear_cache() -> None:
    """Clear all cached data."""
    cache = get_cache()
    cache.clear()


def cache_stats() -> dict[str, Any]:
    """Get cache statistics."""
    cache = get_cache()
    return {
        "size": len(cache),
        "volume": cache.volume(),
    }
