"""Expiring bearer-token cache with single-flight refresh."""

import asyncio
import time
from typing import Callable, Optional

from ..cache import TokenStore
from ..errors import AuthError
from ..fetchers.base import TokenIssuer
from ..logging_config import get_logger
from ..models import TokenCacheEntry

logger = get_logger(__name__)


class TokenCache:
    """Holds one short-lived credential and refreshes it on demand.

    Concurrent ``get_token`` calls that need a refresh share a single in-flight
    refresh and all receive its token. The cache knows nothing about the API the
    token is for.
    """

    def __init__(
        self,
        issuer: TokenIssuer,
        *,
        name: str = "default",
        safety_margin: float = 60.0,
        store: Optional[TokenStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.issuer = issuer
        self.name = name
        self.safety_margin = safety_margin
        self.store = store
        self._clock = clock
        self._entry: Optional[TokenCacheEntry] = None
        self._inflight: Optional["asyncio.Future[TokenCacheEntry]"] = None
        self.refresh_count = 0

    @property
    def entry(self) -> Optional[TokenCacheEntry]:
        return self._entry

    async def get_token(self, force_refresh: bool = False) -> str:
        """Return a valid token, refreshing it if stale, missing or forced.

        Raises:
            AuthError: The refresh exchange failed.
        """
        if not force_refresh:
            entry = self._fresh_entry()
            if entry is not None:
                return entry.token

        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._refresh())
        else:
            logger.debug(f"Joining in-flight refresh of token '{self.name}'")

        # shield: a cancelled caller must not cancel the refresh others await
        entry = await asyncio.shield(self._inflight)
        return entry.token

    def invalidate(self) -> None:
        """Drop the cached token so the next request refreshes."""
        logger.info(f"Token '{self.name}' invalidated")
        self._entry = None
        if self.store is not None:
            self.store.clear(self.name)

    def _fresh_entry(self) -> Optional[TokenCacheEntry]:
        now = self._clock()
        if self._entry is not None:
            return self._entry if self._entry.is_fresh(now, self.safety_margin) else None

        if self.store is not None:
            stored = self.store.load(self.name)
            if stored is not None and stored.is_fresh(now, self.safety_margin):
                remaining = (stored.expires_at - now) / 60
                logger.info(f"Using stored token '{self.name}' (expires in {remaining:.0f}min)")
                self._entry = stored
                return stored
        return None

    async def _refresh(self) -> TokenCacheEntry:
        try:
            self.refresh_count += 1
            logger.info(f"Refreshing token '{self.name}'")
            try:
                entry = await self.issuer.issue()
            except AuthError:
                raise
            except Exception as e:
                raise AuthError(f"Refreshing token '{self.name}' failed: {e}") from e

            now = self._clock()
            if not entry.is_fresh(now, self.safety_margin):
                logger.warning(
                    f"Token '{self.name}' was issued with less than "
                    f"{self.safety_margin:.0f}s of validity"
                )
            self._entry = entry
            if self.store is not None:
                self.store.save(self.name, entry, now=now)
            return entry
        finally:
            self._inflight = None
