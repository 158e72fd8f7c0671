"""Tests for the expiring token cache."""

import asyncio
import diskcache as dc
import pytest
from lead_enricher.cache import TokenStore
from lead_enricher.errors import AuthError
from lead_enricher.models import TokenCacheEntry
from lead_enricher.pipeline.token_cache import TokenCache


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeIssuer:
    """Issues numbered tokens valid for ``lifetime`` seconds."""

    def __init__(self, clock: FakeClock, lifetime: float = 3600.0, delay: float = 0.0):
        self.clock = clock
        self.lifetime = lifetime
        self.delay = delay
        self.calls = 0
        self.fail_with = None

    async def issue(self) -> TokenCacheEntry:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            raise self.fail_with
        now = self.clock()
        return TokenCacheEntry(token=f"token-{self.calls}", issued_at=now, expires_at=now + self.lifetime)


class TestTokenCache:

    @pytest.mark.asyncio
    async def test_reuses_fresh_token(self):
        clock = FakeClock()
        issuer = FakeIssuer(clock)
        cache = TokenCache(issuer, clock=clock)

        assert await cache.get_token() == "token-1"
        assert await cache.get_token() == "token-1"
        assert issuer.calls == 1

    @pytest.mark.asyncio
    async def test_refreshes_inside_safety_margin(self):
        clock = FakeClock()
        issuer = FakeIssuer(clock, lifetime=3600.0)
        cache = TokenCache(issuer, safety_margin=60.0, clock=clock)

        await cache.get_token()
        clock.now += 3600.0 - 59.0

        assert await cache.get_token() == "token-2"
        assert issuer.calls == 2

    @pytest.mark.asyncio
    async def test_force_refresh(self):
        clock = FakeClock()
        issuer = FakeIssuer(clock)
        cache = TokenCache(issuer, clock=clock)

        await cache.get_token()
        assert await cache.get_token(force_refresh=True) == "token-2"

    @pytest.mark.asyncio
    async def test_invalidate(self):
        clock = FakeClock()
        issuer = FakeIssuer(clock)
        cache = TokenCache(issuer, clock=clock)

        await cache.get_token()
        cache.invalidate()

        assert cache.entry is None
        assert await cache.get_token() == "token-2"

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_refresh(self):
        clock = FakeClock()
        issuer = FakeIssuer(clock, delay=0.05)
        cache = TokenCache(issuer, clock=clock)

        tokens = await asyncio.gather(*(cache.get_token() for _ in range(10)))

        assert issuer.calls == 1
        assert cache.refresh_count == 1
        assert set(tokens) == {"token-1"}

    @pytest.mark.asyncio
    async def test_refresh_failure_raises_auth_error(self):
        clock = FakeClock()
        issuer = FakeIssuer(clock)
        issuer.fail_with = RuntimeError("connection reset")
        cache = TokenCache(issuer, clock=clock)

        with pytest.raises(AuthError):
            await cache.get_token()

        # The failed refresh is not cached
        issuer.fail_with = None
        assert await cache.get_token() == "token-2"

    @pytest.mark.asyncio
    async def test_concurrent_callers_all_see_refresh_failure(self):
        clock = FakeClock()
        issuer = FakeIssuer(clock, delay=0.05)
        issuer.fail_with = AuthError("refresh token revoked")
        cache = TokenCache(issuer, clock=clock)

        results = await asyncio.gather(
            *(cache.get_token() for _ in range(3)), return_exceptions=True
        )

        assert issuer.calls == 1
        assert all(isinstance(result, AuthError) for result in results)


class TestTokenPersistence:

    @pytest.mark.asyncio
    async def test_token_survives_restart(self, tmp_path):
        clock = FakeClock()
        with dc.Cache(str(tmp_path)) as disk:
            store = TokenStore(disk)

            first = TokenCache(FakeIssuer(clock), name="dnc", store=store, clock=clock)
            assert await first.get_token() == "token-1"

            issuer = FakeIssuer(clock)
            second = TokenCache(issuer, name="dnc", store=store, clock=clock)
            assert await second.get_token() == "token-1"
            assert issuer.calls == 0

    @pytest.mark.asyncio
    async def test_stale_stored_token_is_ignored(self, tmp_path):
        clock = FakeClock()
        with dc.Cache(str(tmp_path)) as disk:
            store = TokenStore(disk)
            store.save(
                "dnc",
                TokenCacheEntry(token="old", issued_at=clock.now - 3570, expires_at=clock.now + 30),
                now=clock.now,
            )

            cache = TokenCache(FakeIssuer(clock), name="dnc", store=store, safety_margin=60.0, clock=clock)
            assert await cache.get_token() == "token-1"

    @pytest.mark.asyncio
    async def test_invalidate_clears_store(self, tmp_path):
        clock = FakeClock()
        with dc.Cache(str(tmp_path)) as disk:
            store = TokenStore(disk)
            cache = TokenCache(FakeIssuer(clock), name="dnc", store=store, clock=clock)

            await cache.get_token()
            cache.invalidate()

            assert store.load("dnc") is None
