"""Uniform retry policy for provider calls."""

from typing import Awaitable, Callable, Optional, TypeVar

from ..errors import ProviderError, RateLimitError, UnauthorizedError
from ..logging_config import get_logger
from .rate_limiter import RateLimiter
from .token_cache import TokenCache

logger = get_logger(__name__)

T = TypeVar("T")


async def call_provider(
    fn: Callable[..., Awaitable[T]],
    *,
    provider: str,
    rate_limiter: RateLimiter,
    token_cache: Optional[TokenCache] = None,
) -> T:
    """
    Call a provider through the rate limiter, retrying at most once.

    With ``token_cache`` set, ``fn`` receives the bearer token as its only
    argument; otherwise it is called without arguments.

    - 401/403 with a token cache: invalidate, fetch a fresh token, retry.
    - Retryable failure (timeout, transport error, 429, 5xx): retry after
      the limiter delay. A 429 also pushes the key back by ``retry_after``.
    - Anything else, or a second failure, propagates.

    Args:
        fn: Coroutine function performing one provider request
        provider: Rate limiter key and provider name for logs
        rate_limiter: Shared limiter
        token_cache: Cache supplying the bearer token, if the provider needs one

    Returns:
        Whatever ``fn`` returns
    """

    async def attempt() -> T:
        await rate_limiter.acquire(provider)
        if token_cache is None:
            return await fn()
        return await fn(await token_cache.get_token())

    try:
        return await attempt()
    except UnauthorizedError as e:
        if token_cache is None:
            raise
        logger.info(f"{provider} rejected the token ({e.status}), refreshing and retrying once")
        token_cache.invalidate()
    except ProviderError as e:
        if not e.retryable:
            raise
        if isinstance(e, RateLimitError):
            rate_limiter.penalize(provider, e.retry_after)
        logger.info(f"{provider} call failed ({e.message}), retrying once")

    return await attempt()
