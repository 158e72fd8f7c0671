"""Provider contracts and shared HTTP error classification."""

from typing import Any, Dict, List, Optional, Protocol

import httpx

from ..errors import ProviderError, RateLimitError, UnauthorizedError
from ..models import AgeInfo, DncStatus, PersonCandidate, PhoneIntel, TokenCacheEntry


class PeopleSearchProvider(Protocol):
    async def search(
        self,
        *,
        name: Optional[str] = None,
        citystatezip: Optional[str] = None,
        email: Optional[str] = None,
    ) -> List[PersonCandidate]:
        """Return candidate profiles, best match first."""
        ...

    async def complete_candidate(self, candidate: PersonCandidate) -> PersonCandidate:
        """Fill in a candidate found without a phone from its details record."""
        ...


class PhoneIntelProvider(Protocol):
    async def lookup(self, phone: str) -> PhoneIntel:
        ...


class DncProvider(Protocol):
    async def check(self, phone: str, token: str) -> DncStatus:
        ...


class AgeProvider(Protocol):
    async def lookup_age(
        self,
        *,
        person_id: Optional[str] = None,
        name: Optional[str] = None,
        citystatezip: Optional[str] = None,
    ) -> AgeInfo:
        ...


class TokenIssuer(Protocol):
    async def issue(self) -> TokenCacheEntry:
        """Exchange the long-lived credential for a fresh short-lived token."""
        ...


def _retry_after(response: httpx.Response, default: float = 1.0) -> float:
    value = response.headers.get("retry-after")
    try:
        return max(0.0, float(value)) if value is not None else default
    except ValueError:
        return default


def raise_for_provider_status(response: httpx.Response, provider: str) -> None:
    """Map an HTTP error status onto the provider error taxonomy."""
    status = response.status_code
    if status < 400:
        return
    reason = response.reason_phrase or "error"
    if status in (401, 403):
        raise UnauthorizedError(provider, f"HTTP {status} {reason}", status=status)
    if status == 429:
        raise RateLimitError(provider, retry_after=_retry_after(response))
    if status >= 500:
        raise ProviderError(provider, f"HTTP {status} {reason}", status=status, retryable=True)
    raise ProviderError(provider, f"HTTP {status} {reason}", status=status, retryable=False)


async def request_json(
    client: httpx.AsyncClient,
    provider: str,
    method: str,
    url: str,
    *,
    timeout: Optional[float] = None,
    **kwargs: Any,
) -> Dict[str, Any]:
    """Send a request and return the decoded JSON body.

    Transport failures and timeouts become retryable ``ProviderError``s;
    non-JSON bodies are terminal.
    """
    try:
        response = await client.request(method, url, timeout=timeout, **kwargs)
    except httpx.TimeoutException as e:
        raise ProviderError(provider, f"timed out: {e}", retryable=True) from e
    except httpx.TransportError as e:
        raise ProviderError(provider, f"transport error: {e}", retryable=True) from e

    raise_for_provider_status(response, provider)

    try:
        data = response.json()
    except ValueError as e:
        raise ProviderError(provider, "response is not JSON", status=response.status_code) from e
    if not isinstance(data, dict):
        raise ProviderError(provider, f"expected a JSON object, got {type(data).__name__}")
    return data
