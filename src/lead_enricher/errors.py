"""Exception hierarchy for the enrichment engine."""

from typing import Optional


class EnrichmentError(Exception):
    """Base class for all lead enricher errors."""


class ConfigurationError(EnrichmentError):
    """Raised when required settings are missing or malformed."""


class AuthError(EnrichmentError):
    """Token issuance or refresh failed."""


class ValidationError(EnrichmentError):
    """A record lacks the minimum fields a stage needs; the stage is skipped."""


class CheckpointError(EnrichmentError):
    """Durable storage of batch results failed. Aborts the batch."""


class ProviderError(EnrichmentError):
    """A provider was reachable but the call did not produce usable data."""

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        status: Optional[int] = None,
        retryable: bool = False,
    ):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message
        self.status = status
        self.retryable = retryable


class UnauthorizedError(ProviderError):
    """Provider rejected the credential (401/403)."""

    def __init__(self, provider: str, message: str, *, status: Optional[int] = None):
        super().__init__(provider, message, status=status, retryable=False)


class RateLimitError(ProviderError):
    """Provider returned a quota-exceeded response despite local throttling."""

    def __init__(
        self,
        provider: str,
        message: str = "rate limited",
        *,
        retry_after: float = 1.0,
    ):
        super().__init__(provider, message, status=429, retryable=True)
        self.retry_after = retry_after
