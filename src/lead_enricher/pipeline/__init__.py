"""Pipeline modules for orchestrating the enrichment process."""

from . import rate_limiter, token_cache, gatekeep, retry, batch, enricher

__all__ = ["rate_limiter", "token_cache", "gatekeep", "retry", "batch", "enricher"]
