"""Lead Enricher - Async pipeline for enriching contact leads from rate-limited providers."""

__version__ = "0.1.0"

from .config import Settings

__all__ = ["Settings"]
