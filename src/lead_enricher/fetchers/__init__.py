"""Fetcher modules for external data providers."""

from . import base, schemas, skip_tracing, telnyx, dnc_scrub, cognito

__all__ = ["base", "schemas", "skip_tracing", "telnyx", "dnc_scrub", "cognito"]
