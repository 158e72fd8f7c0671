"""Static lookup tables."""

from . import postal_codes

__all__ = ["postal_codes"]
