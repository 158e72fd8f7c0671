"""Cost-control checkpoint between phone validation and the billed stages."""

import re
from dataclasses import dataclass
from typing import Optional, Tuple

from ..models import EnrichmentResult

# Virtual or throwaway carriers, matched as case-insensitive substrings
DISPOSABLE_CARRIERS: Tuple[str, ...] = (
    "google voice",
    "textnow",
    "burner",
    "hushed",
    "line2",
    "bandwidth",
    "twilio",
)


@dataclass(frozen=True)
class GatekeepDecision:
    proceed: bool
    reason: str

    def __bool__(self) -> bool:
        return self.proceed


def _normalize_label(value: Optional[str]) -> str:
    return re.sub(r"[\s_\-/]+", " ", (value or "").lower()).strip()


def is_voip(line_type: Optional[str]) -> bool:
    """True for any VoIP flavour (``voip``, ``VoIP``, ``fixed-voip``, ...)."""
    return "voip" in _normalize_label(line_type).replace(" ", "")


def disposable_carrier(carrier: Optional[str]) -> Optional[str]:
    """Return the denylist pattern ``carrier`` matches, if any."""
    label = _normalize_label(carrier)
    if not label:
        return None
    for pattern in DISPOSABLE_CARRIERS:
        if pattern in label:
            return pattern
    return None


def should_proceed(result: EnrichmentResult) -> GatekeepDecision:
    """Decide whether the DNC and age stages are worth paying for.

    Pure: the same partial result always yields the same decision. Rules are
    evaluated in order and the first match wins.

    Args:
        result: Enrichment accumulated through line-type validation

    Returns:
        The decision and a short reason for logs and progress events
    """
    if not result.has_phone:
        return GatekeepDecision(False, "no phone")
    if is_voip(result.line_type):
        return GatekeepDecision(False, "voip")
    pattern = disposable_carrier(result.carrier_name)
    if pattern:
        return GatekeepDecision(False, f"disposable carrier: {pattern}")
    return GatekeepDecision(True, "ok")
