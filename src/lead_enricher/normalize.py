"""Normalization helpers for names, phones, emails and US states."""

import re
from typing import NamedTuple, Optional

from .lookups.postal_codes import STATE_ABBREVIATIONS, STATE_NAMES

_EMOJI = re.compile("[\U0001F300-\U0001FAFF\u2600-\u27BF\uFE0F]")

_CREDENTIAL = r"(?:MD|M\.D\.|DO|PharmD|Pharm\.D\.|CPA|JD|MPH|MBA|PsyD|RN|NP|PA|DDS|DMD|LCSW|LMFT|PhD|Ph\.D\.|SHRM-?[A-Z]*)"
_COMPOUND_CREDENTIAL = re.compile(rf"\b{_CREDENTIAL}\s*/\s*{_CREDENTIAL}(?!\w)")
# Credentials and the trailing noise profile headlines carry after a name.
# Case-sensitive so surnames such as "Do" survive.
_NAME_NOISE = re.compile(
    rf"(?:,\s*)?\b(?:{_CREDENTIAL}|Jr\.?|Sr\.?|II|III|IV)(?!\w)|\b(?i:aka|dba)\s+.*"
)
_HONORIFIC = re.compile(r"^(?:Dr|Mr|Mrs|Ms|Prof)\.?\s+", re.IGNORECASE)


class NormalizedName(NamedTuple):
    first_name: str
    last_name: str


def strip_symbols(text: str) -> str:
    """Drop emoji and pictographs, collapse whitespace."""
    return re.sub(r"\s+", " ", _EMOJI.sub("", text)).strip()


def normalize_name(full_name: Optional[str]) -> NormalizedName:
    """Split a display name into first and last name.

    Credentials (MD, CPA, MBA, ...) and generational suffixes are removed, as
    are characters other than letters, digits, hyphens and apostrophes. The first
    remaining token is the first name, the last one the last name.
    """
    if not full_name:
        return NormalizedName("", "")

    cleaned = _HONORIFIC.sub("", strip_symbols(full_name))
    cleaned = _COMPOUND_CREDENTIAL.sub("", cleaned)
    cleaned = _NAME_NOISE.sub("", cleaned)
    cleaned = re.sub(r"[^\w\s\-']", "", cleaned)
    tokens = cleaned.split()

    if not tokens:
        return NormalizedName("", "")
    if len(tokens) == 1:
        return NormalizedName(tokens[0], "")
    return NormalizedName(tokens[0], tokens[-1])


def clean_name_part(value: Optional[str]) -> str:
    """Clean an already split first or last name."""
    if not value:
        return ""
    return re.sub(r"[^\w\s\-'.]", "", strip_symbols(value)).strip()


def normalize_phone(raw: Optional[str]) -> Optional[str]:
    """Return a 10-digit US number, or None when the input is not one."""
    if not raw:
        return None
    digits = re.sub(r"\D", "", str(raw))
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    if len(digits) != 10:
        return None
    return digits


def mask_phone(phone: Optional[str]) -> str:
    """Shorten a phone number for log output."""
    if not phone:
        return "none"
    return f"{phone[:5]}..."


def normalize_email(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    email = str(raw).strip().lower()
    if "@" not in email or email.startswith("@") or email.endswith("@"):
        return None
    return email


def normalize_state(raw: Optional[str]) -> Optional[str]:
    """Return the two-letter abbreviation for a state name or code."""
    if not raw:
        return None
    text = re.sub(r"\s+", " ", str(raw).strip().lower().replace(".", ""))
    if text.upper() in STATE_NAMES:
        return text.upper()
    return STATE_ABBREVIATIONS.get(text)


def normalize_city(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    city = strip_symbols(str(raw))
    # "Denver Metropolitan Area" style locations
    city = re.sub(r"\s+(metropolitan|metro)(\s+area)?$|\s+area$", "", city, flags=re.IGNORECASE)
    return city.title() or None


def normalize_postal_code(raw: Optional[str]) -> Optional[str]:
    """Extract a five-digit ZIP code."""
    if not raw:
        return None
    match = re.search(r"\b(\d{5})(?:-\d{4})?\b", str(raw))
    return match.group(1) if match else None
