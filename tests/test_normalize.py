"""Tests for name, phone and location normalization."""

import pytest
from lead_enricher.lookups.postal_codes import lookup_postal_code
from lead_enricher.normalize import (
    mask_phone,
    normalize_city,
    normalize_email,
    normalize_name,
    normalize_phone,
    normalize_postal_code,
    normalize_state,
)


class TestNormalizeName:

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("Jane Doe", ("Jane", "Doe")),
            ("Dr. Jane Q. Doe, MD", ("Jane", "Doe")),
            ("Sarah Lee CPA/MBA 🚀", ("Sarah", "Lee")),
            ("Bob Smith Jr.", ("Bob", "Smith")),
            ("John Do", ("John", "Do")),
            ("Maria Garcia, PhD", ("Maria", "Garcia")),
            ("Cher", ("Cher", "")),
        ],
    )
    def test_split(self, raw, expected):
        assert tuple(normalize_name(raw)) == expected

    def test_empty(self):
        assert tuple(normalize_name(None)) == ("", "")
        assert tuple(normalize_name("🚀")) == ("", "")


class TestNormalizePhone:

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("3035551234", "3035551234"),
            ("(303) 555-1234", "3035551234"),
            ("+1 303 555 1234", "3035551234"),
            ("555-1234", None),
            ("23035551234", None),
            (None, None),
        ],
    )
    def test_phone(self, raw, expected):
        assert normalize_phone(raw) == expected


def test_email():
    assert normalize_email(" Jane.Doe@Example.COM ") == "jane.doe@example.com"
    assert normalize_email("not-an-email") is None
    assert normalize_email("@example.com") is None


@pytest.mark.parametrize(
    "raw,expected",
    [("CO", "CO"), ("co", "CO"), ("Colorado", "CO"), ("new york", "NY"), ("Narnia", None), (None, None)],
)
def test_state(raw, expected):
    assert normalize_state(raw) == expected


def test_city():
    assert normalize_city("denver") == "Denver"
    assert normalize_city("Denver Metropolitan Area") == "Denver"
    assert normalize_city("") is None


def test_mask_phone():
    assert mask_phone("3035551234") == "30355..."
    assert mask_phone(None) == "none"


def test_postal_code():
    assert normalize_postal_code("80202-1234") == "80202"
    assert normalize_postal_code("Denver, CO 80202") == "80202"
    assert normalize_postal_code("802") is None


class TestPostalCodeLookup:

    def test_city_entry(self):
        assert lookup_postal_code("Denver", "CO") == "80202"

    def test_state_centroid_fallback(self):
        assert lookup_postal_code("Nowhereville", "CO") == "80201"
        assert lookup_postal_code(None, "CO") == "80201"

    def test_unknown_state(self):
        assert lookup_postal_code("Denver", None) is None
        assert lookup_postal_code("Denver", "ZZ") is None
