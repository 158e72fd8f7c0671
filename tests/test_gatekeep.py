"""Tests for the gatekeep policy."""

import pytest
from lead_enricher.models import EnrichmentResult
from lead_enricher.pipeline.gatekeep import disposable_carrier, is_voip, should_proceed


def test_no_phone():
    decision = should_proceed(EnrichmentResult(phone=None))

    assert decision.proceed is False
    assert decision.reason == "no phone"


def test_blank_phone_counts_as_missing():
    assert should_proceed(EnrichmentResult(phone="  ")).reason == "no phone"


def test_voip():
    decision = should_proceed(EnrichmentResult(phone="3035551234", line_type="voip"))

    assert decision.proceed is False
    assert decision.reason == "voip"


@pytest.mark.parametrize("line_type", ["VoIP", "fixed voip", "non-fixed-voip", "NON_FIXED_VOIP"])
def test_voip_variants(line_type):
    assert is_voip(line_type)
    assert should_proceed(EnrichmentResult(phone="3035551234", line_type=line_type)).reason == "voip"


def test_mobile_verizon_proceeds():
    decision = should_proceed(
        EnrichmentResult(phone="3035551234", line_type="mobile", carrier_name="Verizon")
    )

    assert decision.proceed is True
    assert decision.reason == "ok"
    assert bool(decision)


@pytest.mark.parametrize(
    "carrier,pattern",
    [
        ("Google Voice", "google voice"),
        ("TEXTNOW, INC.", "textnow"),
        ("Bandwidth.com CLEC", "bandwidth"),
        ("Twilio Inc", "twilio"),
    ],
)
def test_disposable_carrier(carrier, pattern):
    decision = should_proceed(
        EnrichmentResult(phone="3035551234", line_type="mobile", carrier_name=carrier)
    )

    assert decision.proceed is False
    assert decision.reason == f"disposable carrier: {pattern}"


def test_voip_wins_over_carrier():
    decision = should_proceed(
        EnrichmentResult(phone="3035551234", line_type="voip", carrier_name="Twilio")
    )
    assert decision.reason == "voip"


def test_landline_without_carrier_proceeds():
    assert should_proceed(EnrichmentResult(phone="3035551234", line_type="landline")).proceed


def test_pure():
    result = EnrichmentResult(phone="3035551234", line_type="mobile", carrier_name="T-Mobile")

    assert should_proceed(result) == should_proceed(result)
    assert result == EnrichmentResult(phone="3035551234", line_type="mobile", carrier_name="T-Mobile")


def test_disposable_carrier_none():
    assert disposable_carrier(None) is None
    assert disposable_carrier("AT&T Wireless") is None
