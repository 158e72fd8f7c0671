"""Tests for the enrichment pipeline with fake providers."""

import asyncio
import time
from typing import List, Optional
import httpx
import pytest
from lead_enricher.config import PEOPLE_SEARCH
from lead_enricher.errors import ProviderError, RateLimitError, UnauthorizedError
from lead_enricher.fetchers.skip_tracing import SkipTracingClient
from lead_enricher.models import (
    AgeInfo,
    DncStatus,
    LeadRecord,
    OutcomeKind,
    PersonCandidate,
    PhoneIntel,
    ProgressEvent,
    Stage,
    TokenCacheEntry,
)
from lead_enricher.pipeline.enricher import LeadEnricher, ProgressChannel
from lead_enricher.pipeline.rate_limiter import RateLimiter
from lead_enricher.pipeline.token_cache import TokenCache


class FakePeopleSearch:
    def __init__(self, candidates: Optional[List[PersonCandidate]] = None):
        self.candidates = candidates if candidates is not None else []
        self.calls = []
        self.completed = []

    async def search(self, *, name=None, citystatezip=None, email=None):
        self.calls.append({"name": name, "citystatezip": citystatezip, "email": email})
        return self.candidates

    async def complete_candidate(self, candidate):
        self.completed.append(candidate.person_id)
        return PersonCandidate(person_id=candidate.person_id, phone="3035559999")


class FakePhoneIntel:
    def __init__(self, intel: PhoneIntel, failures: Optional[list] = None):
        self.intel = intel
        self.failures = list(failures or [])
        self.calls = 0

    async def lookup(self, phone):
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.intel


class FakeDnc:
    def __init__(self, status: DncStatus, failures: Optional[list] = None):
        self.status = status
        self.failures = list(failures or [])
        self.tokens = []

    async def check(self, phone, token):
        self.tokens.append(token)
        if self.failures:
            raise self.failures.pop(0)
        return self.status


class FakeAge:
    def __init__(self, info: AgeInfo):
        self.info = info
        self.calls = []

    async def lookup_age(self, *, person_id=None, name=None, citystatezip=None):
        self.calls.append({"person_id": person_id, "name": name})
        return self.info


class FakeIssuer:
    def __init__(self):
        self.calls = 0

    async def issue(self):
        self.calls += 1
        return TokenCacheEntry(token=f"token-{self.calls}", issued_at=0.0, expires_at=4_102_444_800.0)


def build(
    candidates=None,
    intel=PhoneIntel(line_type="mobile", carrier_name="Verizon", carrier_type="mobile"),
    dnc_status=DncStatus(do_not_call=False),
    age=AgeInfo(age=42),
    intel_failures=None,
    dnc_failures=None,
):
    people = FakePeopleSearch(
        candidates if candidates is not None else [PersonCandidate(phone="3035551234")]
    )
    phone_intel = FakePhoneIntel(intel, intel_failures)
    dnc = FakeDnc(dnc_status, dnc_failures)
    age_provider = FakeAge(age)
    issuer = FakeIssuer()
    enricher = LeadEnricher(
        people,
        phone_intel,
        dnc,
        age_provider,
        rate_limiter=RateLimiter(),
        token_cache=TokenCache(issuer),
    )
    return enricher, people, phone_intel, dnc, age_provider, issuer


JANE = LeadRecord(name="Jane Doe", city="Denver", state="CO")


class TestEndToEnd:

    @pytest.mark.asyncio
    async def test_jane_doe(self):
        enricher, people, phone_intel, dnc, age, _ = build()
        events: List[ProgressEvent] = []

        result = await enricher.run(JANE, on_progress=events.append)

        assert result.phone == "3035551234"
        assert result.line_type == "mobile"
        assert result.carrier_name == "Verizon"
        assert result.do_not_call is False
        assert result.age == 42
        assert result.errors == []
        assert result.first_name == "Jane"
        assert result.last_name == "Doe"
        assert result.postal_code == "80202"
        assert result.is_complete

        assert people.calls == [{"name": "Jane Doe", "citystatezip": "Denver, CO 80202", "email": None}]
        assert [event.stage for event in events] == list(Stage)
        assert all(event.lead == "Jane Doe" for event in events)

    @pytest.mark.asyncio
    async def test_progress_channel(self):
        enricher, *_ = build()
        channel = ProgressChannel()

        async def produce():
            await enricher.run(JANE, on_progress=channel)
            channel.close()

        producer = asyncio.create_task(produce())
        kinds = [(event.stage, event.kind) async for event in channel]
        await producer

        assert len(kinds) == len(Stage)
        assert kinds[-1] == (Stage.AGE, OutcomeKind.SUCCESS)


class TestShortCircuits:

    @pytest.mark.asyncio
    async def test_voip_never_reaches_dnc_or_age(self):
        enricher, _, _, dnc, age, issuer = build(intel=PhoneIntel(line_type="voip", carrier_name="Bandwidth"))

        result = await enricher.run(JANE)

        assert dnc.tokens == []
        assert age.calls == []
        assert issuer.calls == 0
        assert result.skipped["gatekeep"] == "voip"
        assert result.skipped["dnc"] == "gatekeep: voip"
        assert result.skipped["age"] == "gatekeep: voip"
        assert result.do_not_call is None

    @pytest.mark.asyncio
    async def test_disposable_carrier(self):
        enricher, _, _, dnc, age, _ = build(intel=PhoneIntel(line_type="mobile", carrier_name="TextNow"))

        result = await enricher.run(JANE)

        assert dnc.tokens == []
        assert age.calls == []
        assert result.skipped["gatekeep"] == "disposable carrier: textnow"

    @pytest.mark.asyncio
    async def test_do_not_call_skips_age(self):
        enricher, _, _, dnc, age, _ = build(dnc_status=DncStatus(do_not_call=True, reason="Federal DNC"))

        result = await enricher.run(JANE)

        assert len(dnc.tokens) == 1
        assert age.calls == []
        assert result.do_not_call is True
        assert result.dnc_reason == "Federal DNC"
        assert result.skipped["age"] == "do not call"

    @pytest.mark.asyncio
    async def test_no_phone_found(self):
        enricher, _, phone_intel, dnc, age, _ = build(candidates=[])

        result = await enricher.run(JANE)

        assert phone_intel.calls == 0
        assert dnc.tokens == []
        assert age.calls == []
        assert result.skipped["line_type"] == "no phone"
        assert result.skipped["gatekeep"] == "no phone"
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_known_phone_skips_people_search(self):
        enricher, people, phone_intel, _, _, _ = build()

        result = await enricher.run(LeadRecord(name="Jane Doe", state="CO", phone="(303) 555-1234"))

        assert people.calls == []
        assert phone_intel.calls == 1
        assert result.skipped["phone_discovery"] == "phone already known"
        assert result.phone == "3035551234"

    @pytest.mark.asyncio
    async def test_nothing_to_search_by(self):
        enricher, people, *_ = build()

        result = await enricher.run(LeadRecord(city="Denver", state="CO"))

        assert people.calls == []
        assert "phone_discovery" in result.skipped
        assert result.skipped["gatekeep"] == "no phone"

    @pytest.mark.asyncio
    async def test_email_only_search(self):
        enricher, people, *_ = build()

        await enricher.run(LeadRecord(email="Jane@Example.com"))

        assert people.calls == [{"name": None, "citystatezip": None, "email": "jane@example.com"}]


class TestMerging:

    @pytest.mark.asyncio
    async def test_provider_postal_code_refines_table_estimate(self):
        enricher, *_ = build(candidates=[PersonCandidate(phone="3035551234", postal_code="80203")])

        result = await enricher.run(JANE)

        assert result.postal_code == "80203"

    @pytest.mark.asyncio
    async def test_search_never_overwrites_known_city(self):
        enricher, *_ = build(
            candidates=[PersonCandidate(phone="3035551234", city="Aurora", person_id="px1")]
        )

        result = await enricher.run(JANE)

        assert result.city == "Denver"
        assert result.person_id == "px1"


class TestFailures:

    @pytest.mark.asyncio
    async def test_auth_failure_refreshes_token_and_retries_once(self):
        enricher, _, _, dnc, _, issuer = build(
            dnc_failures=[UnauthorizedError("dnc", "HTTP 401 Unauthorized", status=401)]
        )

        result = await enricher.run(JANE)

        assert dnc.tokens == ["token-1", "token-2"]
        assert issuer.calls == 2
        assert result.do_not_call is False
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_repeated_auth_failure_is_recorded(self):
        enricher, _, _, dnc, age, _ = build(
            dnc_failures=[
                UnauthorizedError("dnc", "HTTP 401 Unauthorized", status=401),
                UnauthorizedError("dnc", "HTTP 401 Unauthorized", status=401),
            ]
        )

        result = await enricher.run(JANE)

        assert len(dnc.tokens) == 2
        assert [error.stage for error in result.errors] == [Stage.DNC]
        # Unknown DNC status does not block the age lookup
        assert result.do_not_call is None
        assert result.age == 42

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self):
        enricher, _, phone_intel, *_ = build(
            intel_failures=[ProviderError("phone_intel", "HTTP 503", status=503, retryable=True)]
        )

        result = await enricher.run(JANE)

        assert phone_intel.calls == 2
        assert result.line_type == "mobile"
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_rate_limited_call_is_retried(self):
        enricher, _, phone_intel, *_ = build(
            intel_failures=[RateLimitError("phone_intel", retry_after=0.01)]
        )

        result = await enricher.run(JANE)

        assert phone_intel.calls == 2
        assert result.carrier_name == "Verizon"

    @pytest.mark.asyncio
    async def test_persistent_failure_degrades_gracefully(self):
        failure = ProviderError("phone_intel", "timed out", retryable=True)
        enricher, _, phone_intel, dnc, age, _ = build(intel_failures=[failure, failure])

        result = await enricher.run(JANE)

        assert phone_intel.calls == 2
        assert len(result.errors) == 1
        error = result.errors[0]
        assert error.stage == Stage.LINE_TYPE
        assert error.retryable is True
        assert error.provider == "phone_intel"
        # The record keeps going with what it has
        assert result.phone == "3035551234"
        assert result.age == 42

    @pytest.mark.asyncio
    async def test_terminal_failure_is_not_retried(self):
        enricher, _, phone_intel, *_ = build(
            intel_failures=[ProviderError("phone_intel", "HTTP 404 Not Found", status=404)]
        )

        result = await enricher.run(JANE)

        assert phone_intel.calls == 1
        assert result.errors[0].retryable is False

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_recorded(self):
        enricher, *_ = build(intel_failures=[KeyError("carrier")])

        result = await enricher.run(JANE)

        assert [error.stage for error in result.errors] == [Stage.LINE_TYPE]
        assert result.age == 42


def phoneless_search(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"Status": 200, "PeopleDetails": [{"Person ID": "px1", "Name": "Jane Doe"}]})


def details(request: httpx.Request) -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "Person Details": [{"Person ID": "px1"}],
            "All Phone Details": [{"phone_number": "(303) 555-9999", "phone_type": "Wireless"}],
        },
    )


class TestPersonDetails:

    @pytest.mark.asyncio
    async def test_profile_without_phone_is_completed(self):
        enricher, people, phone_intel, *_ = build(candidates=[PersonCandidate(person_id="px1")])

        result = await enricher.run(JANE)

        assert people.completed == ["px1"]
        assert result.phone == "3035559999"
        assert phone_intel.calls == 1

    @pytest.mark.asyncio
    async def test_details_call_is_rate_limited(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append((request.url.path, time.monotonic()))
            if request.url.path == "/search/byname":
                return phoneless_search(request)
            return details(request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            enricher, *_ = build()
            enricher.people_search = SkipTracingClient(client, api_key="key", host="skip.test")
            enricher.rate_limiter = RateLimiter({PEOPLE_SEARCH: 0.1})

            result = await enricher.run(LeadRecord(name="Jane Doe"))

        assert [path for path, _ in requests] == ["/search/byname", "/search/detailsbyID"]
        assert requests[1][1] - requests[0][1] >= 0.09
        assert result.phone == "3035559999"

    @pytest.mark.asyncio
    async def test_failing_details_call_does_not_repeat_the_search(self):
        paths = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            if request.url.path == "/search/byname":
                return phoneless_search(request)
            return httpx.Response(503)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            enricher, *_ = build()
            enricher.people_search = SkipTracingClient(client, api_key="key", host="skip.test")

            result = await enricher.run(LeadRecord(name="Jane Doe"))

        assert paths.count("/search/byname") == 1
        assert paths.count("/search/detailsbyID") == 2
        assert [error.stage for error in result.errors] == [Stage.PHONE_DISCOVERY]
        assert result.errors[0].retryable is True
