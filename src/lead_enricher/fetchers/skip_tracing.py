"""Skip-tracing API client (people search, person details, age)."""

from datetime import datetime
from typing import List, Optional
import httpx
from ..config import settings, PEOPLE_SEARCH, AGE
from ..errors import ValidationError
from ..logging_config import get_logger
from ..models import AgeInfo, PersonCandidate
from ..normalize import mask_phone, normalize_email, normalize_phone, normalize_postal_code, normalize_state
from .base import request_json
from .schemas import (
    SkipTraceDetailsV1,
    SkipTracePersonV1,
    SkipTracePhoneV1,
    SkipTraceSearchV1,
    parse_payload,
)

logger = get_logger(__name__)


def _reported_at(phone: SkipTracePhoneV1) -> datetime:
    if phone.last_reported:
        for fmt in ("%m/%d/%Y", "%Y-%m-%d", "%b %Y", "%B %Y"):
            try:
                return datetime.strptime(phone.last_reported.strip(), fmt)
            except ValueError:
                continue
    return datetime.min


def best_phone(phones: List[SkipTracePhoneV1]) -> Optional[str]:
    """Pick the best number: wireless first, then most recently reported."""
    usable = [p for p in phones if normalize_phone(p.phone_number)]
    if not usable:
        return None
    usable.sort(
        key=lambda p: ((p.phone_type or "").lower() == "wireless", _reported_at(p)),
        reverse=True,
    )
    return normalize_phone(usable[0].phone_number)


def _candidate(person: SkipTracePersonV1) -> PersonCandidate:
    return PersonCandidate(
        person_id=person.person_id,
        phone=normalize_phone(person.telephone),
        email=normalize_email(person.email),
        address_line1=person.street_address,
        city=person.city,
        state=normalize_state(person.state),
        postal_code=normalize_postal_code(person.postal_code),
        age=person.age,
    )


class SkipTracingClient:
    """Async client for the skip-tracing API.

    Serves both the people-search and the age lookup stages; the pipeline rate
    limits each role under its own provider key.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: Optional[str] = None,
        host: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.client = client
        self.api_key = api_key or settings.rapidapi_key
        self.host = host or settings.skip_tracing_host
        self.base_url = f"https://{host}" if host else settings.skip_tracing_base_url
        self.timeout = timeout or settings.http_timeout

    @property
    def headers(self) -> dict[str, str]:
        return {"x-rapidapi-key": self.api_key or "", "x-rapidapi-host": self.host}

    async def _get(self, path: str, params: dict, provider: str) -> dict:
        return await request_json(
            self.client,
            provider,
            "GET",
            f"{self.base_url}{path}",
            params=params,
            headers=self.headers,
            timeout=self.timeout,
        )

    async def search(
        self,
        *,
        name: Optional[str] = None,
        citystatezip: Optional[str] = None,
        email: Optional[str] = None,
    ) -> List[PersonCandidate]:
        """Search by name (optionally narrowed by location) or by email.

        One request. Candidates without a phone can be filled in with
        ``complete_candidate``, which is a separate billed call.
        """
        if name and citystatezip:
            data = await self._get(
                "/search/bynameaddress",
                {"name": name, "citystatezip": citystatezip, "page": 1},
                PEOPLE_SEARCH,
            )
        elif name:
            data = await self._get("/search/byname", {"name": name, "page": 1}, PEOPLE_SEARCH)
        elif email:
            data = await self._get("/search/byemail", {"email": email}, PEOPLE_SEARCH)
        else:
            raise ValidationError("people search needs a name or an email")

        search = parse_payload(SkipTraceSearchV1, data, PEOPLE_SEARCH)
        candidates = [_candidate(person) for person in search.people]
        logger.debug(f"Skip tracing returned {len(candidates)} candidate(s)")
        return candidates

    async def person_details(self, person_id: str, provider: str = PEOPLE_SEARCH) -> SkipTraceDetailsV1:
        data = await self._get("/search/detailsbyID", {"peo_id": person_id}, provider)
        return parse_payload(SkipTraceDetailsV1, data, provider)

    async def complete_candidate(self, candidate: PersonCandidate) -> PersonCandidate:
        """Fill phone, email and current address from the details record."""
        if not candidate.person_id:
            raise ValidationError("candidate has no person id")
        details = await self.person_details(candidate.person_id)
        phone = best_phone(details.phones)
        if not phone and details.person:
            phone = normalize_phone(details.person[0].telephone)

        email = candidate.email
        if not email:
            email = next((e for e in map(normalize_email, details.emails) if e), None)

        address = details.addresses[0] if details.addresses else None
        logger.debug(f"Person details for {candidate.person_id}: phone {mask_phone(phone)}")
        return PersonCandidate(
            person_id=candidate.person_id,
            phone=phone,
            email=email,
            address_line1=candidate.address_line1 or (address.street_address if address else None),
            city=candidate.city or (address.address_locality if address else None),
            state=candidate.state or normalize_state(address.address_region if address else None),
            postal_code=normalize_postal_code(address.postal_code if address else None)
            or candidate.postal_code,
            age=candidate.age or (details.person[0].age if details.person else None),
        )

    async def lookup_age(
        self,
        *,
        person_id: Optional[str] = None,
        name: Optional[str] = None,
        citystatezip: Optional[str] = None,
    ) -> AgeInfo:
        """Age and date of birth, by person id when known, else by name search."""
        if person_id:
            details = await self.person_details(person_id, provider=AGE)
            person = details.person[0] if details.person else None
            return AgeInfo(
                age=person.age if person else None,
                date_of_birth=details.date_of_birth,
            )
        if not name:
            raise ValidationError("age lookup needs a person id or a name")

        params = {"name": name, "page": 1}
        path = "/search/byname"
        if citystatezip:
            params["citystatezip"] = citystatezip
            path = "/search/bynameaddress"
        search = parse_payload(SkipTraceSearchV1, await self._get(path, params, AGE), AGE)
        if not search.people:
            return AgeInfo()
        return AgeInfo(age=search.people[0].age)
