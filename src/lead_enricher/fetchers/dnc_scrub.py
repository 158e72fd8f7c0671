"""Do-not-call scrub API client."""

from typing import Optional
import httpx
from ..config import settings, DNC
from ..errors import ProviderError
from ..logging_config import get_logger
from ..models import DncStatus
from ..normalize import mask_phone
from .base import request_json
from .schemas import DncScrubV1, parse_payload

logger = get_logger(__name__)

AGENT_PORTAL = "https://agent.ushadvisors.com"


class DncScrubClient:
    """Checks one phone number against the agent portal's DNC scrub."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        agent_number: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.client = client
        self.agent_number = agent_number or settings.dnc_agent_number or ""
        self.base_url = (base_url or settings.dnc_base_url).rstrip("/")
        self.timeout = timeout or settings.http_timeout

    async def check(self, phone: str, token: str) -> DncStatus:
        """Return the contactability of ``phone``.

        A rejected token surfaces as ``UnauthorizedError`` so the caller can
        refresh it and retry.
        """
        data = await request_json(
            self.client,
            DNC,
            "GET",
            f"{self.base_url}/Leads/api/leads/scrubphonenumber",
            params={"currentContextAgentNumber": self.agent_number, "phone": phone},
            headers={
                "Authorization": f"Bearer {token}",
                "Origin": AGENT_PORTAL,
                "Referer": AGENT_PORTAL,
            },
            timeout=self.timeout,
        )
        scrub = parse_payload(DncScrubV1, data, DNC).data

        if scrub.is_do_not_call is None and (
            scrub.contact_status is None or scrub.contact_status.can_contact is None
        ):
            raise ProviderError(DNC, "scrub response carries no contactability flag")

        do_not_call = scrub.is_do_not_call is True or (
            scrub.contact_status is not None and scrub.contact_status.can_contact is False
        )
        reason = (scrub.contact_status.reason if scrub.contact_status else None) or scrub.reason
        if do_not_call and not reason:
            reason = "Do Not Call"

        logger.debug(f"DNC {mask_phone(phone)}: {'DNC' if do_not_call else 'OK'}")
        return DncStatus(do_not_call=do_not_call, reason=reason)
