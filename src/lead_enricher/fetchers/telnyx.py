"""Telnyx number lookup client (line type and carrier)."""

from typing import Optional
import httpx
from ..config import settings, PHONE_INTEL
from ..logging_config import get_logger
from ..models import PhoneIntel
from ..normalize import mask_phone
from .base import request_json
from .schemas import TelnyxLookupV2, parse_payload

logger = get_logger(__name__)


class TelnyxClient:
    """Async client for the Telnyx number lookup API."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.client = client
        self.api_key = api_key or settings.telnyx_api_key
        self.base_url = (base_url or settings.telnyx_base_url).rstrip("/")
        self.timeout = timeout or settings.http_timeout

    async def lookup(self, phone: str) -> PhoneIntel:
        """Classify a 10-digit US number."""
        data = await request_json(
            self.client,
            PHONE_INTEL,
            "GET",
            f"{self.base_url}/v2/number_lookup/+1{phone}",
            params={"type": "carrier"},
            headers={"Authorization": f"Bearer {self.api_key}", "Accept": "application/json"},
            timeout=self.timeout,
        )
        lookup = parse_payload(TelnyxLookupV2, data, PHONE_INTEL).data

        intel = PhoneIntel(
            line_type=lookup.portability.line_type if lookup.portability else None,
            carrier_name=lookup.carrier.name if lookup.carrier else None,
            carrier_type=lookup.carrier.type if lookup.carrier else None,
        )
        logger.debug(f"Telnyx {mask_phone(phone)}: {intel.line_type} / {intel.carrier_name}")
        return intel
