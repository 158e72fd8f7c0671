"""Cognito refresh-token issuer for the DNC service's bearer tokens."""

import base64
import json
import time
from typing import Callable, Optional
import httpx
from ..config import settings
from ..errors import AuthError, ProviderError
from ..logging_config import get_logger
from ..models import TokenCacheEntry
from .base import request_json
from .schemas import CognitoInitiateAuthV1, parse_payload

logger = get_logger(__name__)

AUTH_PROVIDER = "cognito"
DEFAULT_TOKEN_LIFETIME = 3600.0


def decode_jwt_expiry(token: str) -> Optional[float]:
    """Return the ``exp`` claim of a JWT (epoch seconds), without verifying it."""
    parts = token.split(".")
    if len(parts) != 3:
        return None
    payload = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(payload))
    except (ValueError, TypeError):
        return None
    exp = claims.get("exp") if isinstance(claims, dict) else None
    return float(exp) if isinstance(exp, (int, float)) else None


class CognitoTokenIssuer:
    """Exchanges a long-lived Cognito refresh token for a short-lived ID token."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        client_id: Optional[str] = None,
        refresh_token: Optional[str] = None,
        endpoint: Optional[str] = None,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.client = client
        self.client_id = client_id or settings.cognito_client_id
        self.refresh_token = refresh_token or settings.cognito_refresh_token
        self.endpoint = endpoint or settings.cognito_endpoint
        self.timeout = timeout or settings.http_timeout
        self._clock = clock

    async def issue(self) -> TokenCacheEntry:
        if not self.client_id or not self.refresh_token:
            raise AuthError("COGNITO_CLIENT_ID and COGNITO_REFRESH_TOKEN must be configured")

        body = {
            "AuthFlow": "REFRESH_TOKEN_AUTH",
            "ClientId": self.client_id,
            "AuthParameters": {"REFRESH_TOKEN": self.refresh_token},
        }
        try:
            data = await request_json(
                self.client,
                AUTH_PROVIDER,
                "POST",
                self.endpoint,
                content=json.dumps(body),
                headers={
                    "Content-Type": "application/x-amz-json-1.1",
                    "X-Amz-Target": "AWSCognitoIdentityProviderService.InitiateAuth",
                },
                timeout=self.timeout,
            )
            result = parse_payload(CognitoInitiateAuthV1, data, AUTH_PROVIDER).result
        except ProviderError as e:
            raise AuthError(f"Cognito refresh failed: {e.message}") from e

        now = self._clock()
        expires_at = decode_jwt_expiry(result.id_token)
        if expires_at is None:
            expires_at = now + (result.expires_in or DEFAULT_TOKEN_LIFETIME)

        logger.info(f"Obtained ID token, expires in {(expires_at - now) / 60:.0f}min")
        return TokenCacheEntry(token=result.id_token, issued_at=now, expires_at=expires_at)
