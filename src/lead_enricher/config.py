"""Configuration settings using pydantic-settings."""

from typing import Optional, Dict
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Provider keys used by the rate limiter and stage error records
PEOPLE_SEARCH = "people_search"
PHONE_INTEL = "phone_intel"
DNC = "dnc"
AGE = "age"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Provider credentials (validated by the CLI, not at import)
    rapidapi_key: Optional[str] = Field(None, description="RapidAPI key for the skip-tracing provider")
    telnyx_api_key: Optional[str] = Field(None, description="Telnyx API key for number lookups")
    cognito_client_id: Optional[str] = Field(None, description="Cognito app client id for the DNC service")
    cognito_refresh_token: Optional[str] = Field(None, description="Long-lived Cognito refresh token")
    dnc_agent_number: Optional[str] = Field(None, description="Agent number sent with DNC scrub requests")

    # Provider endpoints
    skip_tracing_host: str = Field(
        "skip-tracing-working-api.p.rapidapi.com",
        description="RapidAPI host header for the skip-tracing provider"
    )
    telnyx_base_url: str = Field("https://api.telnyx.com", description="Telnyx API base URL")
    dnc_base_url: str = Field(
        "https://api-business-agent.ushadvisors.com",
        description="DNC scrub API base URL"
    )
    cognito_region: str = Field("us-east-1", description="AWS region of the Cognito user pool")

    # Rate limiting: minimum seconds between calls per provider.
    # Found empirically against the providers; tune via env without code changes.
    people_search_min_delay: float = Field(0.25, description="People-search min delay (s)")
    phone_intel_min_delay: float = Field(0.1, description="Phone-intelligence min delay (s)")
    dnc_min_delay: float = Field(0.2, description="DNC scrub min delay (s)")
    age_min_delay: float = Field(0.25, description="Age lookup min delay (s)")

    # Auth
    token_safety_margin: float = Field(60.0, description="Seconds before expiry a token is treated as stale")

    # Batch
    flush_every: int = Field(5, description="Persist checkpoint every N records")

    # Caching
    cache_dir: str = Field(".cache", description="Directory for disk cache")

    # Logging
    log_level: str = Field("INFO", description="Logging level")

    # Timeouts
    http_timeout: float = Field(30.0, description="HTTP request timeout in seconds")

    @property
    def skip_tracing_base_url(self) -> str:
        return f"https://{self.skip_tracing_host}"

    @property
    def cognito_endpoint(self) -> str:
        return f"https://cognito-idp.{self.cognito_region}.amazonaws.com/"

    @property
    def provider_delays(self) -> Dict[str, float]:
        """Minimum inter-call delay keyed by provider."""
        return {
            PEOPLE_SEARCH: self.people_search_min_delay,
            PHONE_INTEL: self.phone_intel_min_delay,
            DNC: self.dnc_min_delay,
            AGE: self.age_min_delay,
        }

    def missing_credentials(self) -> list[str]:
        """Names of provider credentials that are not configured."""
        required = {
            "RAPIDAPI_KEY": self.rapidapi_key,
            "TELNYX_API_KEY": self.telnyx_api_key,
            "COGNITO_CLIENT_ID": self.cognito_client_id,
            "COGNITO_REFRESH_TOKEN": self.cognito_refresh_token,
        }
        return [name for name, value in required.items() if not value]


# Global settings instance
settings = Settings()
