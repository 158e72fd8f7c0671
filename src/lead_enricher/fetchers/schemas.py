"""Versioned response schemas for each provider.

Each provider payload is validated against exactly one schema. An unknown
shape is a terminal ``ProviderError``, never a silent fallthrough.
"""

from typing import Any, List, Mapping, Optional, Type, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ..errors import ProviderError

M = TypeVar("M", bound=BaseModel)


class _Schema(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, coerce_numbers_to_str=True)


# --- Skip tracing (people search + person details), v1 ---

class SkipTracePersonV1(_Schema):
    person_id: Optional[str] = Field(None, alias="Person ID")
    name: Optional[str] = Field(None, alias="Name")
    age: Optional[int] = Field(None, alias="Age")
    telephone: Optional[str] = Field(None, alias="Telephone")
    email: Optional[str] = Field(None, validation_alias=AliasChoices("Email", "email"))
    street_address: Optional[str] = Field(None, alias="Street Address")
    city: Optional[str] = Field(None, alias="Address Locality")
    state: Optional[str] = Field(None, alias="Address Region")
    postal_code: Optional[str] = Field(None, alias="Postal Code")


class SkipTraceSearchV1(_Schema):
    # "Status" identifies the shape; an empty result omits PeopleDetails
    status: int = Field(alias="Status")
    people: List[SkipTracePersonV1] = Field(default_factory=list, alias="PeopleDetails")


class SkipTracePhoneV1(_Schema):
    phone_number: str
    phone_type: Optional[str] = None
    last_reported: Optional[str] = None


class SkipTraceAddressV1(_Schema):
    street_address: Optional[str] = None
    address_locality: Optional[str] = None
    address_region: Optional[str] = None
    postal_code: Optional[str] = None


class SkipTraceDetailsV1(_Schema):
    person: List[SkipTracePersonV1] = Field(alias="Person Details")
    phones: List[SkipTracePhoneV1] = Field(default_factory=list, alias="All Phone Details")
    emails: List[str] = Field(default_factory=list, alias="Email Addresses")
    addresses: List[SkipTraceAddressV1] = Field(
        default_factory=list, alias="Current Address Details List"
    )
    date_of_birth: Optional[str] = Field(None, alias="Date of Birth")


# --- Telnyx number lookup, v2 API ---

class TelnyxPortability(_Schema):
    line_type: Optional[str] = None


class TelnyxCarrier(_Schema):
    name: Optional[str] = None
    type: Optional[str] = None
    normalized_carrier: Optional[str] = None


class TelnyxLookupData(_Schema):
    phone_number: Optional[str] = None
    portability: Optional[TelnyxPortability] = None
    carrier: Optional[TelnyxCarrier] = None


class TelnyxLookupV2(_Schema):
    data: TelnyxLookupData


# --- DNC scrub, v1 ---

class DncContactStatus(_Schema):
    can_contact: Optional[bool] = Field(None, alias="canContact")
    reason: Optional[str] = None


class DncScrubData(_Schema):
    is_do_not_call: Optional[bool] = Field(None, alias="isDoNotCall")
    contact_status: Optional[DncContactStatus] = Field(None, alias="contactStatus")
    reason: Optional[str] = None


class DncScrubV1(_Schema):
    data: DncScrubData


# --- Cognito InitiateAuth ---

class CognitoAuthResult(_Schema):
    id_token: str = Field(alias="IdToken")
    access_token: Optional[str] = Field(None, alias="AccessToken")
    expires_in: Optional[int] = Field(None, alias="ExpiresIn")


class CognitoInitiateAuthV1(_Schema):
    result: CognitoAuthResult = Field(alias="AuthenticationResult")


def parse_payload(schema: Type[M], payload: Mapping[str, Any], provider: str) -> M:
    """Validate ``payload`` against ``schema`` or fail with a terminal error."""
    try:
        return schema.model_validate(payload)
    except PydanticValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise ProviderError(
            provider,
            f"unrecognised {schema.__name__} payload ({location}: {first.get('msg', 'invalid')})",
        ) from e
