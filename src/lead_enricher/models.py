"""Data models shared by the pipeline, the fetchers and the batch runner."""

import re
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, ClassVar, Dict, Iterable, List, Mapping, Optional, Union


class Stage(str, Enum):
    """Pipeline stages, in execution order."""
    NORMALIZE = "normalize"
    POSTAL_CODE = "postal_code"
    PHONE_DISCOVERY = "phone_discovery"
    LINE_TYPE = "line_type"
    GATEKEEP = "gatekeep"
    DNC = "dnc"
    AGE = "age"


# Input column aliases, compared after lowercasing and dropping spaces/_/-
_COLUMN_ALIASES: Dict[str, tuple] = {
    "name": ("name", "fullname", "personname", "contactname", "person"),
    "first_name": ("firstname", "fname", "givenname"),
    "last_name": ("lastname", "lname", "surname", "familyname"),
    "city": ("city", "town"),
    "state": ("state", "region", "province"),
    "postal_code": ("zip", "zipcode", "postalcode", "postcode"),
    "phone": ("phone", "phonenumber", "mobile", "telephone", "tel"),
    "email": ("email", "emailaddress"),
    "address": ("address", "address1", "addressline1", "street"),
    "source_id": ("id", "sourceid", "leadid"),
}


def _column_key(column: str) -> str:
    return re.sub(r"[\s_\-]+", "", str(column).lower())


def _cell_to_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    # Spreadsheet readers hand back whole numbers as floats
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class LeadRecord:
    """Identity and location known before enrichment. Never mutated."""

    name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    source_id: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "LeadRecord":
        """Build a record from an input row with loosely named columns."""
        by_key = {_column_key(column): value for column, value in row.items()}
        values: Dict[str, str] = {}
        for field_name, aliases in _COLUMN_ALIASES.items():
            for alias in aliases:
                text = _cell_to_str(by_key.get(alias))
                if text:
                    values[field_name] = text
                    break
        return cls(**values)

    def display_name(self) -> str:
        if self.name:
            return self.name
        return " ".join(filter(None, [self.first_name, self.last_name])).strip() or "(Unnamed Lead)"


@dataclass(frozen=True)
class StageError:
    """Non-fatal failure recorded against a result."""

    stage: Stage
    message: str
    retryable: bool = False
    provider: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage.value,
            "message": self.message,
            "retryable": self.retryable,
            "provider": self.provider,
        }


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


@dataclass
class EnrichmentResult:
    """Accumulated enrichment for one lead.

    Fields only ever go from absent to present. Use :meth:`merge` to apply a
    stage's contribution; it ignores empty values and keeps populated fields
    unless the caller explicitly allows a non-empty refinement.
    """

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    postal_code: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    line_type: Optional[str] = None
    carrier_name: Optional[str] = None
    carrier_type: Optional[str] = None
    person_id: Optional[str] = None
    age: Optional[int] = None
    date_of_birth: Optional[str] = None
    do_not_call: Optional[bool] = None
    dnc_reason: Optional[str] = None
    errors: List[StageError] = field(default_factory=list)
    skipped: Dict[str, str] = field(default_factory=dict)

    FIELDS: ClassVar[tuple] = (
        "first_name", "last_name", "city", "state", "phone", "email",
        "postal_code", "address_line1", "address_line2", "line_type",
        "carrier_name", "carrier_type", "person_id", "age", "date_of_birth",
        "do_not_call", "dnc_reason",
    )

    def merge(self, updates: Mapping[str, Any], refine: Iterable[str] = ()) -> List[str]:
        """Apply ``updates`` and return the names of fields that changed.

        Args:
            updates: Field values contributed by a stage.
            refine: Fields this stage may replace when already populated.
                Replacement still requires a non-empty value.
        """
        refinable = set(refine)
        changed: List[str] = []
        for name, value in updates.items():
            if name not in self.FIELDS:
                raise KeyError(f"Unknown enrichment field: {name}")
            if _is_empty(value):
                continue
            current = getattr(self, name)
            if not _is_empty(current) and (name not in refinable or current == value):
                continue
            setattr(self, name, value)
            changed.append(name)
        return changed

    def record_error(self, error: StageError) -> None:
        self.errors.append(error)

    @property
    def has_phone(self) -> bool:
        return not _is_empty(self.phone)

    @property
    def is_complete(self) -> bool:
        """Phone, age, state and postal code are all present."""
        return all(
            not _is_empty(value)
            for value in (self.phone, self.age, self.state, self.postal_code)
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {name: getattr(self, name) for name in self.FIELDS}
        data["errors"] = [error.to_dict() for error in self.errors]
        data["skipped"] = dict(self.skipped)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EnrichmentResult":
        result = cls(**{name: data.get(name) for name in cls.FIELDS})
        result.errors = [
            StageError(
                stage=Stage(item["stage"]),
                message=item["message"],
                retryable=bool(item.get("retryable")),
                provider=item.get("provider"),
            )
            for item in data.get("errors", [])
        ]
        result.skipped = dict(data.get("skipped", {}))
        return result


# --- Stage outcomes ---

class OutcomeKind(str, Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class Success:
    """Stage produced a (possibly empty) partial result."""

    fields: Dict[str, Any] = field(default_factory=dict)
    refine: tuple = ()
    kind: ClassVar[OutcomeKind] = OutcomeKind.SUCCESS


@dataclass(frozen=True)
class Skipped:
    reason: str
    kind: ClassVar[OutcomeKind] = OutcomeKind.SKIPPED


@dataclass(frozen=True)
class Failed:
    error: str
    retryable: bool = False
    provider: Optional[str] = None
    kind: ClassVar[OutcomeKind] = OutcomeKind.FAILED


StageOutcome = Union[Success, Skipped, Failed]


@dataclass(frozen=True)
class ProgressEvent:
    """One stage finished for one lead."""

    lead: str
    stage: Stage
    outcome: StageOutcome
    index: Optional[int] = None

    @property
    def kind(self) -> OutcomeKind:
        return self.outcome.kind

    @property
    def detail(self) -> str:
        if isinstance(self.outcome, Skipped):
            return self.outcome.reason
        if isinstance(self.outcome, Failed):
            return self.outcome.error
        return ", ".join(name for name, value in self.outcome.fields.items() if value is not None)


# --- Credentials ---

@dataclass(frozen=True)
class TokenCacheEntry:
    """A short-lived bearer credential and its validity window (epoch seconds)."""

    token: str
    issued_at: float
    expires_at: float

    def is_fresh(self, now: float, safety_margin: float = 0.0) -> bool:
        return now < self.expires_at - safety_margin


# --- Provider answers ---

@dataclass(frozen=True)
class PersonCandidate:
    """One profile returned by the people-search provider."""

    person_id: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address_line1: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    age: Optional[int] = None

    def as_fields(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("age")
        return data


@dataclass(frozen=True)
class PhoneIntel:
    line_type: Optional[str] = None
    carrier_name: Optional[str] = None
    carrier_type: Optional[str] = None


@dataclass(frozen=True)
class DncStatus:
    do_not_call: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class AgeInfo:
    age: Optional[int] = None
    date_of_birth: Optional[str] = None
