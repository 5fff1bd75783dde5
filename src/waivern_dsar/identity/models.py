"""Identity graph data models."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class IdentifierType(Enum):
    """Kinds of identifiers tracked for a data subject."""

    EMAIL = "email"
    PHONE = "phone"
    NAME = "name"
    EMPLOYEE_ID = "employeeId"
    UPN = "upn"
    OBJECT_ID = "objectId"
    CUSTOMER_ID = "customerId"
    IBAN = "iban"
    ADDRESS = "address"
    SYSTEM_ACCOUNT = "system_account"
    CUSTOM = "custom"


class PrimaryIdentifierType(Enum):
    """Kinds of identifiers that can act as the primary identifier."""

    EMAIL = "EMAIL"
    UPN = "UPN"
    OBJECT_ID = "OBJECT_ID"
    CUSTOMER_ID = "CUSTOMER_ID"
    EMPLOYEE_ID = "EMPLOYEE_ID"
    PHONE = "PHONE"
    IBAN = "IBAN"
    OTHER = "OTHER"


def normalise_identifier_value(value: str) -> str:
    """Normalise a value for identity comparison."""
    return value.strip().lower()


class IdentifierCandidate(BaseModel):
    """An identifier proposed for merging, before a source label is applied."""

    model_config = ConfigDict(frozen=True)

    type: IdentifierType
    value: str = Field(min_length=1)
    confidence: float

    @field_validator("value")
    @classmethod
    def strip_value(cls, value: str) -> str:
        """Strip surrounding whitespace from the value."""
        stripped = value.strip()
        if not stripped:
            raise ValueError("Identifier value cannot be blank")
        return stripped


class AlternateIdentifier(BaseModel):
    """A known identifier with its confidence and provenance."""

    model_config = ConfigDict(frozen=True)

    type: IdentifierType
    value: str = Field(min_length=1)
    confidence: float = Field(ge=0.0, le=1.0)
    source: str = Field(min_length=1, description="Provider name or 'case_data'")

    @property
    def key(self) -> tuple[IdentifierType, str]:
        """Identity of this entry: type plus normalised value."""
        return (self.type, normalise_identifier_value(self.value))


class IdentityGraph(BaseModel):
    """Immutable snapshot of everything known about a subject's identity.

    Every merge produces a new graph; a graph is never modified in place.
    """

    model_config = ConfigDict(frozen=True)

    display_name: str = ""
    primary_identifier_type: PrimaryIdentifierType = PrimaryIdentifierType.OTHER
    primary_identifier_value: str = ""
    alternate_identifiers: tuple[AlternateIdentifier, ...] = ()
    confidence_score: int = Field(default=0, ge=0, le=100)

    def find(self, type: IdentifierType, value: str) -> AlternateIdentifier | None:
        """Look up an identifier by type and value."""
        wanted = (type, normalise_identifier_value(value))
        return next((e for e in self.alternate_identifiers if e.key == wanted), None)

    @property
    def sources(self) -> set[str]:
        """Distinct sources that contributed identifiers."""
        return {entry.source for entry in self.alternate_identifiers}


class DataSubject(BaseModel):
    """Subject fields recorded on a case."""

    model_config = ConfigDict(frozen=True)

    full_name: str
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    identifiers: dict[str, Any] = Field(default_factory=dict)
