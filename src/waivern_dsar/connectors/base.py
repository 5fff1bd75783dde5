"""Base classes for connectors to external record systems.

This module provides:
- Connector: Abstract base class every connector implements
- CollectionResult: Normalised result of one collection call
- SourceDefinition: An enabled external source and its configuration
"""

from __future__ import annotations

import abc
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from waivern_dsar.connectors.query_spec import QuerySpec
from waivern_dsar.identity.models import IdentifierCandidate


class CollectionResult(BaseModel):
    """Normalised outcome of a connector call.

    Expected failures (authentication, no data, unsupported scope) are
    reported with ``success=False`` and an ``error`` message rather than
    raised.

    Attributes:
        success: Whether the collection succeeded
        records_found: Number of records found in the source
        result_metadata: Provider-specific structural metadata
        findings_summary: Human-readable summary of what was collected
        error: Error message when unsuccessful
        title: Title of the collected item, if any
        file_name: File name of a collected document, if any
        mime_type: MIME type of the collected item, if any
        content: Text content, only when the query asked for content
        document: Raw document bytes, if a document was collected
        account_id: Opaque id of the subject's account in the source
        discovered_identifiers: Identifiers the source resolved for the subject

    """

    model_config = ConfigDict(frozen=True)

    success: bool
    records_found: int = Field(default=0, ge=0)
    result_metadata: dict[str, Any] = Field(default_factory=dict)
    findings_summary: str = ""
    error: str | None = None
    title: str | None = None
    file_name: str | None = None
    mime_type: str | None = None
    content: str | None = None
    document: bytes | None = None
    account_id: str | None = None
    discovered_identifiers: tuple[IdentifierCandidate, ...] = ()


class SourceDefinition(BaseModel):
    """An external record system configured for a tenant."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    provider: str = Field(min_length=1)
    name: str = Field(min_length=1)
    enabled: bool = True
    config: dict[str, Any] = Field(default_factory=dict)
    secret_ref: str | None = None
    scope: dict[str, Any] = Field(default_factory=dict)

    @property
    def location(self) -> str:
        """Location label of evidence collected from this source."""
        return f"{self.provider}:{self.name}"


class Connector(abc.ABC):
    """Queries one kind of external record system for a data subject.

    Implementations must not raise for expected failure modes; those are
    reported through ``CollectionResult.success``. Unexpected faults may
    raise and are contained by the orchestrator.
    """

    @classmethod
    @abc.abstractmethod
    def get_name(cls) -> str:
        """Return the provider name this connector serves."""

    @abc.abstractmethod
    def collect_data(
        self,
        config: dict[str, Any],
        secret_ref: str | None,
        query_spec: QuerySpec,
    ) -> CollectionResult:
        """Collect the subject's data from the source.

        Args:
            config: Source-specific configuration
            secret_ref: Reference to the source's credentials, never the secret
            query_spec: What to search for

        Returns:
            The normalised collection result.

        """
