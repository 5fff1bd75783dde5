"""YAML discovery files: a case, its subject and its sources in one document.

Example:
    case:
      id: case-001
      tenant_id: acme
      user_id: dpo-1
      subject:
        full_name: Jane Doe
        email: jane.doe@example.com
    config:
      detection:
        content_mode: CONTENT_SCAN
    sources:
      - id: crm
        provider: SALESFORCE
        name: CRM
        connector: static
        config:
          records:
            - title: Support ticket
              content: "Customer phone +49 30 1234567"

"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from waivern_dsar.config import DiscoveryConfig
from waivern_dsar.connectors.base import SourceDefinition
from waivern_dsar.connectors.registry import ConnectorRegistry
from waivern_dsar.connectors.static import StaticRecordsConnector
from waivern_dsar.connectors.stubs import StubConnector
from waivern_dsar.errors import ConfigurationError
from waivern_dsar.identity.models import DataSubject
from waivern_dsar.orchestration.models import CaseRecord, DiscoveryRunContext
from waivern_dsar.orchestration.sinks import InMemoryCaseRepository


class ConnectorKind(Enum):
    """Connector backing a source in a discovery file."""

    STATIC = "static"
    STUB = "stub"
    NONE = "none"


class DiscoveryCase(BaseModel):
    """Case section of a discovery file."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(min_length=1)
    tenant_id: str = Field(default="default", min_length=1)
    user_id: str = Field(default="cli", min_length=1)
    subject: DataSubject | None = None


class DiscoverySource(BaseModel):
    """Source section of a discovery file."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(min_length=1)
    provider: str = Field(min_length=1)
    name: str | None = None
    enabled: bool = True
    connector: ConnectorKind = ConnectorKind.STATIC
    config: dict[str, Any] = Field(default_factory=dict)
    scope: dict[str, Any] = Field(default_factory=dict)
    secret_ref: str | None = None

    def to_definition(self) -> SourceDefinition:
        """Convert to the source definition used by the orchestrator."""
        return SourceDefinition(
            id=self.id,
            provider=self.provider.upper(),
            name=self.name or self.id,
            enabled=self.enabled,
            config=self.config,
            scope=self.scope,
            secret_ref=self.secret_ref,
        )


class DiscoveryFile(BaseModel):
    """A complete discovery file."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    case: DiscoveryCase
    config: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    sources: list[DiscoverySource] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_unique_source_ids(self) -> Self:
        """Ensure source ids are unique."""
        ids = [s.id for s in self.sources]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate source ids: {', '.join(duplicates)}")
        return self

    @model_validator(mode="after")
    def validate_one_connector_per_provider(self) -> Self:
        """Ensure sources of the same provider use the same connector kind."""
        kinds: dict[str, ConnectorKind] = {}
        for source in self.sources:
            provider = source.provider.upper()
            if kinds.setdefault(provider, source.connector) != source.connector:
                raise ValueError(
                    f"Sources of provider '{provider}' use different connector kinds"
                )
        return self

    def context(self, run_id: str | None = None) -> DiscoveryRunContext:
        """Build the run context for this file."""
        ids: dict[str, Any] = {
            "case_id": self.case.id,
            "tenant_id": self.case.tenant_id,
            "user_id": self.case.user_id,
        }
        if run_id is not None:
            ids["run_id"] = run_id
        return DiscoveryRunContext(**ids)

    def case_repository(self) -> InMemoryCaseRepository:
        """Repository holding this file's case and sources."""
        return InMemoryCaseRepository(
            cases=[
                CaseRecord(
                    id=self.case.id,
                    tenant_id=self.case.tenant_id,
                    subject=self.case.subject,
                )
            ],
            sources=[s.to_definition() for s in self.sources],
        )

    def connector_registry(self, base_dir: Path | None = None) -> ConnectorRegistry:
        """Registry with one connector per provider used by this file.

        Args:
            base_dir: Directory that relative document paths are resolved against

        """
        registry = ConnectorRegistry()
        for source in self.sources:
            provider = source.provider.upper()
            if provider in registry.providers:
                continue
            match source.connector:
                case ConnectorKind.STATIC:
                    registry.register(
                        StaticRecordsConnector(provider, base_dir=base_dir), provider
                    )
                case ConnectorKind.STUB:
                    registry.register(StubConnector(provider), provider)
                case ConnectorKind.NONE:
                    pass
        return registry


def load_discovery_file(path: Path) -> DiscoveryFile:
    """Parse and validate a discovery file.

    Args:
        path: Path to the YAML file

    Returns:
        The validated discovery file.

    Raises:
        ConfigurationError: If the file cannot be read, is not valid YAML,
            or does not describe a valid discovery run.

    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Discovery file not found: {path}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read discovery file {path}: {e}") from e

    return parse_discovery_file(data)


def parse_discovery_file(data: Any) -> DiscoveryFile:  # noqa: ANN401
    """Validate an already-loaded discovery document.

    Raises:
        ConfigurationError: If the document is invalid.

    """
    if not isinstance(data, dict):
        raise ConfigurationError("Discovery file must contain a mapping")
    try:
        return DiscoveryFile.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid discovery file ({e.error_count()} error(s)): "
            + "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in e.errors()
            )
        ) from e
