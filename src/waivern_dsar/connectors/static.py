"""Connector serving records declared in the source configuration.

Used by discovery files and tests to describe what a source "contains"
without talking to a real system.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, override

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from waivern_dsar.connectors.base import CollectionResult, Connector
from waivern_dsar.connectors.query_spec import QuerySpec
from waivern_dsar.identity.models import IdentifierCandidate

logger = logging.getLogger(__name__)


class StaticRecord(BaseModel):
    """One record held by a static source."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    title: str | None = None
    file_name: str | None = None
    mime_type: str | None = None
    content: str | None = None
    document_path: Path | None = None


class StaticSourceConfig(BaseModel):
    """Configuration of a static source."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    records: list[StaticRecord] = Field(default_factory=list)
    account_id: str | None = None
    identifiers: list[IdentifierCandidate] = Field(default_factory=list)
    error: str | None = Field(
        default=None, description="Report this error instead of collecting"
    )


class StaticRecordsConnector(Connector):
    """Returns the records configured for the source as one collection."""

    def __init__(self, provider: str = "STATIC", base_dir: Path | None = None) -> None:
        """Initialise the connector.

        Args:
            provider: Provider name this connector is registered under
            base_dir: Directory relative document paths are resolved against

        """
        self._provider = provider
        self._base_dir = base_dir or Path.cwd()

    @classmethod
    @override
    def get_name(cls) -> str:
        """Return the connector name."""
        return "STATIC"

    @override
    def collect_data(
        self,
        config: dict[str, Any],
        secret_ref: str | None,
        query_spec: QuerySpec,
    ) -> CollectionResult:
        """Return the configured records.

        Content is only returned when the query asks for it. Configuration
        and file errors are reported as unsuccessful collections.
        """
        try:
            source = StaticSourceConfig.model_validate(config)
        except ValidationError as e:
            return CollectionResult(
                success=False,
                error=f"Invalid static source configuration ({e.error_count()} error(s))",
            )

        if source.error:
            return CollectionResult(success=False, error=source.error)

        include_content = query_spec.output_options.mode == "include_content"
        records = source.records[: query_spec.output_options.max_items]

        first = records[0] if records else StaticRecord()
        file_name = first.file_name
        document: bytes | None = None
        document_path = next((r.document_path for r in records if r.document_path), None)
        if document_path is not None:
            file_name = document_path.name
            path = document_path
            if not path.is_absolute():
                path = self._base_dir / path
            try:
                document = path.read_bytes()
            except OSError as e:
                return CollectionResult(
                    success=False, error=f"Could not read document: {e.strerror}"
                )

        contents = [r.content for r in records if r.content] if include_content else []
        mime_types = sorted({r.mime_type for r in records if r.mime_type})

        logger.debug(f"Static source returned {len(records)} record(s)")
        return CollectionResult(
            success=True,
            records_found=len(records),
            result_metadata={"record_count": len(records), "mime_types": mime_types},
            findings_summary=f"Found {len(records)} record(s) in {self._provider}.",
            title=first.title,
            file_name=file_name,
            mime_type=first.mime_type,
            content="\n\n".join(contents) if contents else None,
            document=document,
            account_id=source.account_id,
            discovered_identifiers=tuple(source.identifiers),
        )
