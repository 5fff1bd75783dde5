"""Connectors for providers that are registered but not yet implemented."""

from __future__ import annotations

import logging
from typing import Any, override

from waivern_dsar.connectors.base import CollectionResult, Connector
from waivern_dsar.connectors.query_spec import QuerySpec

logger = logging.getLogger(__name__)

STUB_PROVIDERS = (
    "GOOGLE_WORKSPACE",
    "SALESFORCE",
    "SERVICENOW",
    "ATLASSIAN_JIRA",
    "ATLASSIAN_CONFLUENCE",
    "WORKDAY",
    "SAP_SUCCESSFACTORS",
    "OKTA",
    "AWS",
    "AZURE",
    "GCP",
)


class StubConnector(Connector):
    """Connector placeholder that always reports an unsuccessful collection."""

    def __init__(self, provider: str) -> None:
        """Initialise the stub for a provider."""
        self._provider = provider

    @classmethod
    @override
    def get_name(cls) -> str:
        """Return the connector name."""
        return "stub"

    @property
    def provider(self) -> str:
        """Provider this stub stands in for."""
        return self._provider

    @override
    def collect_data(
        self,
        config: dict[str, Any],
        secret_ref: str | None,
        query_spec: QuerySpec,
    ) -> CollectionResult:
        """Report that the provider is not implemented."""
        logger.info(f"Stub connector invoked for provider {self._provider}")
        return CollectionResult(
            success=False,
            error=f"Provider not yet implemented: {self._provider}",
            findings_summary=f"{self._provider} collection is not available.",
        )
