"""Registry mapping provider names to connector instances."""

from __future__ import annotations

import logging

from waivern_dsar.connectors.base import Connector

logger = logging.getLogger(__name__)


class ConnectorRegistry:
    """Holds one connector per provider name."""

    def __init__(self) -> None:
        """Initialise an empty registry."""
        self._connectors: dict[str, Connector] = {}

    def register(self, connector: Connector, provider: str | None = None) -> None:
        """Register a connector.

        Args:
            connector: The connector instance
            provider: Provider name, defaults to the connector's own name

        Raises:
            ValueError: If a connector is already registered for the provider

        """
        name = (provider or connector.get_name()).upper()
        if name in self._connectors:
            raise ValueError(f"Connector already registered for provider: {name}")
        self._connectors[name] = connector
        logger.debug(f"Registered connector {type(connector).__name__} for {name}")

    def get(self, provider: str) -> Connector | None:
        """Return the connector for a provider, or None if none is registered."""
        return self._connectors.get(provider.upper())

    @property
    def providers(self) -> list[str]:
        """Registered provider names, sorted."""
        return sorted(self._connectors)
