"""Connector interface, query specification and built-in connectors."""

from .base import CollectionResult, Connector, SourceDefinition
from .query_spec import (
    QueryIdentifier,
    QueryIdentifierType,
    QuerySpec,
    SubjectIdentifiers,
    build_query_spec,
    validate_query_spec,
)
from .registry import ConnectorRegistry
from .static import StaticRecordsConnector
from .stubs import STUB_PROVIDERS, StubConnector

__all__ = [
    "STUB_PROVIDERS",
    "CollectionResult",
    "Connector",
    "ConnectorRegistry",
    "QueryIdentifier",
    "QueryIdentifierType",
    "QuerySpec",
    "SourceDefinition",
    "StaticRecordsConnector",
    "StubConnector",
    "SubjectIdentifiers",
    "build_query_spec",
    "validate_query_spec",
]
