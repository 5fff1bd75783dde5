"""Identity graph for a data subject across systems."""

from .graph import (
    add_resolved_system,
    build_initial_identity_graph,
    build_subject_identifiers,
    calculate_confidence,
    empty_identity_graph,
    merge_identifiers,
)
from .models import (
    AlternateIdentifier,
    DataSubject,
    IdentifierCandidate,
    IdentifierType,
    IdentityGraph,
    PrimaryIdentifierType,
)

__all__ = [
    "AlternateIdentifier",
    "DataSubject",
    "IdentifierCandidate",
    "IdentifierType",
    "IdentityGraph",
    "PrimaryIdentifierType",
    "add_resolved_system",
    "build_initial_identity_graph",
    "build_subject_identifiers",
    "calculate_confidence",
    "empty_identity_graph",
    "merge_identifiers",
]
