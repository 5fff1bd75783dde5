"""Building and merging identity graphs.

All functions are pure: they return new graphs and never modify their input.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any

from waivern_dsar.connectors.query_spec import (
    QueryIdentifier,
    QueryIdentifierType,
    SubjectIdentifiers,
)
from waivern_dsar.identity.models import (
    AlternateIdentifier,
    DataSubject,
    IdentifierCandidate,
    IdentifierType,
    IdentityGraph,
    PrimaryIdentifierType,
    normalise_identifier_value,
)

logger = logging.getLogger(__name__)

CASE_DATA_CONFIDENCE = 0.90
DISCOVERY_CONFIDENCE = 0.80
RESOLVED_SYSTEM_CONFIDENCE = 0.85
MIN_CONFIDENCE_THRESHOLD = 0.1
CORROBORATION_MIN_CONFIDENCE = 0.5
CORROBORATION_BOOST = 0.05
SOURCE_BONUS_PER_SOURCE = 0.03
MAX_SOURCE_BONUS = 0.10
CASE_DATA_SOURCE = "case_data"

_EMAIL = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")

# Keys of the free-form case identifier map and the type they denote
IDENTIFIER_KEY_TYPES: dict[str, IdentifierType] = {
    "upn": IdentifierType.UPN,
    "userPrincipalName": IdentifierType.UPN,
    "objectId": IdentifierType.OBJECT_ID,
    "object_id": IdentifierType.OBJECT_ID,
    "entraId": IdentifierType.OBJECT_ID,
    "employeeId": IdentifierType.EMPLOYEE_ID,
    "employee_id": IdentifierType.EMPLOYEE_ID,
    "staffId": IdentifierType.EMPLOYEE_ID,
    "email": IdentifierType.EMAIL,
    "secondaryEmail": IdentifierType.EMAIL,
    "alternateEmail": IdentifierType.EMAIL,
    "phone": IdentifierType.PHONE,
    "mobile": IdentifierType.PHONE,
    "mobilePhone": IdentifierType.PHONE,
    "customerId": IdentifierType.CUSTOMER_ID,
    "customer_id": IdentifierType.CUSTOMER_ID,
    "iban": IdentifierType.IBAN,
}

# Weight of each identifier type in the aggregate confidence score
TYPE_WEIGHTS: dict[IdentifierType, float] = {
    IdentifierType.EMAIL: 1.0,
    IdentifierType.UPN: 1.0,
    IdentifierType.OBJECT_ID: 0.9,
    IdentifierType.EMPLOYEE_ID: 0.85,
    IdentifierType.CUSTOMER_ID: 0.85,
    IdentifierType.PHONE: 0.7,
    IdentifierType.IBAN: 0.7,
    IdentifierType.SYSTEM_ACCOUNT: 0.6,
    IdentifierType.NAME: 0.5,
    IdentifierType.ADDRESS: 0.4,
    IdentifierType.CUSTOM: 0.4,
}

_QUERY_TYPES: dict[IdentifierType, QueryIdentifierType] = {
    IdentifierType.EMAIL: QueryIdentifierType.EMAIL,
    IdentifierType.UPN: QueryIdentifierType.UPN,
    IdentifierType.OBJECT_ID: QueryIdentifierType.OBJECT_ID,
    IdentifierType.NAME: QueryIdentifierType.NAME,
    IdentifierType.EMPLOYEE_ID: QueryIdentifierType.EMPLOYEE_ID,
    IdentifierType.PHONE: QueryIdentifierType.PHONE,
}

_PRIMARY_QUERY_TYPES: dict[PrimaryIdentifierType, QueryIdentifierType] = {
    PrimaryIdentifierType.EMAIL: QueryIdentifierType.EMAIL,
    PrimaryIdentifierType.UPN: QueryIdentifierType.UPN,
    PrimaryIdentifierType.OBJECT_ID: QueryIdentifierType.OBJECT_ID,
    PrimaryIdentifierType.EMPLOYEE_ID: QueryIdentifierType.EMPLOYEE_ID,
    PrimaryIdentifierType.PHONE: QueryIdentifierType.PHONE,
    PrimaryIdentifierType.OTHER: QueryIdentifierType.NAME,
}


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))


def is_valid_email(value: str | None) -> bool:
    """Check whether a value is a syntactically valid email address."""
    return value is not None and _EMAIL.match(value.strip()) is not None


def empty_identity_graph() -> IdentityGraph:
    """Return the graph reported for runs that never resolved a subject."""
    return IdentityGraph()


def build_initial_identity_graph(subject: DataSubject) -> IdentityGraph:
    """Build the starting graph for a run from the case's subject fields.

    The primary identifier is a valid email when present, else the phone
    number, else the full name. Every case field also becomes an alternate
    identifier with case-data confidence.

    Args:
        subject: Subject fields recorded on the case

    Returns:
        The initial identity graph.

    """
    email = (subject.email or "").strip()
    phone = (subject.phone or "").strip()
    full_name = subject.full_name.strip()

    if is_valid_email(email):
        primary_type, primary_value = PrimaryIdentifierType.EMAIL, email
    elif phone:
        primary_type, primary_value = PrimaryIdentifierType.PHONE, phone
    else:
        primary_type, primary_value = PrimaryIdentifierType.OTHER, full_name

    entries: list[AlternateIdentifier] = []
    for identifier_type, value in (
        (IdentifierType.EMAIL, email),
        (IdentifierType.PHONE, phone),
        (IdentifierType.NAME, full_name),
        (IdentifierType.ADDRESS, (subject.address or "").strip()),
    ):
        if value:
            entries.append(_case_entry(identifier_type, value))

    seen = {entry.key for entry in entries}
    for entry in _extract_custom_identifiers(subject.identifiers):
        if entry.key not in seen:
            seen.add(entry.key)
            entries.append(entry)

    graph = IdentityGraph(
        display_name=full_name,
        primary_identifier_type=primary_type,
        primary_identifier_value=primary_value,
        alternate_identifiers=tuple(entries),
    )
    return graph.model_copy(update={"confidence_score": calculate_confidence(graph)})


def merge_identifiers(
    graph: IdentityGraph,
    candidates: Iterable[IdentifierCandidate],
    source: str,
    minimum_confidence: float = MIN_CONFIDENCE_THRESHOLD,
) -> IdentityGraph:
    """Merge newly discovered identifiers into a graph.

    A candidate with the same (type, normalised value) as an existing entry
    never adds a new entry, whatever its confidence: the existing confidence
    becomes the higher of the two, plus a small boost capped at 1.0 when a
    different source corroborates it with at least moderate confidence.
    Other candidates are appended when they reach the minimum confidence.

    Args:
        graph: The current graph, left untouched
        candidates: Identifiers to merge
        source: Label of the source that discovered the candidates
        minimum_confidence: Lowest confidence at which a new entry is appended

    Returns:
        A new graph with a recalculated confidence score.

    """
    merged = list(graph.alternate_identifiers)
    index = {entry.key: position for position, entry in enumerate(merged)}

    for candidate in candidates:
        confidence = _clamp(candidate.confidence)
        incoming = AlternateIdentifier(
            type=candidate.type,
            value=candidate.value,
            confidence=confidence,
            source=source,
        )
        position = index.get(incoming.key)
        if position is None:
            if confidence < minimum_confidence:
                continue
            index[incoming.key] = len(merged)
            merged.append(incoming)
            continue

        existing = merged[position]
        updated = max(existing.confidence, confidence)
        if existing.source != source and confidence >= CORROBORATION_MIN_CONFIDENCE:
            updated = _clamp(updated + CORROBORATION_BOOST)
        merged[position] = existing.model_copy(
            update={
                "confidence": round(updated, 4),
                "source": source if confidence > existing.confidence else existing.source,
            }
        )

    return _with_identifiers(graph, merged)


def add_resolved_system(
    graph: IdentityGraph,
    provider: str,
    account_id: str,
    confidence: float = RESOLVED_SYSTEM_CONFIDENCE,
) -> IdentityGraph:
    """Record that the subject has an account in an external system.

    The account is stored as a ``system_account`` identifier with value
    ``"PROVIDER:account"``. An existing entry keeps the higher confidence.

    Args:
        graph: The current graph, left untouched
        provider: Provider of the external system
        account_id: Opaque account identifier within that system
        confidence: Confidence that the account belongs to the subject

    Returns:
        A new graph with a recalculated confidence score.

    """
    system = AlternateIdentifier(
        type=IdentifierType.SYSTEM_ACCOUNT,
        value=f"{provider}:{account_id}",
        confidence=_clamp(confidence),
        source=provider,
    )
    identifiers = list(graph.alternate_identifiers)
    for position, existing in enumerate(identifiers):
        if existing.key == system.key:
            identifiers[position] = existing.model_copy(
                update={
                    "confidence": max(existing.confidence, system.confidence),
                    "source": system.source,
                }
            )
            break
    else:
        identifiers.append(system)

    return _with_identifiers(graph, identifiers)


def calculate_confidence(graph: IdentityGraph) -> int:
    """Compute the aggregate confidence score (0-100) of a graph.

    The score is the type-weighted mean of identifier confidences plus a
    bonus for every additional distinct source, capped.
    """
    entries = graph.alternate_identifiers
    if not entries:
        return 50 if graph.primary_identifier_value else 0

    weighted_sum = 0.0
    total_weight = 0.0
    for entry in entries:
        weight = TYPE_WEIGHTS.get(entry.type, TYPE_WEIGHTS[IdentifierType.CUSTOM])
        weighted_sum += entry.confidence * weight
        total_weight += weight

    base = weighted_sum / total_weight if total_weight else 0.0
    bonus = min(MAX_SOURCE_BONUS, max(0, len(graph.sources) - 1) * SOURCE_BONUS_PER_SOURCE)
    return round(_clamp(base + bonus) * 100)


def build_subject_identifiers(graph: IdentityGraph) -> SubjectIdentifiers:
    """Derive the identifiers a connector should search for.

    The primary identifier comes first. Alternatives exclude the primary
    value and entries below the minimum confidence, sorted by confidence
    descending. Types without a query counterpart are sent as ``custom``.
    """
    primary = QueryIdentifier(
        type=_PRIMARY_QUERY_TYPES.get(
            graph.primary_identifier_type, QueryIdentifierType.CUSTOM
        ),
        value=graph.primary_identifier_value or graph.display_name or "unknown",
    )

    primary_normalised = normalise_identifier_value(graph.primary_identifier_value)
    eligible = [
        entry
        for entry in graph.alternate_identifiers
        if normalise_identifier_value(entry.value) != primary_normalised
        and entry.confidence >= MIN_CONFIDENCE_THRESHOLD
    ]
    eligible.sort(key=lambda entry: entry.confidence, reverse=True)

    alternatives = [
        QueryIdentifier(
            type=_QUERY_TYPES.get(entry.type, QueryIdentifierType.CUSTOM),
            value=entry.value,
        )
        for entry in eligible
    ]
    return SubjectIdentifiers(primary=primary, alternatives=alternatives)


def _case_entry(identifier_type: IdentifierType, value: str) -> AlternateIdentifier:
    return AlternateIdentifier(
        type=identifier_type,
        value=value,
        confidence=CASE_DATA_CONFIDENCE,
        source=CASE_DATA_SOURCE,
    )


def _extract_custom_identifiers(
    identifiers: Mapping[str, Any],
) -> list[AlternateIdentifier]:
    entries: list[AlternateIdentifier] = []
    for key, raw in identifiers.items():
        if raw is None:
            continue
        value = str(raw).strip()
        if not value:
            continue
        identifier_type = IDENTIFIER_KEY_TYPES.get(key, IdentifierType.CUSTOM)
        entries.append(_case_entry(identifier_type, value))
    return entries


def _with_identifiers(
    graph: IdentityGraph, identifiers: list[AlternateIdentifier]
) -> IdentityGraph:
    updated = graph.model_copy(update={"alternate_identifiers": tuple(identifiers)})
    return updated.model_copy(update={"confidence_score": calculate_confidence(updated)})
