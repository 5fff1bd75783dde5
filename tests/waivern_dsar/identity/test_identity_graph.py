"""Tests for identity graph building and merging."""

import pytest

from waivern_dsar.connectors.query_spec import QueryIdentifierType
from waivern_dsar.identity.graph import (
    CASE_DATA_CONFIDENCE,
    CASE_DATA_SOURCE,
    CORROBORATION_BOOST,
    add_resolved_system,
    build_initial_identity_graph,
    build_subject_identifiers,
    calculate_confidence,
    empty_identity_graph,
    merge_identifiers,
)
from waivern_dsar.identity.models import (
    DataSubject,
    IdentifierCandidate,
    IdentifierType,
    IdentityGraph,
    PrimaryIdentifierType,
)


def _candidate(
    identifier_type: IdentifierType, value: str, confidence: float
) -> IdentifierCandidate:
    return IdentifierCandidate(type=identifier_type, value=value, confidence=confidence)


@pytest.fixture
def graph(subject: DataSubject) -> IdentityGraph:
    """Initial graph for the default test subject."""
    return build_initial_identity_graph(subject)


class TestBuildInitialIdentityGraph:
    """Tests for build_initial_identity_graph."""

    def test_email_is_primary(self, graph: IdentityGraph) -> None:
        """A valid email becomes the primary identifier."""
        assert graph.primary_identifier_type is PrimaryIdentifierType.EMAIL
        assert graph.primary_identifier_value == "jane.doe@example.com"
        assert graph.display_name == "Jane Doe"

    def test_case_fields_become_identifiers(self, graph: IdentityGraph) -> None:
        """Email, phone, name and custom identifiers are recorded from case data."""
        types = {entry.type for entry in graph.alternate_identifiers}
        assert types == {
            IdentifierType.EMAIL,
            IdentifierType.PHONE,
            IdentifierType.NAME,
            IdentifierType.EMPLOYEE_ID,
        }
        assert all(e.source == CASE_DATA_SOURCE for e in graph.alternate_identifiers)
        assert all(e.confidence == CASE_DATA_CONFIDENCE for e in graph.alternate_identifiers)
        assert graph.confidence_score == calculate_confidence(graph)

    def test_phone_is_primary_without_valid_email(self) -> None:
        """An invalid email falls back to the phone number."""
        graph = build_initial_identity_graph(
            DataSubject(full_name="Max Muster", email="not-an-email", phone="+43 1 234567")
        )
        assert graph.primary_identifier_type is PrimaryIdentifierType.PHONE
        assert graph.primary_identifier_value == "+43 1 234567"

    def test_name_is_primary_as_last_resort(self) -> None:
        """Without email or phone the full name is used."""
        graph = build_initial_identity_graph(DataSubject(full_name="Max Muster"))
        assert graph.primary_identifier_type is PrimaryIdentifierType.OTHER
        assert graph.primary_identifier_value == "Max Muster"

    def test_unknown_identifier_keys_are_custom(self) -> None:
        """Free-form keys without a known meaning are kept as custom."""
        graph = build_initial_identity_graph(
            DataSubject(full_name="Max", identifiers={"badge": "B-1", "empty": " "})
        )
        custom = [e for e in graph.alternate_identifiers if e.type is IdentifierType.CUSTOM]
        assert [e.value for e in custom] == ["B-1"]


class TestMergeIdentifiers:
    """Tests for merge_identifiers."""

    def test_new_identifier_is_appended_with_source(self, graph: IdentityGraph) -> None:
        """Unknown identifiers are added."""
        merged = merge_identifiers(
            graph,
            [_candidate(IdentifierType.UPN, "jdoe@corp.example", 0.8)],
            source="M365",
        )
        entry = merged.find(IdentifierType.UPN, "jdoe@corp.example")
        assert entry is not None
        assert entry.source == "M365"
        assert len(merged.alternate_identifiers) == len(graph.alternate_identifiers) + 1

    def test_duplicate_never_adds_entry_and_keeps_max_confidence(
        self, graph: IdentityGraph
    ) -> None:
        """A known value in different case is merged, boosted once corroborated."""
        merged = merge_identifiers(
            graph,
            [_candidate(IdentifierType.EMAIL, "JANE.DOE@example.com ", 0.7)],
            source="SALESFORCE",
        )
        assert len(merged.alternate_identifiers) == len(graph.alternate_identifiers)
        entry = merged.find(IdentifierType.EMAIL, "jane.doe@example.com")
        assert entry is not None
        assert entry.confidence == pytest.approx(CASE_DATA_CONFIDENCE + CORROBORATION_BOOST)
        assert entry.source == CASE_DATA_SOURCE

    def test_same_source_does_not_corroborate(self, graph: IdentityGraph) -> None:
        """Repeating an identifier from the same source does not boost it."""
        candidate = _candidate(IdentifierType.UPN, "jdoe", 0.6)
        once = merge_identifiers(graph, [candidate], source="M365")
        twice = merge_identifiers(once, [candidate], source="M365")
        entry = twice.find(IdentifierType.UPN, "jdoe")
        assert entry is not None
        assert entry.confidence == 0.6
        assert twice == once

    def test_confidence_is_capped(self, graph: IdentityGraph) -> None:
        """Corroboration never pushes confidence above 1.0."""
        candidate = _candidate(IdentifierType.EMAIL, "jane.doe@example.com", 1.0)
        merged = merge_identifiers(graph, [candidate], source="M365")
        entry = merged.find(IdentifierType.EMAIL, "jane.doe@example.com")
        assert entry is not None
        assert entry.confidence == 1.0

    def test_below_threshold_is_ignored(self, graph: IdentityGraph) -> None:
        """Low confidence candidates leave the graph unchanged."""
        merged = merge_identifiers(
            graph,
            [_candidate(IdentifierType.PHONE, "+1 555 0100", 0.05)],
            source="SLACK",
        )
        assert merged == graph

    def test_minimum_applies_only_to_new_entries(self, graph: IdentityGraph) -> None:
        """Known identifiers are corroborated even below the minimum for new ones."""
        merged = merge_identifiers(
            graph,
            [
                _candidate(IdentifierType.EMAIL, "jane.doe@example.com", 0.6),
                _candidate(IdentifierType.UPN, "jdoe@corp.example", 0.6),
            ],
            source="SALESFORCE",
            minimum_confidence=0.7,
        )
        entry = merged.find(IdentifierType.EMAIL, "jane.doe@example.com")
        assert entry is not None
        assert entry.confidence == pytest.approx(CASE_DATA_CONFIDENCE + CORROBORATION_BOOST)
        assert merged.find(IdentifierType.UPN, "jdoe@corp.example") is None

    def test_input_graph_is_not_modified(self, graph: IdentityGraph) -> None:
        """Merging returns a new graph."""
        before = graph.model_dump()
        merge_identifiers(
            graph,
            [_candidate(IdentifierType.UPN, "jdoe", 0.9)],
            source="M365",
        )
        assert graph.model_dump() == before


class TestAddResolvedSystem:
    """Tests for add_resolved_system."""

    def test_records_provider_account(self, graph: IdentityGraph) -> None:
        """The account is stored as PROVIDER:account."""
        updated = add_resolved_system(graph, "SALESFORCE", "003XYZ")
        entry = updated.find(IdentifierType.SYSTEM_ACCOUNT, "SALESFORCE:003XYZ")
        assert entry is not None
        assert entry.source == "SALESFORCE"
        assert "SALESFORCE" in updated.sources

    def test_same_account_is_not_duplicated(self, graph: IdentityGraph) -> None:
        """Resolving an account again keeps one entry with the higher confidence."""
        updated = add_resolved_system(
            add_resolved_system(graph, "SALESFORCE", "003XYZ", confidence=0.5),
            "SALESFORCE",
            "003XYZ",
            confidence=0.7,
        )
        accounts = [
            e for e in updated.alternate_identifiers if e.type is IdentifierType.SYSTEM_ACCOUNT
        ]
        assert len(accounts) == 1
        assert accounts[0].confidence == 0.7


class TestCalculateConfidence:
    """Tests for calculate_confidence."""

    def test_empty_graph_scores_zero(self) -> None:
        """A graph with nothing in it has no confidence."""
        assert calculate_confidence(empty_identity_graph()) == 0

    def test_primary_only_scores_fifty(self) -> None:
        """A primary value without alternates gives a neutral score."""
        graph = IdentityGraph(primary_identifier_value="x@example.com")
        assert calculate_confidence(graph) == 50

    def test_additional_sources_add_bonus(self, graph: IdentityGraph) -> None:
        """Identifiers from more sources raise the score."""
        merged = merge_identifiers(
            graph,
            [_candidate(IdentifierType.UPN, "jdoe", 0.9)],
            source="M365",
        )
        assert merged.confidence_score > graph.confidence_score


class TestBuildSubjectIdentifiers:
    """Tests for build_subject_identifiers."""

    def test_primary_first_and_alternatives_sorted(self, graph: IdentityGraph) -> None:
        """The primary is separate and alternatives are ordered by confidence."""
        merged = merge_identifiers(
            graph,
            [_candidate(IdentifierType.UPN, "jdoe", 0.95)],
            source="M365",
        )
        identifiers = build_subject_identifiers(merged)

        assert identifiers.primary.type is QueryIdentifierType.EMAIL
        assert identifiers.primary.value == "jane.doe@example.com"
        values = [i.value for i in identifiers.alternatives]
        assert "jane.doe@example.com" not in values
        assert values[0] == "jdoe"

    def test_name_primary_is_queried_as_name(self) -> None:
        """A name-only subject is searched by name."""
        identifiers = build_subject_identifiers(
            build_initial_identity_graph(DataSubject(full_name="Max Muster"))
        )
        assert identifiers.primary.type is QueryIdentifierType.NAME
        assert identifiers.alternatives == []
