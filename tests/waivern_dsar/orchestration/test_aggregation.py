"""Tests for finding aggregation."""

import itertools

from waivern_dsar.categories import DataCategory, Severity
from waivern_dsar.detection.models import DetectedCategory, DetectionResult, DetectorType
from waivern_dsar.orchestration.aggregation import Contribution, aggregate_findings
from waivern_dsar.orchestration.models import EvidenceItem, Finding

RUN_ID = "run-1"


def _contribution(evidence_id: str, **categories: float) -> Contribution:
    result = DetectionResult(
        detector_type=DetectorType.REGEX,
        detected_categories=tuple(
            DetectedCategory.of(DataCategory[name], confidence)
            for name, confidence in categories.items()
        ),
    )
    return Contribution(evidence_item_id=evidence_id, results=(result,))


CONTRIBUTIONS = [
    _contribution("ev-1", CONTACT=0.6, HEALTH=0.7),
    _contribution("ev-2", CONTACT=0.9, PAYMENT=0.85),
    _contribution("ev-3", HR=0.4),
]


class TestAggregateFindings:
    """Tests for aggregate_findings."""

    def test_one_finding_per_category_with_max_confidence_and_union(self) -> None:
        """Confidence is the maximum and evidence ids the union."""
        findings = {f.data_category: f for f in aggregate_findings(CONTRIBUTIONS, RUN_ID)}

        assert set(findings) == {
            DataCategory.CONTACT,
            DataCategory.HEALTH,
            DataCategory.PAYMENT,
            DataCategory.HR,
        }
        assert findings[DataCategory.CONTACT].confidence == 0.9
        assert findings[DataCategory.CONTACT].evidence_item_ids == ("ev-1", "ev-2")

    def test_severity_and_legal_review_follow_category(self) -> None:
        """Special categories are critical and need legal review."""
        findings = {f.data_category: f for f in aggregate_findings(CONTRIBUTIONS, RUN_ID)}

        assert findings[DataCategory.HEALTH].severity is Severity.CRITICAL
        assert findings[DataCategory.HEALTH].requires_legal_review is True
        assert findings[DataCategory.PAYMENT].severity is Severity.WARNING
        assert findings[DataCategory.CONTACT].severity is Severity.INFO
        assert findings[DataCategory.CONTACT].requires_legal_review is False

    def test_findings_ordered_by_severity_then_category(self) -> None:
        """Most severe findings come first."""
        findings = aggregate_findings(CONTRIBUTIONS, RUN_ID)
        assert [f.data_category for f in findings] == [
            DataCategory.HEALTH,
            DataCategory.HR,
            DataCategory.PAYMENT,
            DataCategory.CONTACT,
        ]

    def test_result_does_not_depend_on_contribution_order(self) -> None:
        """Every permutation of contributions gives the same findings."""
        expected = aggregate_findings(CONTRIBUTIONS, RUN_ID)
        for permutation in itertools.permutations(CONTRIBUTIONS):
            assert aggregate_findings(permutation, RUN_ID) == expected

    def test_ids_are_deterministic_per_run_and_category(self) -> None:
        """Finding ids depend only on run id and category."""
        [finding] = aggregate_findings([_contribution("ev-1", CONTACT=0.5)], RUN_ID)
        assert finding.id == Finding.deterministic_id(RUN_ID, DataCategory.CONTACT)
        assert finding.id != Finding.deterministic_id("run-2", DataCategory.CONTACT)

    def test_no_contributions_yield_no_findings(self) -> None:
        """An empty run has no findings."""
        assert aggregate_findings([], RUN_ID) == ()


def test_contribution_from_evidence_item() -> None:
    """Evidence items contribute their own detection results."""
    item = EvidenceItem(
        source_id="crm",
        provider="STATIC",
        location="STATIC:crm",
        detection_results=_contribution("unused", UNION=0.6).results,
    )
    contribution = Contribution.from_evidence(item)
    assert contribution.evidence_item_id == item.id
    assert item.categories == {DataCategory.UNION: 0.6}
