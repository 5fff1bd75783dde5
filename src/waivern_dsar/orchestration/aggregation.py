"""Aggregation of per-source detections into category-level findings."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from waivern_dsar.categories import (
    SEVERITY_ORDER,
    DataCategory,
    is_special_category,
    severity_for,
)
from waivern_dsar.detection.models import DetectionResult
from waivern_dsar.orchestration.models import EvidenceItem, Finding


@dataclass(frozen=True)
class Contribution:
    """Detection results contributed by one evidence item."""

    evidence_item_id: str
    results: tuple[DetectionResult, ...]

    @classmethod
    def from_evidence(cls, item: EvidenceItem) -> Contribution:
        """Build the contribution of an evidence item."""
        return cls(evidence_item_id=item.id, results=item.detection_results)


@dataclass
class _CategoryAccumulator:
    confidence: float = 0.0
    evidence_item_ids: set[str] = field(default_factory=set)


def aggregate_findings(
    contributions: Iterable[Contribution], run_id: str
) -> tuple[Finding, ...]:
    """Fold detection results into one finding per observed category.

    The fold takes the maximum confidence and the union of evidence ids per
    category, so the outcome does not depend on the order of contributions.

    Args:
        contributions: Detection results grouped by evidence item
        run_id: Run the findings belong to, used for deterministic ids

    Returns:
        Findings ordered by severity (most severe first), then category.

    """
    observed: dict[DataCategory, _CategoryAccumulator] = {}
    for contribution in contributions:
        for result in contribution.results:
            for detected in result.detected_categories:
                accumulator = observed.setdefault(
                    detected.category, _CategoryAccumulator()
                )
                accumulator.confidence = max(accumulator.confidence, detected.confidence)
                accumulator.evidence_item_ids.add(contribution.evidence_item_id)

    findings = [
        _build_finding(run_id, category, accumulator)
        for category, accumulator in observed.items()
    ]
    findings.sort(key=lambda f: (SEVERITY_ORDER[f.severity], f.data_category.value))
    return tuple(findings)


def _build_finding(
    run_id: str, category: DataCategory, accumulator: _CategoryAccumulator
) -> Finding:
    special = is_special_category(category)
    return Finding(
        id=Finding.deterministic_id(run_id, category),
        data_category=category,
        severity=severity_for(category),
        confidence=accumulator.confidence,
        evidence_item_ids=tuple(sorted(accumulator.evidence_item_ids)),
        contains_special_category=special,
        requires_legal_review=special,
    )
