"""Deterministic text summary of a discovery run.

The summary is assembled from structured run data only. Subject identity is
shown in masked form and nothing else in it derives from scanned content.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable, Sequence

from waivern_dsar.config import ContentHandlingMode
from waivern_dsar.identity.models import IdentityGraph, PrimaryIdentifierType
from waivern_dsar.masking import PIIType, redact_sample
from waivern_dsar.orchestration.models import (
    EvidenceItem,
    Finding,
    QueryRecord,
    QueryStatus,
    RunTotals,
)

SUMMARY_HEADER = "=== Discovery Run Summary ==="

NO_EVIDENCE_DISCLAIMER = (
    "Disclaimer: This summary is based on automated discovery. Absence of "
    "results does not guarantee absence of data."
)
REVIEW_DISCLAIMER = (
    "Disclaimer: Classification is automated and confidence-scored. Manual "
    "review is required before any disclosure."
)
METADATA_ONLY_NOTE = (
    "Note: Content was not scanned (metadata-only mode). Categories are "
    "inferred from metadata and may be incomplete."
)
CONTENT_SCAN_NOTE = (
    "Note: Text content was scanned with pattern detection within configured "
    "size limits."
)

_PRIMARY_MASKING: dict[PrimaryIdentifierType, PIIType] = {
    PrimaryIdentifierType.EMAIL: PIIType.EMAIL,
    PrimaryIdentifierType.PHONE: PIIType.PHONE,
    PrimaryIdentifierType.IBAN: PIIType.IBAN,
}


def compute_evidence_snapshot_hash(evidence_item_ids: Iterable[str]) -> str:
    """SHA-256 fingerprint of a set of evidence item ids.

    Consumers compare it against the current evidence to tell whether a
    summary is stale.
    """
    joined = ",".join(sorted(evidence_item_ids))
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()


def generate_run_summary(
    identity_graph: IdentityGraph,
    query_records: Sequence[QueryRecord],
    evidence_items: Sequence[EvidenceItem],
    findings: Sequence[Finding],
    totals: RunTotals,
    content_mode: ContentHandlingMode,
    contains_third_party_data: bool = False,
) -> str:
    """Build the summary text of a completed run.

    Args:
        identity_graph: Final identity graph of the run
        query_records: Records of every query, whatever the outcome
        evidence_items: Evidence items of successful queries
        findings: Aggregated findings, in display order
        totals: Run totals
        content_mode: Content handling mode the run used
        contains_third_party_data: Whether any item may concern third parties

    Returns:
        Summary text; identical inputs always give identical text.

    """
    lines = [SUMMARY_HEADER, ""]
    lines.extend(_identity_lines(identity_graph))
    lines.append("")
    lines.extend(_coverage_lines(query_records, totals))
    lines.append("")

    if findings:
        lines.append("Findings:")
        for finding in findings:
            special = " [SPECIAL CATEGORY]" if finding.contains_special_category else ""
            lines.append(
                f"  {finding.data_category.value}{special}: "
                f"severity {finding.severity.value}, "
                f"confidence {finding.confidence:.2f}, "
                f"{len(finding.evidence_item_ids)} evidence item(s)"
            )
        lines.append("")
    elif totals.queries_completed:
        lines.append("No personal data categories were detected in the collected data.")
        lines.append("")

    special_findings = [f for f in findings if f.contains_special_category]
    if special_findings:
        lines.append("*** ATTENTION: Special Category Data Detected ***")
        lines.append(
            f"  {len(special_findings)} finding(s) contain special category data."
        )
        lines.append(
            "  A legal hold applies and legal review is required before disclosure."
        )
        lines.append("")

    if contains_third_party_data:
        lines.append(
            "Third-party data: collected data may refer to people other than the "
            "data subject. Review for redaction before disclosure."
        )
        lines.append("")

    lines.append(
        CONTENT_SCAN_NOTE if content_mode.allows_content_scan() else METADATA_ONLY_NOTE
    )
    lines.append(NO_EVIDENCE_DISCLAIMER)
    lines.append(REVIEW_DISCLAIMER)
    lines.append(
        "Evidence snapshot: "
        + compute_evidence_snapshot_hash(item.id for item in evidence_items)
    )
    return "\n".join(lines)


def _identity_lines(graph: IdentityGraph) -> list[str]:
    lines = ["Subject Identity:"]
    if graph.display_name:
        lines.append(f"  Name: {redact_sample(graph.display_name, PIIType.NAME)}")
    masking = _PRIMARY_MASKING.get(graph.primary_identifier_type, PIIType.GENERIC)
    if graph.primary_identifier_value:
        lines.append(
            f"  Primary identifier ({graph.primary_identifier_type.value}): "
            f"{redact_sample(graph.primary_identifier_value, masking)}"
        )
    lines.append(f"  Known identifiers: {len(graph.alternate_identifiers)}")
    lines.append(f"  Identity confidence: {graph.confidence_score}/100")
    return lines


def _coverage_lines(records: Sequence[QueryRecord], totals: RunTotals) -> list[str]:
    lines = [
        "Coverage:",
        f"  Sources queried: {totals.sources}",
        f"  Completed: {totals.queries_completed}, "
        f"failed: {totals.queries_failed}, skipped: {totals.queries_skipped}",
        f"  Records found: {totals.records_found}",
    ]
    if totals.queries_completed == 0:
        lines.append(
            "  No source returned data. Discovery coverage is incomplete and no "
            "conclusion about the subject's data can be drawn from this run."
        )
    incomplete = sorted(
        (r for r in records if r.status in (QueryStatus.FAILED, QueryStatus.SKIPPED)),
        key=lambda r: (r.provider, r.source_id),
    )
    for record in incomplete:
        reason = f": {record.error_message}" if record.error_message else ""
        lines.append(f"  - {record.provider} ({record.status.value}){reason}")
    return lines
