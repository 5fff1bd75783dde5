"""Data models for discovery runs."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from waivern_dsar.categories import DataCategory, Severity
from waivern_dsar.detection.models import DetectionResult
from waivern_dsar.identity.models import DataSubject, IdentifierCandidate, IdentityGraph

# Namespace for deterministic finding ids
FINDING_NAMESPACE = uuid.UUID("8c7a2f54-5d8e-4b8f-9a51-3f1e0c2d9b67")


class QueryStatus(Enum):
    """Lifecycle state of one source query."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


class RunStatus(Enum):
    """Final state of a discovery run."""

    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class DiscoveryRunContext(BaseModel):
    """Identifies the run being executed and who started it."""

    model_config = ConfigDict(frozen=True)

    run_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    case_id: str = Field(min_length=1)
    tenant_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)


class QueryRecord(BaseModel):
    """Outcome of one source query within a run."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    source_id: str
    provider: str
    status: QueryStatus
    spec_validated: bool | None = None
    records_found: int = Field(default=0, ge=0)
    error_message: str | None = Field(
        default=None, description="Sanitised error or skip reason"
    )
    started_at: datetime | None = None
    completed_at: datetime | None = None
    execution_ms: int | None = None
    evidence_item_id: str | None = None


class EvidenceItem(BaseModel):
    """Data returned by one successful source query, with its detection results."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    source_id: str
    provider: str
    location: str
    title: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    detection_results: tuple[DetectionResult, ...] = ()
    contains_third_party_data: bool = False

    @property
    def categories(self) -> dict[DataCategory, float]:
        """Maximum confidence per category across this item's results."""
        best: dict[DataCategory, float] = {}
        for result in self.detection_results:
            for detected in result.detected_categories:
                if detected.confidence > best.get(detected.category, -1.0):
                    best[detected.category] = detected.confidence
        return best


class Finding(BaseModel):
    """Category-level conclusion of a run."""

    model_config = ConfigDict(frozen=True)

    id: str
    data_category: DataCategory
    severity: Severity
    confidence: float = Field(ge=0.0, le=1.0)
    evidence_item_ids: tuple[str, ...]
    contains_special_category: bool
    requires_legal_review: bool

    @staticmethod
    def deterministic_id(run_id: str, category: DataCategory) -> str:
        """Id of the finding for a category within a run."""
        return str(uuid.uuid5(FINDING_NAMESPACE, f"{run_id}:{category.value}"))


class RunTotals(BaseModel):
    """Counts summarising a run."""

    model_config = ConfigDict(frozen=True)

    sources: int = 0
    queries_completed: int = 0
    queries_failed: int = 0
    queries_skipped: int = 0
    evidence_items: int = 0
    records_found: int = 0
    findings: int = 0
    critical_findings: int = 0
    warning_findings: int = 0
    info_findings: int = 0


class LegalReviewTask(BaseModel):
    """Task asking a legal reviewer to approve a run's results."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    case_id: str
    tenant_id: str
    special_categories: tuple[DataCategory, ...]
    finding_ids: tuple[str, ...]
    reason: str


class AuditEvent(BaseModel):
    """Structural audit record; never carries personal data."""

    model_config = ConfigDict(frozen=True)

    action: str
    run_id: str
    case_id: str
    tenant_id: str
    user_id: str
    details: dict[str, Any] = Field(default_factory=dict)


class DiscoveryRunResult(BaseModel):
    """Everything a discovery run produced."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    case_id: str
    status: RunStatus
    totals: RunTotals = Field(default_factory=RunTotals)
    findings: tuple[Finding, ...] = ()
    evidence_items: tuple[EvidenceItem, ...] = ()
    query_records: tuple[QueryRecord, ...] = ()
    contains_special_category: bool = False
    special_categories: tuple[DataCategory, ...] = ()
    contains_third_party_data: bool = False
    legal_hold_required: bool = False
    identity_graph: IdentityGraph = Field(default_factory=IdentityGraph)
    summary: str = ""
    error_message: str | None = None
    persistence_errors: tuple[str, ...] = ()

    @model_validator(mode="after")
    def validate_evidence_references(self) -> Self:
        """Reject findings that reference evidence items not in this run."""
        known = {item.id for item in self.evidence_items}
        for finding in self.findings:
            dangling = [i for i in finding.evidence_item_ids if i not in known]
            if dangling:
                raise ValueError(
                    f"Finding '{finding.data_category.value}' references unknown "
                    f"evidence item(s): {', '.join(dangling)}"
                )
        return self


class QueryOutcome(BaseModel):
    """Successful query: the evidence it produced and identifiers to merge."""

    model_config = ConfigDict(frozen=True)

    record: QueryRecord
    evidence_item: EvidenceItem
    discovered_identifiers: tuple[IdentifierCandidate, ...] = ()
    account_id: str | None = None


class QueryFailure(BaseModel):
    """Query that failed or was skipped."""

    model_config = ConfigDict(frozen=True)

    record: QueryRecord


type QueryResult = QueryOutcome | QueryFailure


class CaseRecord(BaseModel):
    """A case as seen by discovery: its tenant and data subject."""

    model_config = ConfigDict(frozen=True)

    id: str
    tenant_id: str
    subject: DataSubject | None = None
