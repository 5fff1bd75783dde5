"""Collaborators of the orchestrator: case lookup and result persistence.

The orchestrator depends only on the protocols below. The in-memory
implementations back the CLI and tests.
"""

from __future__ import annotations

from typing import Protocol, override

from waivern_dsar.connectors.base import SourceDefinition
from waivern_dsar.detection.models import DetectionResult
from waivern_dsar.identity.models import IdentityGraph
from waivern_dsar.orchestration.legal_hold import LegalHoldState
from waivern_dsar.orchestration.models import (
    AuditEvent,
    CaseRecord,
    EvidenceItem,
    Finding,
    LegalReviewTask,
    QueryRecord,
    RunStatus,
)


class CaseRepository(Protocol):
    """Read access to cases and their configured sources."""

    async def get_case(self, case_id: str, tenant_id: str) -> CaseRecord | None:
        """Return the case, or None when it does not exist for the tenant."""
        ...

    async def list_enabled_sources(self, tenant_id: str) -> list[SourceDefinition]:
        """Return the tenant's enabled sources."""
        ...


class DiscoverySink(Protocol):
    """Write side of a discovery run.

    Writes are fire-and-forget from the pipeline's perspective: the
    orchestrator records failures but never lets them abort a run.
    """

    async def write_run_status(
        self, run_id: str, status: RunStatus, error_message: str | None = None
    ) -> None:
        """Record the status of a run."""
        ...

    async def write_query_record(self, run_id: str, record: QueryRecord) -> None:
        """Record the outcome of one source query."""
        ...

    async def write_evidence_item(self, run_id: str, item: EvidenceItem) -> None:
        """Store an evidence item."""
        ...

    async def write_detection_result(
        self, run_id: str, evidence_item_id: str, result: DetectionResult
    ) -> None:
        """Store one detection result of an evidence item."""
        ...

    async def write_finding(self, run_id: str, finding: Finding) -> None:
        """Store a finding."""
        ...

    async def upsert_identity_profile(self, case_id: str, graph: IdentityGraph) -> None:
        """Store the identity graph snapshot of a case."""
        ...

    async def append_audit_event(self, event: AuditEvent) -> None:
        """Append an audit event."""
        ...

    async def create_legal_review_task(self, task: LegalReviewTask) -> None:
        """Create a mandatory legal review task."""
        ...

    async def set_legal_hold(self, case_id: str, state: LegalHoldState) -> None:
        """Store the legal hold state of a case."""
        ...


class InMemoryCaseRepository(CaseRepository):
    """Case repository backed by dictionaries."""

    def __init__(
        self,
        cases: list[CaseRecord] | None = None,
        sources: list[SourceDefinition] | None = None,
    ) -> None:
        """Initialise the repository.

        Args:
            cases: Known cases
            sources: Sources shared by every tenant, including disabled ones

        """
        self._cases = {(c.id, c.tenant_id): c for c in cases or []}
        self._sources = list(sources or [])

    def add_case(self, case: CaseRecord) -> None:
        """Add or replace a case."""
        self._cases[(case.id, case.tenant_id)] = case

    @override
    async def get_case(self, case_id: str, tenant_id: str) -> CaseRecord | None:
        return self._cases.get((case_id, tenant_id))

    @override
    async def list_enabled_sources(self, tenant_id: str) -> list[SourceDefinition]:
        return [s for s in self._sources if s.enabled]


class InMemoryDiscoverySink(DiscoverySink):
    """Sink keeping everything it receives, keyed by run or case.

    No locking is needed since asyncio runs in a single thread.
    """

    def __init__(self) -> None:
        """Initialise empty storage."""
        self.run_statuses: dict[str, list[tuple[RunStatus, str | None]]] = {}
        self.query_records: dict[str, list[QueryRecord]] = {}
        self.evidence_items: dict[str, list[EvidenceItem]] = {}
        self.detection_results: dict[str, list[DetectionResult]] = {}
        self.findings: dict[str, list[Finding]] = {}
        self.identity_profiles: dict[str, IdentityGraph] = {}
        self.audit_events: list[AuditEvent] = []
        self.legal_review_tasks: list[LegalReviewTask] = []
        self.legal_holds: dict[str, LegalHoldState] = {}

    def final_status(self, run_id: str) -> RunStatus | None:
        """Most recently written status of a run."""
        statuses = self.run_statuses.get(run_id)
        return statuses[-1][0] if statuses else None

    def audit_actions(self) -> list[str]:
        """Actions of all audit events, in order."""
        return [event.action for event in self.audit_events]

    @override
    async def write_run_status(
        self, run_id: str, status: RunStatus, error_message: str | None = None
    ) -> None:
        self.run_statuses.setdefault(run_id, []).append((status, error_message))

    @override
    async def write_query_record(self, run_id: str, record: QueryRecord) -> None:
        self.query_records.setdefault(run_id, []).append(record)

    @override
    async def write_evidence_item(self, run_id: str, item: EvidenceItem) -> None:
        self.evidence_items.setdefault(run_id, []).append(item)

    @override
    async def write_detection_result(
        self, run_id: str, evidence_item_id: str, result: DetectionResult
    ) -> None:
        self.detection_results.setdefault(evidence_item_id, []).append(result)

    @override
    async def write_finding(self, run_id: str, finding: Finding) -> None:
        self.findings.setdefault(run_id, []).append(finding)

    @override
    async def upsert_identity_profile(self, case_id: str, graph: IdentityGraph) -> None:
        self.identity_profiles[case_id] = graph

    @override
    async def append_audit_event(self, event: AuditEvent) -> None:
        self.audit_events.append(event)

    @override
    async def create_legal_review_task(self, task: LegalReviewTask) -> None:
        self.legal_review_tasks.append(task)

    @override
    async def set_legal_hold(self, case_id: str, state: LegalHoldState) -> None:
        self.legal_holds[case_id] = state
