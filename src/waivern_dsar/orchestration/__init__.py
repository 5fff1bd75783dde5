"""Discovery runs: fan-out to sources, detection, aggregation and the legal gate."""

from .aggregation import Contribution, aggregate_findings
from .discovery_file import DiscoveryFile, load_discovery_file, parse_discovery_file
from .legal_hold import (
    LegalHoldCheck,
    LegalHoldCode,
    LegalHoldState,
    check_legal_hold_for_deletion,
    check_legal_hold_for_export,
    is_retention_suspended,
    legal_hold_banner_text,
)
from .models import (
    CaseRecord,
    DiscoveryRunContext,
    DiscoveryRunResult,
    EvidenceItem,
    Finding,
    QueryFailure,
    QueryOutcome,
    QueryRecord,
    QueryStatus,
    RunStatus,
    RunTotals,
)
from .orchestrator import DiscoveryOrchestrator
from .rate_limit import RateLimitDecision, SlidingWindowRateLimiter, case_rate_limit_key
from .sinks import (
    CaseRepository,
    DiscoverySink,
    InMemoryCaseRepository,
    InMemoryDiscoverySink,
)
from .summary import compute_evidence_snapshot_hash, generate_run_summary

__all__ = [
    "CaseRecord",
    "CaseRepository",
    "Contribution",
    "DiscoveryFile",
    "DiscoveryOrchestrator",
    "DiscoveryRunContext",
    "DiscoveryRunResult",
    "DiscoverySink",
    "EvidenceItem",
    "Finding",
    "InMemoryCaseRepository",
    "InMemoryDiscoverySink",
    "LegalHoldCheck",
    "LegalHoldCode",
    "LegalHoldState",
    "QueryFailure",
    "QueryOutcome",
    "QueryRecord",
    "QueryStatus",
    "RateLimitDecision",
    "RunStatus",
    "RunTotals",
    "SlidingWindowRateLimiter",
    "aggregate_findings",
    "case_rate_limit_key",
    "check_legal_hold_for_deletion",
    "check_legal_hold_for_export",
    "compute_evidence_snapshot_hash",
    "generate_run_summary",
    "is_retention_suspended",
    "legal_hold_banner_text",
    "load_discovery_file",
    "parse_discovery_file",
]
