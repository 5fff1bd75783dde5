"""Tests for DiscoveryOrchestrator."""

import asyncio
import threading
import time
from typing import Any
from unittest.mock import MagicMock

import pytest

from waivern_dsar.categories import DataCategory, Severity
from waivern_dsar.config import (
    ContentHandlingMode,
    DetectionConfig,
    DiscoveryConfig,
    RateLimitConfig,
)
from waivern_dsar.connectors.base import CollectionResult, SourceDefinition
from waivern_dsar.connectors.registry import ConnectorRegistry
from waivern_dsar.connectors.static import StaticRecordsConnector
from waivern_dsar.connectors.stubs import StubConnector
from waivern_dsar.detection.engine import DetectionEngine
from waivern_dsar.identity.models import DataSubject, IdentifierType
from waivern_dsar.orchestration.models import (
    CaseRecord,
    DiscoveryRunContext,
    DiscoveryRunResult,
    Finding,
    QueryStatus,
    RunStatus,
)
from waivern_dsar.orchestration.orchestrator import DiscoveryOrchestrator
from waivern_dsar.orchestration.sinks import InMemoryCaseRepository, InMemoryDiscoverySink
from waivern_dsar.rulesets.catalog import load_default_catalog

CASE_ID = "case-1"
TENANT_ID = "tenant-1"

SPECIAL_CONTENT = "The patient was diagnosed with diabetes. Contact: test@example.com"

CONTENT_SCAN = DiscoveryConfig(
    detection=DetectionConfig(content_mode=ContentHandlingMode.CONTENT_SCAN)
)


def _source(source_id: str, provider: str = "STATIC", **config: Any) -> SourceDefinition:
    return SourceDefinition(id=source_id, provider=provider, name=source_id, config=config)


def _records(*contents: str) -> list[dict[str, str]]:
    return [{"title": f"Record {i}", "content": c} for i, c in enumerate(contents)]


def _context() -> DiscoveryRunContext:
    return DiscoveryRunContext(case_id=CASE_ID, tenant_id=TENANT_ID, user_id="user-1")


def _static_registry(*providers: str) -> ConnectorRegistry:
    registry = ConnectorRegistry()
    for provider in providers or ("STATIC",):
        registry.register(StaticRecordsConnector(provider), provider)
    return registry


def _mock_connector(collect: Any) -> MagicMock:
    connector = MagicMock()
    connector.collect_data.side_effect = collect
    return connector


def _run(
    subject: DataSubject | None,
    sources: list[SourceDefinition],
    registry: ConnectorRegistry | None = None,
    config: DiscoveryConfig = CONTENT_SCAN,
    sink: InMemoryDiscoverySink | None = None,
    cancel_event: asyncio.Event | None = None,
    cases: list[CaseRecord] | None = None,
) -> tuple[DiscoveryRunResult, InMemoryDiscoverySink]:
    sink = sink or InMemoryDiscoverySink()
    repository = InMemoryCaseRepository(
        cases=(
            cases
            if cases is not None
            else [CaseRecord(id=CASE_ID, tenant_id=TENANT_ID, subject=subject)]
        ),
        sources=sources,
    )
    orchestrator = DiscoveryOrchestrator(
        repository,
        registry or _static_registry(),
        DetectionEngine(load_default_catalog(), config.detection),
        sink,
        config=config,
    )
    result = asyncio.run(orchestrator.execute(_context(), cancel_event=cancel_event))
    return result, sink


# =============================================================================
# Run outcomes
# =============================================================================


class TestRunOutcome:
    """Tests for the overall outcome of a run."""

    def test_special_category_detection_requests_legal_hold(
        self, subject: DataSubject
    ) -> None:
        """Health data yields a CRITICAL finding, a legal hold and a review task."""
        result, sink = _run(subject, [_source("crm", records=_records(SPECIAL_CONTENT))])

        assert result.status is RunStatus.COMPLETED
        assert result.contains_special_category is True
        assert result.special_categories == (DataCategory.HEALTH,)
        assert result.legal_hold_required is True

        health = result.findings[0]
        assert health.data_category is DataCategory.HEALTH
        assert health.severity is Severity.CRITICAL
        assert health.requires_legal_review is True
        assert health.id == Finding.deterministic_id(result.run_id, DataCategory.HEALTH)
        assert DataCategory.CONTACT in {f.data_category for f in result.findings}

        hold = sink.legal_holds[CASE_ID]
        assert hold.enabled is True
        assert hold.enabled_by_user_id == "user-1"
        assert "HEALTH" in (hold.reason or "")
        [task] = sink.legal_review_tasks
        assert task.special_categories == (DataCategory.HEALTH,)
        assert health.id in task.finding_ids
        assert "copilot_run.legal_hold_requested" in sink.audit_actions()
        assert "*** ATTENTION: Special Category Data Detected ***" in result.summary

    def test_raw_content_never_reaches_results_or_sink(self, subject: DataSubject) -> None:
        """Matched values only ever appear masked."""
        result, sink = _run(subject, [_source("crm", records=_records(SPECIAL_CONTENT))])

        assert "test@example.com" not in result.model_dump_json()
        for items in sink.evidence_items.values():
            for item in items:
                assert "test@example.com" not in item.model_dump_json()

    def test_failed_connector_completes_run_without_findings(
        self, subject: DataSubject
    ) -> None:
        """A failing source leaves a completed run with one failed query."""
        registry = ConnectorRegistry()
        registry.register(StubConnector("WORKDAY"), "WORKDAY")

        result, sink = _run(subject, [_source("hr", provider="WORKDAY")], registry)

        assert result.status is RunStatus.COMPLETED
        assert result.findings == ()
        assert result.evidence_items == ()
        [record] = result.query_records
        assert record.status is QueryStatus.FAILED
        assert record.error_message == "Provider not yet implemented: WORKDAY"
        assert result.totals.queries_failed == 1
        assert "No source returned data" in result.summary
        assert sink.final_status(result.run_id) is RunStatus.COMPLETED
        assert sink.audit_actions() == [
            "copilot_run.started",
            "copilot_query.failed",
            "copilot_run.completed",
        ]

    def test_missing_case_fails_run(self, subject: DataSubject) -> None:
        """A run for an unknown case fails with an empty identity graph."""
        result, sink = _run(subject, [_source("crm")], cases=[])

        assert result.status is RunStatus.FAILED
        assert result.error_message is not None
        assert result.error_message.startswith("Discovery run failed: Case not found")
        assert result.identity_graph.alternate_identifiers == ()
        assert result.findings == ()
        assert result.query_records == ()
        assert sink.final_status(result.run_id) is RunStatus.FAILED
        assert sink.audit_actions()[-1] == "copilot_run.failed"

    def test_case_without_subject_fails_run(self) -> None:
        """A case without a data subject cannot be searched."""
        result, _ = _run(None, [_source("crm")])
        assert result.status is RunStatus.FAILED
        assert "no data subject" in (result.error_message or "")

    def test_metadata_only_run_never_scans_content(self, subject: DataSubject) -> None:
        """Only metadata hints contribute in metadata-only mode."""
        result, _ = _run(
            subject,
            [_source("crm", provider="SALESFORCE", records=_records(SPECIAL_CONTENT))],
            _static_registry("SALESFORCE"),
            config=DiscoveryConfig(),
        )

        assert result.contains_special_category is False
        assert [f.data_category for f in result.findings] == [DataCategory.CONTACT]
        assert result.findings[0].confidence == 0.4

    def test_findings_reference_evidence_of_the_run(self, subject: DataSubject) -> None:
        """Every finding points at evidence items produced in the run."""
        result, sink = _run(
            subject,
            [
                _source("a", records=_records("Reach me at a@example.com")),
                _source("b", records=_records("Or b@example.com")),
            ],
        )

        evidence_ids = {item.id for item in result.evidence_items}
        contact = next(f for f in result.findings if f.data_category is DataCategory.CONTACT)
        assert set(contact.evidence_item_ids) == evidence_ids
        assert set(sink.detection_results) == evidence_ids


# =============================================================================
# Query dispatch
# =============================================================================


class TestQueryDispatch:
    """Tests for how individual source queries are dispatched."""

    def test_query_records_keep_source_order(self, subject: DataSubject) -> None:
        """Records are reported in source order whatever the completion order."""
        sources = [_source(name, records=_records("x")) for name in ("a", "b", "c", "d")]
        result, _ = _run(subject, sources)
        assert [r.source_id for r in result.query_records] == ["a", "b", "c", "d"]

    def test_rate_limited_sources_are_skipped(self, subject: DataSubject) -> None:
        """Queries beyond the per-case limit are skipped, not failed."""
        config = CONTENT_SCAN.model_copy(
            update={"rate_limit": RateLimitConfig(max_requests=1)}
        )
        result, sink = _run(subject, [_source("a"), _source("b")], config=config)

        statuses = [r.status for r in result.query_records]
        assert statuses == [QueryStatus.COMPLETED, QueryStatus.SKIPPED]
        assert result.query_records[1].error_message == "Rate limit exceeded"
        assert "copilot_query.skipped" in sink.audit_actions()

    def test_unregistered_provider_is_skipped(self, subject: DataSubject) -> None:
        """Sources without a connector are skipped with a reason."""
        result, _ = _run(subject, [_source("idp", provider="OKTA")])
        [record] = result.query_records
        assert record.status is QueryStatus.SKIPPED
        assert record.error_message == "No connector registered for provider: OKTA"

    def test_connector_exception_is_contained_and_sanitised(
        self, subject: DataSubject
    ) -> None:
        """Unexpected connector errors fail the query with a masked message."""

        def explode(*args: Any) -> CollectionResult:
            raise RuntimeError("lookup failed for jane.doe@example.com")

        registry = ConnectorRegistry()
        registry.register(_mock_connector(explode), "FAKE")
        result, _ = _run(
            subject, [_source("a", provider="FAKE"), _source("b")], registry=registry
        )

        failed, skipped = result.query_records
        assert result.status is RunStatus.COMPLETED
        assert failed.status is QueryStatus.FAILED
        assert failed.error_message is not None
        assert failed.error_message.startswith("RuntimeError: lookup failed for ")
        assert "jane.doe@example.com" not in failed.error_message
        assert skipped.status is QueryStatus.SKIPPED

    def test_slow_connector_times_out(self, subject: DataSubject) -> None:
        """Connectors exceeding their time budget fail the query."""

        def slow(*args: Any) -> CollectionResult:
            time.sleep(0.5)
            return CollectionResult(success=True)

        registry = ConnectorRegistry()
        registry.register(_mock_connector(slow), "SLOW")
        config = CONTENT_SCAN.model_copy(update={"connector_timeout_seconds": 0.05})

        result, _ = _run(subject, [_source("a", provider="SLOW")], registry, config=config)

        [record] = result.query_records
        assert record.status is QueryStatus.FAILED
        assert record.error_message == "Connector for SLOW timed out after 0.05s"

    def test_hanging_connector_does_not_fail_other_sources(
        self, subject: DataSubject
    ) -> None:
        """A timed-out call holds its worker; later sources wait instead of failing."""

        def hang(*args: Any) -> CollectionResult:
            time.sleep(0.5)
            return CollectionResult(success=True)

        def good(*args: Any) -> CollectionResult:
            return CollectionResult(success=True, records_found=1)

        registry = ConnectorRegistry()
        registry.register(_mock_connector(hang), "HANG")
        registry.register(_mock_connector(good), "GOOD")
        config = CONTENT_SCAN.model_copy(
            update={"max_concurrency": 1, "connector_timeout_seconds": 0.1}
        )
        sources = [_source("a", provider="HANG"), _source("b", provider="GOOD")]

        result, _ = _run(subject, sources, registry, config=config)

        statuses = {r.source_id: r.status for r in result.query_records}
        assert statuses == {"a": QueryStatus.FAILED, "b": QueryStatus.COMPLETED}
        assert result.query_records[0].error_message == (
            "Connector for HANG timed out after 0.1s"
        )

    def test_query_records_pass_through_pending_and_running(
        self, subject: DataSubject
    ) -> None:
        """Each dispatched query is written PENDING, RUNNING, then its outcome."""
        result, sink = _run(subject, [_source("a"), _source("b")])

        written = sink.query_records[result.run_id]
        for record in result.query_records:
            history = [r.status for r in written if r.id == record.id]
            assert history == [QueryStatus.PENDING, QueryStatus.RUNNING, record.status]
        running = [r for r in written if r.status is QueryStatus.RUNNING]
        assert all(r.started_at is not None for r in running)

    def test_skipped_queries_are_written_once(self, subject: DataSubject) -> None:
        """Sources never dispatched have only their final record."""
        result, sink = _run(subject, [_source("a", provider="NOPE")])

        [record] = sink.query_records[result.run_id]
        assert record.status is QueryStatus.SKIPPED

    def test_concurrency_limit_respected(self, subject: DataSubject) -> None:
        """At most max_concurrency connector calls run at once."""
        current = 0
        observed = 0
        lock = threading.Lock()

        def tracking(*args: Any) -> CollectionResult:
            nonlocal current, observed
            with lock:
                current += 1
                observed = max(observed, current)
            time.sleep(0.02)
            with lock:
                current -= 1
            return CollectionResult(success=True, records_found=1)

        registry = ConnectorRegistry()
        registry.register(_mock_connector(tracking), "TRACK")
        config = CONTENT_SCAN.model_copy(update={"max_concurrency": 2})
        sources = [_source(f"s{i}", provider="TRACK") for i in range(6)]

        result, _ = _run(subject, sources, registry, config=config)

        assert result.totals.queries_completed == 6
        assert observed <= 2

    def test_cancelled_run_skips_all_queries(self, subject: DataSubject) -> None:
        """A cancelled run dispatches nothing but still completes."""

        async def run() -> DiscoveryRunResult:
            event = asyncio.Event()
            event.set()
            orchestrator = DiscoveryOrchestrator(
                InMemoryCaseRepository(
                    cases=[CaseRecord(id=CASE_ID, tenant_id=TENANT_ID, subject=subject)],
                    sources=[_source("a"), _source("b")],
                ),
                _static_registry(),
                DetectionEngine(load_default_catalog()),
                InMemoryDiscoverySink(),
            )
            return await orchestrator.execute(_context(), cancel_event=event)

        result = asyncio.run(run())

        assert result.status is RunStatus.COMPLETED
        assert {r.status for r in result.query_records} == {QueryStatus.SKIPPED}
        assert {r.error_message for r in result.query_records} == {"Run cancelled"}

    def test_disabled_and_filtered_sources_are_not_queried(
        self, subject: DataSubject
    ) -> None:
        """Only enabled sources matching the filter are queried."""
        disabled = _source("off").model_copy(update={"enabled": False})
        config = CONTENT_SCAN.model_copy(update={"source_filter": ("a",)})
        result, _ = _run(subject, [_source("a"), _source("b"), disabled], config=config)

        assert [r.source_id for r in result.query_records] == ["a"]
        assert result.totals.sources == 1


# =============================================================================
# Identity and persistence
# =============================================================================


class TestIdentityAndPersistence:
    """Tests for identity merging and sink behaviour."""

    def test_discovered_identifiers_are_merged(self, subject: DataSubject) -> None:
        """Identifiers and accounts resolved by sources grow the graph."""
        source = _source(
            "m365",
            records=_records("x"),
            account_id="acct-7",
            identifiers=[
                {"type": "upn", "value": "jdoe@corp.example", "confidence": 0.8},
                {"type": "phone", "value": "+1 555 0100", "confidence": 0.05},
            ],
        )
        result, sink = _run(subject, [source])

        graph = result.identity_graph
        assert graph.find(IdentifierType.UPN, "jdoe@corp.example") is not None
        assert graph.find(IdentifierType.SYSTEM_ACCOUNT, "STATIC:acct-7") is not None
        assert graph.find(IdentifierType.PHONE, "+1 555 0100") is None
        assert sink.identity_profiles[CASE_ID] == graph

    def test_known_identifier_corroborated_below_run_minimum(
        self, subject: DataSubject
    ) -> None:
        """The run minimum only filters new identifiers, not corroborations."""
        source = _source(
            "crm",
            records=_records("x"),
            identifiers=[
                {"type": "email", "value": "jane.doe@example.com", "confidence": 0.6},
                {"type": "upn", "value": "jdoe@corp.example", "confidence": 0.6},
            ],
        )
        config = CONTENT_SCAN.model_copy(update={"minimum_identifier_confidence": 0.7})

        result, _ = _run(subject, [source], config=config)

        graph = result.identity_graph
        entry = graph.find(IdentifierType.EMAIL, "jane.doe@example.com")
        assert entry is not None
        assert entry.confidence > 0.9
        assert graph.find(IdentifierType.UPN, "jdoe@corp.example") is None

    def test_sink_failures_are_recorded_not_raised(self, subject: DataSubject) -> None:
        """A failing write never aborts the run."""

        class FailingSink(InMemoryDiscoverySink):
            async def write_finding(self, run_id: str, finding: Finding) -> None:
                raise RuntimeError("database unavailable")

        result, _ = _run(
            subject,
            [_source("crm", records=_records(SPECIAL_CONTENT))],
            sink=FailingSink(),
        )

        assert result.status is RunStatus.COMPLETED
        assert result.findings
        assert "finding: RuntimeError" in result.persistence_errors

    @pytest.mark.parametrize("content_mode", list(ContentHandlingMode))
    def test_run_status_and_audit_bracket_the_run(
        self, subject: DataSubject, content_mode: ContentHandlingMode
    ) -> None:
        """RUNNING is written first and COMPLETED last, in every mode."""
        config = DiscoveryConfig(detection=DetectionConfig(content_mode=content_mode))
        result, sink = _run(subject, [_source("a")], config=config)

        statuses = [status for status, _ in sink.run_statuses[result.run_id]]
        assert statuses == [RunStatus.RUNNING, RunStatus.COMPLETED]
        actions = sink.audit_actions()
        assert actions[0] == "copilot_run.started"
        assert actions[-1] == "copilot_run.completed"
