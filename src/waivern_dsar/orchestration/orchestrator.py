"""Discovery orchestrator.

Runs every enabled source query for a case concurrently, feeds collected
data through the detection engine, merges discovered identifiers into the
identity graph and aggregates the results into findings. Sync components
(connectors, the detection engine) are bridged to async via two
ThreadPoolExecutors, one per kind of work. A connector call that times out
keeps its worker slot until its thread returns.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Awaitable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from waivern_dsar.categories import DataCategory, Severity
from waivern_dsar.config import DiscoveryConfig
from waivern_dsar.connectors.base import CollectionResult, Connector, SourceDefinition
from waivern_dsar.connectors.query_spec import QuerySpec, build_query_spec
from waivern_dsar.connectors.registry import ConnectorRegistry
from waivern_dsar.detection.engine import DetectionEngine
from waivern_dsar.detection.models import DetectionInput, EvidenceScanResult
from waivern_dsar.detection.sanitise import sanitise_error_message
from waivern_dsar.errors import (
    CaseNotFoundError,
    ConnectorCollectionError,
    ConnectorTimeoutError,
    DataSubjectNotFoundError,
    FatalRunError,
)
from waivern_dsar.identity.graph import (
    add_resolved_system,
    build_initial_identity_graph,
    build_subject_identifiers,
    empty_identity_graph,
    merge_identifiers,
)
from waivern_dsar.identity.models import DataSubject, IdentityGraph
from waivern_dsar.orchestration.aggregation import Contribution, aggregate_findings
from waivern_dsar.orchestration.legal_hold import hold_for_special_categories
from waivern_dsar.orchestration.models import (
    AuditEvent,
    DiscoveryRunContext,
    DiscoveryRunResult,
    EvidenceItem,
    Finding,
    LegalReviewTask,
    QueryFailure,
    QueryOutcome,
    QueryRecord,
    QueryResult,
    QueryStatus,
    RunStatus,
    RunTotals,
)
from waivern_dsar.orchestration.rate_limit import (
    SlidingWindowRateLimiter,
    case_rate_limit_key,
)
from waivern_dsar.orchestration.sinks import CaseRepository, DiscoverySink
from waivern_dsar.orchestration.summary import generate_run_summary

logger = logging.getLogger(__name__)

SKIP_RATE_LIMITED = "Rate limit exceeded"
SKIP_CANCELLED = "Run cancelled"


@dataclass
class _RunState:
    """Mutable state of one run, shared by its query tasks."""

    context: DiscoveryRunContext
    graph: IdentityGraph
    semaphore: asyncio.Semaphore
    connector_slots: asyncio.Semaphore
    connector_pool: ThreadPoolExecutor
    detection_pool: ThreadPoolExecutor
    cancel_event: asyncio.Event | None
    graph_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    persistence_errors: list[str] = field(default_factory=list)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()


class DiscoveryOrchestrator:
    """Executes discovery runs for cases."""

    def __init__(
        self,
        case_repository: CaseRepository,
        connector_registry: ConnectorRegistry,
        engine: DetectionEngine,
        sink: DiscoverySink,
        rate_limiter: SlidingWindowRateLimiter | None = None,
        config: DiscoveryConfig | None = None,
    ) -> None:
        """Initialise the orchestrator.

        Args:
            case_repository: Source of cases and enabled sources
            connector_registry: Connectors by provider
            engine: Detection engine applied to collected data
            sink: Receives run state, evidence, findings and audit events
            rate_limiter: Per-case limiter, a fresh in-process one by default
            config: Run configuration

        """
        self._cases = case_repository
        self._registry = connector_registry
        self._engine = engine
        self._sink = sink
        self._rate_limiter = rate_limiter or SlidingWindowRateLimiter()
        self._config = config or DiscoveryConfig()

    async def execute(
        self,
        context: DiscoveryRunContext,
        cancel_event: asyncio.Event | None = None,
    ) -> DiscoveryRunResult:
        """Execute one discovery run.

        Only a missing case or data subject fails the run. Every other
        problem is confined to the query it occurred in.

        Args:
            context: Run, case, tenant and user identifiers
            cancel_event: When set, no further source queries are dispatched;
                queries already dispatched drain

        Returns:
            The run result, COMPLETED or FAILED.

        """
        start_time = time.monotonic()
        persistence_errors: list[str] = []
        await self._safe_write(
            "run status",
            self._sink.write_run_status(context.run_id, RunStatus.RUNNING),
            persistence_errors,
        )
        await self._audit(context, "copilot_run.started", persistence_errors)

        try:
            subject = await self._load_subject(context)
        except FatalRunError as e:
            return await self._fail_run(context, e, persistence_errors)

        sources = await self._select_sources(context)
        logger.info(
            f"Discovery run {context.run_id} started for case {context.case_id} "
            f"with {len(sources)} source(s)"
        )

        max_concurrency = self._config.max_concurrency
        connector_pool = ThreadPoolExecutor(
            max_workers=max_concurrency, thread_name_prefix="dsar-connector"
        )
        detection_pool = ThreadPoolExecutor(
            max_workers=max_concurrency, thread_name_prefix="dsar-detection"
        )
        state = _RunState(
            context=context,
            graph=build_initial_identity_graph(subject),
            semaphore=asyncio.Semaphore(max_concurrency),
            connector_slots=asyncio.Semaphore(max_concurrency),
            connector_pool=connector_pool,
            detection_pool=detection_pool,
            cancel_event=cancel_event,
            persistence_errors=persistence_errors,
        )
        try:
            results = await self._run_queries(sources, state)
        finally:
            # Timed-out connector threads are left to finish on their own
            connector_pool.shutdown(wait=False, cancel_futures=True)
            detection_pool.shutdown(wait=False, cancel_futures=True)

        result = await self._complete_run(state, sources, results)
        logger.info(
            f"Discovery run {context.run_id} completed in "
            f"{time.monotonic() - start_time:.2f}s: "
            f"{result.totals.queries_completed} completed, "
            f"{result.totals.queries_failed} failed, "
            f"{result.totals.queries_skipped} skipped, "
            f"{result.totals.findings} finding(s)"
        )
        return result

    async def _load_subject(self, context: DiscoveryRunContext) -> DataSubject:
        case = await self._cases.get_case(context.case_id, context.tenant_id)
        if case is None:
            raise CaseNotFoundError(f"Case not found: {context.case_id}")
        if case.subject is None:
            raise DataSubjectNotFoundError(
                f"Case {context.case_id} has no data subject"
            )
        return case.subject

    async def _select_sources(
        self, context: DiscoveryRunContext
    ) -> list[SourceDefinition]:
        sources = await self._cases.list_enabled_sources(context.tenant_id)
        sources = [s for s in sources if s.enabled]
        if self._config.source_filter is not None:
            wanted = set(self._config.source_filter)
            sources = [s for s in sources if s.id in wanted]
        return sources

    async def _run_queries(
        self, sources: list[SourceDefinition], state: _RunState
    ) -> list[QueryResult]:
        """Dispatch every source query and collect their results in source order."""
        slots: list[QueryResult | asyncio.Task[QueryResult]] = []
        rate_limit_key = case_rate_limit_key(state.context.case_id)

        for source in sources:
            if state.cancelled:
                slots.append(_skipped(source, SKIP_CANCELLED))
                continue

            decision = self._rate_limiter.check_rate_limit(
                rate_limit_key, self._config.rate_limit
            )
            if not decision.allowed:
                logger.warning(
                    f"Rate limit exceeded for case {state.context.case_id}; "
                    f"skipping source {source.id} (retry after {decision.retry_after_ms}ms)"
                )
                slots.append(_skipped(source, SKIP_RATE_LIMITED))
                continue

            connector = self._registry.get(source.provider)
            if connector is None:
                slots.append(
                    _skipped(source, f"No connector registered for provider: {source.provider}")
                )
                continue

            pending = QueryRecord(
                source_id=source.id, provider=source.provider, status=QueryStatus.PENDING
            )
            await self._write_query_record(state, pending)
            slots.append(
                asyncio.create_task(self._run_query(source, connector, state, pending.id))
            )

        tasks = [slot for slot in slots if isinstance(slot, asyncio.Task)]
        if tasks:
            await asyncio.gather(*tasks)

        results: list[QueryResult] = []
        for slot in slots:
            result = slot.result() if isinstance(slot, asyncio.Task) else slot
            results.append(result)
            await self._record_query(state, result)
        return results

    async def _run_query(
        self,
        source: SourceDefinition,
        connector: Connector,
        state: _RunState,
        query_id: str,
    ) -> QueryResult:
        """Execute one source query; never raises."""
        async with state.semaphore:
            if state.cancelled:
                return _skipped(source, SKIP_CANCELLED, query_id)

            started_at = datetime.now(UTC)
            await self._write_query_record(
                state,
                QueryRecord(
                    id=query_id,
                    source_id=source.id,
                    provider=source.provider,
                    status=QueryStatus.RUNNING,
                    started_at=started_at,
                ),
            )
            start_time = time.monotonic()
            spec_validated: bool | None = None
            try:
                async with state.graph_lock:
                    identifiers = build_subject_identifiers(state.graph)
                query_spec, spec_validated = build_query_spec(
                    source.provider,
                    identifiers,
                    scope=source.scope,
                    content_mode=self._config.detection.content_mode,
                )

                collection = await self._collect(source, connector, query_spec, state)
                if not collection.success:
                    raise ConnectorCollectionError(
                        collection.error or "Collection reported no success"
                    )

                scan = await asyncio.get_running_loop().run_in_executor(
                    state.detection_pool,
                    self._engine.analyse,
                    _detection_input(source, collection),
                )
                evidence_item = _evidence_item(source, collection, scan)
                await self._merge_identities(state, source, collection)
            except Exception as e:
                message = self._describe_failure(e)
                logger.warning(f"Query for source {source.id} failed: {message}")
                return QueryFailure(
                    record=QueryRecord(
                        id=query_id,
                        source_id=source.id,
                        provider=source.provider,
                        status=QueryStatus.FAILED,
                        spec_validated=spec_validated,
                        error_message=message,
                        started_at=started_at,
                        completed_at=datetime.now(UTC),
                        execution_ms=_elapsed_ms(start_time),
                    )
                )

            await self._persist_evidence(state, evidence_item)
            return QueryOutcome(
                record=QueryRecord(
                    id=query_id,
                    source_id=source.id,
                    provider=source.provider,
                    status=QueryStatus.COMPLETED,
                    spec_validated=spec_validated,
                    records_found=collection.records_found,
                    started_at=started_at,
                    completed_at=datetime.now(UTC),
                    execution_ms=_elapsed_ms(start_time),
                    evidence_item_id=evidence_item.id,
                ),
                evidence_item=evidence_item,
                discovered_identifiers=collection.discovered_identifiers,
                account_id=collection.account_id,
            )

    async def _collect(
        self,
        source: SourceDefinition,
        connector: Connector,
        query_spec: QuerySpec,
        state: _RunState,
    ) -> CollectionResult:
        """Call a connector in the connector pool under the configured time budget.

        The time budget starts once a worker slot is free. The slot is
        released when the connector thread returns, not when the call times
        out.
        """
        timeout = self._config.connector_timeout_seconds
        loop = asyncio.get_running_loop()
        await state.connector_slots.acquire()
        future = state.connector_pool.submit(
            connector.collect_data, source.config, source.secret_ref, query_spec
        )
        future.add_done_callback(
            lambda _: _release_from_thread(loop, state.connector_slots)
        )
        try:
            async with asyncio.timeout(timeout):
                return await asyncio.wrap_future(future)
        except TimeoutError as e:
            raise ConnectorTimeoutError(
                f"Connector for {source.provider} timed out after {timeout:g}s"
            ) from e

    async def _merge_identities(
        self, state: _RunState, source: SourceDefinition, collection: CollectionResult
    ) -> None:
        """Merge identifiers a source resolved; merges are serialised per run."""
        candidates = collection.discovered_identifiers
        if not candidates and not collection.account_id:
            return
        async with state.graph_lock:
            graph = merge_identifiers(
                state.graph,
                candidates,
                source.provider,
                minimum_confidence=self._config.minimum_identifier_confidence,
            )
            if collection.account_id:
                graph = add_resolved_system(graph, source.provider, collection.account_id)
            state.graph = graph

    async def _persist_evidence(self, state: _RunState, item: EvidenceItem) -> None:
        run_id = state.context.run_id
        await self._safe_write(
            "evidence item",
            self._sink.write_evidence_item(run_id, item),
            state.persistence_errors,
        )
        for result in item.detection_results:
            await self._safe_write(
                "detection result",
                self._sink.write_detection_result(run_id, item.id, result),
                state.persistence_errors,
            )

    async def _write_query_record(self, state: _RunState, record: QueryRecord) -> None:
        await self._safe_write(
            "query record",
            self._sink.write_query_record(state.context.run_id, record),
            state.persistence_errors,
        )

    async def _record_query(self, state: _RunState, result: QueryResult) -> None:
        record = result.record
        await self._write_query_record(state, record)
        action = {
            QueryStatus.COMPLETED: "copilot_query.completed",
            QueryStatus.FAILED: "copilot_query.failed",
            QueryStatus.SKIPPED: "copilot_query.skipped",
        }.get(record.status)
        if action is None:
            return
        details: dict[str, Any] = {
            "query_id": record.id,
            "source_id": record.source_id,
            "provider": record.provider,
            "records_found": record.records_found,
        }
        if record.error_message:
            details["reason"] = record.error_message
        await self._audit(state.context, action, state.persistence_errors, details)

    async def _complete_run(
        self,
        state: _RunState,
        sources: list[SourceDefinition],
        results: list[QueryResult],
    ) -> DiscoveryRunResult:
        context = state.context
        outcomes = [r for r in results if isinstance(r, QueryOutcome)]
        evidence_items = tuple(o.evidence_item for o in outcomes)
        records = tuple(r.record for r in results)

        findings = aggregate_findings(
            (Contribution.from_evidence(item) for item in evidence_items),
            context.run_id,
        )
        special_categories = _special_categories(findings)
        contains_third_party = any(i.contains_third_party_data for i in evidence_items)
        totals = _compute_totals(sources, records, evidence_items, findings)

        for finding in findings:
            await self._safe_write(
                "finding",
                self._sink.write_finding(context.run_id, finding),
                state.persistence_errors,
            )
        await self._safe_write(
            "identity profile",
            self._sink.upsert_identity_profile(context.case_id, state.graph),
            state.persistence_errors,
        )

        if special_categories:
            await self._request_legal_review(state, findings, special_categories)

        summary = generate_run_summary(
            identity_graph=state.graph,
            query_records=records,
            evidence_items=evidence_items,
            findings=findings,
            totals=totals,
            content_mode=self._config.detection.content_mode,
            contains_third_party_data=contains_third_party,
        )

        await self._safe_write(
            "run status",
            self._sink.write_run_status(context.run_id, RunStatus.COMPLETED),
            state.persistence_errors,
        )
        await self._audit(
            context,
            "copilot_run.completed",
            state.persistence_errors,
            {
                "queries_completed": totals.queries_completed,
                "queries_failed": totals.queries_failed,
                "queries_skipped": totals.queries_skipped,
                "findings": totals.findings,
                "contains_special_category": bool(special_categories),
            },
        )

        return DiscoveryRunResult(
            run_id=context.run_id,
            case_id=context.case_id,
            status=RunStatus.COMPLETED,
            totals=totals,
            findings=findings,
            evidence_items=evidence_items,
            query_records=records,
            contains_special_category=bool(special_categories),
            special_categories=special_categories,
            contains_third_party_data=contains_third_party,
            legal_hold_required=bool(special_categories),
            identity_graph=state.graph,
            summary=summary,
            persistence_errors=tuple(state.persistence_errors),
        )

    async def _request_legal_review(
        self,
        state: _RunState,
        findings: tuple[Finding, ...],
        special_categories: tuple[DataCategory, ...],
    ) -> None:
        context = state.context
        hold = hold_for_special_categories(special_categories, context.user_id)
        task = LegalReviewTask(
            run_id=context.run_id,
            case_id=context.case_id,
            tenant_id=context.tenant_id,
            special_categories=special_categories,
            finding_ids=tuple(f.id for f in findings if f.requires_legal_review),
            reason=hold.reason or "Special category data detected",
        )
        logger.warning(
            f"Special category data detected in run {context.run_id}; "
            "legal hold and legal review requested"
        )
        await self._safe_write(
            "legal hold",
            self._sink.set_legal_hold(context.case_id, hold),
            state.persistence_errors,
        )
        await self._safe_write(
            "legal review task",
            self._sink.create_legal_review_task(task),
            state.persistence_errors,
        )
        await self._audit(
            context,
            "copilot_run.legal_hold_requested",
            state.persistence_errors,
            {"special_categories": [c.value for c in special_categories]},
        )

    async def _fail_run(
        self,
        context: DiscoveryRunContext,
        error: FatalRunError,
        persistence_errors: list[str],
    ) -> DiscoveryRunResult:
        message = f"Discovery run failed: {error}"
        logger.error(f"Discovery run {context.run_id}: {message}")
        await self._safe_write(
            "run status",
            self._sink.write_run_status(context.run_id, RunStatus.FAILED, message),
            persistence_errors,
        )
        await self._audit(
            context,
            "copilot_run.failed",
            persistence_errors,
            {"error": type(error).__name__},
        )
        return DiscoveryRunResult(
            run_id=context.run_id,
            case_id=context.case_id,
            status=RunStatus.FAILED,
            identity_graph=empty_identity_graph(),
            summary=message,
            error_message=message,
            persistence_errors=tuple(persistence_errors),
        )

    async def _audit(
        self,
        context: DiscoveryRunContext,
        action: str,
        persistence_errors: list[str],
        details: dict[str, Any] | None = None,
    ) -> None:
        event = AuditEvent(
            action=action,
            run_id=context.run_id,
            case_id=context.case_id,
            tenant_id=context.tenant_id,
            user_id=context.user_id,
            details=details or {},
        )
        await self._safe_write(
            "audit event", self._sink.append_audit_event(event), persistence_errors
        )

    async def _safe_write(
        self, description: str, write: Awaitable[None], persistence_errors: list[str]
    ) -> None:
        """Await a sink write, recording rather than raising any failure."""
        try:
            await write
        except Exception as e:
            logger.error(f"Failed to write {description}: {type(e).__name__}")
            persistence_errors.append(f"{description}: {type(e).__name__}")

    def _describe_failure(self, error: Exception) -> str:
        """Sanitised, bounded description of a per-query failure."""
        if isinstance(error, ConnectorTimeoutError | ConnectorCollectionError):
            raw = str(error)
        else:
            raw = f"{type(error).__name__}: {error}"
        return sanitise_error_message(raw, self._engine.catalog)


def _skipped(
    source: SourceDefinition, reason: str, query_id: str | None = None
) -> QueryFailure:
    ids = {"id": query_id} if query_id is not None else {}
    return QueryFailure(
        record=QueryRecord(
            **ids,
            source_id=source.id,
            provider=source.provider,
            status=QueryStatus.SKIPPED,
            error_message=reason,
        )
    )


def _release_from_thread(
    loop: asyncio.AbstractEventLoop, semaphore: asyncio.Semaphore
) -> None:
    """Release a run semaphore from a connector worker thread."""
    if loop.is_closed():
        return
    try:
        loop.call_soon_threadsafe(semaphore.release)
    except RuntimeError:
        logger.debug("Run finished before a timed-out connector thread returned")


def _elapsed_ms(start_time: float) -> int:
    return int((time.monotonic() - start_time) * 1000)


def _detectable_text(collection: CollectionResult) -> str | None:
    """Text of a collection the content-scan stage may read."""
    parts = [collection.findings_summary]
    if collection.result_metadata:
        parts.append(json.dumps(collection.result_metadata, sort_keys=True, default=str))
    if collection.content:
        parts.append(collection.content)
    text = "\n".join(p for p in parts if p)
    return text or None


def _detection_input(
    source: SourceDefinition, collection: CollectionResult
) -> DetectionInput:
    return DetectionInput(
        provider=source.provider,
        location=source.location,
        title=collection.title,
        file_name=collection.file_name,
        mime_type=collection.mime_type,
        text=_detectable_text(collection),
        document=collection.document,
    )


def _evidence_item(
    source: SourceDefinition, collection: CollectionResult, scan: EvidenceScanResult
) -> EvidenceItem:
    return EvidenceItem(
        source_id=source.id,
        provider=source.provider,
        location=source.location,
        title=collection.title,
        metadata={
            "records_found": collection.records_found,
            "mime_type": collection.mime_type,
            "has_document": collection.document is not None,
        },
        detection_results=scan.results,
        contains_third_party_data=scan.contains_third_party_data,
    )


def _special_categories(findings: tuple[Finding, ...]) -> tuple[DataCategory, ...]:
    observed = {f.data_category for f in findings if f.contains_special_category}
    return tuple(c for c in DataCategory if c in observed)


def _compute_totals(
    sources: list[SourceDefinition],
    records: tuple[QueryRecord, ...],
    evidence_items: tuple[EvidenceItem, ...],
    findings: tuple[Finding, ...],
) -> RunTotals:
    def count(status: QueryStatus) -> int:
        return sum(1 for r in records if r.status is status)

    def severity(level: Severity) -> int:
        return sum(1 for f in findings if f.severity is level)

    return RunTotals(
        sources=len(sources),
        queries_completed=count(QueryStatus.COMPLETED),
        queries_failed=count(QueryStatus.FAILED),
        queries_skipped=count(QueryStatus.SKIPPED),
        evidence_items=len(evidence_items),
        records_found=sum(r.records_found for r in records),
        findings=len(findings),
        critical_findings=severity(Severity.CRITICAL),
        warning_findings=severity(Severity.WARNING),
        info_findings=severity(Severity.INFO),
    )
