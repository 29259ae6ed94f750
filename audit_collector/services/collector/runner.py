"""
Audit collector run orchestration.

One run snapshots the audited dashboards, computes the audit window once,
evaluates and refreshes every dashboard under failure isolation, and returns
a ``RunRecord`` that is also persisted as the run's statistics.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, List, Mapping, Optional, Protocol, Sequence

from audit_collector.core.collector_config import DEFAULT_COLLECTOR_NAME
from audit_collector.models.audit import AuditOutcome, AuditType
from audit_collector.models.collector import CollectorRunConfig, RunRecord
from audit_collector.models.dashboard import Cmdb, Dashboard, DashboardType
from audit_collector.services.collector.evaluator import AuditEvaluator
from audit_collector.services.collector.isolation import UnitOutcome, UnitStatus, isolate
from audit_collector.services.collector.refresher import ResultRefresher, ResultStore
from audit_collector.services.collector.repository import CollectorNotFoundError
from audit_collector.services.collector.results import build_audit_results
from audit_collector.services.collector.time_window import (
    AuditWindow,
    compute_audit_window,
    to_epoch_millis,
)
from audit_collector.services.collector_metrics import (
    CollectorMetrics,
    get_collector_metrics,
)
from audit_collector.utils.error_handler import (
    CatalogEnumerationError,
    CollectorConfigurationError,
    CollectorError,
    EvaluationError,
    log_collector_error,
)
from audit_collector.utils.logger import add_dashboard_context, add_run_context, get_logger

logger = get_logger(__name__)


class EntityCatalog(Protocol):
    def list_entities(self, dashboard_type: DashboardType) -> Sequence[Dashboard]:
        ...

    def find_config_metadata(self, configuration_item: Optional[str]) -> Optional[Cmdb]:
        ...


class RunMetadataStore(Protocol):
    def get_collector_config(self, name: str) -> CollectorRunConfig:
        ...

    def record_run_stats(self, collector_name: str, record: RunRecord) -> None:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CollectorRunner:
    """
    Runs the audit collector once per call to ``run``.

    With ``max_workers`` above one, dashboards are processed by a bounded
    thread pool. The window is shared read-only, refreshes of one dashboard
    are serialised by the refresher, and a failing dashboard never cancels
    the others.
    """

    def __init__(
        self,
        catalog: EntityCatalog,
        evaluator: AuditEvaluator,
        result_store: ResultStore,
        run_metadata: RunMetadataStore,
        refresher: Optional[ResultRefresher] = None,
        metrics: Optional[CollectorMetrics] = None,
        collector_name: str = DEFAULT_COLLECTOR_NAME,
        max_workers: int = 1,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.catalog = catalog
        self.evaluator = evaluator
        self.run_metadata = run_metadata
        self.metrics = metrics or get_collector_metrics()
        self.refresher = refresher or ResultRefresher(result_store, metrics=self.metrics)
        self.collector_name = collector_name
        self.max_workers = max_workers
        self._clock = clock

    def run(self) -> RunRecord:
        """
        Execute one collector run.

        Returns:
            The run's statistics; per-dashboard failures are counted, not raised

        Raises:
            CollectorConfigurationError: Collector config missing or invalid
            CatalogEnumerationError: Dashboards could not be listed
        """
        started_at = self._clock()
        run_id = to_epoch_millis(started_at)
        started = time.perf_counter()
        log = logger.bind(**add_run_context(run_id, self.collector_name))
        log.info("Audit collector run started")

        try:
            config = self._load_config()
            if not config.enabled:
                log.info("Audit collector is disabled; skipping run")
                return RunRecord(
                    run_id=run_id,
                    started_at=started_at,
                    elapsed_seconds=time.perf_counter() - started,
                    entity_count=0,
                )
            log.info(
                "Pulling dashboards to audit", dashboard_type=config.dashboard_type.value
            )
            dashboards = self._snapshot_dashboards(config.dashboard_type)
            window = compute_audit_window(config.lookback_days, now=self._clock())
        except CollectorError as e:
            log_collector_error(e, collector_run_id=run_id)
            self.metrics.record_run_aborted()
            raise

        log.info("Audit time range", dashboard_count=len(dashboards), **window.to_dict())

        outcomes = self._process_all(dashboards, window, run_id)

        elapsed_seconds = time.perf_counter() - started
        record = RunRecord(
            run_id=run_id,
            started_at=started_at,
            elapsed_seconds=elapsed_seconds,
            entity_count=len(dashboards),
            succeeded=_count(outcomes, UnitStatus.SUCCEEDED),
            skipped=_count(outcomes, UnitStatus.SKIPPED),
            evaluation_failures=_count(outcomes, UnitStatus.EVALUATION_FAILED),
            refresh_failures=_count(outcomes, UnitStatus.REFRESH_FAILED),
        )
        self._record_run_stats(record)
        self.metrics.record_run(elapsed_seconds, record.entity_count)

        log.info(
            "Audit collector run finished",
            collector_process_time=round(elapsed_seconds, 3),
            collector_item_count=record.entity_count,
            succeeded=record.succeeded,
            skipped=record.skipped,
            evaluation_failures=record.evaluation_failures,
            refresh_failures=record.refresh_failures,
        )
        return record

    # Run setup

    def _load_config(self) -> CollectorRunConfig:
        try:
            return self.run_metadata.get_collector_config(self.collector_name)
        except CollectorNotFoundError as e:
            raise CollectorConfigurationError(
                f"No configuration for collector {self.collector_name}"
            ) from e
        except Exception as e:
            raise CollectorConfigurationError(
                f"Failed to load configuration for collector {self.collector_name}: {e}"
            ) from e

    def _snapshot_dashboards(self, dashboard_type: DashboardType) -> List[Dashboard]:
        try:
            return list(self.catalog.list_entities(dashboard_type))
        except Exception as e:
            raise CatalogEnumerationError(
                f"Failed to list {dashboard_type.value} dashboards: {e}"
            ) from e

    # Per-dashboard processing

    def _process_all(
        self, dashboards: List[Dashboard], window: AuditWindow, run_id: int
    ) -> List[UnitOutcome]:
        total = len(dashboards)
        if total == 0:
            return []

        def process(indexed: tuple) -> UnitOutcome:
            index, dashboard = indexed
            outcome = isolate(
                dashboard.title, run_id, self._process_dashboard, dashboard, window, run_id
            )
            self.metrics.record_dashboard(outcome.status.value, outcome.duration_ms)
            logger.info(
                "Processed dashboard",
                collector_run_id=run_id,
                status=outcome.status.value,
                duration_ms=round(outcome.duration_ms, 1),
                **add_dashboard_context(dashboard.title, index, total),
            )
            return outcome

        indexed = list(enumerate(dashboards, start=1))
        if self.max_workers == 1:
            return [process(item) for item in indexed]

        with ThreadPoolExecutor(
            max_workers=min(self.max_workers, total),
            thread_name_prefix="audit-collector",
        ) as executor:
            return list(executor.map(process, indexed))

    def _process_dashboard(
        self, dashboard: Dashboard, window: AuditWindow, run_id: int
    ) -> UnitStatus:
        outcomes = self._evaluate(dashboard, window)
        if not outcomes:
            logger.info(
                "No audits computed; keeping stored results",
                dashboard=dashboard.title,
                collector_run_id=run_id,
            )
            return UnitStatus.SKIPPED

        cmdb = self._find_config_metadata(dashboard)
        results = build_audit_results(dashboard, outcomes, cmdb, window.end_ms, run_id)
        self.refresher.refresh(dashboard.title, results)
        return UnitStatus.SUCCEEDED

    def _evaluate(
        self, dashboard: Dashboard, window: AuditWindow
    ) -> Mapping[AuditType, AuditOutcome]:
        outcomes = self.evaluator.evaluate(dashboard, window.begin_ms, window.end_ms)
        if outcomes is None:
            raise EvaluationError(dashboard.title, "Audit evaluator returned no mapping")
        return outcomes

    def _find_config_metadata(self, dashboard: Dashboard) -> Optional[Cmdb]:
        """CMDB record for the dashboard, or None when the item is not registered"""
        configuration_item = dashboard.configuration_item_bus_serv_name
        try:
            return self.catalog.find_config_metadata(configuration_item)
        except Exception as e:
            raise EvaluationError(
                dashboard.title,
                f"CMDB lookup failed for {configuration_item}: {e}",
                technical_details={"configuration_item": configuration_item},
            ) from e

    def _record_run_stats(self, record: RunRecord) -> None:
        try:
            self.run_metadata.record_run_stats(self.collector_name, record)
        except Exception as e:
            log_collector_error(
                e,
                collector_run_id=record.run_id,
                additional_context={"operation": "record_run_stats"},
            )


def _count(outcomes: List[UnitOutcome], status: UnitStatus) -> int:
    return sum(1 for outcome in outcomes if outcome.status == status)
