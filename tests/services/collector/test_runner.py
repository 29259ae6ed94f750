"""
Tests for the collector run orchestration.

Covers window sharing, replace and no-op semantics, per-dashboard failure
isolation, run bookkeeping and the fatal run-level errors.
"""

from datetime import timedelta
from unittest.mock import Mock

import pytest
from structlog.testing import capture_logs

from audit_collector.models.audit import AuditStatus, AuditType
from audit_collector.models.collector import CollectorRunConfig
from audit_collector.models.dashboard import Cmdb, DashboardType
from audit_collector.services.collector.runner import CollectorRunner
from audit_collector.services.collector.time_window import to_epoch_millis
from audit_collector.services.collector_metrics import CollectorMetrics
from audit_collector.utils.error_handler import (
    CatalogEnumerationError,
    CollectorConfigurationError,
)

from collector_fakes import (
    FIXED_NOW,
    FakeCatalog,
    FakeEvaluator,
    FakeRunMetadata,
    InMemoryResultStore,
    make_dashboard,
    make_outcome,
    make_result,
)


@pytest.fixture
def metrics():
    return Mock(spec=CollectorMetrics)


def build_runner(catalog, evaluator, store, run_metadata, clock, metrics, **kwargs):
    return CollectorRunner(
        catalog=catalog,
        evaluator=evaluator,
        result_store=store,
        run_metadata=run_metadata,
        metrics=metrics,
        clock=clock,
        **kwargs,
    )


def outcomes_for(*audit_types):
    return {audit_type: make_outcome(audit_type) for audit_type in audit_types}


class TestCollectorRunnerScenarios:
    def test_failure_of_one_dashboard_does_not_affect_others(
        self, run_metadata, fixed_clock, metrics
    ):
        dashboards = [make_dashboard("A"), make_dashboard("B"), make_dashboard("C")]
        prior_b = [make_result("B", AuditType.CODE_REVIEW, run_id=7)]
        store = InMemoryResultStore(
            {
                "A": [make_result("A", AuditType.DEPLOY, run_id=7)],
                "B": prior_b,
            }
        )
        evaluator = FakeEvaluator(
            {
                "A": outcomes_for(AuditType.CODE_REVIEW, AuditType.BUILD_REVIEW),
                "C": outcomes_for(AuditType.TEST_RESULT),
            },
            failures={"B": RuntimeError("audit api exploded")},
        )
        runner = build_runner(
            FakeCatalog(dashboards), evaluator, store, run_metadata, fixed_clock, metrics
        )

        with capture_logs() as logs:
            record = runner.run()

        assert record.entity_count == 3
        assert record.succeeded == 2
        assert record.evaluation_failures == 1
        assert record.refresh_failures == 0

        assert [r.audit_type for r in store.find_current("A")] == [
            AuditType.CODE_REVIEW,
            AuditType.BUILD_REVIEW,
        ]
        assert [r.audit_type for r in store.find_current("C")] == [AuditType.TEST_RESULT]
        assert store.find_current("B") == prior_b
        assert store.mutating_calls_for("B") == []

        failures = [log for log in logs if log["log_level"] == "error"]
        assert len(failures) == 1
        assert failures[0]["event"] == "evaluation_error"
        assert failures[0]["dashboard"] == "B"
        assert failures[0]["collector_run_id"] == record.run_id

    def test_empty_catalog_completes_without_storage_calls(
        self, run_metadata, fixed_clock, metrics
    ):
        store = InMemoryResultStore()
        evaluator = FakeEvaluator({})
        runner = build_runner(
            FakeCatalog([]), evaluator, store, run_metadata, fixed_clock, metrics
        )

        record = runner.run()

        assert record.entity_count == 0
        assert record.succeeded == record.failed == 0
        assert store.calls == []
        assert evaluator.calls == []
        assert len(run_metadata.recorded) == 1

    def test_empty_outcome_mapping_keeps_prior_results(
        self, run_metadata, fixed_clock, metrics
    ):
        prior = [
            make_result("D", AuditType.CODE_QUALITY, run_id=3),
            make_result("D", AuditType.ARTIFACT, run_id=3),
        ]
        store = InMemoryResultStore({"D": list(prior)})
        runner = build_runner(
            FakeCatalog([make_dashboard("D")]),
            FakeEvaluator({"D": {}}),
            store,
            run_metadata,
            fixed_clock,
            metrics,
        )

        record = runner.run()

        assert record.skipped == 1
        assert record.succeeded == 0
        assert store.calls == []
        assert store.find_current("D") == prior

    def test_non_empty_outcomes_supersede_old_results(
        self, run_metadata, fixed_clock, metrics
    ):
        store = InMemoryResultStore(
            {
                "E": [
                    make_result("E", AuditType.CODE_REVIEW, run_id=1),
                    make_result("E", AuditType.PERF_TEST, run_id=1),
                ]
            }
        )
        runner = build_runner(
            FakeCatalog([make_dashboard("E")]),
            FakeEvaluator({"E": {AuditType.CODE_REVIEW: make_outcome(AuditType.CODE_REVIEW, AuditStatus.FAIL)}}),
            store,
            run_metadata,
            fixed_clock,
            metrics,
        )

        record = runner.run()

        current = store.find_current("E")
        assert len(current) == 1
        assert current[0].audit_type == AuditType.CODE_REVIEW
        assert current[0].audit_status == AuditStatus.FAIL
        assert current[0].collector_run_id == record.run_id

    def test_refresh_failure_is_reported_separately(
        self, run_metadata, fixed_clock, metrics, repository_error
    ):
        prior = [make_result("F", AuditType.DEPLOY)]
        store = InMemoryResultStore({"F": list(prior)})
        store.fail_replace_for["F"] = repository_error
        runner = build_runner(
            FakeCatalog([make_dashboard("F"), make_dashboard("G")]),
            FakeEvaluator(
                {
                    "F": outcomes_for(AuditType.DEPLOY),
                    "G": outcomes_for(AuditType.DEPLOY),
                }
            ),
            store,
            run_metadata,
            fixed_clock,
            metrics,
        )

        with capture_logs() as logs:
            record = runner.run()

        assert record.refresh_failures == 1
        assert record.evaluation_failures == 0
        assert record.succeeded == 1
        assert store.find_current("F") == prior
        assert [e["event"] for e in logs if e["log_level"] == "error"] == ["refresh_error"]

    def test_unexpected_store_exception_counts_as_refresh_failure(
        self, run_metadata, fixed_clock, metrics
    ):
        prior = [make_result("F", AuditType.DEPLOY)]
        store = InMemoryResultStore({"F": list(prior)})
        store.fail_replace_for["F"] = OSError("disk full")
        runner = build_runner(
            FakeCatalog([make_dashboard("F")]),
            FakeEvaluator({"F": outcomes_for(AuditType.CODE_REVIEW)}),
            store,
            run_metadata,
            fixed_clock,
            metrics,
        )

        with capture_logs() as logs:
            record = runner.run()

        assert record.refresh_failures == 1
        assert record.evaluation_failures == 0
        assert store.find_current("F") == prior
        assert [e["event"] for e in logs if e["log_level"] == "error"] == ["refresh_error"]


class TestCollectorRunnerWindow:
    def test_window_is_computed_once_and_shared(self, run_metadata, fixed_clock, metrics):
        dashboards = [make_dashboard(title) for title in ("A", "B", "C", "D")]
        evaluator = FakeEvaluator({})
        runner = build_runner(
            FakeCatalog(dashboards),
            evaluator,
            InMemoryResultStore(),
            run_metadata,
            fixed_clock,
            metrics,
        )

        runner.run()

        windows = {(begin, end) for _, begin, end in evaluator.calls}
        assert windows == {
            (
                to_epoch_millis(FIXED_NOW - timedelta(days=30)),
                to_epoch_millis(FIXED_NOW),
            )
        }

    def test_window_uses_configured_lookback(self, fixed_clock, metrics):
        config = CollectorRunConfig(
            name="AuditCollector", lookback_days=7, cron="0 0 * * *", servers=("x",)
        )
        evaluator = FakeEvaluator({})
        runner = build_runner(
            FakeCatalog([make_dashboard("A")]),
            evaluator,
            InMemoryResultStore(),
            FakeRunMetadata(config),
            fixed_clock,
            metrics,
        )

        runner.run()

        _, begin, end = evaluator.calls[0]
        assert end - begin == 7 * 86_400_000

    def test_results_are_stamped_with_window_end(self, run_metadata, fixed_clock, metrics):
        store = InMemoryResultStore()
        runner = build_runner(
            FakeCatalog([make_dashboard("A")]),
            FakeEvaluator({"A": outcomes_for(AuditType.ARTIFACT)}),
            store,
            run_metadata,
            fixed_clock,
            metrics,
        )

        runner.run()

        assert store.find_current("A")[0].timestamp == to_epoch_millis(FIXED_NOW)


class TestCollectorRunnerBookkeeping:
    def test_processes_dashboards_in_catalog_order(self, run_metadata, fixed_clock, metrics):
        titles = ["zeta", "alpha", "mid"]
        evaluator = FakeEvaluator({})
        runner = build_runner(
            FakeCatalog([make_dashboard(t) for t in titles]),
            evaluator,
            InMemoryResultStore(),
            run_metadata,
            fixed_clock,
            metrics,
        )

        runner.run()

        assert [call[0] for call in evaluator.calls] == titles

    def test_entity_count_is_snapshot_size_even_when_everything_fails(
        self, run_metadata, fixed_clock, metrics
    ):
        dashboards = [make_dashboard(t) for t in ("A", "B", "C")]
        evaluator = FakeEvaluator(
            {}, failures={d.title: ValueError("bad") for d in dashboards}
        )
        runner = build_runner(
            FakeCatalog(dashboards),
            evaluator,
            InMemoryResultStore(),
            run_metadata,
            fixed_clock,
            metrics,
        )

        record = runner.run()

        assert record.entity_count == 3
        assert record.evaluation_failures == 3
        assert record.failed == 3

    def test_run_record_is_persisted_and_metrics_recorded(
        self, run_metadata, fixed_clock, metrics
    ):
        runner = build_runner(
            FakeCatalog([make_dashboard("A"), make_dashboard("B")]),
            FakeEvaluator({"A": outcomes_for(AuditType.DEPLOY)}),
            InMemoryResultStore(),
            run_metadata,
            fixed_clock,
            metrics,
        )

        record = runner.run()

        assert run_metadata.recorded == [("AuditCollector", record)]
        assert record.run_id == to_epoch_millis(FIXED_NOW)
        assert record.started_at == FIXED_NOW
        assert record.elapsed_seconds >= 0
        metrics.record_run.assert_called_once_with(record.elapsed_seconds, 2)
        assert metrics.record_dashboard.call_count == 2
        statuses = [c.args[0] for c in metrics.record_dashboard.call_args_list]
        assert statuses == ["succeeded", "skipped"]

    def test_failure_to_persist_run_stats_still_returns_record(
        self, run_metadata, fixed_clock, metrics, repository_error
    ):
        run_metadata.fail_record = repository_error
        runner = build_runner(
            FakeCatalog([make_dashboard("A")]),
            FakeEvaluator({}),
            InMemoryResultStore(),
            run_metadata,
            fixed_clock,
            metrics,
        )

        record = runner.run()

        assert record.entity_count == 1

    def test_evaluator_returning_none_is_an_evaluation_failure(
        self, run_metadata, fixed_clock, metrics
    ):
        evaluator = Mock()
        evaluator.evaluate.return_value = None
        store = InMemoryResultStore()
        runner = build_runner(
            FakeCatalog([make_dashboard("A")]),
            evaluator,
            store,
            run_metadata,
            fixed_clock,
            metrics,
        )

        record = runner.run()

        assert record.evaluation_failures == 1
        assert store.calls == []

    def test_disabled_collector_skips_the_run(self, fixed_clock, metrics):
        config = CollectorRunConfig(
            name="AuditCollector",
            lookback_days=30,
            cron="0 0 * * *",
            servers=("x",),
            enabled=False,
        )
        catalog = FakeCatalog([make_dashboard("A")])
        metadata = FakeRunMetadata(config)
        runner = build_runner(
            catalog, FakeEvaluator({}), InMemoryResultStore(), metadata, fixed_clock, metrics
        )

        record = runner.run()

        assert record.entity_count == 0
        assert catalog.list_calls == []
        assert metadata.recorded == []

    def test_lists_configured_dashboard_type(self, fixed_clock, metrics):
        config = CollectorRunConfig(
            name="AuditCollector",
            lookback_days=30,
            cron="0 0 * * *",
            servers=("x",),
            dashboard_type=DashboardType.PRODUCT,
        )
        catalog = FakeCatalog([])
        runner = build_runner(
            catalog,
            FakeEvaluator({}),
            InMemoryResultStore(),
            FakeRunMetadata(config),
            fixed_clock,
            metrics,
        )

        runner.run()

        assert catalog.list_calls == [DashboardType.PRODUCT]


class TestCollectorRunnerConfigMetadata:
    def test_cmdb_metadata_is_attached_when_found(self, run_metadata, fixed_clock, metrics):
        cmdb = Cmdb(
            configuration_item="ASV-A",
            line_of_business="Retail",
            owner_name="app-owner",
            app_service_owner="svc-owner",
        )
        store = InMemoryResultStore()
        runner = build_runner(
            FakeCatalog([make_dashboard("A")], cmdb={"ASV-A": cmdb}),
            FakeEvaluator({"A": outcomes_for(AuditType.CODE_REVIEW)}),
            store,
            run_metadata,
            fixed_clock,
            metrics,
        )

        runner.run()

        [result] = store.find_current("A")
        assert result.line_of_business == "Retail"
        assert result.configuration_item_bus_serv_owner == "svc-owner"
        assert result.configuration_item_bus_app_owner == "app-owner"

    def test_cmdb_lookup_failure_keeps_prior_results(
        self, run_metadata, fixed_clock, metrics
    ):
        prior = [make_result("A", AuditType.DEPLOY)]
        catalog = FakeCatalog([make_dashboard("A"), make_dashboard("B")])
        catalog.fail_lookup = RuntimeError("cmdb down")
        store = InMemoryResultStore({"A": list(prior)})
        runner = build_runner(
            catalog,
            FakeEvaluator({"A": outcomes_for(AuditType.CODE_REVIEW)}),
            store,
            run_metadata,
            fixed_clock,
            metrics,
        )

        with capture_logs() as logs:
            record = runner.run()

        assert record.evaluation_failures == 1
        assert record.refresh_failures == 0
        assert record.skipped == 1
        assert store.find_current("A") == prior
        assert store.calls == []
        [failure] = [log for log in logs if log["log_level"] == "error"]
        assert failure["event"] == "evaluation_error"
        assert failure["dashboard"] == "A"
        assert "cmdb down" in failure["error"]

    def test_unregistered_configuration_item_stores_results_without_metadata(
        self, run_metadata, fixed_clock, metrics
    ):
        store = InMemoryResultStore()
        runner = build_runner(
            FakeCatalog([make_dashboard("A")]),
            FakeEvaluator({"A": outcomes_for(AuditType.CODE_REVIEW)}),
            store,
            run_metadata,
            fixed_clock,
            metrics,
        )

        record = runner.run()

        assert record.succeeded == 1
        [result] = store.find_current("A")
        assert result.line_of_business is None
        assert result.configuration_item_bus_serv_name == "ASV-A"


class TestCollectorRunnerFatalErrors:
    def test_missing_collector_config_aborts_before_listing(self, fixed_clock, metrics):
        catalog = FakeCatalog([make_dashboard("A")])
        runner = build_runner(
            catalog,
            FakeEvaluator({}),
            InMemoryResultStore(),
            FakeRunMetadata(None),
            fixed_clock,
            metrics,
        )

        with pytest.raises(CollectorConfigurationError):
            runner.run()

        assert catalog.list_calls == []
        metrics.record_run_aborted.assert_called_once()

    def test_negative_lookback_aborts_before_iteration(self, fixed_clock, metrics):
        config = CollectorRunConfig(
            name="AuditCollector", lookback_days=-1, cron="0 0 * * *", servers=("x",)
        )
        evaluator = FakeEvaluator({})
        runner = build_runner(
            FakeCatalog([make_dashboard("A")]),
            evaluator,
            InMemoryResultStore(),
            FakeRunMetadata(config),
            fixed_clock,
            metrics,
        )

        with pytest.raises(CollectorConfigurationError):
            runner.run()

        assert evaluator.calls == []

    def test_catalog_failure_is_fatal(self, run_metadata, fixed_clock, metrics):
        catalog = FakeCatalog([])
        catalog.fail_listing = RuntimeError("connection refused")
        runner = build_runner(
            catalog,
            FakeEvaluator({}),
            InMemoryResultStore(),
            run_metadata,
            fixed_clock,
            metrics,
        )

        with pytest.raises(CatalogEnumerationError, match="connection refused"):
            runner.run()

        assert run_metadata.recorded == []


class TestCollectorRunnerParallel:
    def test_parallel_run_matches_sequential_semantics(
        self, run_metadata, fixed_clock, metrics
    ):
        titles = [f"dash-{i:02d}" for i in range(20)]
        dashboards = [make_dashboard(t) for t in titles]
        outcomes = {t: outcomes_for(AuditType.CODE_REVIEW) for t in titles}
        outcomes[titles[3]] = {}
        failures = {titles[5]: RuntimeError("boom"), titles[11]: RuntimeError("boom")}
        prior_failed = make_result(titles[5], AuditType.DEPLOY)
        store = InMemoryResultStore({titles[5]: [prior_failed]})
        evaluator = FakeEvaluator(outcomes, failures=failures)
        runner = build_runner(
            FakeCatalog(dashboards),
            evaluator,
            store,
            run_metadata,
            fixed_clock,
            metrics,
            max_workers=4,
        )

        record = runner.run()

        assert record.entity_count == 20
        assert record.succeeded == 17
        assert record.skipped == 1
        assert record.evaluation_failures == 2
        assert store.find_current(titles[5]) == [prior_failed]
        windows = {(begin, end) for _, begin, end in evaluator.calls}
        assert len(windows) == 1

    def test_max_workers_must_be_positive(self, run_metadata, metrics):
        with pytest.raises(ValueError):
            CollectorRunner(
                catalog=FakeCatalog([]),
                evaluator=FakeEvaluator({}),
                result_store=InMemoryResultStore(),
                run_metadata=run_metadata,
                metrics=metrics,
                max_workers=0,
            )
