"""
Celery task that executes one audit collector run.

The beat schedule in ``audit_collector.core.celery_app`` triggers this task on
the collector record's cron expression. Failed runs are not retried by Celery: the
next scheduled run recomputes everything.
"""

from typing import Any, Dict, Optional

from audit_collector.core.celery_app import celery_app
from audit_collector.core.collector_config import (
    CollectorSettings,
    collector_prototype,
    get_collector_settings,
)
from audit_collector.services.collector.evaluator import AuditApiEvaluator
from audit_collector.services.collector.repository import (
    AuditResultRepository,
    CollectorRepository,
    DashboardRepository,
)
from audit_collector.services.collector.runner import CollectorRunner
from audit_collector.utils.error_handler import CollectorConfigurationError
from audit_collector.utils.logger import get_logger

logger = get_logger(__name__)


def execute_collector_run(
    collector_settings: Optional[CollectorSettings] = None,
    session_factory=None,
    evaluator=None,
) -> Dict[str, Any]:
    """
    Build the collector from its SQL and HTTP adapters and run it once.

    Args:
        collector_settings: Defaults to the global collector settings
        session_factory: SQLAlchemy session factory; defaults to SessionLocal
        evaluator: Audit evaluator; defaults to the audit API client built
            from the collector record's servers

    Returns:
        The run record as a dictionary
    """
    collector_settings = collector_settings or get_collector_settings()
    collectors = CollectorRepository(session_factory)
    config = collectors.ensure_collector(collector_prototype(collector_settings))

    owns_evaluator = evaluator is None
    if owns_evaluator:
        if not config.servers:
            raise CollectorConfigurationError(
                f"Collector {config.name} has no audit API servers configured"
            )
        evaluator = AuditApiEvaluator(
            servers=config.servers,
            api_token=collector_settings.API_TOKEN,
            timeout=collector_settings.REQUEST_TIMEOUT_SECONDS,
        )

    try:
        runner = CollectorRunner(
            catalog=DashboardRepository(session_factory),
            evaluator=evaluator,
            result_store=AuditResultRepository(session_factory),
            run_metadata=collectors,
            collector_name=config.name,
            max_workers=collector_settings.MAX_WORKERS,
        )
        record = runner.run()
    finally:
        if owns_evaluator:
            evaluator.close()

    return record.to_dict()


@celery_app.task(
    bind=True,
    acks_late=True,
    soft_time_limit=3 * 3600,
    time_limit=3 * 3600 + 300,
)
def run_audit_collector(self) -> Dict[str, Any]:
    """
    Execute one audit collector run.

    Returns:
        Dict with the run record (run id, elapsed seconds, dashboard counts)
    """
    logger.info("Starting audit collector task", task_id=self.request.id)
    result = execute_collector_run()
    logger.info("Audit collector task completed", task_id=self.request.id, **result)
    return result
