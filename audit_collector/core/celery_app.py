from typing import Optional

import sentry_sdk
from celery import Celery
from celery.schedules import crontab
from celery.signals import beat_init, setup_logging
from sentry_sdk.integrations.celery import CeleryIntegration

from audit_collector.core.collector_config import (
    CollectorSettings,
    collector_prototype,
    get_collector_settings,
)
from audit_collector.core.config import settings
from audit_collector.services.collector.repository import (
    CollectorRepository,
    CollectorRepositoryError,
)
from audit_collector.utils.logger import configure_logging, get_logger

COLLECTOR_TASK_NAME = "audit_collector.tasks.collector_tasks.run_audit_collector"
COLLECTOR_SCHEDULE_ENTRY = "audit-collector"

logger = get_logger(__name__)


@setup_logging.connect
def setup_celery_logging(**kwargs):
    """Configure structured logging for Celery workers"""
    configure_logging()
    logger.info("Celery logging configured")


def crontab_from_expression(expression: str) -> crontab:
    """Build a Celery crontab from a five-field cron expression."""
    fields = expression.split()
    if len(fields) != 5:
        raise ValueError(f"Cron expression must have 5 fields: {expression!r}")
    minute, hour, day_of_month, month_of_year, day_of_week = fields
    return crontab(
        minute=minute,
        hour=hour,
        day_of_month=day_of_month,
        month_of_year=month_of_year,
        day_of_week=day_of_week,
    )


# Initialize Sentry for Celery if DSN is provided
if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        integrations=[CeleryIntegration()],
        environment=settings.APP_ENV,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
    )


celery_app = Celery(
    "audit_collector",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["audit_collector.tasks.collector_tasks"],
)

# Configure Celery settings
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
    beat_schedule={
        COLLECTOR_SCHEDULE_ENTRY: {
            "task": COLLECTOR_TASK_NAME,
            "schedule": crontab_from_expression(get_collector_settings().CRON),
            "options": {"expires": 3600},
        },
    },
)


def resolve_collector_cron(
    collector_settings: Optional[CollectorSettings] = None, session_factory=None
) -> str:
    """
    Cron expression the collector runs on.

    The stored collector record is authoritative; it is registered from
    settings when missing. Falls back to the configured cron when the record
    cannot be read or holds an invalid expression.
    """
    collector_settings = collector_settings or get_collector_settings()
    try:
        config = CollectorRepository(session_factory).ensure_collector(
            collector_prototype(collector_settings)
        )
        crontab_from_expression(config.cron)
    except (CollectorRepositoryError, ValueError) as e:
        logger.warning(
            "Could not use stored collector schedule; using configured cron",
            cron=collector_settings.CRON,
            error=str(e),
        )
        return collector_settings.CRON
    return config.cron


@beat_init.connect
def load_collector_schedule(sender=None, **kwargs):
    """Point the beat entry at the stored collector cron before the scheduler loads"""
    cron = resolve_collector_cron()
    entry = celery_app.conf.beat_schedule[COLLECTOR_SCHEDULE_ENTRY]
    entry["schedule"] = crontab_from_expression(cron)
    logger.info("Scheduled audit collector", cron=cron)
