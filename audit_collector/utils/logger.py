"""
Structured logging configuration using structlog.

This module provides centralized logging configuration for the collector
process and its Celery workers. It supports both development (human-readable)
and production (JSON) formats.
"""

import logging
import sys
from typing import Any, Dict, Optional

import structlog
from structlog.types import Processor

from audit_collector.core.config import settings


def configure_logging(level: int = logging.INFO) -> None:
    """
    Configure structured logging for the entire application.

    This function sets up:
    - Development: Human-readable logs with colors
    - Production: JSON structured logs for machine processing
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="ISO"),
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
            ]
        ),
    ]

    if settings.is_development:
        processors.extend(
            [
                structlog.dev.set_exc_info,
                structlog.dev.ConsoleRenderer(colors=True),
            ]
        )
    else:
        processors.extend(
            [
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ]
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def add_run_context(collector_run_id: int, collector: Optional[str] = None) -> Dict[str, Any]:
    """Add collector-run context to logs."""
    context: Dict[str, Any] = {"collector_run_id": collector_run_id}
    if collector:
        context["collector"] = collector
    return context


def add_dashboard_context(dashboard_title: str, index: int, total: int) -> Dict[str, Any]:
    """Add per-dashboard progress context to logs."""
    return {
        "dashboard": dashboard_title,
        "progress": f"{index}/{total}",
    }
