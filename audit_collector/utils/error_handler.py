"""
Error handling for the audit collector.

This module provides the collector's exception hierarchy, error categorization
and severity, and a central handler that logs failures with run and dashboard
context and records them in the collector metrics.
"""

import traceback
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from audit_collector.services.collector_metrics import get_collector_metrics
from audit_collector.utils.logger import get_logger

logger = get_logger(__name__)


class ErrorSeverity(str, Enum):
    """Error severity levels for categorization and alerting"""

    LOW = "low"  # Minor issues, logging only
    MEDIUM = "medium"  # Important issues, monitoring alerts
    HIGH = "high"  # Critical issues, immediate attention
    CRITICAL = "critical"  # Run-threatening issues


class ErrorCategory(str, Enum):
    """Error categories for systematic handling"""

    CONFIGURATION = "configuration"  # Collector config errors
    CATALOG = "catalog"  # Dashboard enumeration errors
    EVALUATION = "evaluation"  # Audit evaluator / metadata lookup errors
    REFRESH = "refresh"  # Stored result replacement errors
    DATABASE = "database"  # Other database errors
    NETWORK = "network"  # Network/connectivity errors
    TIMEOUT = "timeout"  # Timeout errors
    VALIDATION = "validation"  # Input validation errors
    SYSTEM = "system"  # System/infrastructure errors


class ErrorContext:
    """Container for error context information"""

    def __init__(
        self,
        error: Exception,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.SYSTEM,
        technical_details: Optional[Dict[str, Any]] = None,
        collector_run_id: Optional[int] = None,
        dashboard_title: Optional[str] = None,
    ):
        self.error = error
        self.severity = severity
        self.category = category
        self.technical_details = technical_details or {}
        self.collector_run_id = collector_run_id
        self.dashboard_title = dashboard_title
        self.timestamp = datetime.now(timezone.utc)
        self.error_id = f"err_{int(self.timestamp.timestamp())}_{uuid.uuid4().hex[:8]}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert error context to dictionary for logging/serialization"""
        return {
            "error_id": self.error_id,
            "timestamp": self.timestamp.isoformat(),
            "error_type": type(self.error).__name__,
            "error_message": str(self.error),
            "severity": self.severity.value,
            "category": self.category.value,
            "technical_details": self.technical_details,
            "collector_run_id": self.collector_run_id,
            "dashboard": self.dashboard_title,
            "traceback": traceback.format_exc()
            if self.severity in [ErrorSeverity.HIGH, ErrorSeverity.CRITICAL]
            else None,
        }


# === Custom Exception Classes ===


class CollectorError(Exception):
    """Base exception for audit collector errors"""

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.SYSTEM,
        technical_details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.severity = severity
        self.category = category
        self.technical_details = technical_details or {}


class CollectorConfigurationError(CollectorError):
    """Raised when the collector configuration is missing or invalid"""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.CRITICAL,
            category=ErrorCategory.CONFIGURATION,
            **kwargs,
        )


class CatalogEnumerationError(CollectorError):
    """Raised when the dashboards to audit cannot be listed"""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.CRITICAL,
            category=ErrorCategory.CATALOG,
            **kwargs,
        )


class EvaluationError(CollectorError):
    """Raised when computing the audit outcomes for one dashboard fails"""

    def __init__(self, dashboard_title: str, message: str, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.EVALUATION,
            **kwargs,
        )
        self.dashboard_title = dashboard_title


class RefreshError(CollectorError):
    """Raised when replacing the stored audit results of one dashboard fails"""

    def __init__(self, dashboard_title: str, message: str, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.REFRESH,
            **kwargs,
        )
        self.dashboard_title = dashboard_title


# === Error Handler Class ===


class ErrorHandler:
    """Centralized error categorization, logging and metrics"""

    def __init__(self):
        self.metrics = get_collector_metrics()

    def handle_error(
        self, error: Exception, context: Optional[Dict[str, Any]] = None
    ) -> ErrorContext:
        """
        Categorize, log and record an error.

        Args:
            error: The exception that occurred
            context: Additional context information

        Returns:
            ErrorContext with detailed error information
        """
        context = context or {}
        error_context = self._categorize_error(error, context)
        self._log_error(error_context)
        self.metrics.increment_error(
            category=error_context.category.value,
            severity=error_context.severity.value,
        )
        return error_context

    def _categorize_error(
        self, error: Exception, context: Dict[str, Any]
    ) -> ErrorContext:
        """Categorize error and determine severity"""
        if isinstance(error, CollectorError):
            return ErrorContext(
                error=error,
                severity=error.severity,
                category=error.category,
                technical_details={**error.technical_details, **context},
                collector_run_id=context.get("collector_run_id"),
                dashboard_title=getattr(error, "dashboard_title", None)
                or context.get("dashboard"),
            )

        error_mappings = {
            ConnectionError: (ErrorSeverity.MEDIUM, ErrorCategory.NETWORK),
            TimeoutError: (ErrorSeverity.MEDIUM, ErrorCategory.TIMEOUT),
            ValueError: (ErrorSeverity.LOW, ErrorCategory.VALIDATION),
            KeyError: (ErrorSeverity.LOW, ErrorCategory.VALIDATION),
        }

        severity, category = error_mappings.get(
            type(error), (ErrorSeverity.MEDIUM, ErrorCategory.SYSTEM)
        )

        return ErrorContext(
            error=error,
            severity=severity,
            category=category,
            collector_run_id=context.get("collector_run_id"),
            dashboard_title=context.get("dashboard"),
            technical_details=context,
        )

    def _log_error(self, error_context: ErrorContext):
        """Log error with appropriate level and context"""
        message = f"{error_context.category.value}_error"
        log_data = {
            "error_id": error_context.error_id,
            "error_type": type(error_context.error).__name__,
            "error": str(error_context.error),
            "severity": error_context.severity.value,
            "collector_run_id": error_context.collector_run_id,
            "dashboard": error_context.dashboard_title,
        }

        if error_context.severity == ErrorSeverity.CRITICAL:
            logger.critical(message, **log_data, exc_info=error_context.error)
        elif error_context.severity == ErrorSeverity.HIGH:
            logger.error(message, **log_data, exc_info=error_context.error)
        elif error_context.severity == ErrorSeverity.MEDIUM:
            logger.warning(message, **log_data, exc_info=error_context.error)
        else:  # LOW
            logger.info(message, **log_data)


# === Global Error Handler Instance ===

error_handler = ErrorHandler()


def log_collector_error(
    error: Exception,
    collector_run_id: Optional[int] = None,
    dashboard_title: Optional[str] = None,
    additional_context: Optional[Dict[str, Any]] = None,
) -> ErrorContext:
    """
    Log a collector error with run and dashboard context.

    Returns:
        The ErrorContext, whose error_id can be used for correlation
    """
    context: Dict[str, Any] = {"collector_run_id": collector_run_id}
    if dashboard_title is not None:
        context["dashboard"] = dashboard_title
    if additional_context:
        context.update(additional_context)

    return error_handler.handle_error(error, context)
