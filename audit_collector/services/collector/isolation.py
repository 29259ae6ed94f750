"""
Per-dashboard failure isolation.

``isolate`` runs one unit of work, captures its outcome or error, and never
lets an ``Exception`` escape. Refresh failures are reported separately from
evaluation failures because a failed refresh may leave stored results in a
different state than a failed evaluation.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from audit_collector.utils.error_handler import (
    CollectorError,
    EvaluationError,
    RefreshError,
    log_collector_error,
)


class UnitStatus(str, Enum):
    """Outcome of processing one dashboard"""

    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"  # nothing computable, stored results kept
    EVALUATION_FAILED = "evaluation_failed"
    REFRESH_FAILED = "refresh_failed"

    @property
    def is_failure(self) -> bool:
        return self in (UnitStatus.EVALUATION_FAILED, UnitStatus.REFRESH_FAILED)


@dataclass(frozen=True)
class UnitOutcome:
    key: str
    status: UnitStatus
    duration_ms: float
    error: Optional[BaseException] = None
    error_id: Optional[str] = None


def isolate(
    unit_key: str,
    collector_run_id: int,
    func: Callable[..., UnitStatus],
    *args: Any,
    **kwargs: Any,
) -> UnitOutcome:
    """
    Run ``func`` for one dashboard and capture the result.

    ``func`` returns ``SUCCEEDED`` or ``SKIPPED``. Any exception is logged with
    the dashboard and run id and turned into a failed outcome; it is not
    retried.
    """
    started = time.perf_counter()
    error: Optional[CollectorError] = None
    try:
        status = func(*args, **kwargs)
    except RefreshError as e:
        error = e
        status = UnitStatus.REFRESH_FAILED
    except Exception as e:
        if isinstance(e, CollectorError):
            error = e
        else:
            error = EvaluationError(unit_key, f"{type(e).__name__}: {e}")
            error.__cause__ = e
        status = UnitStatus.EVALUATION_FAILED

    duration_ms = (time.perf_counter() - started) * 1000
    if error is None:
        return UnitOutcome(key=unit_key, status=status, duration_ms=duration_ms)

    error_context = log_collector_error(
        error,
        collector_run_id=collector_run_id,
        dashboard_title=unit_key,
        additional_context={"outcome": status.value, "duration_ms": round(duration_ms, 1)},
    )
    return UnitOutcome(
        key=unit_key,
        status=status,
        duration_ms=duration_ms,
        error=error,
        error_id=error_context.error_id,
    )
