"""Audit window computation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from audit_collector.utils.error_handler import CollectorConfigurationError


def to_epoch_millis(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


@dataclass(frozen=True)
class AuditWindow:
    """Half-open [begin, end) range over which a run's audits are evaluated"""

    begin: datetime
    end: datetime

    @property
    def begin_ms(self) -> int:
        return to_epoch_millis(self.begin)

    @property
    def end_ms(self) -> int:
        return to_epoch_millis(self.end)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time_range_start": self.begin_ms,
            "time_range_start_iso": self.begin.isoformat(),
            "time_range_end": self.end_ms,
            "time_range_end_iso": self.end.isoformat(),
        }


def compute_audit_window(
    lookback_days: int, now: Optional[datetime] = None
) -> AuditWindow:
    """
    Compute the audit window ending at ``now``.

    Args:
        lookback_days: Window length in whole days, must be >= 0
        now: End of the window; defaults to the current UTC time. Naive
            datetimes are taken to be UTC.

    Raises:
        CollectorConfigurationError: If the lookback is missing, negative or
            not an integer
    """
    if (
        lookback_days is None
        or isinstance(lookback_days, bool)
        or not isinstance(lookback_days, int)
    ):
        raise CollectorConfigurationError(
            f"Audit lookback must be an integer number of days, got {lookback_days!r}"
        )
    if lookback_days < 0:
        raise CollectorConfigurationError(
            f"Audit lookback must be non-negative, got {lookback_days}"
        )

    end = now or datetime.now(timezone.utc)
    if end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)

    return AuditWindow(begin=end - timedelta(days=lookback_days), end=end)
