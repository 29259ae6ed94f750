"""
Replacement of a dashboard's stored audit result set.
"""

from __future__ import annotations

import threading
from collections import Counter
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Protocol, Sequence

from audit_collector.models.audit import AuditResult
from audit_collector.services.collector.repository import ReplaceSummary
from audit_collector.services.collector_metrics import (
    CollectorMetrics,
    get_collector_metrics,
)
from audit_collector.utils.error_handler import RefreshError
from audit_collector.utils.logger import get_logger

logger = get_logger(__name__)


class ResultStore(Protocol):
    def find_current(self, dashboard_title: str) -> List[AuditResult]:
        ...

    def delete_all(self, results: Sequence[AuditResult]) -> int:
        ...

    def insert_all(self, results: Sequence[AuditResult]) -> int:
        ...

    def replace(
        self, dashboard_title: str, new_results: Sequence[AuditResult]
    ) -> ReplaceSummary:
        ...


class KeyedLocks:
    """One lock per key, created on demand and dropped once no holder remains"""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._holders: Counter = Counter()

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._holders[key] += 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._holders[key] -= 1
                if self._holders[key] <= 0:
                    del self._holders[key]
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class ResultRefresher:
    """
    Replaces a dashboard's stored results with a freshly built set.

    The store applies the replacement as one transaction. Refreshes of the
    same dashboard never interleave; refreshes of different dashboards run
    independently.
    """

    def __init__(
        self,
        store: ResultStore,
        metrics: Optional[CollectorMetrics] = None,
        locks: Optional[KeyedLocks] = None,
    ):
        self.store = store
        self.metrics = metrics or get_collector_metrics()
        self._locks = locks or KeyedLocks()

    def refresh(self, dashboard_title: str, new_results: Sequence[AuditResult]) -> ReplaceSummary:
        """
        Make ``new_results`` the current stored set for ``dashboard_title``.

        Raises:
            ValueError: If ``new_results`` is empty
            RefreshError: If the store fails; the previous set is left in place
        """
        if not new_results:
            raise ValueError(f"Refusing to refresh {dashboard_title} with no results")

        with self._locks.hold(dashboard_title):
            try:
                summary = self.store.replace(dashboard_title, new_results)
            except Exception as e:
                raise RefreshError(
                    dashboard_title,
                    f"Failed to refresh audit results for {dashboard_title}: {e}",
                    technical_details={"result_count": len(new_results)},
                ) from e

        for result in new_results:
            self.metrics.increment_results_written(result.audit_type.value)

        logger.info(
            "Refreshed audit results",
            dashboard=dashboard_title,
            inserted=summary.inserted,
            updated=summary.updated,
            deleted=summary.deleted,
        )
        return summary
