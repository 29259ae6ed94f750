"""
Audit collector database repository.

SQLAlchemy adapters for the dashboard catalog, the stored audit results and
the collector's own configuration and run statistics. Every operation opens
its own session from the factory, so one repository instance can be shared by
worker threads.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from sqlalchemy import desc
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from audit_collector.models.audit import AuditResult
from audit_collector.models.collector import (
    CollectorConfig,
    CollectorRun,
    CollectorRunConfig,
    RunRecord,
)
from audit_collector.models.dashboard import Cmdb, Dashboard, DashboardType
from audit_collector.utils.logger import get_logger

logger = get_logger(__name__)


class CollectorRepositoryError(Exception):
    """Base exception for collector repository operations"""

    pass


class CollectorNotFoundError(CollectorRepositoryError):
    """Raised when the collector configuration record does not exist"""

    pass


@dataclass(frozen=True)
class ReplaceSummary:
    """Row counts of one stored-result replacement"""

    inserted: int = 0
    updated: int = 0
    deleted: int = 0


def _default_session_factory() -> Session:
    from audit_collector.db.session import SessionLocal

    return SessionLocal()


class _SessionScopedRepository:
    """Shared session handling for the collector repositories"""

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self._session_factory = session_factory or _default_session_factory

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Read-only session, closed on exit"""
        db = self._session_factory()
        try:
            yield db
        finally:
            db.close()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Context manager for database transactions"""
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except Exception as e:
            db.rollback()
            logger.error("Transaction rolled back", error=str(e))
            raise
        finally:
            db.close()


class DashboardRepository(_SessionScopedRepository):
    """Dashboard catalog: audited dashboards and their CMDB metadata"""

    def list_entities(self, dashboard_type: DashboardType) -> List[Dashboard]:
        """All dashboards of the given type, ordered by title"""
        try:
            with self.session() as db:
                return (
                    db.query(Dashboard)
                    .filter(Dashboard.type == dashboard_type)
                    .order_by(Dashboard.title)
                    .all()
                )
        except SQLAlchemyError as e:
            raise CollectorRepositoryError(f"Failed to list dashboards: {e}") from e

    def find_config_metadata(self, configuration_item: Optional[str]) -> Optional[Cmdb]:
        """CMDB record for a configuration item, or None when unknown"""
        if not configuration_item:
            return None
        try:
            with self.session() as db:
                return (
                    db.query(Cmdb)
                    .filter(Cmdb.configuration_item == configuration_item)
                    .first()
                )
        except SQLAlchemyError as e:
            raise CollectorRepositoryError(
                f"Failed to look up configuration item {configuration_item}: {e}"
            ) from e


class AuditResultRepository(_SessionScopedRepository):
    """Stored audit results, one current set per dashboard"""

    def find_current(self, dashboard_title: str) -> List[AuditResult]:
        try:
            with self.session() as db:
                return (
                    db.query(AuditResult)
                    .filter(AuditResult.dashboard_title == dashboard_title)
                    .order_by(AuditResult.id)
                    .all()
                )
        except SQLAlchemyError as e:
            raise CollectorRepositoryError(
                f"Failed to load audit results for {dashboard_title}: {e}"
            ) from e

    def delete_all(self, results: Sequence[AuditResult]) -> int:
        ids = [result.id for result in results if result.id is not None]
        if not ids:
            return 0
        try:
            with self.transaction() as db:
                return (
                    db.query(AuditResult)
                    .filter(AuditResult.id.in_(ids))
                    .delete(synchronize_session=False)
                )
        except SQLAlchemyError as e:
            raise CollectorRepositoryError(f"Failed to delete audit results: {e}") from e

    def insert_all(self, results: Sequence[AuditResult]) -> int:
        try:
            with self.transaction() as db:
                db.add_all(list(results))
                return len(results)
        except IntegrityError as e:
            raise CollectorRepositoryError(
                f"Audit result insert violated a constraint: {e}"
            ) from e
        except SQLAlchemyError as e:
            raise CollectorRepositoryError(f"Failed to insert audit results: {e}") from e

    def replace(
        self, dashboard_title: str, new_results: Sequence[AuditResult]
    ) -> ReplaceSummary:
        """
        Make ``new_results`` the dashboard's current result set in one transaction.

        Rows whose audit type survives are updated in place, new audit types
        are inserted and audit types that disappeared are deleted. Readers never
        observe an empty set, and a failure leaves the previous set intact.
        """
        incoming: Dict[Any, AuditResult] = {}
        for result in new_results:
            if result.dashboard_title != dashboard_title:
                raise ValueError(
                    f"Result for {result.dashboard_title} passed to refresh of {dashboard_title}"
                )
            if result.audit_type in incoming:
                raise ValueError(
                    f"Duplicate audit type {result.audit_type} for {dashboard_title}"
                )
            incoming[result.audit_type] = result

        inserted = updated = deleted = 0
        try:
            with self.transaction() as db:
                existing = (
                    db.query(AuditResult)
                    .filter(AuditResult.dashboard_title == dashboard_title)
                    .with_for_update()
                    .all()
                )
                for row in existing:
                    replacement = incoming.pop(row.audit_type, None)
                    if replacement is None:
                        db.delete(row)
                        deleted += 1
                    else:
                        row.copy_from(replacement)
                        updated += 1
                for result in incoming.values():
                    db.add(result)
                    inserted += 1
        except SQLAlchemyError as e:
            raise CollectorRepositoryError(
                f"Failed to replace audit results for {dashboard_title}: {e}"
            ) from e

        return ReplaceSummary(inserted=inserted, updated=updated, deleted=deleted)


class CollectorRepository(_SessionScopedRepository):
    """Collector configuration and run statistics"""

    def get_collector_config(self, name: str) -> CollectorRunConfig:
        try:
            with self.session() as db:
                collector = (
                    db.query(CollectorConfig).filter(CollectorConfig.name == name).first()
                )
        except SQLAlchemyError as e:
            raise CollectorRepositoryError(f"Failed to load collector {name}: {e}") from e

        if collector is None:
            raise CollectorNotFoundError(f"Collector not found: {name}")
        return CollectorRunConfig.from_model(collector)

    def ensure_collector(self, prototype: CollectorRunConfig) -> CollectorRunConfig:
        """Create the collector record from ``prototype`` unless it already exists"""
        try:
            with self.transaction() as db:
                collector = (
                    db.query(CollectorConfig)
                    .filter(CollectorConfig.name == prototype.name)
                    .first()
                )
                if collector is None:
                    collector = CollectorConfig(
                        name=prototype.name,
                        enabled=prototype.enabled,
                        lookback_days=prototype.lookback_days,
                        cron=prototype.cron,
                        servers=list(prototype.servers),
                        dashboard_type=prototype.dashboard_type,
                    )
                    db.add(collector)
                    db.flush()
                    logger.info("Registered collector", **collector.to_dict())
                return CollectorRunConfig.from_model(collector)
        except SQLAlchemyError as e:
            raise CollectorRepositoryError(
                f"Failed to register collector {prototype.name}: {e}"
            ) from e

    def record_run_stats(self, collector_name: str, record: RunRecord) -> None:
        try:
            with self.transaction() as db:
                db.add(
                    CollectorRun(
                        collector_name=collector_name,
                        run_id=record.run_id,
                        started_at=record.started_at,
                        elapsed_seconds=record.elapsed_seconds,
                        entity_count=record.entity_count,
                        succeeded=record.succeeded,
                        skipped=record.skipped,
                        evaluation_failures=record.evaluation_failures,
                        refresh_failures=record.refresh_failures,
                    )
                )
        except SQLAlchemyError as e:
            raise CollectorRepositoryError(
                f"Failed to record run {record.run_id}: {e}"
            ) from e

    def recent_runs(self, collector_name: str, limit: int = 10) -> List[CollectorRun]:
        try:
            with self.session() as db:
                return (
                    db.query(CollectorRun)
                    .filter(CollectorRun.collector_name == collector_name)
                    .order_by(desc(CollectorRun.started_at))
                    .limit(limit)
                    .all()
                )
        except SQLAlchemyError as e:
            raise CollectorRepositoryError(
                f"Failed to load runs for {collector_name}: {e}"
            ) from e
