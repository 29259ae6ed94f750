"""
Collector models.

``CollectorConfig`` holds the persisted collector configuration. Every run
appends a ``CollectorRun`` row built from the immutable ``RunRecord`` the
runner returns, instead of mutating last-run fields on a shared record.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, List, Tuple

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    String,
)
from sqlalchemy import (
    Enum as SQLEnum,
)

from audit_collector.db.base_class import Base
from audit_collector.models.dashboard import DashboardType


class CollectorConfig(Base):
    """Persisted collector configuration, one row per collector name"""

    __tablename__ = "audit_collectors"

    name = Column(String(255), nullable=False, unique=True, index=True)
    enabled = Column(Boolean, nullable=False, default=True)
    lookback_days = Column(Integer, nullable=False, default=30)
    cron = Column(String(255), nullable=False)
    servers = Column(JSON, nullable=False, default=list)
    dashboard_type = Column(
        SQLEnum(DashboardType), nullable=False, default=DashboardType.TEAM
    )

    __table_args__ = (
        CheckConstraint("lookback_days >= 0", name="ck_lookback_days_non_negative"),
    )

    @property
    def target_sources(self) -> List[str]:
        return list(self.servers or [])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "enabled": self.enabled,
            "lookback_days": self.lookback_days,
            "cron": self.cron,
            "servers": self.target_sources,
            "dashboard_type": self.dashboard_type.value if self.dashboard_type else None,
        }


class CollectorRun(Base):
    """Statistics of one completed collector run"""

    __tablename__ = "collector_runs"

    collector_name = Column(String(255), nullable=False, index=True)
    run_id = Column(BigInteger, nullable=False, unique=True)
    started_at = Column(DateTime(timezone=True), nullable=False)
    elapsed_seconds = Column(Float, nullable=False)
    entity_count = Column(Integer, nullable=False)
    succeeded = Column(Integer, nullable=False, default=0)
    skipped = Column(Integer, nullable=False, default=0)
    evaluation_failures = Column(Integer, nullable=False, default=0)
    refresh_failures = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("idx_collector_runs_name_started", "collector_name", "started_at"),
    )


@dataclass(frozen=True)
class RunRecord:
    """Bookkeeping for one collector run, identified by its start time"""

    run_id: int  # run start, epoch milliseconds
    started_at: datetime
    elapsed_seconds: float
    entity_count: int
    succeeded: int = 0
    skipped: int = 0
    evaluation_failures: int = 0
    refresh_failures: int = 0

    @property
    def failed(self) -> int:
        return self.evaluation_failures + self.refresh_failures

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["failed"] = self.failed
        return data


@dataclass(frozen=True)
class CollectorRunConfig:
    """Detached snapshot of the collector configuration used by one run"""

    name: str
    lookback_days: int
    cron: str
    servers: Tuple[str, ...]
    dashboard_type: DashboardType = DashboardType.TEAM
    enabled: bool = True

    @classmethod
    def from_model(cls, collector: CollectorConfig) -> "CollectorRunConfig":
        return cls(
            name=collector.name,
            lookback_days=collector.lookback_days,
            cron=collector.cron,
            servers=tuple(collector.target_sources),
            dashboard_type=collector.dashboard_type or DashboardType.TEAM,
            enabled=bool(collector.enabled),
        )
