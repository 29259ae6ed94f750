"""
Audit models.

``AuditOutcome`` is the evaluator's freshly computed verdict for one dashboard
and audit type; ``AuditResult`` is its stored projection, one row per
(dashboard, audit type) in the current result set.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy import (
    Enum as SQLEnum,
)

from audit_collector.db.base_class import Base


class AuditType(str, Enum):
    """Closed set of audit checks contributing to a dashboard's audit status"""

    CODE_REVIEW = "CODE_REVIEW"
    BUILD_REVIEW = "BUILD_REVIEW"
    CODE_QUALITY = "CODE_QUALITY"
    TEST_RESULT = "TEST_RESULT"
    PERF_TEST = "PERF_TEST"
    ARTIFACT = "ARTIFACT"
    STATIC_SECURITY_ANALYSIS = "STATIC_SECURITY_ANALYSIS"
    LIBRARY_POLICY = "LIBRARY_POLICY"
    DEPLOY = "DEPLOY"


class AuditStatus(str, Enum):
    """Verdict of one audit"""

    OK = "OK"
    FAIL = "FAIL"
    NA = "NA"


class DataStatus(str, Enum):
    """Whether the evaluator had data to audit"""

    OK = "OK"
    NO_DATA = "NO_DATA"
    ERROR = "ERROR"
    NOT_CONFIGURED = "NOT_CONFIGURED"


@dataclass(frozen=True)
class AuditOutcome:
    """Result computed by the audit evaluator for one audit type and window"""

    audit_type: AuditType
    audit_status: AuditStatus
    data_status: DataStatus = DataStatus.OK
    status_codes: Tuple[str, ...] = ()
    details: Mapping[str, Any] = field(default_factory=dict)
    url: Optional[str] = None


class AuditResult(Base):
    """
    Stored audit result.

    Keyed by dashboard title and audit type; the full set of rows for a
    dashboard is replaced on every successful collector run.
    """

    __tablename__ = "audit_results"

    dashboard_title = Column(String(255), nullable=False, index=True)
    audit_type = Column(SQLEnum(AuditType), nullable=False)
    audit_status = Column(SQLEnum(AuditStatus), nullable=False)
    data_status = Column(SQLEnum(DataStatus), nullable=False, default=DataStatus.OK)
    status_codes = Column(JSON, nullable=False, default=list)
    audit_details = Column(JSON, nullable=True)
    url = Column(String(1024), nullable=True)

    # Configuration metadata copied from the CMDB when available
    line_of_business = Column(String(255), nullable=True)
    configuration_item_bus_serv_name = Column(String(255), nullable=True)
    configuration_item_bus_app_name = Column(String(255), nullable=True)
    configuration_item_bus_serv_owner = Column(String(255), nullable=True)
    configuration_item_bus_app_owner = Column(String(255), nullable=True)

    # Run bookkeeping
    collector_run_id = Column(BigInteger, nullable=False)
    timestamp = Column(BigInteger, nullable=False)  # audit window end, epoch ms

    __table_args__ = (
        UniqueConstraint("dashboard_title", "audit_type", name="uq_audit_result_key"),
        Index("idx_audit_results_type_status", "audit_type", "audit_status"),
    )

    @property
    def key(self) -> Tuple[str, AuditType]:
        return (self.dashboard_title, self.audit_type)

    def copy_from(self, other: "AuditResult") -> None:
        """Overwrite this row's payload with another result for the same key"""
        for column in RESULT_PAYLOAD_COLUMNS:
            setattr(self, column, getattr(other, column))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            "dashboard_title": self.dashboard_title,
            "audit_type": self.audit_type.value,
            "audit_status": self.audit_status.value,
            "data_status": self.data_status.value if self.data_status else None,
            "status_codes": list(self.status_codes or []),
            "audit_details": self.audit_details,
            "url": self.url,
            "line_of_business": self.line_of_business,
            "configuration_item_bus_serv_name": self.configuration_item_bus_serv_name,
            "configuration_item_bus_app_name": self.configuration_item_bus_app_name,
            "configuration_item_bus_serv_owner": self.configuration_item_bus_serv_owner,
            "configuration_item_bus_app_owner": self.configuration_item_bus_app_owner,
            "collector_run_id": self.collector_run_id,
            "timestamp": self.timestamp,
        }


RESULT_PAYLOAD_COLUMNS = (
    "audit_status",
    "data_status",
    "status_codes",
    "audit_details",
    "url",
    "line_of_business",
    "configuration_item_bus_serv_name",
    "configuration_item_bus_app_name",
    "configuration_item_bus_serv_owner",
    "configuration_item_bus_app_owner",
    "collector_run_id",
    "timestamp",
)
