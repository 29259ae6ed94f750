from .audit import AuditOutcome, AuditResult, AuditStatus, AuditType, DataStatus
from .collector import CollectorConfig, CollectorRun, CollectorRunConfig, RunRecord
from .dashboard import Cmdb, Dashboard, DashboardType

__all__ = [
    "Dashboard",
    "DashboardType",
    "Cmdb",
    "AuditType",
    "AuditStatus",
    "DataStatus",
    "AuditOutcome",
    "AuditResult",
    "CollectorConfig",
    "CollectorRun",
    "CollectorRunConfig",
    "RunRecord",
]
