# Import all the models, so that Base has them before being
# imported by Alembic
from audit_collector.db.base_class import Base
from audit_collector.models.audit import AuditResult
from audit_collector.models.collector import CollectorConfig, CollectorRun
from audit_collector.models.dashboard import Cmdb, Dashboard

__all__ = [  # noqa: F401
    "Base",
    "Dashboard",
    "Cmdb",
    "AuditResult",
    "CollectorConfig",
    "CollectorRun",
]
