"""Projection of evaluator outcomes into stored audit results."""

from __future__ import annotations

from typing import List, Mapping, Optional

from audit_collector.models.audit import AuditOutcome, AuditResult, AuditType
from audit_collector.models.dashboard import Cmdb, Dashboard


def build_audit_results(
    dashboard: Dashboard,
    outcomes: Mapping[AuditType, AuditOutcome],
    cmdb: Optional[Cmdb],
    timestamp_ms: int,
    collector_run_id: int,
) -> List[AuditResult]:
    """
    Build one stored result per outcome, in ``AuditType`` declaration order.

    The dashboard's configuration item names are always copied; line of
    business and owners come from the CMDB record when one was found.
    """
    results: List[AuditResult] = []
    for audit_type in AuditType:
        outcome = outcomes.get(audit_type)
        if outcome is None:
            continue
        results.append(
            AuditResult(
                dashboard_title=dashboard.title,
                audit_type=audit_type,
                audit_status=outcome.audit_status,
                data_status=outcome.data_status,
                status_codes=list(outcome.status_codes),
                audit_details=dict(outcome.details),
                url=outcome.url,
                line_of_business=cmdb.line_of_business if cmdb else None,
                configuration_item_bus_serv_name=dashboard.configuration_item_bus_serv_name,
                configuration_item_bus_app_name=dashboard.configuration_item_bus_app_name,
                configuration_item_bus_serv_owner=cmdb.app_service_owner if cmdb else None,
                configuration_item_bus_app_owner=cmdb.owner_name if cmdb else None,
                collector_run_id=collector_run_id,
                timestamp=timestamp_ms,
            )
        )
    return results
