"""
Audit evaluator protocol and the HTTP adapter for the remote audit API.

The evaluator turns raw signals for one dashboard and window into per-type
audit outcomes. The rules themselves live in the audit API; this module only
transports the request and maps the response.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

import httpx

from audit_collector.models.audit import AuditOutcome, AuditStatus, AuditType, DataStatus
from audit_collector.models.dashboard import Dashboard
from audit_collector.utils.error_handler import EvaluationError
from audit_collector.utils.logger import get_logger

logger = get_logger(__name__)

DASHBOARD_REVIEW_PATH = "/dashboardReview"


class AuditEvaluator(Protocol):
    """Computes audit outcomes for one dashboard over ``[begin_ms, end_ms)``"""

    def evaluate(
        self, dashboard: Dashboard, begin_ms: int, end_ms: int
    ) -> Mapping[AuditType, AuditOutcome]:
        ...


class AuditApiEvaluator:
    """
    Audit evaluator backed by the audit API's dashboard review endpoint.

    Expected response shape::

        {"review": {"CODE_REVIEW": {"auditStatus": "OK",
                                    "dataStatus": "OK",
                                    "auditStatusCodes": ["PEER_REVIEW_GHR"],
                                    "url": "...",
                                    "details": {...}},
                    ...}}

    Unknown audit types in the response are ignored.
    """

    def __init__(
        self,
        servers: Sequence[str],
        api_token: Optional[str] = None,
        timeout: float = 120.0,
        client: Optional[httpx.Client] = None,
    ):
        if not servers:
            raise ValueError("At least one audit API server is required")
        self.base_url = servers[0].rstrip("/")
        headers = {"Accept": "application/json"}
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"
        self._client = client or httpx.Client(timeout=timeout, headers=headers)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "AuditApiEvaluator":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def evaluate(
        self, dashboard: Dashboard, begin_ms: int, end_ms: int
    ) -> Dict[AuditType, AuditOutcome]:
        params = {
            "title": dashboard.title,
            "beginDate": begin_ms,
            "endDate": end_ms,
        }
        url = f"{self.base_url}{DASHBOARD_REVIEW_PATH}"
        try:
            response = self._client.get(url, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise EvaluationError(
                dashboard.title,
                f"Audit API returned {e.response.status_code} for {dashboard.title}",
                technical_details={"url": url},
            ) from e
        except httpx.HTTPError as e:
            raise EvaluationError(
                dashboard.title,
                f"Audit API request failed for {dashboard.title}: {e}",
                technical_details={"url": url},
            ) from e
        except ValueError as e:
            raise EvaluationError(
                dashboard.title, f"Audit API returned invalid JSON: {e}"
            ) from e

        return parse_dashboard_review(dashboard.title, payload)


def parse_dashboard_review(
    dashboard_title: str, payload: Any
) -> Dict[AuditType, AuditOutcome]:
    """Map a dashboard review response into audit outcomes"""
    if not isinstance(payload, dict):
        raise EvaluationError(dashboard_title, "Audit API response is not an object")

    review = payload.get("review") or {}
    if not isinstance(review, dict):
        raise EvaluationError(dashboard_title, "Audit API 'review' is not an object")

    outcomes: Dict[AuditType, AuditOutcome] = {}
    for type_name, entry in review.items():
        try:
            audit_type = AuditType(type_name)
        except ValueError:
            logger.debug(
                "Skipping unknown audit type",
                dashboard=dashboard_title,
                audit_type=type_name,
            )
            continue
        outcomes[audit_type] = _parse_outcome(dashboard_title, audit_type, entry)
    return outcomes


def _parse_outcome(
    dashboard_title: str, audit_type: AuditType, entry: Any
) -> AuditOutcome:
    if not isinstance(entry, dict):
        raise EvaluationError(
            dashboard_title, f"Review entry for {audit_type.value} is not an object"
        )
    try:
        audit_status = AuditStatus(entry.get("auditStatus", AuditStatus.NA.value))
        data_status = DataStatus(entry.get("dataStatus", DataStatus.OK.value))
    except ValueError as e:
        raise EvaluationError(
            dashboard_title, f"Invalid status in {audit_type.value} review: {e}"
        ) from e

    codes: List[str] = [str(code) for code in entry.get("auditStatusCodes") or []]
    return AuditOutcome(
        audit_type=audit_type,
        audit_status=audit_status,
        data_status=data_status,
        status_codes=tuple(codes),
        details=dict(entry.get("details") or {}),
        url=entry.get("url"),
    )
