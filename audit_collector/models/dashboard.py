"""Persistence models for the dashboards being audited and their CMDB metadata."""

from __future__ import annotations

from enum import Enum

from sqlalchemy import Column, Index, String
from sqlalchemy import Enum as SQLEnum

from audit_collector.db.base_class import Base


class DashboardType(str, Enum):
    """Dashboard classification"""

    TEAM = "team"
    PRODUCT = "product"


class Dashboard(Base):
    """A monitored dashboard. Owned by the dashboard catalog; read-only here."""

    __tablename__ = "dashboards"

    title = Column(String(255), nullable=False, unique=True, index=True)
    type = Column(SQLEnum(DashboardType), nullable=False, default=DashboardType.TEAM)
    configuration_item_bus_serv_name = Column(String(255), nullable=True)
    configuration_item_bus_app_name = Column(String(255), nullable=True)

    __table_args__ = (Index("idx_dashboards_type_title", "type", "title"),)

    def __repr__(self) -> str:
        return f"Dashboard(title={self.title!r}, type={self.type})"


class Cmdb(Base):
    """Configuration-management record for a business service or application."""

    __tablename__ = "cmdb"

    configuration_item = Column(String(255), nullable=False, unique=True, index=True)
    configuration_item_type = Column(String(100), nullable=True)
    common_name = Column(String(255), nullable=True)
    owner_name = Column(String(255), nullable=True)
    app_service_owner = Column(String(255), nullable=True)
    business_owner = Column(String(255), nullable=True)
    line_of_business = Column(String(255), nullable=True)
