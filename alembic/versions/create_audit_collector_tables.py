"""
Create audit collector tables

Revision ID: create_audit_collector_tables
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "create_audit_collector_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

AUDIT_TYPES = (
    "CODE_REVIEW",
    "BUILD_REVIEW",
    "CODE_QUALITY",
    "TEST_RESULT",
    "PERF_TEST",
    "ARTIFACT",
    "STATIC_SECURITY_ANALYSIS",
    "LIBRARY_POLICY",
    "DEPLOY",
)


def _timestamps() -> list:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=True,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    """Create audit collector tables"""

    op.create_table(
        "dashboards",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("type", sa.Enum("TEAM", "PRODUCT", name="dashboardtype"), nullable=False),
        sa.Column("configuration_item_bus_serv_name", sa.String(length=255), nullable=True),
        sa.Column("configuration_item_bus_app_name", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_dashboards_id", "dashboards", ["id"])
    op.create_index("ix_dashboards_title", "dashboards", ["title"], unique=True)
    op.create_index("idx_dashboards_type_title", "dashboards", ["type", "title"])

    op.create_table(
        "cmdb",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("configuration_item", sa.String(length=255), nullable=False),
        sa.Column("configuration_item_type", sa.String(length=100), nullable=True),
        sa.Column("common_name", sa.String(length=255), nullable=True),
        sa.Column("owner_name", sa.String(length=255), nullable=True),
        sa.Column("app_service_owner", sa.String(length=255), nullable=True),
        sa.Column("business_owner", sa.String(length=255), nullable=True),
        sa.Column("line_of_business", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_cmdb_id", "cmdb", ["id"])
    op.create_index("ix_cmdb_configuration_item", "cmdb", ["configuration_item"], unique=True)

    op.create_table(
        "audit_results",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("dashboard_title", sa.String(length=255), nullable=False),
        sa.Column("audit_type", sa.Enum(*AUDIT_TYPES, name="audittype"), nullable=False),
        sa.Column(
            "audit_status", sa.Enum("OK", "FAIL", "NA", name="auditstatus"), nullable=False
        ),
        sa.Column(
            "data_status",
            sa.Enum("OK", "NO_DATA", "ERROR", "NOT_CONFIGURED", name="datastatus"),
            nullable=False,
        ),
        sa.Column("status_codes", sa.JSON(), nullable=False),
        sa.Column("audit_details", sa.JSON(), nullable=True),
        sa.Column("url", sa.String(length=1024), nullable=True),
        sa.Column("line_of_business", sa.String(length=255), nullable=True),
        sa.Column("configuration_item_bus_serv_name", sa.String(length=255), nullable=True),
        sa.Column("configuration_item_bus_app_name", sa.String(length=255), nullable=True),
        sa.Column("configuration_item_bus_serv_owner", sa.String(length=255), nullable=True),
        sa.Column("configuration_item_bus_app_owner", sa.String(length=255), nullable=True),
        sa.Column("collector_run_id", sa.BigInteger(), nullable=False),
        sa.Column("timestamp", sa.BigInteger(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("dashboard_title", "audit_type", name="uq_audit_result_key"),
    )
    op.create_index("ix_audit_results_id", "audit_results", ["id"])
    op.create_index("ix_audit_results_dashboard_title", "audit_results", ["dashboard_title"])
    op.create_index(
        "idx_audit_results_type_status", "audit_results", ["audit_type", "audit_status"]
    )

    op.create_table(
        "audit_collectors",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False),
        sa.Column("lookback_days", sa.Integer(), nullable=False),
        sa.Column("cron", sa.String(length=255), nullable=False),
        sa.Column("servers", sa.JSON(), nullable=False),
        sa.Column(
            "dashboard_type",
            sa.Enum("TEAM", "PRODUCT", name="dashboardtype", create_type=False),
            nullable=False,
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("lookback_days >= 0", name="ck_lookback_days_non_negative"),
    )
    op.create_index("ix_audit_collectors_id", "audit_collectors", ["id"])
    op.create_index("ix_audit_collectors_name", "audit_collectors", ["name"], unique=True)

    op.create_table(
        "collector_runs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("collector_name", sa.String(length=255), nullable=False),
        sa.Column("run_id", sa.BigInteger(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("elapsed_seconds", sa.Float(), nullable=False),
        sa.Column("entity_count", sa.Integer(), nullable=False),
        sa.Column("succeeded", sa.Integer(), nullable=False),
        sa.Column("skipped", sa.Integer(), nullable=False),
        sa.Column("evaluation_failures", sa.Integer(), nullable=False),
        sa.Column("refresh_failures", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("run_id"),
    )
    op.create_index("ix_collector_runs_id", "collector_runs", ["id"])
    op.create_index("ix_collector_runs_collector_name", "collector_runs", ["collector_name"])
    op.create_index(
        "idx_collector_runs_name_started", "collector_runs", ["collector_name", "started_at"]
    )


def downgrade() -> None:
    """Drop audit collector tables"""
    op.drop_table("collector_runs")
    op.drop_table("audit_collectors")
    op.drop_table("audit_results")
    op.drop_table("cmdb")
    op.drop_table("dashboards")

    sa.Enum(name="datastatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="auditstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="audittype").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="dashboardtype").drop(op.get_bind(), checkfirst=True)
