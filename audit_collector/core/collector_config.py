"""
Audit collector configuration.

Controls the rolling audit window, the schedule the collector runs on, the
remote audit API it talks to and how many dashboards are processed at once.
"""

from typing import Annotated, Any, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from audit_collector.models.collector import CollectorRunConfig
from audit_collector.models.dashboard import DashboardType

DEFAULT_COLLECTOR_NAME = "AuditCollector"


class CollectorSettings(BaseSettings):
    """Audit collector configuration"""

    # Audit window
    DAYS: int = Field(default=30, description="Lookback window for audits in days")

    # Scheduling
    CRON: str = Field(
        default="0 0 * * *", description="Five-field cron expression for collector runs"
    )
    COLLECTOR_NAME: str = Field(
        default=DEFAULT_COLLECTOR_NAME, description="Name of the collector record"
    )

    # Target dashboards
    DASHBOARD_TYPE: DashboardType = Field(
        default=DashboardType.TEAM, description="Classification of audited dashboards"
    )

    # Audit API
    SERVERS: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["http://localhost:8081/apiaudit"],
        description="Base URLs of the audit API, comma-delimited in the environment",
    )
    API_TOKEN: Optional[str] = Field(default=None, repr=False)
    REQUEST_TIMEOUT_SECONDS: float = Field(
        default=120.0, description="Timeout for a single dashboard review request"
    )

    # Execution
    MAX_WORKERS: int = Field(
        default=1, description="Dashboards processed concurrently (1 = sequential)"
    )

    @field_validator("DAYS")
    @classmethod
    def validate_days(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Audit lookback days must be non-negative")
        return v

    @field_validator("CRON")
    @classmethod
    def validate_cron(cls, v: str) -> str:
        if len(v.split()) != 5:
            raise ValueError("Cron expression must have exactly 5 fields")
        return v.strip()

    @field_validator("SERVERS", mode="before")
    @classmethod
    def split_servers(cls, value: Any) -> Any:
        """Allow comma-separated strings for the servers env var."""
        if isinstance(value, str):
            return [server.strip() for server in value.split(",") if server.strip()]
        return value

    @field_validator("MAX_WORKERS")
    @classmethod
    def validate_max_workers(cls, v: int) -> int:
        if v < 1 or v > 32:
            raise ValueError("Max workers must be between 1 and 32")
        return v

    @field_validator("REQUEST_TIMEOUT_SECONDS")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Request timeout must be positive")
        return v

    model_config = SettingsConfigDict(
        env_prefix="AUDIT_",
        case_sensitive=True,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


# Global collector settings instance
collector_settings = CollectorSettings()


def get_collector_settings() -> CollectorSettings:
    """Get the global collector settings instance"""
    return collector_settings


def update_collector_settings(**kwargs: Any) -> None:
    """Update collector settings at runtime (for testing)"""
    global collector_settings
    for key, value in kwargs.items():
        if hasattr(collector_settings, key):
            setattr(collector_settings, key, value)
        else:
            raise ValueError(f"Unknown collector setting: {key}")


def collector_prototype(settings: CollectorSettings) -> CollectorRunConfig:
    """Collector record registered on first use, seeded from settings"""
    return CollectorRunConfig(
        name=settings.COLLECTOR_NAME,
        lookback_days=settings.DAYS,
        cron=settings.CRON,
        servers=tuple(settings.SERVERS),
        dashboard_type=settings.DASHBOARD_TYPE,
    )
