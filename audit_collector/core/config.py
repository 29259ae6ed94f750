# audit_collector/core/config.py
from __future__ import annotations

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings, loaded from environment variables and/or .env file.
    """

    # Environment settings
    APP_NAME: str = "Audit Collector"
    APP_ENV: str = "development"

    # Database settings
    DATABASE_URL: Optional[str] = Field(
        default=None,
        description="Full SQLAlchemy URL; overrides the POSTGRES_* parts when set",
    )
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = Field(default="password", repr=False)
    POSTGRES_DB: str = "audit_collector"
    POSTGRES_SERVER: str = "db"
    POSTGRES_PORT: int = 5432
    SQL_ECHO: bool = False

    # Celery settings
    CELERY_BROKER_URL: str = "redis://redis:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://redis:6379/0"

    # Observability settings
    SENTRY_DSN: Optional[str] = None
    SENTRY_TRACES_SAMPLE_RATE: float = 0.1

    @property
    def database_url(self) -> str:
        """Construct the database URL from individual components."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    @property
    def is_development(self) -> bool:
        return self.APP_ENV.lower() in ("development", "dev", "local")

    @field_validator("SENTRY_TRACES_SAMPLE_RATE")
    @classmethod
    def _check_sample_rate(cls, value: float) -> float:
        if value < 0.0 or value > 1.0:
            raise ValueError("SENTRY_TRACES_SAMPLE_RATE must be between 0.0 and 1.0")
        return value

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


settings = Settings()
