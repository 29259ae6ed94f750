"""
Shared test fixtures: environment defaults and an in-memory SQLite database.
"""

import os
import sys
from typing import Generator

import pytest
from dotenv import load_dotenv

# Test defaults must be in place before any settings object is created
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")

# Load environment variables from .env file
load_dotenv()

# Add the project root to the Python path
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.engine import Engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from audit_collector.db.base import Base  # noqa: E402


@pytest.fixture(scope="function")
def db_engine() -> Generator:
    """Yield a SQLAlchemy engine for a fresh in-memory SQLite database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine: Engine):
    """Session factory bound to the test database, as used by the repositories."""
    return sessionmaker(
        autocommit=False, autoflush=False, expire_on_commit=False, bind=db_engine
    )


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator:
    """Yield a database session for seeding and inspecting test data."""
    session = session_factory()
    yield session
    session.close()
