import pytest

from audit_collector.models.collector import CollectorRunConfig
from audit_collector.services.collector.repository import CollectorRepositoryError

from collector_fakes import FIXED_NOW, FakeRunMetadata


@pytest.fixture
def run_config():
    return CollectorRunConfig(
        name="AuditCollector",
        lookback_days=30,
        cron="0 0 * * *",
        servers=("http://audit-api",),
    )


@pytest.fixture
def run_metadata(run_config):
    return FakeRunMetadata(run_config)


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def repository_error():
    return CollectorRepositoryError("database is locked")
