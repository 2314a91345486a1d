"""
Pytest fixtures shared by the unit and API tests.
"""

import pytest
import responses
from fastapi.testclient import TestClient

from rscscan.config import Settings
from rscscan.engine.db import init_db
from rscscan.engine.job_manager import JobManager
from rscscan.engine.job_store import JobStore
from rscscan.engine.orchestrator import ScanOrchestrator
from rscscan.engine.result_cache import SqlResultCache
from rscscan.main import create_app
from rscscan.tools.fingerprint import Fingerprinter
from rscscan.tools.probe import VulnerabilityProber


@pytest.fixture
def settings(tmp_path):
    return Settings(database_url=f"sqlite:///{tmp_path / 'scans.db'}", resolve_hosts=False, max_workers=4)


@pytest.fixture
def session_factory(settings):
    return init_db(settings.database_url)


@pytest.fixture
def store(session_factory):
    return JobStore(session_factory)


@pytest.fixture
def cache(session_factory):
    return SqlResultCache(session_factory)


@pytest.fixture
def job_manager():
    manager = JobManager(max_workers=4)
    yield manager
    manager.shutdown(wait=True)


@pytest.fixture
def orchestrator(store, cache, job_manager):
    return ScanOrchestrator(
        store=store,
        cache=cache,
        job_manager=job_manager,
        fingerprinter=Fingerprinter(timeout=10),
        prober=VulnerabilityProber(timeout=15),
    )


@pytest.fixture
def mocked():
    """Outbound HTTP mock; unregistered URLs raise ConnectionError."""
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


@pytest.fixture
def client(settings, orchestrator):
    return TestClient(create_app(settings, orchestrator=orchestrator))
