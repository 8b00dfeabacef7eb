"""
Shared fixtures: isolated settings, a file-backed SQLite database and an
acquisition service wired to the fake fetcher script.
"""

import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, List

import pytest

from tubevault.config.settings import Settings
from tubevault.core.fetcher import Fetcher
from tubevault.database.connection import DatabaseManager
from tubevault.database.models import JobStatus
from tubevault.monitoring.metrics import PrometheusMetrics
from tubevault.services.acquisition_service import AcquisitionService

FAKE_FETCHER = Path(__file__).parent / "fixtures" / "fake_fetcher.py"


class RecordingObserver:
    """Observer that keeps every message it is sent."""

    def __init__(self, fail: bool = False):
        self.messages: List[Dict[str, Any]] = []
        self.fail = fail

    async def send(self, message: Dict[str, Any]) -> None:
        if self.fail:
            raise ConnectionError("observer gone")
        self.messages.append(message)

    def of_type(self, message_type: str) -> List[Dict[str, Any]]:
        return [m for m in self.messages if m["type"] == message_type]


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        ENVIRONMENT="testing",
        STORAGE_ROOT=tmp_path / "storage",
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        MAX_CONCURRENT_ACQUISITIONS=2,
        CANCEL_GRACE_SECONDS=2,
        FETCHER_METADATA_TIMEOUT=30,
        DEFAULT_QUALITY="720",
    )


@pytest.fixture
def fake_fetcher(test_settings) -> Fetcher:
    return Fetcher(test_settings, command=[sys.executable, str(FAKE_FETCHER)])


@pytest.fixture
async def database(test_settings):
    manager = DatabaseManager(test_settings)
    await manager.create_tables()
    yield manager
    await manager.close()


@pytest.fixture
def recorder() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
async def service(test_settings, fake_fetcher, recorder):
    svc = AcquisitionService(
        config=test_settings,
        fetcher=fake_fetcher,
        metrics=PrometheusMetrics(),
    )
    await svc.start()
    svc.observers.add("recorder", recorder)
    yield svc
    await svc.stop()


async def wait_for_status(service: AcquisitionService, job_id: str, *statuses: JobStatus, timeout: float = 15.0):
    """Poll the job store until the job reaches one of ``statuses``."""
    deadline = asyncio.get_running_loop().time() + timeout
    while True:
        job = await service.store.get(job_id)
        if job is not None and job.status in statuses:
            return job
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError(
                f"Job {job_id} stuck in {job.status.value if job else 'missing'}; wanted {statuses}"
            )
        await asyncio.sleep(0.05)


@pytest.fixture
def wait_status():
    return wait_for_status


@pytest.fixture
def make_observer():
    return RecordingObserver
