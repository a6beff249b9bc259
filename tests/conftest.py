"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone

import pytest

from metadb.backends.database.sqlite import SQLiteDatabase
from metadb.protocols.scheduler import JobCallback
from metadb.store import MetaStore


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class ManualJob:
    """Job handle recorded by ManualScheduler."""

    def __init__(self, expression: str, callback: JobCallback) -> None:
        self.expression = expression
        self.callback = callback
        self.cancelled = False
        self.runs = 0

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler whose jobs only run when ``fire()`` is awaited."""

    def __init__(self) -> None:
        self.jobs: list[ManualJob] = []
        self.shut_down = False

    def schedule(self, expression: str, callback: JobCallback) -> ManualJob:
        job = ManualJob(expression, callback)
        self.jobs.append(job)
        return job

    def shutdown(self) -> None:
        for job in self.jobs:
            job.cancel()
        self.shut_down = True

    @property
    def active_jobs(self) -> list[ManualJob]:
        return [job for job in self.jobs if not job.cancelled]

    async def fire(self) -> None:
        """Run one tick of every active job."""
        for job in self.active_jobs:
            job.runs += 1
            await job.callback()


@pytest.fixture
def sample_config_dict():
    """Sample configuration dictionary for testing."""
    return {
        "database": {"backend": "sqlite", "path": ":memory:"},
        "scheduler": {"backend": "apscheduler", "timezone": "UTC"},
        "store": {
            "table_name": "test_meta",
            "gc_schedule": "*/5 * * * *",
            "monitor": False,
        },
        "logging": {"level": "DEBUG", "format": "text"},
    }


@pytest.fixture
def clock() -> FakeClock:
    """A controllable clock."""
    return FakeClock()


@pytest.fixture
def scheduler() -> ManualScheduler:
    """A scheduler driven by the test."""
    return ManualScheduler()


@pytest.fixture
async def db():
    """Create an in-memory SQLite database."""
    database = SQLiteDatabase(path=":memory:")
    yield database
    await database.close()


@pytest.fixture
async def store(db, clock, scheduler):
    """A synced store on the in-memory database."""
    meta = MetaStore(db, table_name="meta", clock=clock, scheduler=scheduler)
    await meta.sync()
    yield meta
    meta.stop()
