"""Shared test fixtures and configuration.

Sets environment variables before any src import so src.config loads
predictable settings, and provides temp-file SQLite stores and a fixed clock.
"""

import os

# Patch env vars BEFORE any src imports
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("TIMEZONE", "UTC")
os.environ.setdefault("DEFAULT_BLOCK_START_HOUR", "9")

import pytest
from datetime import datetime, timezone


class FixedClock:
    """Clock pinned to a single instant; naive instants use the configured timezone."""

    def __init__(self, instant: datetime) -> None:
        self.set(instant)

    def now(self) -> datetime:
        return self._instant

    def set(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            from src.config import settings
            instant = instant.replace(tzinfo=settings.tz)
        self._instant = instant


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path shared by all stores in a test."""
    return str(tmp_path / "test_planner.db")


@pytest.fixture
def task_db(tmp_db_path):
    from src.data.db import TaskDB
    return TaskDB(db_path=tmp_db_path)


@pytest.fixture
def time_block_db(tmp_db_path):
    from src.data.db import TimeBlockDB
    return TimeBlockDB(db_path=tmp_db_path)


@pytest.fixture
def recurring_db(tmp_db_path):
    from src.data.db import RecurringTaskDB
    return RecurringTaskDB(db_path=tmp_db_path)


@pytest.fixture
def clock():
    """A clock pinned to Wednesday 2026-02-11 10:30 UTC."""
    return FixedClock(datetime(2026, 2, 11, 10, 30, tzinfo=timezone.utc))


@pytest.fixture
def sync_service(task_db, time_block_db, clock):
    from src.core.sync_service import SyncService
    return SyncService(task_db, time_block_db, clock)


@pytest.fixture
def make_task(task_db):
    """Insert a task with sensible defaults; keyword overrides any field."""
    from src.data.models import Task

    def _make(**overrides):
        fields = {"id": "", "user_id": "user-1", "title": "Write report"}
        fields.update(overrides)
        return task_db.insert_task(Task(**fields))

    return _make


@pytest.fixture
def make_block(time_block_db):
    """Insert a time block on 2026-02-11; keyword overrides any field."""
    from src.data.models import TimeBlock

    def _make(**overrides):
        fields = {
            "id": "",
            "user_id": "user-1",
            "start_time": datetime(2026, 2, 11, 9, 0, tzinfo=timezone.utc),
            "end_time": datetime(2026, 2, 11, 10, 0, tzinfo=timezone.utc),
        }
        fields.update(overrides)
        return time_block_db.insert_time_block(TimeBlock(**fields))

    return _make
