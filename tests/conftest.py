"""
Shared fixtures for NarratoFlow tests.
"""

import threading
from datetime import datetime, timedelta
from typing import List, Optional

import pytest

from narratoflow.config.loader import MonitoringConfig, StorageConfig
from narratoflow.core.clock import Clock
from narratoflow.core.usage_store import UsageStore
from narratoflow.storage.repository import StateRepository


class FakeClock(Clock):
    """Clock whose time only moves when told to; sleeps are recorded."""

    def __init__(self, start: datetime):
        self.current = start
        self.sleeps: List[float] = []

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)

    def sleep(self, seconds: float, cancel_event: Optional[threading.Event] = None) -> bool:
        self.sleeps.append(seconds)
        if cancel_event is not None and cancel_event.is_set():
            return True
        self.current += timedelta(seconds=seconds)
        return False


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 15, 12, 0, 0))


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "usage.db")


@pytest.fixture
def repository(db_path):
    repo = StateRepository(db_path)
    repo.initialize_schema()
    return repo


@pytest.fixture
def monitoring_config(db_path):
    return MonitoringConfig(
        quota_limit=1000,
        token_usage_warning_threshold=80,
        storage=StorageConfig(error_history_limit=10, db_path=db_path),
    )


@pytest.fixture
def store(repository, monitoring_config, clock):
    return UsageStore(repository, monitoring_config, clock=clock)
