"""Shared test fixtures and configuration.

Sets up environment variables so weektally.config loads predictable values,
and provides a fixed clock plus store/slot/service fixtures on temp paths.
"""

import os

# Patch env vars BEFORE any weektally imports
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("WEEK_START_DAY", "Sunday")
os.environ.setdefault("APP_NAME", "WeekTally")

import pytest


@pytest.fixture
def clock():
    """A clock pinned to Monday 2025-03-10, 09:30 local time."""
    from weektally.core.clock import SystemClock
    return SystemClock(fixed="2025-03-10T09:30:00")


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_weektally.db")


@pytest.fixture
def store(tmp_db_path):
    """Return a RecordStore backed by a temp file."""
    from weektally.data.db import RecordStore
    record_store = RecordStore(db_path=tmp_db_path)
    yield record_store
    record_store.close()


@pytest.fixture
def state_slot(tmp_path):
    from weektally.data.state_slot import CurrentStateSlot
    return CurrentStateSlot(path=str(tmp_path / "current_state.json"))


@pytest.fixture
def service(store, state_slot, clock):
    """Return a TrackerService for device "device-local"."""
    from weektally.core.tracker_service import TrackerService
    return TrackerService(
        store=store,
        state_slot=state_slot,
        clock=clock,
        device_id="device-local",
    )


@pytest.fixture
def reconciler(service, clock):
    from weektally.core.reconciler import Reconciler
    return Reconciler(service, clock)
