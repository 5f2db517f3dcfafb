"""Shared pytest fixtures and configuration."""

import os
import pytest
from freezegun import freeze_time

# Set test environment variables before fieldtrack reads them
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("FIELDTRACK_STORE", "memory")
os.environ.setdefault("FIELDTRACK_TIMEZONE", "UTC")
os.environ.setdefault("SAMPLE_INTERVAL_SECONDS", "10")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("LOG_FORMAT", "text")

from fieldtrack.models.auth import AuthContext
from fieldtrack.services.activity_ledger import ActivityLedger
from fieldtrack.services.store import InMemoryStore
from fieldtrack.services.task_state_machine import TaskStateMachine
from fieldtrack.services.time_accounting import TimeAccountingService
from tests.utils.factories import ADMIN_ID, WORKER_ID


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def ledger(store):
    return ActivityLedger(store)


@pytest.fixture
def state_machine(store, ledger):
    return TaskStateMachine(store, ledger)


@pytest.fixture
def time_accounting(store, ledger):
    return TimeAccountingService(store, ledger)


@pytest.fixture
def worker_auth():
    return AuthContext(user_id=WORKER_ID, is_admin=False)


@pytest.fixture
def admin_auth():
    return AuthContext(user_id=ADMIN_ID, is_admin=True)


@pytest.fixture
def freeze_time_fixture():
    """Fixture for freezing time in tests."""
    with freeze_time("2024-12-09 12:00:00") as frozen_time:
        yield frozen_time


@pytest.fixture
def memory_services(monkeypatch, store, state_machine, time_accounting):
    """Point the API handlers' service getters at the in-memory fixtures."""
    monkeypatch.setattr("api.tasks.update.get_task_state_machine", lambda: state_machine)
    monkeypatch.setattr("api.tasks.actions.get_task_state_machine", lambda: state_machine)
    monkeypatch.setattr("api.tasks.create.get_task_state_machine", lambda: state_machine)
    for module in ("start", "end", "update_radius", "stats", "history"):
        monkeypatch.setattr(f"api.idle_time.{module}.get_time_accounting_service", lambda: time_accounting)
    return store
