"""Persistence for tasks, time sessions and activity records, keyed by id."""

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from fieldtrack.models.activity import ActivityRecord
from fieldtrack.models.task import Task
from fieldtrack.models.time_session import TimeSession
from fieldtrack.services import supabase_client as sb
from fieldtrack.utils.clock import utcnow
from fieldtrack.utils.config import TrackingConfig
from fieldtrack.utils.errors import FieldTrackError, TaskNotFoundError
from fieldtrack.utils.logging import get_structured_logger, log_timing

logger = get_structured_logger(__name__)


def to_row(values: dict[str, Any]) -> dict[str, Any]:
    """Convert model values to JSON-friendly column values."""
    row = {}
    for key, value in values.items():
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, (datetime, date)):
            value = value.isoformat()
        row[key] = value
    return row


class Store:
    """
    Storage interface used by the services.

    Every update is one independent atomic mutation; there is no
    cross-request locking.
    """

    async def create_task(self, task: Task) -> Task:
        raise NotImplementedError

    async def get_task(self, task_id: str) -> Optional[Task]:
        raise NotImplementedError

    async def update_task(self, task_id: str, updates: dict[str, Any]) -> Task:
        """Apply a partial update; raises TaskNotFoundError if the task is gone."""
        raise NotImplementedError

    async def delete_task(self, task_id: str) -> bool:
        raise NotImplementedError

    async def list_tasks_for_user(self, user_id: str) -> list[Task]:
        raise NotImplementedError

    async def get_active_session(self, user_id: str) -> Optional[TimeSession]:
        raise NotImplementedError

    async def get_latest_session(self, user_id: str, day: date) -> Optional[TimeSession]:
        raise NotImplementedError

    async def save_session(self, session: TimeSession) -> TimeSession:
        raise NotImplementedError

    async def list_sessions(self, user_id: str, start_day: date, end_day: date) -> list[TimeSession]:
        raise NotImplementedError

    async def append_activity(self, record: ActivityRecord) -> ActivityRecord:
        raise NotImplementedError


class InMemoryStore(Store):
    """Dict-backed store. Hands out copies so callers never share state with storage."""

    def __init__(self):
        self.tasks: dict[str, Task] = {}
        self.sessions: dict[str, TimeSession] = {}
        self.activities: list[ActivityRecord] = []

    async def create_task(self, task: Task) -> Task:
        now = utcnow()
        stored = task.model_copy(update={"created_at": task.created_at or now, "updated_at": now}, deep=True)
        self.tasks[stored.task_id] = stored
        return stored.model_copy(deep=True)

    async def get_task(self, task_id: str) -> Optional[Task]:
        task = self.tasks.get(task_id)
        return task.model_copy(deep=True) if task else None

    async def update_task(self, task_id: str, updates: dict[str, Any]) -> Task:
        current = self.tasks.get(task_id)
        if current is None:
            raise TaskNotFoundError(f"Task not found: {task_id}")
        updated = Task.model_validate({**current.model_dump(), **updates, "updated_at": utcnow()})
        self.tasks[task_id] = updated
        return updated.model_copy(deep=True)

    async def delete_task(self, task_id: str) -> bool:
        return self.tasks.pop(task_id, None) is not None

    async def list_tasks_for_user(self, user_id: str) -> list[Task]:
        return [t.model_copy(deep=True) for t in self.tasks.values() if t.is_assigned_to(user_id)]

    async def get_active_session(self, user_id: str) -> Optional[TimeSession]:
        active = [s for s in self.sessions.values() if s.user_id == user_id and s.session_active]
        if not active:
            return None
        return max(active, key=lambda s: s.session_start).model_copy(deep=True)

    async def get_latest_session(self, user_id: str, day: date) -> Optional[TimeSession]:
        same_day = [s for s in self.sessions.values() if s.user_id == user_id and s.day == day]
        if not same_day:
            return None
        return max(same_day, key=lambda s: s.session_start).model_copy(deep=True)

    async def save_session(self, session: TimeSession) -> TimeSession:
        self.sessions[session.session_id] = session.model_copy(deep=True)
        return session.model_copy(deep=True)

    async def list_sessions(self, user_id: str, start_day: date, end_day: date) -> list[TimeSession]:
        found = [
            s for s in self.sessions.values()
            if s.user_id == user_id and start_day <= s.day <= end_day
        ]
        return [s.model_copy(deep=True) for s in sorted(found, key=lambda s: s.session_start)]

    async def append_activity(self, record: ActivityRecord) -> ActivityRecord:
        self.activities.append(record)
        return record


class SupabaseStore(Store):
    """Store backed by Supabase tables."""

    async def create_task(self, task: Task) -> Task:
        with log_timing("create_task", logger=logger, task_id=task.task_id):
            row = await sb.insert_task_row(task.model_dump(mode="json", exclude_none=True))
        return Task.model_validate(row)

    async def get_task(self, task_id: str) -> Optional[Task]:
        row = await sb.get_task_row(task_id)
        return Task.model_validate(row) if row else None

    async def update_task(self, task_id: str, updates: dict[str, Any]) -> Task:
        with log_timing("update_task", logger=logger, task_id=task_id, fields=sorted(updates)):
            row = await sb.update_task_row(task_id, to_row({**updates, "updated_at": utcnow()}))
        if row is None:
            raise TaskNotFoundError(f"Task not found: {task_id}")
        return Task.model_validate(row)

    async def delete_task(self, task_id: str) -> bool:
        with log_timing("delete_task", logger=logger, task_id=task_id):
            return await sb.delete_task_row(task_id)

    async def list_tasks_for_user(self, user_id: str) -> list[Task]:
        rows = await sb.get_task_rows_for_user(user_id)
        return [Task.model_validate(row) for row in rows]

    async def get_active_session(self, user_id: str) -> Optional[TimeSession]:
        row = await sb.get_active_session_row(user_id)
        return TimeSession.model_validate(row) if row else None

    async def get_latest_session(self, user_id: str, day: date) -> Optional[TimeSession]:
        row = await sb.get_latest_session_row(user_id, day)
        return TimeSession.model_validate(row) if row else None

    async def save_session(self, session: TimeSession) -> TimeSession:
        with log_timing("save_session", logger=logger, session_id=session.session_id):
            row = await sb.upsert_session_row(session.model_dump(mode="json"))
        return TimeSession.model_validate(row)

    async def list_sessions(self, user_id: str, start_day: date, end_day: date) -> list[TimeSession]:
        rows = await sb.get_session_rows(user_id, start_day, end_day)
        return [TimeSession.model_validate(row) for row in rows]

    async def append_activity(self, record: ActivityRecord) -> ActivityRecord:
        await sb.insert_activity_row(record.model_dump(mode="json"))
        return record


# Global store instance
_store: Optional[Store] = None


def get_store() -> Store:
    """Get or create the configured store (FIELDTRACK_STORE=supabase|memory)."""
    global _store
    if _store is None:
        backend = TrackingConfig.STORE_BACKEND
        if backend == "memory":
            _store = InMemoryStore()
        elif backend == "supabase":
            _store = SupabaseStore()
        else:
            raise FieldTrackError(f"Unknown FIELDTRACK_STORE backend: {backend}")
        logger.info("Store initialized", backend=backend)
    return _store


def set_store(store: Optional[Store]) -> None:
    """Replace the global store (tests, embedding)."""
    global _store
    _store = store
