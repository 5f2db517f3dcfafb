"""Task state machine - acceptance, arrival, completion and removal."""

from datetime import datetime
from typing import Any, Optional

from ulid import ULID

from fieldtrack.models.activity import ActivityType
from fieldtrack.models.auth import AuthContext
from fieldtrack.models.task import DeletionReason, Task, TaskCreate, TaskStatus, TaskUpdate
from fieldtrack.services.activity_ledger import ActivityLedger, get_activity_ledger
from fieldtrack.services.geofence import GeofenceResult
from fieldtrack.services.store import Store, get_store
from fieldtrack.services.task_timer import TaskTimer, compute_deadline
from fieldtrack.utils.clock import ensure_aware, resolve_now
from fieldtrack.utils.errors import AuthorizationError, InvalidTransitionError, TaskNotFoundError
from fieldtrack.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)

SYSTEM_ACTOR = "system"

# Legal status moves; removal paths (reject, expiry, admin delete) are not statuses
ALLOWED_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.WAITING_FOR_ACCEPTANCE: frozenset({TaskStatus.ON_THE_WAY}),
    TaskStatus.ON_THE_WAY: frozenset({TaskStatus.ON_SITE, TaskStatus.COMPLETED}),
    TaskStatus.ON_SITE: frozenset({TaskStatus.COMPLETED}),
    TaskStatus.COMPLETED: frozenset(),
}

_REMOVAL_ACTIVITY = {
    DeletionReason.REJECTED: (ActivityType.TASK_REJECT, "Task rejected"),
    DeletionReason.EXPIRED: (ActivityType.TASK_EXPIRED, "Task expired before reaching the site"),
    DeletionReason.ADMIN: (ActivityType.TASK_DELETE, "Task deleted by administrator"),
}

_CLEARED_COUNTDOWN = {"time_limit_set": None, "deadline_at": None}


def generate_task_id() -> str:
    """Generate a text-based task ID (ULID format)."""
    return str(ULID())


def can_transition(current: TaskStatus, target: TaskStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


class TaskStateMachine:
    """
    Drives task status changes and their audit records.

    Every transition reloads the task, computes the new fields, and writes
    them in one store update. A failed write raises before anything is
    recorded, so callers keep their previous snapshot and retry on the next
    sample.
    """

    def __init__(self, store: Store, ledger: ActivityLedger):
        self.store = store
        self.ledger = ledger

    async def get_task(self, task_id: str) -> Task:
        task = await self.store.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(f"Task not found: {task_id}")
        return task

    async def list_active_tasks(self, user_id: str) -> list[Task]:
        """Accepted tasks assigned to a worker that still need location samples."""
        tasks = await self.store.list_tasks_for_user(user_id)
        return [
            t for t in tasks
            if t.status in (TaskStatus.ON_THE_WAY, TaskStatus.ON_SITE) and not t.expired
        ]

    async def create_task(self, payload: TaskCreate, created_by: str, now: Optional[datetime] = None) -> Task:
        """Dispatcher entry point: new task waiting for acceptance."""
        now = resolve_now(now)
        task = Task(
            task_id=generate_task_id(),
            created_by=created_by,
            created_at=now,
            **payload.model_dump(),
        )
        task = await self.store.create_task(task)
        logger.info(
            "Task created",
            task_id=task.task_id,
            created_by=mask_user_id(created_by),
            assigned_count=len(task.assigned_user_ids),
            time_limit_minutes=task.time_limit_minutes
        )
        await self.ledger.record(
            ActivityType.TASK_CREATE,
            user_id=created_by,
            task_id=task.task_id,
            message=f"Task created: {task.title}",
            metadata={"assigned_user_ids": task.assigned_user_ids, "radius_km": task.radius_km},
            timestamp=now,
        )
        return task

    async def accept(self, task_id: str, user_id: str, now: Optional[datetime] = None) -> Task:
        """waiting_for_acceptance -> on_the_way; starts the countdown if the task has a time limit."""
        now = resolve_now(now)
        task = await self._load_for_worker(task_id, user_id)
        self._require_transition(task, TaskStatus.ON_THE_WAY)

        updates: dict[str, Any] = {
            "status": TaskStatus.ON_THE_WAY,
            "accepted_at": now,
            "accepted_by": user_id,
        }
        if task.time_limit_minutes:
            updates["time_limit_set"] = now
            updates["deadline_at"] = compute_deadline(now, task.time_limit_minutes)

        task = await self.store.update_task(task_id, updates)
        await self.ledger.record(
            ActivityType.TASK_ACCEPT,
            user_id=user_id,
            task_id=task_id,
            message=f"Task accepted: {task.title}",
            metadata={
                "time_limit_minutes": task.time_limit_minutes,
                "deadline_at": task.deadline_at.isoformat() if task.deadline_at else None,
            },
            timestamp=now,
        )
        return task

    async def reject(self, task_id: str, user_id: str, now: Optional[datetime] = None) -> None:
        """waiting_for_acceptance -> removed."""
        now = resolve_now(now)
        task = await self._load_for_worker(task_id, user_id)
        if task.status != TaskStatus.WAITING_FOR_ACCEPTANCE:
            raise InvalidTransitionError(f"Cannot reject task in status {task.status.value}")
        await self._remove(task, DeletionReason.REJECTED, user_id, now)

    async def on_geofence_sample(
        self,
        task_id: str,
        user_id: str,
        inside: bool,
        now: Optional[datetime] = None,
        geofence: Optional[GeofenceResult] = None
    ) -> Task:
        """
        Feed one geofence sample.

        Only an inside sample on an on_the_way task whose site_entered flag is
        still false moves it to on_site; every other sample is a no-op.
        """
        now = resolve_now(now)
        task = await self.get_task(task_id)
        if not inside or task.status != TaskStatus.ON_THE_WAY or task.site_entered:
            return task
        return await self._enter_site(task, user_id, now, geofence)

    async def end_task(self, task_id: str, user_id: str, now: Optional[datetime] = None) -> Task:
        """on_the_way / on_site -> completed."""
        now = resolve_now(now)
        task = await self._load_for_worker(task_id, user_id)
        self._require_transition(task, TaskStatus.COMPLETED)
        previous = task.status

        task = await self.store.update_task(task_id, {
            "status": TaskStatus.COMPLETED,
            "completed": True,
            **_CLEARED_COUNTDOWN,
        })
        await self.ledger.record(
            ActivityType.TASK_COMPLETE,
            user_id=user_id,
            task_id=task_id,
            message=f"Task completed: {task.title}",
            metadata={"previous_status": previous.value},
            timestamp=now,
        )
        return task

    async def check_timer(self, task: Task, now: Optional[datetime] = None) -> bool:
        """
        Poll a task snapshot's countdown.

        Returns True if the task was removed by expiry on this call.
        """
        now = resolve_now(now)
        if not task.expired and not TaskTimer(task).should_expire(now):
            return False
        return await self.on_timer_expired(task.task_id, now)

    async def on_timer_expired(self, task_id: str, now: Optional[datetime] = None) -> bool:
        """
        Remove a task whose countdown ran out before the worker arrived.

        The persisted expired flag is written before the activity record, so
        repeated polls, restarts and retried deletes never record twice.
        """
        now = resolve_now(now)
        task = await self.get_task(task_id)

        if task.expired:
            # Marker written earlier but the delete did not go through
            await self.store.delete_task(task_id)
            logger.info("Retried delete of expired task", task_id=task_id)
            return True

        if not TaskTimer(task).should_expire(now):
            return False

        task = await self.store.update_task(task_id, {"expired": True})
        await self._remove(task, DeletionReason.EXPIRED, task.accepted_by or SYSTEM_ACTOR, now)
        return True

    async def admin_delete(self, task_id: str, auth: AuthContext, now: Optional[datetime] = None) -> None:
        """Administrative removal from any status."""
        if not auth.is_admin:
            raise AuthorizationError("Administrator privileges required to delete tasks")
        now = resolve_now(now)
        task = await self.get_task(task_id)
        await self._remove(task, DeletionReason.ADMIN, auth.user_id, now)

    async def apply_update(
        self,
        task_id: str,
        update: TaskUpdate,
        user_id: str,
        now: Optional[datetime] = None
    ) -> Task:
        """
        Apply a client partial update {status?, timeLimitSet?, completed?}.

        Status changes go through the same transitions as the dedicated
        operations; omitted fields are left untouched.
        """
        now = resolve_now(now)
        fields = update.model_dump(exclude_unset=True)
        task = await self._load_for_worker(task_id, user_id)

        target = fields.get("status")
        if fields.get("completed") is True:
            if target not in (None, TaskStatus.COMPLETED):
                raise InvalidTransitionError("completed=true conflicts with the requested status")
            target = TaskStatus.COMPLETED
        elif fields.get("completed") is False and task.status == TaskStatus.COMPLETED:
            raise InvalidTransitionError("A completed task cannot be reopened")

        if target is not None and target != task.status:
            task = await self._move_to(task, target, user_id, now)

        if "time_limit_set" in fields:
            task = await self._backfill_countdown(task, fields["time_limit_set"])

        return task

    async def _move_to(self, task: Task, target: TaskStatus, user_id: str, now: datetime) -> Task:
        self._require_transition(task, target)
        if target == TaskStatus.ON_THE_WAY:
            return await self.accept(task.task_id, user_id, now)
        if target == TaskStatus.ON_SITE:
            return await self._enter_site(task, user_id, now, None)
        return await self.end_task(task.task_id, user_id, now)

    async def _backfill_countdown(self, task: Task, started_at: Optional[datetime]) -> Task:
        """Set the countdown start of an accepted task that is missing it."""
        if started_at is None:
            if task.time_limit_set is None:
                return task
            raise InvalidTransitionError("A live countdown can only be cleared by arriving or completing")
        started_at = ensure_aware(started_at)
        if task.status != TaskStatus.ON_THE_WAY or not task.time_limit_minutes or task.site_entered:
            raise InvalidTransitionError("Countdown applies only to accepted tasks with a time limit")
        if task.time_limit_set is not None:
            if ensure_aware(task.time_limit_set) == started_at:
                return task
            raise InvalidTransitionError("Countdown already started; restarting it is not allowed")
        return await self.store.update_task(task.task_id, {
            "time_limit_set": started_at,
            "deadline_at": compute_deadline(started_at, task.time_limit_minutes),
        })

    async def _enter_site(
        self,
        task: Task,
        user_id: str,
        now: datetime,
        geofence: Optional[GeofenceResult]
    ) -> Task:
        remaining_ms = TaskTimer(task).remaining_ms(now)
        task = await self.store.update_task(task.task_id, {
            "status": TaskStatus.ON_SITE,
            "site_entered": True,
            **_CLEARED_COUNTDOWN,
        })
        metadata: dict[str, Any] = {"remaining_ms": remaining_ms}
        if geofence is not None:
            metadata["distance_m"] = round(geofence.distance_m, 1)
            metadata["radius_m"] = geofence.radius_m
        await self.ledger.record(
            ActivityType.TASK_ON_SITE,
            user_id=user_id,
            task_id=task.task_id,
            message=f"Arrived on site: {task.title}",
            metadata=metadata,
            timestamp=now,
        )
        return task

    async def _remove(self, task: Task, reason: DeletionReason, actor_id: str, now: datetime) -> None:
        """Single removal routine for rejection, expiry and admin deletion."""
        activity_type, message = _REMOVAL_ACTIVITY[reason]
        await self.ledger.record(
            activity_type,
            user_id=actor_id,
            task_id=task.task_id,
            message=f"{message}: {task.title}",
            metadata={"reason": reason.value, "status": task.status.value},
            timestamp=now,
        )
        deleted = await self.store.delete_task(task.task_id)
        logger.info(
            "Task removed",
            task_id=task.task_id,
            reason=reason.value,
            actor=mask_user_id(actor_id),
            already_gone=not deleted
        )

    async def _load_for_worker(self, task_id: str, user_id: str) -> Task:
        task = await self.get_task(task_id)
        if not task.is_assigned_to(user_id):
            raise AuthorizationError(f"Task {task_id} is not assigned to this user")
        return task

    @staticmethod
    def _require_transition(task: Task, target: TaskStatus) -> None:
        if not can_transition(task.status, target):
            raise InvalidTransitionError(
                f"Cannot move task from {task.status.value} to {target.value}"
            )


# Global state machine instance
_state_machine: Optional[TaskStateMachine] = None


def get_task_state_machine() -> TaskStateMachine:
    """Get or create the global state machine over the configured store."""
    global _state_machine
    if _state_machine is None:
        _state_machine = TaskStateMachine(get_store(), get_activity_ledger())
    return _state_machine
