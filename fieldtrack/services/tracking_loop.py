"""Per-device sampling loop feeding geofence results into tasks and time accounting."""

import asyncio
from datetime import datetime
from typing import Any, Awaitable, Callable, Coroutine, Iterable, Optional, Union

from pydantic import ValidationError

from fieldtrack.models.task import GeoPoint, Task, TaskStatus
from fieldtrack.models.time_session import TimeSession
from fieldtrack.services.geofence import GeofenceResult, evaluate_task, nearest_task_in_radius
from fieldtrack.services.task_state_machine import TaskStateMachine
from fieldtrack.services.task_timer import TaskTimer
from fieldtrack.services.time_accounting import TimeAccountingService
from fieldtrack.utils.clock import resolve_now
from fieldtrack.utils.config import TrackingConfig
from fieldtrack.utils.errors import SessionNotFoundError, TaskNotFoundError
from fieldtrack.utils.logging import correlation_context, get_structured_logger, mask_point, mask_user_id

logger = get_structured_logger(__name__)

LocationSource = Callable[[], Awaitable[Union[GeoPoint, dict, None]]]

# Tasks whose geofence counts as productive time
PRODUCTIVE_STATUSES = frozenset({TaskStatus.ON_THE_WAY, TaskStatus.ON_SITE})

RADIUS_KEY = "radius"


class TrackingLoop:
    """
    One worker's tracking loop.

    Geofence and timer checks run synchronously on every tick. Writes are
    fired as background tasks (one in flight per key) and local snapshots
    only advance from a successful result, so a failed write is simply
    detected again on the next tick.
    """

    def __init__(
        self,
        user_id: str,
        state_machine: TaskStateMachine,
        time_accounting: TimeAccountingService,
        location_source: LocationSource,
        interval_seconds: Optional[float] = None
    ):
        self.user_id = user_id
        self.state_machine = state_machine
        self.time_accounting = time_accounting
        self.location_source = location_source
        self.interval_seconds = interval_seconds or TrackingConfig.sample_interval()
        self.tasks: dict[str, Task] = {}
        self.reported_inside: Optional[bool] = None
        self._inflight: dict[str, asyncio.Task] = {}
        self._runner: Optional[asyncio.Task] = None
        self._running = False
        self.log = logger.bind(user_id=mask_user_id(user_id))

    @property
    def is_running(self) -> bool:
        return self._running

    def track(self, task: Task) -> None:
        self.tasks[task.task_id] = task

    def untrack(self, task_id: str) -> None:
        self.tasks.pop(task_id, None)

    async def start(self, tasks: Optional[Iterable[Task]] = None, now: Optional[datetime] = None) -> TimeSession:
        """
        Open (or reuse) today's session and begin sampling.

        Without explicit tasks the loop picks up the worker's accepted tasks
        from storage, so a restarted device resumes where it left off.
        """
        session = await self.time_accounting.start_session(self.user_id, now)
        self.reported_inside = session.is_in_task_radius
        if tasks is None:
            tasks = await self.state_machine.list_active_tasks(self.user_id)
        for task in tasks:
            self.track(task)
        self._running = True
        self._runner = asyncio.create_task(self._run())
        self.log.info(
            "Tracking loop started",
            tracked_tasks=len(self.tasks),
            interval_seconds=self.interval_seconds
        )
        return session

    async def stop(self, now: Optional[datetime] = None) -> Optional[TimeSession]:
        """Halt sampling, then flush the open interval before returning."""
        self._running = False
        if self._runner is not None:
            self._runner.cancel()
            try:
                await self._runner
            except asyncio.CancelledError:
                pass
            self._runner = None
        await self.drain()

        try:
            session = await self.time_accounting.end_session(self.user_id, now)
        except SessionNotFoundError:
            self.log.warning("No active session to end on stop")
            return None
        self.log.info("Tracking loop stopped")
        return session

    async def complete_task(self, task_id: str, now: Optional[datetime] = None) -> Task:
        """End a task; stopping tracking when it was the last one."""
        task = await self.state_machine.end_task(task_id, self.user_id, now)
        self.untrack(task_id)
        if not self.tasks:
            await self.stop(now)
        return task

    async def drain(self) -> None:
        """Wait for in-flight writes to settle."""
        pending = list(self._inflight.values())
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def tick(self, now: Optional[datetime] = None) -> None:
        """Evaluate one location sample against every tracked task."""
        now = resolve_now(now)
        point = await self._read_location()

        for task in list(self.tasks.values()):
            if task.expired or TaskTimer(task).should_expire(now):
                self._fire(f"timer:{task.task_id}", self._expire(task, now))
                continue
            if point is None:
                continue
            result = evaluate_task(point, task)
            if result.inside and task.status == TaskStatus.ON_THE_WAY and not task.site_entered:
                self._fire(f"site:{task.task_id}", self._enter_site(task, result, now))

        if point is None:
            return

        candidates = [t for t in self.tasks.values() if t.status in PRODUCTIVE_STATUSES]
        nearest = nearest_task_in_radius(point, candidates)
        inside = nearest is not None
        if inside != self.reported_inside:
            task_id = nearest[0].task_id if nearest else None
            self._fire(RADIUS_KEY, self._report_radius(inside, task_id, now))

    async def _run(self) -> None:
        while self._running:
            with correlation_context():
                try:
                    await self.tick()
                except Exception as e:
                    self.log.error(
                        "Tracking tick failed",
                        error=str(e),
                        exc_info=True
                    )
            await asyncio.sleep(self.interval_seconds)

    async def _read_location(self) -> Optional[GeoPoint]:
        raw = await self.location_source()
        if raw is None:
            return None
        if isinstance(raw, GeoPoint):
            return raw
        try:
            return GeoPoint.model_validate(raw)
        except ValidationError as e:
            self.log.warning("Discarding invalid location sample", error_count=e.error_count())
            return None

    def _fire(self, key: str, coro: Coroutine[Any, Any, None]) -> None:
        """Start a write unless one for the same key is still pending."""
        running = self._inflight.get(key)
        if running is not None and not running.done():
            coro.close()
            return
        job = asyncio.create_task(coro)
        self._inflight[key] = job
        job.add_done_callback(lambda _job, k=key: self._inflight.pop(k, None) if self._inflight.get(k) is _job else None)

    async def _enter_site(self, task: Task, result: GeofenceResult, now: datetime) -> None:
        try:
            updated = await self.state_machine.on_geofence_sample(task.task_id, self.user_id, True, now, result)
        except TaskNotFoundError:
            self._drop(task.task_id)
            return
        except Exception as e:
            self.log.warning(
                "On-site write failed; will retry on next sample",
                task_id=task.task_id,
                site=mask_point(task.location),
                error=str(e)
            )
            return
        self._reconcile(updated)

    async def _expire(self, task: Task, now: datetime) -> None:
        try:
            removed = await self.state_machine.check_timer(task, now)
        except TaskNotFoundError:
            self._drop(task.task_id)
            return
        except Exception as e:
            self.log.warning("Expiry write failed; will retry on next sample", task_id=task.task_id, error=str(e))
            return
        if removed:
            self._drop(task.task_id)

    async def _report_radius(self, inside: bool, task_id: Optional[str], now: datetime) -> None:
        try:
            session = await self.time_accounting.update_radius_state(self.user_id, inside, task_id, now)
        except Exception as e:
            self.log.warning(
                "Radius update failed; will retry on next sample",
                inside=inside,
                error=str(e)
            )
            return
        self.reported_inside = session.is_in_task_radius

    def _reconcile(self, task: Task) -> None:
        if task.task_id in self.tasks:
            self.tasks[task.task_id] = task

    def _drop(self, task_id: str) -> None:
        """Task is gone on the server; stop sampling it."""
        if task_id in self.tasks:
            self.untrack(task_id)
            self.log.info("Task no longer exists; stopped tracking it", task_id=task_id)
