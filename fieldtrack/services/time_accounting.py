"""Idle vs productive time accounting per user and calendar day."""

from collections import defaultdict
from datetime import date, datetime
from typing import Iterable, Optional

from ulid import ULID

from fieldtrack.models.activity import ActivityType
from fieldtrack.models.auth import AuthContext
from fieldtrack.models.time_session import DailyHistory, TimeSession, TimeStats
from fieldtrack.services.activity_ledger import ActivityLedger, get_activity_ledger
from fieldtrack.services.store import Store, get_store
from fieldtrack.utils.clock import day_end, elapsed_ms, ensure_aware, local_day, resolve_now, round_half_up
from fieldtrack.utils.errors import AuthorizationError, InvalidInputError, SessionNotFoundError
from fieldtrack.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)

MS_PER_MINUTE = 60000


def generate_session_id() -> str:
    """Generate a text-based session ID (ULID format)."""
    return str(ULID())


def new_session(user_id: str, now: datetime) -> TimeSession:
    return TimeSession(
        session_id=generate_session_id(),
        user_id=user_id,
        day=local_day(now),
        session_start=now,
        idle_start=now,
        last_updated=now,
        is_in_task_radius=False,
        session_active=True,
    )


def resume_session(session: TimeSession, now: datetime) -> TimeSession:
    """
    Reopen a session closed earlier the same day.

    The closed interval is booked as suspended, never as idle or productive.
    """
    suspended = elapsed_ms(session.ended_at, now) if session.ended_at else 0
    updates = {
        "session_active": True,
        "ended_at": None,
        "last_updated": now,
        "suspended_ms": session.suspended_ms + suspended,
    }
    if not session.is_in_task_radius:
        updates["idle_start"] = now
    return session.model_copy(update=updates)


def close_session(session: TimeSession, now: datetime) -> TimeSession:
    """Flush the open interval into the matching total and deactivate."""
    updates = {"session_active": False, "ended_at": now, "last_updated": now}
    if session.is_in_task_radius:
        updates["total_productive_ms"] = session.total_productive_ms + elapsed_ms(session.last_updated, now)
    else:
        updates["total_idle_ms"] = session.total_idle_ms + elapsed_ms(session.idle_start, now)
    return session.model_copy(update=updates)


def apply_radius_state(
    session: TimeSession,
    inside_now: bool,
    task_id: Optional[str],
    now: datetime
) -> Optional[TimeSession]:
    """
    Compute the session after a radius sample.

    Returns None when the sample does not change the radius state.
    """
    if inside_now == session.is_in_task_radius:
        return None
    if inside_now:
        return session.model_copy(update={
            "total_idle_ms": session.total_idle_ms + elapsed_ms(session.idle_start, now),
            "current_task_id": task_id,
            "is_in_task_radius": True,
            "last_updated": now,
        })
    return session.model_copy(update={
        "total_productive_ms": session.total_productive_ms + elapsed_ms(session.last_updated, now),
        "current_task_id": None,
        "idle_start": now,
        "is_in_task_radius": False,
        "last_updated": now,
    })


def accrual_bound(session: TimeSession, now: datetime) -> datetime:
    """
    Latest moment an open interval may accrue to its session.

    A session belongs to one calendar day, so accrual stops at the end of that
    day unless a recorded transition already went past it.
    """
    limit = max(day_end(session.day), ensure_aware(session.last_updated))
    return min(ensure_aware(now), limit)


def live_totals(session: TimeSession, now: datetime) -> tuple[int, int]:
    """Idle/productive totals including the still-open interval of an active session."""
    idle, productive = session.total_idle_ms, session.total_productive_ms
    if session.session_active:
        now = accrual_bound(session, now)
        if session.is_in_task_radius:
            productive += elapsed_ms(session.last_updated, now)
        else:
            idle += elapsed_ms(session.idle_start, now)
    return idle, productive


def build_stats(day: date, sessions: Iterable[TimeSession], now: datetime) -> TimeStats:
    idle_ms = productive_ms = 0
    active: Optional[TimeSession] = None
    for session in sessions:
        idle, productive = live_totals(session, now)
        idle_ms += idle
        productive_ms += productive
        if session.session_active:
            active = session

    idle_minutes = round_half_up(idle_ms / MS_PER_MINUTE)
    productive_minutes = round_half_up(productive_ms / MS_PER_MINUTE)
    total_minutes = idle_minutes + productive_minutes

    return TimeStats(
        day=day,
        idle_ms=idle_ms,
        productive_ms=productive_ms,
        idle_minutes=idle_minutes,
        productive_minutes=productive_minutes,
        total_minutes=total_minutes,
        idle_percentage=round_half_up(idle_minutes / total_minutes * 100) if total_minutes else 0,
        productive_percentage=round_half_up(productive_minutes / total_minutes * 100) if total_minutes else 0,
        has_active_session=active is not None,
        current_task_id=active.current_task_id if active else None,
        is_in_task_radius=active.is_in_task_radius if active else False,
    )


class TimeAccountingService:
    """Session lifecycle and radius-state accrual backed by the store."""

    def __init__(self, store: Store, ledger: ActivityLedger):
        self.store = store
        self.ledger = ledger

    async def start_session(self, user_id: str, now: Optional[datetime] = None) -> TimeSession:
        """
        Start tracking, reusing today's session when there is one.

        An active session for today is returned untouched; an inactive one
        from earlier today is resumed; otherwise a new session is created.
        """
        now = resolve_now(now)
        today = local_day(now)

        active = await self.store.get_active_session(user_id)
        if active is not None and active.day != today:
            await self._close_stale(active, now)
            active = None
        if active is not None:
            logger.debug("Reusing active session", user_id=mask_user_id(user_id), session_id=active.session_id)
            return active

        latest = await self.store.get_latest_session(user_id, today)
        resumed = latest is not None
        session = resume_session(latest, now) if resumed else new_session(user_id, now)
        session = await self.store.save_session(session)

        logger.info(
            "Tracking session started",
            user_id=mask_user_id(user_id),
            session_id=session.session_id,
            resumed=resumed,
            day=session.day.isoformat()
        )
        await self.ledger.record(
            ActivityType.TRACKING_START,
            user_id=user_id,
            message="Tracking resumed" if resumed else "Tracking started",
            metadata={"session_id": session.session_id, "resumed": resumed},
            timestamp=now,
        )
        return session

    async def end_session(self, user_id: str, now: Optional[datetime] = None) -> TimeSession:
        """Stop tracking, flushing the open idle or productive interval."""
        now = resolve_now(now)
        session = await self._require_active(user_id)
        session = await self.store.save_session(close_session(session, now))

        logger.info(
            "Tracking session ended",
            user_id=mask_user_id(user_id),
            session_id=session.session_id,
            total_idle_ms=session.total_idle_ms,
            total_productive_ms=session.total_productive_ms
        )
        await self.ledger.record(
            ActivityType.TRACKING_STOP,
            user_id=user_id,
            message="Tracking stopped",
            metadata={
                "session_id": session.session_id,
                "total_idle_ms": session.total_idle_ms,
                "total_productive_ms": session.total_productive_ms,
            },
            timestamp=now,
        )
        return session

    async def update_radius_state(
        self,
        user_id: str,
        inside_now: bool,
        task_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> TimeSession:
        """Record an inside/outside sample; a repeated state is a no-op."""
        if not isinstance(inside_now, bool):
            raise InvalidInputError("inside_now must be a boolean")
        now = resolve_now(now)
        session = await self._require_active(user_id)

        if inside_now and task_id is not None and await self.store.get_task(task_id) is None:
            logger.warning("Radius entry references unknown task", user_id=mask_user_id(user_id), task_id=task_id)
            task_id = None

        updated = apply_radius_state(session, inside_now, task_id, now)
        if updated is None:
            return session

        updated = await self.store.save_session(updated)
        if inside_now:
            activity_type, message = ActivityType.LOCATION_ENTER, "Entered task radius"
            related_task = task_id
        else:
            activity_type, message = ActivityType.LOCATION_EXIT, "Left task radius"
            related_task = session.current_task_id
        await self.ledger.record(
            activity_type,
            user_id=user_id,
            task_id=related_task,
            message=message,
            metadata={
                "session_id": updated.session_id,
                "total_idle_ms": updated.total_idle_ms,
                "total_productive_ms": updated.total_productive_ms,
            },
            timestamp=now,
        )
        return updated

    async def get_stats(
        self,
        user_id: str,
        day: Optional[date] = None,
        now: Optional[datetime] = None
    ) -> TimeStats:
        """Day totals; the live interval of an active session is shown but never stored."""
        now = resolve_now(now)
        day = day or local_day(now)
        sessions = await self.store.list_sessions(user_id, day, day)
        return build_stats(day, sessions, now)

    async def get_history(
        self,
        auth: AuthContext,
        user_id: str,
        start_day: Optional[date] = None,
        end_day: Optional[date] = None,
        now: Optional[datetime] = None
    ) -> list[DailyHistory]:
        """Per-day totals for a user over a date range, most recent first (admin only)."""
        if not auth.is_admin:
            raise AuthorizationError("Administrator privileges required for time history")
        now = resolve_now(now)
        start_day = start_day or local_day(now)
        end_day = end_day or local_day(now)
        if start_day > end_day:
            raise InvalidInputError("start date must not be after end date")

        by_day: dict[date, list[TimeSession]] = defaultdict(list)
        for session in await self.store.list_sessions(user_id, start_day, end_day):
            by_day[session.day].append(session)

        history = []
        for day in sorted(by_day, reverse=True):
            sessions = by_day[day]
            idle_ms = sum(s.total_idle_ms for s in sessions)
            productive_ms = sum(s.total_productive_ms for s in sessions)
            history.append(DailyHistory(
                day=day,
                idle_ms=idle_ms,
                productive_ms=productive_ms,
                idle_minutes=round_half_up(idle_ms / MS_PER_MINUTE),
                productive_minutes=round_half_up(productive_ms / MS_PER_MINUTE),
                total_minutes=round_half_up((idle_ms + productive_ms) / MS_PER_MINUTE),
                sessions=sessions,
            ))
        return history

    async def _require_active(self, user_id: str) -> TimeSession:
        session = await self.store.get_active_session(user_id)
        if session is None:
            raise SessionNotFoundError(f"No active session for user {mask_user_id(user_id)}")
        return session

    async def _close_stale(self, session: TimeSession, now: datetime) -> None:
        """Close an active session left over from a previous day at the end of that day."""
        closed = close_session(session, accrual_bound(session, now))
        await self.store.save_session(closed)
        logger.warning(
            "Closed stale session from a previous day",
            user_id=mask_user_id(session.user_id),
            session_id=session.session_id,
            day=session.day.isoformat(),
            ended_at=closed.ended_at.isoformat()
        )


# Global service instance
_service: Optional[TimeAccountingService] = None


def get_time_accounting_service() -> TimeAccountingService:
    """Get or create the global time-accounting service over the configured store."""
    global _service
    if _service is None:
        _service = TimeAccountingService(get_store(), get_activity_ledger())
    return _service
