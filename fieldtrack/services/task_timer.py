"""Acceptance countdown derived from a task's persisted absolute deadline."""

from datetime import datetime, timedelta
from typing import Optional

from fieldtrack.models.task import Task, TaskStatus
from fieldtrack.utils.clock import ensure_aware, elapsed_ms
from fieldtrack.utils.config import TrackingConfig


# Statuses in which an elapsed countdown no longer matters
COUNTDOWN_STOPPED_STATUSES = frozenset({TaskStatus.ON_SITE, TaskStatus.COMPLETED})


def compute_deadline(started_at: datetime, time_limit_minutes: int) -> datetime:
    """Absolute deadline for a countdown started at started_at."""
    return ensure_aware(started_at) + timedelta(minutes=time_limit_minutes)


def format_remaining(ms: Optional[int]) -> str:
    """Format remaining milliseconds as HH:MM:SS."""
    if ms is None:
        return ""
    total_seconds = ms // 1000
    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


class TaskTimer:
    """
    Countdown for a single task.

    Remaining time is always recomputed from the absolute deadline, so a
    restarted process resumes the countdown instead of starting it over.
    """

    def __init__(self, task: Task):
        self.task = task

    @property
    def deadline(self) -> Optional[datetime]:
        if self.task.time_limit_set is None:
            return None
        if self.task.deadline_at is not None:
            return ensure_aware(self.task.deadline_at)
        # Rows written before deadline_at existed
        if self.task.time_limit_minutes:
            return compute_deadline(self.task.time_limit_set, self.task.time_limit_minutes)
        return None

    @property
    def is_active(self) -> bool:
        return self.deadline is not None

    def remaining_ms(self, now: datetime) -> Optional[int]:
        """Milliseconds left, clamped at zero; None when no countdown is live."""
        deadline = self.deadline
        if deadline is None:
            return None
        return elapsed_ms(now, deadline)

    def has_expired(self, now: datetime) -> bool:
        remaining = self.remaining_ms(now)
        return remaining is not None and remaining == 0

    def should_expire(self, now: datetime) -> bool:
        """True when the expiry transition is due and has not fired yet."""
        if self.task.expired or self.task.status in COUNTDOWN_STOPPED_STATUSES:
            return False
        return self.has_expired(now)

    def is_warning(self, now: datetime) -> bool:
        """Less than the warning threshold left on a live countdown."""
        remaining = self.remaining_ms(now)
        if remaining is None:
            return False
        threshold_ms = int(TrackingConfig.timer_warning_threshold().total_seconds() * 1000)
        return remaining < threshold_ms

    def display(self, now: datetime) -> str:
        return format_remaining(self.remaining_ms(now))
