"""Timestamp helpers shared by the timer and the time-accounting session."""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from fieldtrack.utils.config import TrackingConfig


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes (legacy rows, frozen clocks) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def resolve_now(now: Optional[datetime]) -> datetime:
    return ensure_aware(now) if now is not None else utcnow()


def elapsed_ms(start: datetime, end: datetime) -> int:
    """Whole milliseconds from start to end, never negative."""
    delta = ensure_aware(end) - ensure_aware(start)
    return max(0, int(delta.total_seconds() * 1000))


def local_day(moment: datetime) -> date:
    """Calendar day of a moment in the configured tracking time zone."""
    return ensure_aware(moment).astimezone(TrackingConfig.tz()).date()


def day_end(day: date) -> datetime:
    """First instant after a calendar day in the tracking time zone, as UTC."""
    midnight = datetime.combine(day + timedelta(days=1), time.min, tzinfo=TrackingConfig.tz())
    return midnight.astimezone(timezone.utc)


def round_half_up(value: float) -> int:
    """Round x.5 upward, the way minute counts are shown to workers."""
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)
