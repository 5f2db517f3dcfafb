"""Idle/productive time accounting models."""

from typing import Optional
from datetime import date, datetime
from pydantic import BaseModel, Field


class TimeSession(BaseModel):
    """Per-user, per-day tracking session."""
    session_id: str = Field(..., description="Session ID (ULID)")
    user_id: str
    day: date = Field(..., description="Calendar day the session belongs to")
    session_start: datetime
    idle_start: datetime = Field(..., description="Start of the current idle interval")
    last_updated: datetime = Field(..., description="Last radius transition, resume or end")
    is_in_task_radius: bool = False
    current_task_id: Optional[str] = None
    total_idle_ms: int = Field(default=0, ge=0)
    total_productive_ms: int = Field(default=0, ge=0)
    session_active: bool = True
    ended_at: Optional[datetime] = None
    suspended_ms: int = Field(default=0, ge=0, description="Time spent closed between an end and a same-day resume")


class TimeStats(BaseModel):
    """Aggregated stats for one user and day."""
    day: date
    idle_ms: int = 0
    productive_ms: int = 0
    idle_minutes: int = 0
    productive_minutes: int = 0
    total_minutes: int = 0
    idle_percentage: int = 0
    productive_percentage: int = 0
    has_active_session: bool = False
    current_task_id: Optional[str] = None
    is_in_task_radius: bool = False


class DailyHistory(BaseModel):
    """One day of a user's history (admin view)."""
    day: date
    idle_ms: int = 0
    productive_ms: int = 0
    idle_minutes: int = 0
    productive_minutes: int = 0
    total_minutes: int = 0
    sessions: list[TimeSession] = Field(default_factory=list)
