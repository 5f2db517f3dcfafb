"""Task models."""

from enum import Enum
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class TaskStatus(str, Enum):
    """Task workflow status. Closed set; anything else is invalid input."""
    WAITING_FOR_ACCEPTANCE = "waiting_for_acceptance"
    ON_THE_WAY = "on_the_way"
    ON_SITE = "on_site"
    COMPLETED = "completed"


class DeletionReason(str, Enum):
    """Why a task was removed."""
    REJECTED = "rejected"
    EXPIRED = "expired"
    ADMIN = "admin"


class GeoPoint(BaseModel):
    """WGS84 coordinate."""
    latitude: float = Field(..., ge=-90, le=90, allow_inf_nan=False)
    longitude: float = Field(..., ge=-180, le=180, allow_inf_nan=False)


class Task(BaseModel):
    """Field task dispatched to one or more workers."""
    task_id: str = Field(..., description="Task ID (ULID)")
    title: str = Field(..., description="Task title")
    description: Optional[str] = Field(None, description="Task description")
    location: GeoPoint = Field(..., description="Geofence center")
    radius_km: float = Field(default=1.0, gt=0, le=50, description="Geofence radius in kilometers")
    status: TaskStatus = Field(default=TaskStatus.WAITING_FOR_ACCEPTANCE)
    time_limit_minutes: Optional[int] = Field(None, gt=0, description="Minutes allowed to reach the site after acceptance")
    time_limit_set: Optional[datetime] = Field(None, description="Countdown start; set only while the countdown is live")
    deadline_at: Optional[datetime] = Field(None, description="Absolute countdown deadline")
    accepted_at: Optional[datetime] = None
    accepted_by: Optional[str] = None
    assigned_user_ids: list[str] = Field(default_factory=list)
    completed: bool = Field(default=False, description="Mirror of status == completed")
    site_entered: bool = Field(default=False, description="On-site transition already applied")
    expired: bool = Field(default=False, description="Expiry already fired")
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def is_assigned_to(self, user_id: str) -> bool:
        return user_id in self.assigned_user_ids


class TaskCreate(BaseModel):
    """Dispatcher payload for a new task."""
    model_config = ConfigDict(extra="forbid")

    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    location: GeoPoint
    radius_km: float = Field(default=1.0, gt=0, le=50)
    time_limit_minutes: Optional[int] = Field(None, gt=0)
    assigned_user_ids: list[str] = Field(..., min_length=1)


class TaskUpdate(BaseModel):
    """Partial update accepted from clients. Omitted fields stay unchanged."""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    status: Optional[TaskStatus] = None
    time_limit_set: Optional[datetime] = Field(None, alias="timeLimitSet")
    completed: Optional[bool] = None
