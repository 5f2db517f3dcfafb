"""Activity model - append-only audit records."""

from enum import Enum
from typing import Optional, Any
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class ActivityType(str, Enum):
    """Audit record types."""
    TASK_CREATE = "task_create"
    TASK_ACCEPT = "task_accept"
    TASK_REJECT = "task_reject"
    TASK_ON_SITE = "task_on_site"
    TASK_COMPLETE = "task_complete"
    TASK_EXPIRED = "task_expired"
    TASK_DELETE = "task_delete"
    LOCATION_ENTER = "location_enter"
    LOCATION_EXIT = "location_exit"
    TRACKING_START = "tracking_start"
    TRACKING_STOP = "tracking_stop"


class ActivityRecord(BaseModel):
    """Immutable audit record."""
    model_config = ConfigDict(frozen=True)

    activity_id: str = Field(..., description="Activity ID (ULID)")
    user_id: str = Field(..., description="Worker or admin who caused the activity")
    task_id: Optional[str] = Field(None, description="Related task, if any")
    type: ActivityType
    message: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime
