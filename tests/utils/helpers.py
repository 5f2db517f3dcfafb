"""Test helper functions."""

import json
import math
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from fieldtrack.models.task import GeoPoint
from fieldtrack.services.geofence import EARTH_RADIUS_M
from fieldtrack.services.store import InMemoryStore
from fieldtrack.utils.errors import SupabaseError

# Length of one degree of latitude on the haversine sphere
METERS_PER_DEGREE_LAT = EARTH_RADIUS_M * math.pi / 180


def offset_point(origin: GeoPoint, north_m: float = 0.0, east_m: float = 0.0) -> GeoPoint:
    """Point roughly north_m/east_m meters away from origin."""
    lat = origin.latitude + north_m / METERS_PER_DEGREE_LAT
    lng = origin.longitude + east_m / (METERS_PER_DEGREE_LAT * math.cos(math.radians(origin.latitude)))
    return GeoPoint(latitude=lat, longitude=lng)


def at(t0: datetime, seconds: float = 0, minutes: float = 0) -> datetime:
    """Instant relative to a scenario start."""
    return t0 + timedelta(seconds=seconds, minutes=minutes)


class FlakyStore(InMemoryStore):
    """In-memory store whose writes can be made to fail on demand."""

    def __init__(self):
        super().__init__()
        self.fail_task_updates = 0
        self.fail_task_deletes = 0
        self.fail_session_saves = 0
        self.fail_activities = False
        self.update_calls = 0

    async def update_task(self, task_id, updates):
        self.update_calls += 1
        if self.fail_task_updates:
            self.fail_task_updates -= 1
            raise SupabaseError("simulated update failure")
        return await super().update_task(task_id, updates)

    async def delete_task(self, task_id):
        if self.fail_task_deletes:
            self.fail_task_deletes -= 1
            raise SupabaseError("simulated delete failure")
        return await super().delete_task(task_id)

    async def save_session(self, session):
        if self.fail_session_saves:
            self.fail_session_saves -= 1
            raise SupabaseError("simulated session write failure")
        return await super().save_session(session)

    async def append_activity(self, record):
        if self.fail_activities:
            raise SupabaseError("simulated activity write failure")
        return await super().append_activity(record)


class LocationFeed:
    """Scriptable location source for the tracking loop."""

    def __init__(self, point: Optional[Any] = None):
        self.point = point
        self.reads = 0

    async def __call__(self):
        self.reads += 1
        return self.point


def create_request(
    body: Optional[Dict[str, Any]] = None,
    query: Optional[Dict[str, str]] = None,
    user_id: Optional[str] = "01JEWORKER0000000000000001",
    is_admin: bool = False,
    method: str = "POST",
    headers: Optional[Dict[str, str]] = None
) -> Dict[str, Any]:
    """Create a serverless request object for testing."""
    request = {
        "method": method,
        "headers": headers or {"content-type": "application/json"},
        "body": json.dumps(body) if body is not None else "",
        "query": query or {},
    }
    if user_id is not None:
        request["auth"] = {"user_id": user_id, "is_admin": is_admin}
    return request


def response_json(response: Dict[str, Any]) -> Dict[str, Any]:
    return json.loads(response["body"])
