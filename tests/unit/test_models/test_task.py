"""Tests for Task models."""

import pytest
from datetime import datetime, timezone
from pydantic import ValidationError

from fieldtrack.models.task import GeoPoint, Task, TaskCreate, TaskStatus, TaskUpdate


@pytest.mark.unit
def test_task_defaults():
    """Test a new task starts waiting with cleared flags."""
    task = Task(
        task_id="01ARZ3NDEKTSV4RRFFQ69G5FAV",
        title="Inspect meter",
        location=GeoPoint(latitude=52.52, longitude=13.405),
    )

    assert task.status == TaskStatus.WAITING_FOR_ACCEPTANCE
    assert task.radius_km == 1.0
    assert task.time_limit_set is None
    assert task.deadline_at is None
    assert task.completed is False
    assert task.site_entered is False
    assert task.expired is False
    assert task.assigned_user_ids == []


@pytest.mark.unit
@pytest.mark.parametrize("latitude,longitude", [
    (91, 0), (-91, 0), (0, 181), (0, -181), (float("nan"), 0), (0, float("inf")),
])
def test_geo_point_rejects_out_of_range(latitude, longitude):
    """Test that invalid coordinates never reach the geofence."""
    with pytest.raises(ValidationError):
        GeoPoint(latitude=latitude, longitude=longitude)


@pytest.mark.unit
@pytest.mark.parametrize("radius_km", [0, -1, 50.5])
def test_task_radius_bounds(radius_km):
    """Test radius must be positive and at most 50 km."""
    with pytest.raises(ValidationError):
        Task(
            task_id="01ARZ3NDEKTSV4RRFFQ69G5FAV",
            title="Test",
            location=GeoPoint(latitude=0, longitude=0),
            radius_km=radius_km,
        )


@pytest.mark.unit
def test_task_unknown_status_rejected():
    """Test that status is a closed set."""
    with pytest.raises(ValidationError):
        Task(
            task_id="01ARZ3NDEKTSV4RRFFQ69G5FAV",
            title="Test",
            location=GeoPoint(latitude=0, longitude=0),
            status="paused",
        )


@pytest.mark.unit
def test_task_is_assigned_to():
    task = Task(
        task_id="01ARZ3NDEKTSV4RRFFQ69G5FAV",
        title="Test",
        location=GeoPoint(latitude=0, longitude=0),
        assigned_user_ids=["worker-1", "worker-2"],
    )

    assert task.is_assigned_to("worker-2")
    assert not task.is_assigned_to("worker-3")


@pytest.mark.unit
def test_task_create_requires_assignee():
    with pytest.raises(ValidationError):
        TaskCreate(
            title="Test",
            location=GeoPoint(latitude=0, longitude=0),
            assigned_user_ids=[],
        )


@pytest.mark.unit
def test_task_create_forbids_server_fields():
    """Test that clients cannot preset workflow flags on creation."""
    with pytest.raises(ValidationError):
        TaskCreate.model_validate({
            "title": "Test",
            "location": {"latitude": 0, "longitude": 0},
            "assigned_user_ids": ["worker-1"],
            "status": "on_site",
        })


@pytest.mark.unit
def test_task_update_accepts_client_alias():
    """Test the timeLimitSet wire name maps onto time_limit_set."""
    update = TaskUpdate.model_validate({"timeLimitSet": "2024-12-09T12:00:00Z"})

    assert update.time_limit_set == datetime(2024, 12, 9, 12, 0, tzinfo=timezone.utc)
    assert update.model_dump(exclude_unset=True).keys() == {"time_limit_set"}


@pytest.mark.unit
def test_task_update_omitted_fields_unset():
    update = TaskUpdate.model_validate({"completed": True})

    assert update.model_dump(exclude_unset=True) == {"completed": True}


@pytest.mark.unit
def test_task_update_explicit_null_is_set():
    """Test an explicit null is distinguishable from an omitted field."""
    update = TaskUpdate.model_validate({"timeLimitSet": None})

    assert update.model_dump(exclude_unset=True) == {"time_limit_set": None}


@pytest.mark.unit
@pytest.mark.parametrize("payload", [
    {"status": "paused"},
    {"status": "ON_SITE"},
    {"priority": 3},
])
def test_task_update_rejects_unknown_values(payload):
    with pytest.raises(ValidationError):
        TaskUpdate.model_validate(payload)
