"""Tests for the acceptance countdown."""

import pytest
from datetime import timedelta

from fieldtrack.models.task import TaskStatus
from fieldtrack.services.task_timer import TaskTimer, compute_deadline, format_remaining
from fieldtrack.utils.clock import utcnow
from tests.utils.factories import T0, create_task


def accepted_task(minutes=30, **overrides):
    data = {
        "status": TaskStatus.ON_THE_WAY,
        "time_limit_minutes": minutes,
        "time_limit_set": T0,
        "deadline_at": compute_deadline(T0, minutes),
    }
    data.update(overrides)
    return create_task(**data)


@pytest.mark.unit
def test_compute_deadline():
    assert compute_deadline(T0, 30) == T0 + timedelta(minutes=30)


@pytest.mark.unit
def test_compute_deadline_treats_naive_as_utc():
    assert compute_deadline(T0.replace(tzinfo=None), 1) == T0 + timedelta(minutes=1)


@pytest.mark.unit
@pytest.mark.parametrize("ms,expected", [
    (0, "00:00:00"),
    (999, "00:00:00"),
    (61_000, "00:01:01"),
    (30 * 60_000, "00:30:00"),
    (3_723_000, "01:02:03"),
])
def test_format_remaining(ms, expected):
    assert format_remaining(ms) == expected


@pytest.mark.unit
def test_format_remaining_without_countdown():
    assert format_remaining(None) == ""


@pytest.mark.unit
def test_no_countdown_without_start():
    """Test a task with a limit but no start has no live countdown."""
    timer = TaskTimer(create_task(status=TaskStatus.ON_THE_WAY, time_limit_minutes=30))

    assert timer.is_active is False
    assert timer.remaining_ms(T0) is None
    assert timer.should_expire(T0 + timedelta(days=1)) is False


@pytest.mark.unit
def test_remaining_counts_down_from_deadline():
    timer = TaskTimer(accepted_task())

    assert timer.remaining_ms(T0) == 30 * 60_000
    assert timer.remaining_ms(T0 + timedelta(minutes=10)) == 20 * 60_000
    assert timer.display(T0 + timedelta(minutes=10)) == "00:20:00"


@pytest.mark.unit
def test_remaining_clamped_at_zero():
    timer = TaskTimer(accepted_task())

    assert timer.remaining_ms(T0 + timedelta(hours=2)) == 0
    assert timer.has_expired(T0 + timedelta(hours=2)) is True


@pytest.mark.unit
def test_remaining_survives_restart():
    """Test the countdown is derived from persisted timestamps only."""
    task = accepted_task()
    later = T0 + timedelta(minutes=12)

    assert TaskTimer(task).remaining_ms(later) == TaskTimer(task.model_copy(deep=True)).remaining_ms(later)


@pytest.mark.unit
def test_legacy_row_without_deadline_uses_limit():
    timer = TaskTimer(accepted_task(deadline_at=None))

    assert timer.deadline == T0 + timedelta(minutes=30)


@pytest.mark.unit
def test_should_expire_at_deadline():
    timer = TaskTimer(accepted_task(minutes=1))

    assert timer.should_expire(T0 + timedelta(seconds=59)) is False
    assert timer.should_expire(T0 + timedelta(seconds=60)) is True


@pytest.mark.unit
@pytest.mark.parametrize("overrides", [
    {"status": TaskStatus.ON_SITE},
    {"status": TaskStatus.COMPLETED},
    {"expired": True},
])
def test_should_not_expire_once_stopped(overrides):
    timer = TaskTimer(accepted_task(minutes=1, **overrides))

    assert timer.should_expire(T0 + timedelta(minutes=5)) is False


@pytest.mark.unit
def test_warning_threshold():
    """Test warning under the default 300 s threshold."""
    timer = TaskTimer(accepted_task(minutes=10))

    assert timer.is_warning(T0 + timedelta(minutes=4)) is False
    assert timer.is_warning(T0 + timedelta(minutes=5, seconds=1)) is True


@pytest.mark.unit
def test_countdown_against_wall_clock(freeze_time_fixture):
    """Test remaining time follows the real clock when no instant is passed."""
    timer = TaskTimer(accepted_task(minutes=30))

    assert timer.remaining_ms(utcnow()) == 30 * 60_000
    freeze_time_fixture.tick(delta=timedelta(minutes=31))
    assert timer.should_expire(utcnow()) is True
