"""Tests for the idle/productive time endpoints."""

import pytest
from datetime import timedelta

from api.idle_time.end import handler as end_handler
from api.idle_time.history import handler as history_handler
from api.idle_time.start import handler as start_handler
from api.idle_time.stats import handler as stats_handler
from api.idle_time.update_radius import handler as update_radius_handler
from tests.utils.assertions import assert_valid_response
from tests.utils.factories import ADMIN_ID, T0, WORKER_ID, create_session, create_task
from tests.utils.helpers import create_request, response_json


@pytest.mark.unit
def test_start_session(memory_services):
    response = start_handler(create_request())

    assert_valid_response(response, 200)
    data = response_json(response)["data"]
    assert data["session_active"] is True
    assert data["is_in_task_radius"] is False
    assert len(memory_services.sessions) == 1


@pytest.mark.unit
def test_start_twice_reuses_session(memory_services):
    first = response_json(start_handler(create_request()))["data"]
    second = response_json(start_handler(create_request()))["data"]

    assert first["session_id"] == second["session_id"]


@pytest.mark.unit
def test_end_without_session(memory_services):
    assert_valid_response(end_handler(create_request()), 404)


@pytest.mark.unit
def test_start_update_end(memory_services):
    task = create_task()
    memory_services.tasks[task.task_id] = task
    start_handler(create_request())

    response = update_radius_handler(create_request(body={"isInTaskRadius": True, "taskId": task.task_id}))
    assert_valid_response(response, 200)
    assert response_json(response)["data"]["current_task_id"] == task.task_id

    response = end_handler(create_request())
    assert_valid_response(response, 200)
    data = response_json(response)["data"]
    assert data["session_active"] is False
    assert data["ended_at"] is not None


@pytest.mark.unit
@pytest.mark.parametrize("body", [{}, {"isInTaskRadius": "yes"}, {"isInTaskRadius": 1}])
def test_update_radius_requires_boolean(memory_services, body):
    start_handler(create_request())

    assert_valid_response(update_radius_handler(create_request(body=body)), 400)


@pytest.mark.unit
def test_update_radius_without_session(memory_services):
    response = update_radius_handler(create_request(body={"isInTaskRadius": False}))

    assert_valid_response(response, 404)


@pytest.mark.unit
def test_stats_for_today(memory_services):
    start_handler(create_request())

    response = stats_handler(create_request(method="GET"))

    assert_valid_response(response, 200)
    data = response_json(response)["data"]
    assert data["has_active_session"] is True
    assert data["productive_minutes"] == 0


@pytest.mark.unit
def test_stats_for_given_date(memory_services):
    session = create_session(
        WORKER_ID, T0,
        session_active=False,
        ended_at=T0 + timedelta(minutes=15),
        total_idle_ms=10 * 60_000,
        total_productive_ms=5 * 60_000,
    )
    memory_services.sessions[session.session_id] = session

    response = stats_handler(create_request(method="GET", query={"date": "2024-12-09"}))

    assert_valid_response(response, 200)
    data = response_json(response)["data"]
    assert data["idle_minutes"] == 10
    assert data["productive_minutes"] == 5
    assert data["idle_percentage"] == 67
    assert data["productive_percentage"] == 33


@pytest.mark.unit
def test_stats_invalid_date(memory_services):
    response = stats_handler(create_request(method="GET", query={"date": "09/12/2024"}))

    assert_valid_response(response, 400)


@pytest.mark.unit
def test_history_as_admin(memory_services):
    for days in (0, 1):
        start = T0 - timedelta(days=days)
        session = create_session(
            WORKER_ID, start,
            session_active=False,
            ended_at=start + timedelta(minutes=30),
            total_idle_ms=30 * 60_000,
        )
        memory_services.sessions[session.session_id] = session

    response = history_handler(create_request(
        method="GET",
        query={"userId": WORKER_ID, "startDate": "2024-12-01", "endDate": "2024-12-09"},
        user_id=ADMIN_ID,
        is_admin=True,
    ))

    assert_valid_response(response, 200)
    days = [entry["day"] for entry in response_json(response)["data"]]
    assert days == ["2024-12-09", "2024-12-08"]


@pytest.mark.unit
def test_history_requires_admin(memory_services):
    response = history_handler(create_request(method="GET", query={"userId": WORKER_ID}))

    assert_valid_response(response, 403)


@pytest.mark.unit
def test_history_requires_user(memory_services):
    response = history_handler(create_request(method="GET", user_id=ADMIN_ID, is_admin=True))

    assert_valid_response(response, 400)


@pytest.mark.unit
def test_history_inverted_range(memory_services):
    response = history_handler(create_request(
        method="GET",
        query={"userId": WORKER_ID, "startDate": "2024-12-09", "endDate": "2024-12-01"},
        user_id=ADMIN_ID,
        is_admin=True,
    ))

    assert_valid_response(response, 400)
