"""Tests for the activity ledger."""

import pytest
from unittest.mock import AsyncMock

from fieldtrack.models.activity import ActivityType
from fieldtrack.services.activity_ledger import ActivityLedger
from fieldtrack.services.store import InMemoryStore
from tests.utils.factories import T0, WORKER_ID
from tests.utils.helpers import FlakyStore


@pytest.mark.unit
@pytest.mark.asyncio
async def test_record_appends_activity():
    store = InMemoryStore()
    ledger = ActivityLedger(store)

    record = await ledger.record(
        ActivityType.TASK_ACCEPT,
        user_id=WORKER_ID,
        task_id="01ARZ3NDEKTSV4RRFFQ69G5FAV",
        message="Task accepted: Inspect meter",
        metadata={"time_limit_minutes": 30},
        timestamp=T0,
    )

    assert store.activities == [record]
    assert record.timestamp == T0
    assert len(record.activity_id) == 26


@pytest.mark.unit
@pytest.mark.asyncio
async def test_record_failure_is_swallowed():
    """Test a failed audit write never raises into the transition."""
    store = FlakyStore()
    store.fail_activities = True

    record = await ActivityLedger(store).record(ActivityType.TRACKING_START, user_id=WORKER_ID, timestamp=T0)

    assert record is None
    assert store.activities == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_dispatcher_called_for_task_events():
    dispatcher = AsyncMock()
    ledger = ActivityLedger(InMemoryStore(), dispatcher=dispatcher)

    record = await ledger.record(ActivityType.TASK_EXPIRED, user_id=WORKER_ID, timestamp=T0)

    dispatcher.assert_awaited_once_with(record)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_dispatcher_skipped_for_radius_events():
    dispatcher = AsyncMock()
    ledger = ActivityLedger(InMemoryStore(), dispatcher=dispatcher)

    await ledger.record(ActivityType.LOCATION_ENTER, user_id=WORKER_ID, timestamp=T0)

    dispatcher.assert_not_awaited()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_dispatcher_failure_is_swallowed():
    dispatcher = AsyncMock(side_effect=RuntimeError("push service down"))
    store = InMemoryStore()
    ledger = ActivityLedger(store, dispatcher=dispatcher)

    record = await ledger.record(ActivityType.TASK_COMPLETE, user_id=WORKER_ID, timestamp=T0)

    assert record is not None
    assert store.activities == [record]
