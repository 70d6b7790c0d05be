"""Tests for the event bus lifecycle: deletes, handlers and the activity timeline."""

from __future__ import annotations

import pytest

from app.core.config import Settings
from app.domain.bus import EventBus
from app.domain.events import (
    AvailabilityCreated,
    AvailabilityDeleted,
    AvailabilityUpdated,
)
from app.domain.handlers import HandlerRegistry
from app.domain.models import ActivityType, ErrorKind, RecurrenceEndType
from app.main import build_container
from app.repos.memory import ActivityRepository
from tests.factories import USER_ID, at, make_draft


async def _create_series(env, count: int = 3):
    result = await env.service.create_availability_block(
        {
            "userId": USER_ID,
            "startDate": at(6, 9),
            "endDate": at(6, 10),
            "isRecurring": True,
            "recurrenceEndType": RecurrenceEndType.COUNT,
            "recurrenceCount": count,
        }
    )
    assert result.success
    return result


# ---------------------------------------------------------------------------
# Deletion
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_delete_missing_block_has_no_side_effects(env):
    await env.repo.create(make_draft(at(6, 9), at(6, 10)))

    result = await env.service.delete_availability_block(42, delete_series=True)

    assert result.success is False
    assert result.error == "Availability block not found"
    assert result.error_kind == ErrorKind.NOT_FOUND
    assert len(await env.blocks()) == 1
    assert env.published == []


@pytest.mark.asyncio
async def test_delete_series_removes_whole_group_only(env):
    series = await _create_series(env)
    other_series = await env.service.create_availability_block(
        {
            "userId": USER_ID,
            "startDate": at(6, 14),
            "endDate": at(6, 15),
            "isRecurring": True,
            "recurrenceEndType": "count",
            "recurrenceCount": 2,
        }
    )
    standalone = await env.repo.create(make_draft(at(6, 18), at(6, 19)))
    env.published.clear()

    result = await env.service.delete_availability_block(
        series.report.block_ids[1], delete_series=True
    )

    assert result.success
    assert result.data.count == 3
    remaining = {b.id for b in await env.blocks()}
    assert remaining == set(other_series.report.block_ids) | {standalone.id}

    assert len(env.published) == 1
    event = env.published[0]
    assert isinstance(event, AvailabilityDeleted)
    assert event.id == series.report.block_ids[1]
    assert event.user_id == USER_ID
    assert event.count == 3


@pytest.mark.asyncio
async def test_delete_single_occurrence_leaves_siblings(env):
    series = await _create_series(env)
    target, *siblings = series.report.block_ids

    result = await env.service.delete_availability_block(target, delete_series=False)

    assert result.success
    assert result.data.count == 1
    assert [b.id for b in await env.blocks()] == siblings
    remaining = await env.service.get_series(siblings[0])
    assert [b.id for b in remaining.data] == siblings


@pytest.mark.asyncio
async def test_delete_series_on_non_recurring_block_deletes_only_it(env):
    block = await env.repo.create(make_draft(at(6, 9), at(6, 10)))
    other = await env.repo.create(make_draft(at(7, 9), at(7, 10)))

    result = await env.service.delete_availability_block(block.id, delete_series=True)

    assert result.success
    assert result.data.count == 1
    assert [b.id for b in await env.blocks()] == [other.id]
    assert isinstance(env.published[-1], AvailabilityDeleted)


# ---------------------------------------------------------------------------
# Handlers and activity timeline
# ---------------------------------------------------------------------------


def test_bus_calls_typed_handlers_before_catch_all():
    bus = EventBus()
    calls: list[str] = []
    bus.subscribe(AvailabilityDeleted, lambda e: calls.append("typed"))
    bus.subscribe_all(lambda e: calls.append("all"))

    bus.publish(AvailabilityDeleted(id=1, user_id=USER_ID))
    bus.publish(AvailabilityUpdated(id=1, user_id=USER_ID))

    assert calls == ["typed", "all", "all"]


def test_events_carry_wire_names():
    assert AvailabilityCreated.name == "availability.created"
    assert AvailabilityUpdated.name == "availability.updated"
    assert AvailabilityDeleted.name == "availability.deleted"


def test_registry_records_activity_for_each_event():
    bus = EventBus()
    activity_repo = ActivityRepository()
    HandlerRegistry(bus=bus, activity_repo=activity_repo)

    bus.publish(
        AvailabilityCreated(id=5, user_id=USER_ID, start_date=at(6, 9), end_date=at(6, 10))
    )
    bus.publish(AvailabilityUpdated(id=5, user_id=USER_ID, changes={"title": "x"}))
    bus.publish(AvailabilityDeleted(id=5, user_id=USER_ID))

    entries = activity_repo.list_for_block(5)
    assert [e.type for e in entries] == [
        ActivityType.CREATED,
        ActivityType.UPDATED,
        ActivityType.DELETED,
    ]
    assert entries[0].payload["start_date"] == at(6, 9).isoformat()
    assert entries[1].payload == {"fields": ["title"]}
    assert entries[2].payload == {"count": 1}


@pytest.mark.asyncio
async def test_full_lifecycle_builds_timeline(env):
    created = await _create_series(env, count=2)
    block_id = created.data.id

    await env.service.update_availability_block(block_id, {"title": "Focus"})
    await env.service.delete_availability_block(block_id, delete_series=True)

    entries = env.activity_repo.list_for_block(block_id)
    assert [e.type for e in entries] == [
        ActivityType.CREATED,
        ActivityType.UPDATED,
        ActivityType.DELETED,
    ]
    assert entries[0].payload["occurrences"] == 2
    assert entries[0].payload["recurrence_group"] == created.report.recurrence_group
    assert entries[2].payload == {"count": 2}
    assert len(env.activity_repo.list_for_user(USER_ID)) == 3


@pytest.mark.asyncio
async def test_build_container_wires_service_to_timeline():
    container = build_container(Settings(log_level="DEBUG"))

    result = await container.availability_service.create_availability_block(
        {"userId": USER_ID, "startDate": at(6, 9), "endDate": at(6, 10)}
    )

    assert result.success
    entries = container.activity_repo.list_for_block(result.data.id)
    assert [e.type for e in entries] == [ActivityType.CREATED]
