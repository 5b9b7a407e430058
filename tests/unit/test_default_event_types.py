"""Unit tests for provisioning the standard coach event types."""

import json
from decimal import Decimal

import httpx
import pytest
from sqlalchemy import select

from libs.auth.models import RequestContext
from libs.common.errors import CreateError, ForbiddenError
from services.scheduling_service.cal_client import CalClient
from services.scheduling_service.models import CalEventType
from services.scheduling_service.schemas import EventTypeUpdate
from services.scheduling_service.services.default_event_types import (
    DEFAULT_EVENT_TYPES,
    create_default_event_types,
)
from services.scheduling_service.services.event_type_ops import update_event_type
from services.scheduling_service.services.event_type_sync import sync_event_types
from tests.factories import CalEventTypeFactory, cal_event_type_payload, seed_coach


def _ctx(user) -> RequestContext:
    return RequestContext(user_id=user.user_id, user_ulid=user.ulid, email=user.email)


def _created(event_type_id: int, title: str) -> httpx.Response:
    return httpx.Response(
        201,
        json={"status": "success", "data": cal_event_type_payload(event_type_id, title=title)},
    )


@pytest.mark.asyncio
@pytest.mark.unit
async def test_creates_all_defaults_for_coach_with_rate(db_session, cal):
    coach, integration = await seed_coach(db_session, hourly_rate=Decimal("120.00"))
    cal.json("GET", "/event-types", [])
    cal.add(
        "POST",
        "/event-types",
        *(_created(500 + i, d.name) for i, d in enumerate(DEFAULT_EVENT_TYPES)),
    )

    result = await create_default_event_types(
        db_session, _ctx(coach), CalClient("access-token", transport=cal.transport)
    )

    assert result.created is True
    assert [e.name for e in result.event_types] == [d.name for d in DEFAULT_EVENT_TYPES]
    assert all(e.is_default for e in result.event_types)

    bodies = [json.loads(r.content) for r in cal.calls("POST", "/event-types")]
    assert [b["price"] for b in bodies] == [6000, 12000, 0]
    assert bodies[0]["slug"] == "coaching-qa-30"
    assert bodies[0]["beforeEventBuffer"] == 5
    assert bodies[0]["afterEventBuffer"] == 5

    required = {e.name: e.event_metadata["isRequired"] for e in result.event_types}
    assert required == {
        "1:1 Q&A Coaching Call": True,
        "1:1 Deep Dive Coaching Call": True,
        "Get to Know You": False,
    }


@pytest.mark.asyncio
@pytest.mark.unit
async def test_paid_defaults_are_skipped_without_hourly_rate(db_session, cal):
    coach, integration = await seed_coach(db_session, hourly_rate=None)
    cal.json("GET", "/event-types", [])
    cal.add("POST", "/event-types", _created(600, "Get to Know You"))

    result = await create_default_event_types(
        db_session, _ctx(coach), CalClient("access-token", transport=cal.transport)
    )

    assert [e.name for e in result.event_types] == ["Get to Know You"]
    assert len(cal.calls("POST", "/event-types")) == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_existing_defaults_are_returned_untouched(db_session, cal):
    coach, integration = await seed_coach(db_session)
    db_session.add(
        CalEventTypeFactory.create(
            integration.ulid, name="1:1 Q&A Coaching Call", is_default=True
        )
    )
    await db_session.commit()

    result = await create_default_event_types(
        db_session, _ctx(coach), CalClient("access-token", transport=cal.transport)
    )

    assert result.created is False
    assert len(result.event_types) == 1
    assert cal.requests == []


@pytest.mark.asyncio
@pytest.mark.unit
async def test_defaults_found_in_cal_are_adopted_not_recreated(db_session, cal):
    coach, integration = await seed_coach(db_session)
    cal.json(
        "GET",
        "/event-types",
        [cal_event_type_payload(700, title="1:1 Q&A Coaching Call")],
    )

    result = await create_default_event_types(
        db_session, _ctx(coach), CalClient("access-token", transport=cal.transport)
    )

    assert result.created is False
    assert [e.cal_event_type_id for e in result.event_types] == [700]
    assert result.event_types[0].event_metadata["isRequired"] is True
    assert cal.calls("POST", "/event-types") == []


@pytest.mark.asyncio
@pytest.mark.unit
async def test_all_creations_failing_raises_create_error(db_session, cal):
    coach, integration = await seed_coach(db_session)
    cal.json("GET", "/event-types", [])
    cal.add("POST", "/event-types", httpx.Response(500, json={"message": "down"}))

    with pytest.raises(CreateError) as exc_info:
        await create_default_event_types(
            db_session, _ctx(coach), CalClient("access-token", transport=cal.transport)
        )

    assert len(exc_info.value.details["failed"]) == 3
    rows = (await db_session.execute(select(CalEventType))).scalars().all()
    assert rows == []


@pytest.mark.asyncio
@pytest.mark.unit
async def test_required_flag_survives_later_syncs(db_session, cal):
    """Defaults stay required after Cal.com syncs and cannot be deactivated."""
    coach, integration = await seed_coach(db_session)
    remote = [
        cal_event_type_payload(800 + i, title=d.name) for i, d in enumerate(DEFAULT_EVENT_TYPES)
    ]
    cal.add(
        "GET",
        "/event-types",
        httpx.Response(200, json={"status": "success", "data": []}),
        httpx.Response(200, json={"status": "success", "data": remote}),
    )
    cal.add(
        "POST",
        "/event-types",
        *(_created(800 + i, d.name) for i, d in enumerate(DEFAULT_EVENT_TYPES)),
    )
    client = CalClient("access-token", transport=cal.transport)
    await create_default_event_types(db_session, _ctx(coach), client)

    outcomes = [
        await sync_event_types(
            db_session, client, user_ulid=coach.ulid, calendar_integration_ulid=integration.ulid
        )
        for _ in range(2)
    ]

    assert all(outcome.success for outcome in outcomes)
    assert outcomes[1].stats.updated == 0
    assert outcomes[1].stats.skipped == len(DEFAULT_EVENT_TYPES)

    db_session.expire_all()
    rows = (
        await db_session.execute(select(CalEventType).order_by(CalEventType.cal_event_type_id))
    ).scalars().all()
    assert [row.event_metadata.get("isRequired") for row in rows] == [True, True, False]

    with pytest.raises(ForbiddenError, match="deactivated"):
        await update_event_type(
            db_session, _ctx(coach), client, rows[0].ulid, EventTypeUpdate(is_active=False)
        )
    assert cal.calls("PATCH", "/event-types/800") == []
