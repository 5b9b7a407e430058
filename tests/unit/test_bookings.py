"""Unit tests for booking creation and calendar links."""

import json

import httpx
import pytest
from sqlalchemy import select

from libs.auth.models import RequestContext
from libs.common.errors import FetchError, InvalidStateError, NotFoundError
from services.scheduling_service.models import (
    BookingStatus,
    CalBooking,
    Session,
    SessionStatus,
)
from services.scheduling_service.schemas import CreateBookingRequest
from services.scheduling_service.services.bookings import (
    create_booking,
    get_calendar_links,
)
from tests.factories import (
    CalBookingFactory,
    CalEventTypeFactory,
    in_hours,
    seed_coach,
    seed_user,
)


def _ctx(user) -> RequestContext:
    return RequestContext(user_id=user.user_id, user_ulid=user.ulid, email=user.email)


async def _bookable(db, **event_type_overrides):
    coach, integration = await seed_coach(db)
    mentee = await seed_user(db, first_name="Mia", last_name="Mentee")
    event_type = CalEventTypeFactory.create(
        integration.ulid, cal_event_type_id=4242, name="Intro Call", **event_type_overrides
    )
    db.add(event_type)
    await db.commit()
    return coach, mentee, event_type


def _cal_booking(uid="cal-uid-1", start="2030-05-01T10:00:00Z", end="2030-05-01T10:30:00Z"):
    return httpx.Response(
        201,
        json={
            "status": "success",
            "data": {
                "id": 88,
                "uid": uid,
                "title": "Intro Call between Casey and Mia",
                "status": "accepted",
                "start": start,
                "end": end,
                "meetingUrl": "https://meet.example.com/abc",
                "attendees": [{"name": "Mia Mentee", "email": "mia@example.com"}],
            },
        },
    )


# ---------------------------------------------------------------------------
# create_booking
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_booking_records_booking_and_scheduled_session(db_session, cal):
    coach, mentee, event_type = await _bookable(db_session)
    cal.add("POST", "/bookings", _cal_booking())

    created = await create_booking(
        db_session,
        _ctx(mentee),
        cal.factory,
        CreateBookingRequest(
            coach_ulid=coach.ulid,
            event_type_ulid=event_type.ulid,
            start_time=in_hours(72),
            time_zone="Africa/Lagos",
            session_topic="Pricing strategy",
        ),
    )

    (call,) = cal.calls("POST", "/bookings")
    body = json.loads(call.content)
    assert body["eventTypeId"] == 4242
    assert body["attendee"]["name"] == "Mia Mentee"
    assert body["attendee"]["timeZone"] == "Africa/Lagos"
    assert body["metadata"] == {"userUlid": mentee.ulid, "coachUlid": coach.ulid}

    assert created.booking.cal_booking_uid == "cal-uid-1"
    assert created.booking.status == BookingStatus.CONFIRMED
    assert created.booking.meeting_url == "https://meet.example.com/abc"
    assert created.session.status == SessionStatus.SCHEDULED
    assert created.session.cal_booking_ulid == created.booking.ulid
    assert created.session.topic == "Pricing strategy"

    sessions = (await db_session.execute(select(Session))).scalars().all()
    assert len(sessions) == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_booking_remote_failure_saves_nothing(db_session, cal):
    coach, mentee, event_type = await _bookable(db_session)
    cal.add("POST", "/bookings", httpx.Response(400, json={"message": "Slot unavailable"}))

    with pytest.raises(FetchError, match="Slot unavailable"):
        await create_booking(
            db_session,
            _ctx(mentee),
            cal.factory,
            CreateBookingRequest(
                coach_ulid=coach.ulid, event_type_ulid=event_type.ulid, start_time=in_hours(72)
            ),
        )

    assert (await db_session.execute(select(CalBooking))).scalars().all() == []
    assert (await db_session.execute(select(Session))).scalars().all() == []


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_booking_for_inactive_event_type_is_invalid_state(db_session, cal):
    coach, mentee, event_type = await _bookable(db_session, is_active=False)

    with pytest.raises(InvalidStateError):
        await create_booking(
            db_session,
            _ctx(mentee),
            cal.factory,
            CreateBookingRequest(
                coach_ulid=coach.ulid, event_type_ulid=event_type.ulid, start_time=in_hours(72)
            ),
        )

    assert cal.requests == []


@pytest.mark.asyncio
@pytest.mark.unit
async def test_create_booking_with_another_coaches_event_type_is_not_found(db_session, cal):
    coach, mentee, event_type = await _bookable(db_session)
    other_coach, _ = await seed_coach(db_session)

    with pytest.raises(NotFoundError):
        await create_booking(
            db_session,
            _ctx(mentee),
            cal.factory,
            CreateBookingRequest(
                coach_ulid=other_coach.ulid,
                event_type_ulid=event_type.ulid,
                start_time=in_hours(72),
            ),
        )


# ---------------------------------------------------------------------------
# get_calendar_links
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_calendar_links_for_participant(db_session, cal):
    coach, integration = await seed_coach(db_session)
    mentee = await seed_user(db_session)
    booking = CalBookingFactory.create(coach.ulid, mentee.ulid, cal_booking_uid="links-1")
    db_session.add(booking)
    await db_session.commit()
    cal.json(
        "GET",
        "/bookings/links-1/calendar-links",
        [
            {"label": "Google", "link": "https://calendar.google.com/x"},
            {"label": "ICS", "link": "data:text/calendar,..."},
        ],
    )

    links = await get_calendar_links(db_session, _ctx(mentee), cal.factory, "links-1")

    assert [link.label for link in links] == ["Google", "ICS"]


@pytest.mark.asyncio
@pytest.mark.unit
async def test_calendar_links_hidden_from_non_participants(db_session, cal):
    coach, integration = await seed_coach(db_session)
    mentee = await seed_user(db_session)
    stranger = await seed_user(db_session)
    booking = CalBookingFactory.create(coach.ulid, mentee.ulid, cal_booking_uid="links-2")
    db_session.add(booking)
    await db_session.commit()

    with pytest.raises(NotFoundError):
        await get_calendar_links(db_session, _ctx(stranger), cal.factory, "links-2")

    assert cal.requests == []
