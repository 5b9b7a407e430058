"""Integration tests for the scheduling service HTTP surface."""

import hashlib
import hmac
import json

import httpx
import pytest

from services.scheduling_service.models import BookingStatus, CalBooking, SessionStatus
from tests.conftest import make_auth_user, override_auth
from tests.factories import (
    CalBookingFactory,
    CalEventTypeFactory,
    SessionFactory,
    cal_event_type_payload,
    in_hours,
    seed_coach,
    seed_user,
)


def _as(user):
    return override_auth(make_auth_user(user_id=user.user_id, email=user.email))


# ---------------------------------------------------------------------------
# System / auth
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "scheduling"}


@pytest.mark.asyncio
@pytest.mark.integration
async def test_unauthenticated_request_uses_error_envelope(client):
    response = await client.get("/cal/event-types")

    assert response.status_code == 401
    body = response.json()
    assert body["data"] is None
    assert body["error"]["code"] == "UNAUTHORIZED"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_unknown_local_user_is_not_found(client):
    with override_auth(make_auth_user(user_id="nobody")):
        response = await client.get("/cal/event-types")

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"


# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_list_event_types(client, db_session):
    coach, integration = await seed_coach(db_session)
    db_session.add(CalEventTypeFactory.create(integration.ulid, name="Intro Call"))
    await db_session.commit()

    with _as(coach):
        response = await client.get("/cal/event-types")

    assert response.status_code == 200
    body = response.json()
    assert body["error"] is None
    assert [e["name"] for e in body["data"]] == ["Intro Call"]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_sync_endpoint_returns_stats(client, db_session, cal):
    coach, integration = await seed_coach(db_session)
    cal.json("GET", "/event-types", [cal_event_type_payload(1), cal_event_type_payload(2)])

    with _as(coach):
        response = await client.post("/cal/event-types/sync")

    assert response.status_code == 200
    stats = response.json()["data"]
    assert stats["fetched_from_cal"] == 2
    assert stats["created"] == 2
    assert stats["failed"] == 0


@pytest.mark.asyncio
@pytest.mark.integration
async def test_sync_endpoint_reports_fetch_error(client, db_session, cal):
    coach, integration = await seed_coach(db_session)
    cal.add("GET", "/event-types", httpx.Response(500, json={"message": "down"}))

    with _as(coach):
        response = await client.post("/cal/event-types/sync")

    assert response.status_code == 502
    assert response.json()["error"]["code"] == "FETCH_ERROR"


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


async def _scheduled(db, start_hours=48):
    coach, integration = await seed_coach(db)
    mentee = await seed_user(db)
    booking = CalBookingFactory.create(
        coach.ulid,
        mentee.ulid,
        cal_booking_uid="api-cancel-1",
        start_time=in_hours(start_hours),
    )
    db.add(booking)
    await db.flush()
    session = SessionFactory.create(
        coach.ulid, mentee.ulid, cal_booking_ulid=booking.ulid, start_time=booking.start_time
    )
    db.add(session)
    await db.commit()
    return coach, mentee, booking, session


@pytest.mark.asyncio
@pytest.mark.integration
async def test_cancel_booking(client, db_session, cal):
    coach, mentee, booking, session = await _scheduled(db_session)
    cal.json("POST", "/bookings/api-cancel-1/cancel", {"uid": "api-cancel-1"})

    with _as(mentee):
        response = await client.post(
            "/bookings/cancel",
            json={
                "session_ulid": session.ulid,
                "cal_booking_ulid": booking.ulid,
                "cancellation_reason": "  Travelling  ",
            },
        )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["session"]["status"] == SessionStatus.CANCELLED.value
    assert data["session"]["cancellation_reason"] == "Travelling"
    assert data["booking_status"] == BookingStatus.CANCELLED.value
    (call,) = cal.calls("POST", "/bookings/api-cancel-1/cancel")
    assert json.loads(call.content) == {"cancellationReason": "Travelling"}


@pytest.mark.asyncio
@pytest.mark.integration
async def test_cancel_inside_window_is_policy_violation(client, db_session, cal):
    coach, mentee, booking, session = await _scheduled(db_session, start_hours=3)

    with _as(mentee):
        response = await client.post(
            "/bookings/cancel",
            json={"session_ulid": session.ulid, "cal_booking_ulid": booking.ulid},
        )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "POLICY_VIOLATION"
    assert cal.requests == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_cancel_with_missing_fields_is_validation_error(client, db_session):
    mentee = await seed_user(db_session)

    with _as(mentee):
        response = await client.post("/bookings/cancel", json={"session_ulid": "x"})

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------


def _signed(body: dict) -> tuple[bytes, dict]:
    raw = json.dumps(body).encode()
    signature = hmac.new(b"test-webhook-secret", raw, hashlib.sha256).hexdigest()
    return raw, {"X-Cal-Signature-256": signature, "Content-Type": "application/json"}


@pytest.mark.asyncio
@pytest.mark.integration
async def test_webhook_with_valid_signature_is_processed(client, db_session):
    coach, mentee, booking, session = await _scheduled(db_session)
    raw, headers = _signed(
        {
            "triggerEvent": "BOOKING_CANCELLED",
            "payload": {
                "uid": "api-cancel-1",
                "startTime": booking.start_time.isoformat(),
                "endTime": booking.end_time.isoformat(),
                "cancellationReason": "Coach unavailable",
            },
        }
    )

    response = await client.post("/cal/webhooks/receiver", content=raw, headers=headers)

    assert response.status_code == 200
    assert response.json()["data"] == {"received": True, "outcome": "cancelled"}
    stored = await db_session.get(
        CalBooking, booking.ulid, populate_existing=True
    )
    assert stored.status == BookingStatus.CANCELLED


@pytest.mark.asyncio
@pytest.mark.integration
async def test_webhook_with_bad_signature_is_rejected(client):
    raw = json.dumps({"triggerEvent": "BOOKING_CREATED", "payload": {}}).encode()

    response = await client.post(
        "/cal/webhooks/receiver",
        content=raw,
        headers={"X-Cal-Signature-256": "not-a-signature"},
    )

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "UNAUTHORIZED"


# ---------------------------------------------------------------------------
# Managed users / schedules
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_managed_user_listing_requires_admin(client, db_session, cal):
    user = await seed_user(db_session)

    with _as(user):
        response = await client.get("/cal/managed-users")

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "FORBIDDEN"
    assert cal.requests == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_admin_lists_managed_users(client, db_session, cal):
    admin = await seed_user(db_session, roles=["ADMIN"])
    cal.json(
        "GET",
        "/oauth-clients/test-client-id/users",
        [{"id": 5, "email": "coach@example.com", "username": "coach", "timeZone": "UTC"}],
    )

    with _as(admin):
        response = await client.get("/cal/managed-users")

    assert response.status_code == 200
    assert [u["id"] for u in response.json()["data"]] == [5]
    (call,) = cal.calls("GET", "/oauth-clients/test-client-id/users")
    assert call.headers["x-cal-secret-key"] == "test-client-secret"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_create_schedule_mirrors_remote(client, db_session, cal):
    coach, integration = await seed_coach(db_session)
    cal.json(
        "POST",
        "/schedules",
        {
            "id": 77,
            "name": "Weekdays",
            "timeZone": "Africa/Lagos",
            "isDefault": True,
            "availability": [{"days": ["Monday"], "startTime": "09:00", "endTime": "17:00"}],
            "overrides": [],
        },
        status_code=201,
    )

    with _as(coach):
        response = await client.post(
            "/cal/schedules",
            json={
                "name": "Weekdays",
                "time_zone": "Africa/Lagos",
                "is_default": True,
                "availability": [
                    {"days": ["Monday"], "startTime": "09:00", "endTime": "17:00"}
                ],
            },
        )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["cal_schedule_id"] == 77
    assert data["time_zone"] == "Africa/Lagos"
    (call,) = cal.calls("POST", "/schedules")
    assert json.loads(call.content)["availability"][0]["startTime"] == "09:00"
