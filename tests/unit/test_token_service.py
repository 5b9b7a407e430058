"""Unit tests for Cal.com token expiry checks and refresh."""

from datetime import timedelta

import httpx
import pytest

from libs.common.datetime_utils import utc_now
from libs.common.errors import InvalidStateError, NotFoundError
from services.scheduling_service.cal_client import CalClient
from services.scheduling_service.services.token_service import (
    TokenRefreshError,
    ensure_valid_token,
    is_token_expired,
    refresh_tokens,
)
from tests.factories import seed_coach, seed_user

FORCE_REFRESH = "/oauth-clients/test-client-id/users/{}/force-refresh"


def _platform_tokens(access="new-access", refresh="new-refresh") -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "status": "success",
            "data": {
                "accessToken": access,
                "refreshToken": refresh,
                "accessTokenExpiresAt": int((utc_now() + timedelta(hours=1)).timestamp() * 1000),
            },
        },
    )


# ---------------------------------------------------------------------------
# is_token_expired
# ---------------------------------------------------------------------------


@pytest.mark.unit
def test_is_token_expired_respects_buffer():
    assert is_token_expired(None) is True
    assert is_token_expired(utc_now() + timedelta(minutes=2), buffer_minutes=5) is True
    assert is_token_expired(utc_now() + timedelta(minutes=30), buffer_minutes=5) is False


@pytest.mark.unit
def test_is_token_expired_treats_naive_datetimes_as_utc():
    naive = (utc_now() + timedelta(hours=2)).replace(tzinfo=None)
    assert is_token_expired(naive, buffer_minutes=5) is False


# ---------------------------------------------------------------------------
# refresh_tokens
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_valid_token_is_not_refreshed(db_session, cal):
    coach, integration = await seed_coach(db_session)

    result = await refresh_tokens(
        db_session, coach.ulid, client=CalClient(transport=cal.transport)
    )

    assert result.cal_access_token == "access-token"
    assert cal.requests == []


@pytest.mark.asyncio
@pytest.mark.unit
async def test_expired_token_uses_oauth_refresh_grant(db_session, cal):
    coach, integration = await seed_coach(
        db_session, cal_access_token_expires_at=utc_now() - timedelta(minutes=1)
    )
    cal.add(
        "POST",
        "/oauth/token",
        httpx.Response(
            200,
            json={"access_token": "oauth-access", "refresh_token": "oauth-refresh", "expires_in": 1800},
        ),
    )

    result = await refresh_tokens(
        db_session, coach.ulid, client=CalClient(transport=cal.transport)
    )

    assert result.cal_access_token == "oauth-access"
    assert result.cal_refresh_token == "oauth-refresh"
    assert is_token_expired(result.cal_access_token_expires_at) is False


@pytest.mark.asyncio
@pytest.mark.unit
async def test_failed_oauth_refresh_falls_back_to_force_refresh(db_session, cal):
    coach, integration = await seed_coach(
        db_session,
        cal_managed_user_id=55,
        cal_access_token_expires_at=utc_now() - timedelta(minutes=1),
    )
    cal.add("POST", "/oauth/token", httpx.Response(400, json={"message": "invalid_grant"}))
    cal.add("POST", FORCE_REFRESH.format(55), _platform_tokens(access="forced"))

    result = await refresh_tokens(
        db_session, coach.ulid, client=CalClient(transport=cal.transport)
    )

    assert result.cal_access_token == "forced"
    assert len(cal.calls("POST", "/oauth/token")) == 1
    assert len(cal.calls("POST", FORCE_REFRESH.format(55))) == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_force_refresh_skips_oauth_grant_for_managed_users(db_session, cal):
    coach, integration = await seed_coach(db_session, cal_managed_user_id=56)
    cal.add("POST", FORCE_REFRESH.format(56), _platform_tokens(access="forced"))

    result = await refresh_tokens(
        db_session, coach.ulid, force=True, client=CalClient(transport=cal.transport)
    )

    assert result.cal_access_token == "forced"
    assert cal.calls("POST", "/oauth/token") == []


@pytest.mark.asyncio
@pytest.mark.unit
async def test_refresh_failure_without_managed_user_raises(db_session, cal):
    coach, integration = await seed_coach(
        db_session,
        cal_managed_user_id=None,
        cal_access_token_expires_at=utc_now() - timedelta(minutes=1),
    )
    cal.add("POST", "/oauth/token", httpx.Response(400, json={"message": "invalid_grant"}))

    with pytest.raises(TokenRefreshError):
        await refresh_tokens(
            db_session, coach.ulid, client=CalClient(transport=cal.transport)
        )

    assert integration.cal_access_token == "access-token"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_refresh_without_refresh_token_is_invalid_state(db_session, cal):
    coach, integration = await seed_coach(db_session, cal_refresh_token=None)

    with pytest.raises(InvalidStateError):
        await refresh_tokens(db_session, coach.ulid, force=True)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_refresh_for_user_without_integration_is_not_found(db_session):
    user = await seed_user(db_session)

    with pytest.raises(NotFoundError):
        await refresh_tokens(db_session, user.ulid)


# ---------------------------------------------------------------------------
# ensure_valid_token
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_ensure_valid_token_refreshes_token_inside_buffer(db_session, cal):
    coach, integration = await seed_coach(
        db_session,
        cal_managed_user_id=57,
        cal_access_token_expires_at=utc_now() + timedelta(minutes=1),
    )
    cal.add("POST", "/oauth/token", httpx.Response(401, json={"message": "expired"}))
    cal.add("POST", FORCE_REFRESH.format(57), _platform_tokens(access="renewed"))

    token = await ensure_valid_token(
        db_session, coach.ulid, client=CalClient(transport=cal.transport)
    )

    assert token == "renewed"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_ensure_valid_token_without_access_token_is_invalid_state(db_session):
    coach, integration = await seed_coach(db_session, cal_access_token=None)

    with pytest.raises(InvalidStateError):
        await ensure_valid_token(db_session, coach.ulid)
