"""Cal.com credential lifecycle: expiry checks, refresh, and per-user clients."""

from datetime import datetime, timedelta
from typing import Optional

import httpx
from libs.common.config import get_settings
from libs.common.datetime_utils import ensure_aware, utc_now
from libs.common.errors import FetchError, InvalidStateError, NotFoundError
from libs.common.logging import get_logger
from services.scheduling_service.cal_client import CalApiError, CalClient
from services.scheduling_service.models import CalendarIntegration
from services.scheduling_service.schemas.cal import CalTokenPair
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


class TokenRefreshError(FetchError):
    """Stored credentials could not be renewed with Cal.com."""


def is_token_expired(
    expires_at: Optional[datetime], buffer_minutes: Optional[int] = None
) -> bool:
    """True when the token is missing an expiry or expires within the buffer."""
    if expires_at is None:
        return True
    if buffer_minutes is None:
        buffer_minutes = get_settings().TOKEN_EXPIRY_BUFFER_MINUTES
    return ensure_aware(expires_at) <= utc_now() + timedelta(minutes=buffer_minutes)


async def get_integration(db: AsyncSession, user_ulid: str) -> CalendarIntegration:
    result = await db.execute(
        select(CalendarIntegration).where(CalendarIntegration.user_ulid == user_ulid)
    )
    integration = result.scalar_one_or_none()
    if integration is None:
        raise NotFoundError("Calendar integration not found")
    return integration


async def _force_refresh(
    client: CalClient, integration: CalendarIntegration
) -> CalTokenPair:
    try:
        return await client.force_refresh_managed_user(integration.cal_managed_user_id)
    except CalApiError as exc:
        logger.error(
            "Force refresh failed for managed user %s: %s",
            integration.cal_managed_user_id,
            exc,
        )
        raise TokenRefreshError("Failed to refresh Cal.com token") from exc


async def refresh_tokens(
    db: AsyncSession,
    user_ulid: str,
    *,
    force: bool = False,
    client: Optional[CalClient] = None,
) -> CalendarIntegration:
    """
    Refresh the stored Cal.com tokens for ``user_ulid``.

    Without ``force`` a token that is still valid is returned unchanged. Managed
    users are force-refreshed through the platform API when ``force`` is set;
    otherwise the OAuth refresh grant is tried first and managed users fall back
    to force-refresh when it fails.
    """
    integration = await get_integration(db, user_ulid)
    if not integration.cal_refresh_token:
        raise InvalidStateError("No refresh token available for this integration")

    if not force and not is_token_expired(integration.cal_access_token_expires_at):
        return integration

    client = client or CalClient()
    if force and integration.cal_managed_user_id:
        tokens = await _force_refresh(client, integration)
    else:
        try:
            tokens = await client.refresh_oauth_token(integration.cal_refresh_token)
        except CalApiError as exc:
            if not integration.cal_managed_user_id:
                logger.error("Token refresh failed for user %s: %s", user_ulid, exc)
                raise TokenRefreshError("Failed to refresh Cal.com token") from exc
            logger.warning(
                "Standard token refresh failed for user %s, trying force refresh",
                user_ulid,
            )
            tokens = await _force_refresh(client, integration)

    integration.cal_access_token = tokens.access_token
    integration.cal_refresh_token = tokens.refresh_token
    integration.cal_access_token_expires_at = tokens.expires_at
    await db.commit()

    logger.info(
        "Refreshed Cal.com token for user %s",
        user_ulid,
        extra={"extra_fields": {"expires_at": tokens.expires_at.isoformat()}},
    )
    return integration


async def ensure_valid_token(
    db: AsyncSession, user_ulid: str, *, client: Optional[CalClient] = None
) -> str:
    """Return a usable access token, refreshing first when it is about to expire."""
    integration = await get_integration(db, user_ulid)
    if not integration.cal_access_token:
        raise InvalidStateError("Cal.com access token not found")
    if is_token_expired(integration.cal_access_token_expires_at):
        integration = await refresh_tokens(db, user_ulid, client=client)
    return integration.cal_access_token


class CalClientFactory:
    """Builds Cal.com clients; one transport is shared so tests can stub it."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.transport = transport

    def platform(self) -> CalClient:
        return CalClient(transport=self.transport)

    async def for_user(self, db: AsyncSession, user_ulid: str) -> CalClient:
        """Client carrying the user's token and a force-refresh callback."""
        token = await ensure_valid_token(db, user_ulid, client=self.platform())

        async def refresh() -> str:
            integration = await refresh_tokens(
                db, user_ulid, force=True, client=self.platform()
            )
            return integration.cal_access_token

        return CalClient(token, refresh=refresh, transport=self.transport)
