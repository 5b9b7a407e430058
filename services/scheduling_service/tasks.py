"""Background tasks for Cal.com synchronisation."""

from datetime import timedelta
from typing import Optional

from libs.common.config import get_settings
from libs.common.datetime_utils import utc_now
from libs.common.errors import ApiError
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.scheduling_service.models import CalendarIntegration
from services.scheduling_service.services.event_type_sync import sync_event_types
from services.scheduling_service.services.token_service import (
    CalClientFactory,
    refresh_tokens,
)
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def sync_all_event_types(
    db: AsyncSession, clients: Optional[CalClientFactory] = None
) -> dict[str, int]:
    """Run the event-type reconciler for every integration with sync enabled."""
    clients = clients or CalClientFactory()
    result = await db.execute(
        select(CalendarIntegration.ulid, CalendarIntegration.user_ulid).where(
            CalendarIntegration.sync_enabled.is_(True),
            CalendarIntegration.cal_username.is_not(None),
            CalendarIntegration.cal_access_token.is_not(None),
        )
    )
    targets = result.all()

    summary = {"integrations": len(targets), "succeeded": 0, "failed": 0}
    for integration_ulid, user_ulid in targets:
        try:
            client = await clients.for_user(db, user_ulid)
        except ApiError as exc:
            logger.warning("Skipping sync for user %s: %s", user_ulid, exc.message)
            summary["failed"] += 1
            continue

        try:
            outcome = await sync_event_types(
                db,
                client,
                user_ulid=user_ulid,
                calendar_integration_ulid=integration_ulid,
            )
        except Exception:
            # One integration must not stop the sweep for the rest
            logger.exception("Scheduled sync crashed for user %s", user_ulid)
            await db.rollback()
            summary["failed"] += 1
            continue

        if outcome.success:
            summary["succeeded"] += 1
        else:
            summary["failed"] += 1
            logger.warning(
                "Scheduled sync failed for user %s: %s", user_ulid, outcome.error
            )

    logger.info("Scheduled event type sync finished", extra={"extra_fields": summary})
    return summary


async def refresh_expiring_tokens(
    db: AsyncSession, clients: Optional[CalClientFactory] = None
) -> dict[str, int]:
    """Refresh tokens that expire within twice the expiry buffer."""
    clients = clients or CalClientFactory()
    horizon = utc_now() + timedelta(minutes=2 * get_settings().TOKEN_EXPIRY_BUFFER_MINUTES)
    result = await db.execute(
        select(CalendarIntegration.user_ulid).where(
            CalendarIntegration.cal_refresh_token.is_not(None),
            or_(
                CalendarIntegration.cal_access_token_expires_at.is_(None),
                CalendarIntegration.cal_access_token_expires_at <= horizon,
            ),
        )
    )
    user_ulids = list(result.scalars().all())

    summary = {"candidates": len(user_ulids), "refreshed": 0, "failed": 0}
    for user_ulid in user_ulids:
        try:
            await refresh_tokens(db, user_ulid, force=True, client=clients.platform())
            summary["refreshed"] += 1
        except ApiError as exc:
            logger.warning("Token refresh failed for user %s: %s", user_ulid, exc.message)
            summary["failed"] += 1

    logger.info("Token refresh sweep finished", extra={"extra_fields": summary})
    return summary


async def run_event_type_sync():
    async for db in get_async_db():
        await sync_all_event_types(db)


async def run_token_refresh():
    async for db in get_async_db():
        await refresh_expiring_tokens(db)
