"""Cal.com platform managed users, created on behalf of application users."""

from libs.auth.models import RequestContext
from libs.common.errors import FetchError, InvalidStateError
from libs.common.logging import get_logger
from services.scheduling_service.cal_client import CalApiError, CalClient
from services.scheduling_service.models import CalendarIntegration, CalendarProvider
from services.scheduling_service.schemas import ManagedUserCreate
from services.scheduling_service.schemas.cal import CalManagedUser
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def list_managed_users(client: CalClient) -> list[CalManagedUser]:
    try:
        return await client.list_managed_users()
    except CalApiError as exc:
        raise FetchError(f"Failed to fetch managed users: {exc.message}") from exc


async def create_managed_user(
    db: AsyncSession, ctx: RequestContext, client: CalClient, data: ManagedUserCreate
) -> CalendarIntegration:
    """Create a managed user for the caller and store its tokens."""
    integration = await db.scalar(
        select(CalendarIntegration).where(CalendarIntegration.user_ulid == ctx.user_ulid)
    )
    if integration is not None and integration.cal_managed_user_id:
        raise InvalidStateError("A Cal.com account is already connected")

    try:
        created = await client.create_managed_user(
            email=data.email, name=data.name, time_zone=data.time_zone
        )
    except CalApiError as exc:
        raise FetchError(f"Failed to create managed user: {exc.message}") from exc

    if integration is None:
        integration = CalendarIntegration(
            user_ulid=ctx.user_ulid, provider=CalendarProvider.CAL
        )
        db.add(integration)
    integration.cal_managed_user_id = created.user.id
    integration.cal_username = created.user.username
    integration.time_zone = created.user.time_zone or data.time_zone
    integration.cal_access_token = created.tokens.access_token
    integration.cal_refresh_token = created.tokens.refresh_token
    integration.cal_access_token_expires_at = created.tokens.expires_at
    await db.commit()
    await db.refresh(integration)

    logger.info(
        "Created Cal.com managed user %s for user %s", created.user.id, ctx.user_ulid
    )
    return integration


async def update_managed_user(
    client: CalClient, managed_user_id: int, payload: dict
) -> CalManagedUser:
    try:
        return await client.update_managed_user(managed_user_id, payload)
    except CalApiError as exc:
        raise FetchError(f"Failed to update managed user: {exc.message}") from exc


async def delete_managed_user(
    db: AsyncSession, client: CalClient, managed_user_id: int
) -> None:
    try:
        await client.delete_managed_user(managed_user_id)
    except CalApiError as exc:
        raise FetchError(f"Failed to delete managed user: {exc.message}") from exc

    integration = await db.scalar(
        select(CalendarIntegration).where(
            CalendarIntegration.cal_managed_user_id == managed_user_id
        )
    )
    if integration is not None:
        integration.cal_managed_user_id = None
        integration.cal_access_token = None
        integration.cal_refresh_token = None
        integration.cal_access_token_expires_at = None
        await db.commit()
    logger.info("Deleted Cal.com managed user %s", managed_user_id)
