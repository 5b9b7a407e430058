"""FastAPI dependencies shared by the scheduling routers."""

from typing import Annotated

from fastapi import Depends
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser, RequestContext
from libs.common.errors import ForbiddenError, NotFoundError
from libs.db.session import get_async_db
from services.scheduling_service.models import User, UserRole
from services.scheduling_service.services.token_service import CalClientFactory
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession


async def get_request_context(
    current_user: Annotated[AuthUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_async_db)],
) -> RequestContext:
    """Resolve the token subject to a local user and their roles."""
    user = await db.scalar(select(User).where(User.user_id == current_user.user_id))
    if user is None:
        raise NotFoundError("User not found")
    return RequestContext(
        user_id=user.user_id,
        user_ulid=user.ulid,
        email=user.email or current_user.email,
        roles=tuple(user.roles or ()),
    )


async def require_admin(
    ctx: Annotated[RequestContext, Depends(get_request_context)],
) -> RequestContext:
    if not ctx.has_role(UserRole.ADMIN.value):
        raise ForbiddenError("Admin privileges required")
    return ctx


def get_cal_clients() -> CalClientFactory:
    return CalClientFactory()

