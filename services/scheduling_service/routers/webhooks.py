"""Cal.com webhook receiver."""

import json

from fastapi import APIRouter, Depends, Request
from libs.common.errors import UnauthorizedError, ValidationError, ok
from libs.common.logging import get_logger
from libs.common.rate_limit import webhook_limit
from libs.db.session import get_async_db
from pydantic import ValidationError as PydanticValidationError
from services.scheduling_service.schemas import CalWebhookEvent
from services.scheduling_service.services.webhooks import (
    process_webhook_event,
    verify_cal_signature,
)
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(prefix="/cal/webhooks", tags=["webhooks"])
logger = get_logger(__name__)


@router.post("/receiver")
@webhook_limit
async def cal_webhook(
    request: Request,
    db: AsyncSession = Depends(get_async_db),
):
    """
    Cal.com webhook endpoint (no auth; verified by X-Cal-Signature-256).
    """
    raw = await request.body()
    if not verify_cal_signature(raw, request.headers.get("X-Cal-Signature-256")):
        raise UnauthorizedError("Invalid signature")

    try:
        event = CalWebhookEvent.model_validate(json.loads(raw.decode("utf-8") or "{}"))
        outcome = await process_webhook_event(db, event)
    except (ValueError, PydanticValidationError) as exc:
        logger.warning("Rejected malformed Cal.com webhook: %s", exc)
        raise ValidationError("Malformed webhook payload") from exc

    return ok({"received": True, "outcome": outcome})
