"""
Reconcile local event types with the Cal.com event-type list.

Cal.com is the source of truth for non-default fields. Records are matched on
``cal_event_type_id``; local records without one are local-only and are never
touched by a sync.

The batch runs in one transaction. Each create/update/deactivate/delete is
applied inside its own SAVEPOINT so a single failing row is rolled back,
logged, and counted without aborting the rest of the diff.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Optional, Sequence

import httpx
from libs.common.datetime_utils import utc_now
from libs.common.errors import ApiError, ErrorCode, NotFoundError
from libs.common.ids import new_ulid
from libs.common.logging import get_logger
from services.scheduling_service.cal_client import CalApiError, CalClient
from services.scheduling_service.models import (
    CalendarIntegration,
    CalEventType,
    SchedulingType,
)
from services.scheduling_service.schemas.cal import CalEventTypeFromApi
from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

# Fields whose difference triggers a local update
COMPARED_FIELDS = (
    "name",
    "description",
    "length_in_minutes",
    "is_active",
    "scheduling",
    "position",
    "price",
    "minimum_booking_notice",
    "max_participants",
    "discount_percentage",
    "slug",
    "locations",
    "event_metadata",
)

# Metadata keys written by this service, absent from Cal.com payloads
LOCAL_METADATA_KEYS = ("isRequired",)


@dataclass
class SyncStats:
    fetched_from_cal: int = 0
    fetched_from_db: int = 0
    created: int = 0
    updated: int = 0
    deactivated: int = 0
    deleted: int = 0
    skipped: int = 0
    failed: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class SyncResult:
    success: bool
    stats: SyncStats = field(default_factory=SyncStats)
    error_code: Optional[ErrorCode] = None
    error: Optional[str] = None

    @classmethod
    def failure(cls, code: ErrorCode, message: str, stats: SyncStats) -> "SyncResult":
        return cls(success=False, stats=stats, error_code=code, error=message)


@dataclass(frozen=True)
class _LocalSnapshot:
    """Plain copy of a local row taken before any statement runs."""

    ulid: str
    cal_event_type_id: Optional[int]
    is_default: bool
    is_active: bool
    values: dict[str, Any]

    @classmethod
    def from_row(cls, row: CalEventType) -> "_LocalSnapshot":
        return cls(
            ulid=row.ulid,
            cal_event_type_id=row.cal_event_type_id,
            is_default=bool(row.is_default),
            is_active=bool(row.is_active),
            values={name: getattr(row, name) for name in COMPARED_FIELDS},
        )


def build_local_payload(remote: CalEventTypeFromApi) -> dict[str, Any]:
    """Translate a remote event type into local column values."""
    price = remote.price or 0
    return {
        "cal_event_type_id": remote.id,
        "name": remote.title,
        "description": remote.description or "",
        "length_in_minutes": remote.duration,
        "is_active": not remote.hidden,
        "hidden": remote.hidden,
        "scheduling": SchedulingType.from_remote(remote.scheduling_type),
        "position": remote.position or 0,
        "is_free": price == 0,
        "price": price,
        "currency": remote.currency or "USD",
        "minimum_booking_notice": remote.minimum_booking_notice or 0,
        "before_event_buffer": remote.before_event_buffer or 0,
        "after_event_buffer": remote.after_event_buffer or 0,
        "slot_interval": remote.slot_interval,
        "max_participants": remote.seats_per_time_slot,
        "discount_percentage": remote.discount_percentage,
        "slug": remote.slug,
        "locations": remote.locations or [],
        "event_metadata": remote.metadata or {},
    }


def keep_local_metadata(local: _LocalSnapshot, payload: dict[str, Any]) -> dict[str, Any]:
    """Carry locally owned metadata keys over the remote metadata."""
    current = local.values.get("event_metadata") or {}
    owned = {key: current[key] for key in LOCAL_METADATA_KEYS if key in current}
    if owned:
        payload["event_metadata"] = {**payload["event_metadata"], **owned}
    return payload


def needs_update(local: _LocalSnapshot, payload: dict[str, Any]) -> bool:
    return any(local.values.get(name) != payload.get(name) for name in COMPARED_FIELDS)


async def _apply(db: AsyncSession, stmt, *, action: str, ulid: str, cal_id: Optional[int]) -> bool:
    try:
        async with db.begin_nested():
            await db.execute(stmt)
    except SQLAlchemyError:
        logger.exception(
            "Event type %s failed",
            action,
            extra={"extra_fields": {"ulid": ulid, "cal_event_type_id": cal_id}},
        )
        return False
    return True


async def _fetch_remote(
    db: AsyncSession,
    client: CalClient,
    user_ulid: str,
    calendar_integration_ulid: str,
) -> list[CalEventTypeFromApi]:
    username = await db.scalar(
        select(CalendarIntegration.cal_username).where(
            CalendarIntegration.ulid == calendar_integration_ulid,
            CalendarIntegration.user_ulid == user_ulid,
        )
    )
    if not username:
        raise NotFoundError("Failed to get Cal username for synchronization")
    return await client.list_event_types(username)


async def sync_event_types(
    db: AsyncSession,
    client: Optional[CalClient],
    *,
    user_ulid: str,
    calendar_integration_ulid: str,
    remote_event_types: Optional[Sequence[CalEventTypeFromApi]] = None,
    delete_missing: bool = False,
) -> SyncResult:
    """
    Diff remote event types against the integration's local records and apply
    the resulting creates, updates, deactivations and deletions.

    An empty ``remote_event_types`` makes the reconciler fetch the list itself
    using the integration's Cal.com username.
    """
    stats = SyncStats()
    remote = list(remote_event_types or [])

    if not remote:
        try:
            remote = await _fetch_remote(db, client, user_ulid, calendar_integration_ulid)
        except NotFoundError as exc:
            logger.error("%s (user %s)", exc.message, user_ulid)
            return SyncResult.failure(ErrorCode.NOT_FOUND, exc.message, stats)
        except (CalApiError, ApiError, httpx.HTTPError) as exc:
            logger.error("Failed to fetch event types from Cal.com: %s", exc)
            return SyncResult.failure(
                ErrorCode.FETCH_ERROR, "Failed to fetch event types from Cal.com", stats
            )
        except SQLAlchemyError:
            logger.exception("Failed to load calendar integration %s", calendar_integration_ulid)
            return SyncResult.failure(
                ErrorCode.DATABASE_ERROR, "Failed to get Cal username for synchronization", stats
            )
    stats.fetched_from_cal = len(remote)

    try:
        rows = (
            await db.execute(
                select(CalEventType).where(
                    CalEventType.calendar_integration_ulid == calendar_integration_ulid
                )
            )
        ).scalars().all()
        local = [_LocalSnapshot.from_row(row) for row in rows]
    except SQLAlchemyError:
        logger.exception("Failed to fetch database event types")
        return SyncResult.failure(
            ErrorCode.DATABASE_ERROR, "Failed to fetch database event types", stats
        )
    stats.fetched_from_db = len(local)

    remote_by_id = {item.id: item for item in remote}
    local_by_cal_id = {
        item.cal_event_type_id: item for item in local if item.cal_event_type_id is not None
    }

    try:
        for cal_id, remote_item in remote_by_id.items():
            payload = build_local_payload(remote_item)
            existing = local_by_cal_id.get(cal_id)

            if existing is None:
                ulid = new_ulid()
                stmt = insert(CalEventType).values(
                    ulid=ulid,
                    calendar_integration_ulid=calendar_integration_ulid,
                    is_default=False,
                    organization_ulid=None,
                    **payload,
                )
                if await _apply(db, stmt, action="create", ulid=ulid, cal_id=cal_id):
                    stats.created += 1
                else:
                    stats.failed += 1
                continue

            keep_local_metadata(existing, payload)
            if not needs_update(existing, payload):
                stats.skipped += 1
                continue

            # is_default and organization_ulid are owned locally
            stmt = (
                update(CalEventType)
                .where(CalEventType.ulid == existing.ulid)
                .values(**payload, updated_at=utc_now())
            )
            if await _apply(db, stmt, action="update", ulid=existing.ulid, cal_id=cal_id):
                stats.updated += 1
            else:
                stats.failed += 1

        for cal_id, existing in local_by_cal_id.items():
            if cal_id in remote_by_id:
                continue

            if delete_missing and not existing.is_default:
                stmt = (
                    delete(CalEventType)
                    .where(CalEventType.ulid == existing.ulid)
                )
                if await _apply(db, stmt, action="delete", ulid=existing.ulid, cal_id=cal_id):
                    stats.deleted += 1
                else:
                    stats.failed += 1
            elif existing.is_active:
                stmt = (
                    update(CalEventType)
                    .where(CalEventType.ulid == existing.ulid)
                    .values(is_active=False, updated_at=utc_now())
                )
                if await _apply(db, stmt, action="deactivate", ulid=existing.ulid, cal_id=cal_id):
                    stats.deactivated += 1
                else:
                    stats.failed += 1

        await db.execute(
            update(CalendarIntegration)
            .where(CalendarIntegration.ulid == calendar_integration_ulid)
            .values(last_sync_at=utc_now())
        )
        await db.commit()
    except Exception:
        logger.exception(
            "Event type sync aborted",
            extra={"extra_fields": {"user_ulid": user_ulid, "stats": stats.as_dict()}},
        )
        await db.rollback()
        return SyncResult.failure(
            ErrorCode.INTERNAL_ERROR, "Unexpected error during event type sync", stats
        )

    logger.info(
        "Event type sync completed",
        extra={"extra_fields": {"user_ulid": user_ulid, **stats.as_dict()}},
    )
    return SyncResult(success=True, stats=stats)
