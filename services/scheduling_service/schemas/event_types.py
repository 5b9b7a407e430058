from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from services.scheduling_service.models import SchedulingType


class EventTypeBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    length_in_minutes: int = Field(30, gt=0, le=720)
    is_free: bool = False
    scheduling: SchedulingType = SchedulingType.MANAGED
    position: int = 0
    minimum_booking_notice: int = Field(60, ge=0)
    before_event_buffer: int = Field(0, ge=0)
    after_event_buffer: int = Field(0, ge=0)
    max_participants: Optional[int] = Field(None, gt=0)
    discount_percentage: Optional[float] = Field(None, ge=0, le=100)
    locations: Optional[list[dict[str, Any]]] = None
    hidden: bool = False


class EventTypeCreate(EventTypeBase):
    pass


class EventTypeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    length_in_minutes: Optional[int] = Field(None, gt=0, le=720)
    is_free: Optional[bool] = None
    is_active: Optional[bool] = None
    scheduling: Optional[SchedulingType] = None
    position: Optional[int] = None
    minimum_booking_notice: Optional[int] = Field(None, ge=0)
    before_event_buffer: Optional[int] = Field(None, ge=0)
    after_event_buffer: Optional[int] = Field(None, ge=0)
    max_participants: Optional[int] = Field(None, gt=0)
    discount_percentage: Optional[float] = Field(None, ge=0, le=100)
    locations: Optional[list[dict[str, Any]]] = None


class EventTypeResponse(BaseModel):
    ulid: str
    calendar_integration_ulid: str
    cal_event_type_id: Optional[int] = None
    name: str
    description: str
    slug: Optional[str] = None
    length_in_minutes: int
    scheduling: SchedulingType
    position: int
    is_free: bool
    price: int
    currency: str
    discount_percentage: Optional[float] = None
    minimum_booking_notice: int
    before_event_buffer: int
    after_event_buffer: int
    max_participants: Optional[int] = None
    locations: list[dict[str, Any]] = []
    is_active: bool
    is_default: bool
    hidden: bool
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="event_metadata")
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SyncStatsResponse(BaseModel):
    fetched_from_cal: int
    fetched_from_db: int
    created: int
    updated: int
    deactivated: int
    deleted: int
    skipped: int
    failed: int


class DefaultEventTypesResponse(BaseModel):
    created: bool
    message: str
    event_types: list[EventTypeResponse]
