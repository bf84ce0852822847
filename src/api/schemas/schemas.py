from datetime import datetime

from pydantic import BaseModel, Field


class ShowCreate(BaseModel):
    seat_count: int = Field(gt=0, le=1000)
    name: str = Field(default="Show", min_length=1, max_length=128)


class ShowResponse(BaseModel):
    id: str
    name: str
    created_at: datetime


class SeatResponse(BaseModel):
    seat_id: str
    label: str
    status: str
    hold_expires_at: datetime | None = None
    held_by_name: str | None = None
    booked_by_name: str | None = None
    booked_at: datetime | None = None


class HoldRequest(BaseModel):
    requester_name: str = Field(min_length=1, max_length=128)


class HoldResponse(BaseModel):
    token: str
    show_id: str
    seat_label: str
    status: str
    requester_name: str
    hold_expires_at: datetime
    confirmed_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancel_reason: str | None = None


class ReclaimResponse(BaseModel):
    reclaimed: int
    tokens: list[str]
