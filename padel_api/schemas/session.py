from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from padel_api.core.timeutils import ensure_utc
from padel_api.models.session import SessionStatus


class SessionCreate(BaseModel):
    community_id:     int
    sub_community_id: Optional[int] = None
    title:            str = Field(min_length=1, max_length=255)
    description:      Optional[str] = None
    location:         str = Field(min_length=1, max_length=255)
    google_maps_url:  Optional[str] = None
    datetime:         dt.datetime
    price:            Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    max_players:      int = Field(ge=1)
    visibility:       bool = True

    free_cancellation_hours:        int  = Field(default=24, ge=0)
    allow_conditional_cancellation: bool = True

    @field_validator("datetime", mode="before")
    @classmethod
    def _normalise_datetime(cls, v):
        return ensure_utc(v) if isinstance(v, (str, dt.datetime)) else v


class SessionUpdate(BaseModel):
    """Partial update. Range checks on price/capacity happen in the service."""

    title:            Optional[str] = None
    description:      Optional[str] = None
    location:         Optional[str] = None
    google_maps_url:  Optional[str] = None
    datetime:         Optional[dt.datetime] = None
    price:            Optional[Decimal] = None
    max_players:      Optional[int] = None
    visibility:       Optional[bool] = None
    sub_community_id: Optional[int] = None

    free_cancellation_hours:        Optional[int]  = None
    allow_conditional_cancellation: Optional[bool] = None

    @field_validator("datetime", mode="before")
    @classmethod
    def _normalise_datetime(cls, v):
        return ensure_utc(v) if isinstance(v, (str, dt.datetime)) else v


class SessionRead(BaseModel):
    id:                       int
    community_id:             int
    sub_community_id:         Optional[int]
    created_from_template_id: Optional[int]
    title:                    str
    description:              Optional[str]
    location:                 str
    google_maps_url:          Optional[str]
    datetime:                 dt.datetime
    price:                    Decimal
    max_players:              int
    booked_count:             int
    available_spots:          int
    status:                   SessionStatus
    visibility:               bool

    free_cancellation_hours:        Optional[int]
    allow_conditional_cancellation: bool

    model_config = {"from_attributes": True}

    @field_validator("datetime", mode="before")
    @classmethod
    def _normalise_datetime(cls, v):
        return ensure_utc(v) if isinstance(v, (str, dt.datetime)) else v


class SessionNotificationCreate(BaseModel):
    title:   str = Field(min_length=1, max_length=120)
    message: str = Field(min_length=1, max_length=1000)


class AttendeeRead(BaseModel):
    booking_id:          int
    user_id:             int
    name:                Optional[str]
    email:               Optional[str]
    phone:               Optional[str]
    payment_status:      str
    cancellation_status: Optional[str]


class ManagerStats(BaseModel):
    upcoming_sessions:     int
    past_sessions:         int
    total_bookings:        int
    total_revenue:         float
    total_members:         int
    pending_cancellations: int
