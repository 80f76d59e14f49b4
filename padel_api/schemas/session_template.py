from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from padel_api.schemas.session import SessionRead


def _parse_time_of_day(v):
    # accepts "HH:MM" and "HH:MM:SS"
    if isinstance(v, str):
        parts = v.strip().split(":")
        if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
            raise ValueError("time_of_day must be in HH:MM or HH:MM:SS format")
        return time(*(int(p) for p in parts))
    return v


class SessionTemplateCreate(BaseModel):
    community_id:     int
    sub_community_id: Optional[int] = None
    title:            str = Field(min_length=1, max_length=255)
    description:      Optional[str] = None
    day_of_week:      int = Field(ge=0, le=6)
    time_of_day:      time
    duration_minutes: int = Field(default=90, ge=30, le=300)
    price:            Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    max_players:      int = Field(ge=1)

    free_cancellation_hours:        int  = Field(default=24, ge=0)
    allow_conditional_cancellation: bool = True
    is_active:                      bool = True

    normalize_time_of_day = field_validator("time_of_day", mode="before")(_parse_time_of_day)


class SessionTemplateUpdate(BaseModel):
    sub_community_id: Optional[int] = None
    title:            Optional[str] = Field(default=None, min_length=1, max_length=255)
    description:      Optional[str] = None
    day_of_week:      Optional[int] = Field(default=None, ge=0, le=6)
    time_of_day:      Optional[time] = None
    duration_minutes: Optional[int] = Field(default=None, ge=30, le=300)
    price:            Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    max_players:      Optional[int] = Field(default=None, ge=1)

    free_cancellation_hours:        Optional[int]  = Field(default=None, ge=0)
    allow_conditional_cancellation: Optional[bool] = None
    is_active:                      Optional[bool] = None

    normalize_time_of_day = field_validator("time_of_day", mode="before")(_parse_time_of_day)


class SessionTemplateRead(BaseModel):
    id:               int
    community_id:     int
    sub_community_id: Optional[int]
    title:            str
    description:      Optional[str]
    day_of_week:      int
    time_of_day:      time
    duration_minutes: int
    price:            Decimal
    max_players:      int

    free_cancellation_hours:        int
    allow_conditional_cancellation: bool
    is_active:                      bool
    created_at:                     datetime

    model_config = {"from_attributes": True}


class BulkPublishRequest(BaseModel):
    # range checks live in the engine so the error shape matches other rule failures
    template_ids: list[int]
    weeks_ahead:  int
    start_date:   Optional[date] = None


class BulkPublishPreview(BaseModel):
    template_count:   int
    weeks_ahead:      int
    total_sessions:   int
    confirm_label:    str


class BulkPublishError(BaseModel):
    template_id:    int
    template_title: str
    week:           int
    datetime:       Optional[str] = None
    error:          str


class BulkPublishResponse(BaseModel):
    message:  str
    created:  int
    sessions: list[SessionRead]
    skipped:  list[dict[str, Any]]
    errors:   list[BulkPublishError]
