from __future__ import annotations

import datetime as dt
import enum
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean, CheckConstraint, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from padel_api.db.session import Base


class SessionStatus(str, enum.Enum):
    active    = "active"
    completed = "completed"
    cancelled = "cancelled"


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class Session(Base):
    """A single bookable padel match."""

    __tablename__ = "sessions"
    __table_args__ = (
        CheckConstraint("booked_count >= 0",           name="ck_sessions_booked_count_non_negative"),
        CheckConstraint("booked_count <= max_players", name="ck_sessions_booked_count_capacity"),
        CheckConstraint("max_players > 0",             name="ck_sessions_max_players"),
        CheckConstraint("price >= 0",                  name="ck_sessions_price"),
        # natural key for template-generated instances; re-publishing must not duplicate
        UniqueConstraint("created_from_template_id", "datetime", name="uq_sessions_template_datetime"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    community_id:             Mapped[int]           = mapped_column(Integer, ForeignKey("communities.id",       ondelete="CASCADE"),  nullable=False, index=True)
    sub_community_id:         Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("communities.id",       ondelete="SET NULL"), nullable=True)
    created_from_template_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("session_templates.id", ondelete="SET NULL"), nullable=True, index=True)
    created_by:               Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id",             ondelete="SET NULL"), nullable=True)

    title:           Mapped[str]           = mapped_column(String(255), nullable=False)
    description:     Mapped[Optional[str]] = mapped_column(Text,        nullable=True)
    location:        Mapped[str]           = mapped_column(String(255), nullable=False, default="TBD")
    google_maps_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    datetime: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    price:        Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)  # AED
    max_players:  Mapped[int]     = mapped_column(Integer, nullable=False)
    booked_count: Mapped[int]     = mapped_column(Integer, default=0, nullable=False)

    status: Mapped[SessionStatus] = mapped_column(
        Enum(SessionStatus, name="sessionstatus"),
        default=SessionStatus.active,
        nullable=False,
    )
    visibility: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # NULL means "use the platform default" (DEFAULT_FREE_CANCELLATION_HOURS)
    free_cancellation_hours:        Mapped[Optional[int]] = mapped_column(Integer, default=24,   nullable=True)
    allow_conditional_cancellation: Mapped[bool]          = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    @property
    def available_spots(self) -> int:
        return max(self.max_players - (self.booked_count or 0), 0)
