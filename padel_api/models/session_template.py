from __future__ import annotations

from datetime import datetime, time, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean, CheckConstraint, DateTime, ForeignKey, Integer, Numeric, String, Text, Time,
)
from sqlalchemy.orm import Mapped, mapped_column

from padel_api.db.session import Base


class SessionTemplate(Base):
    """Weekly recurrence blueprint; bulk publish turns it into Session rows."""

    __tablename__ = "session_templates"
    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_session_templates_day_of_week"),
        CheckConstraint("max_players > 0",             name="ck_session_templates_max_players"),
        CheckConstraint("price >= 0",                  name="ck_session_templates_price"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    community_id:     Mapped[int]           = mapped_column(Integer, ForeignKey("communities.id", ondelete="CASCADE"),  nullable=False, index=True)
    sub_community_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("communities.id", ondelete="SET NULL"), nullable=True)
    created_by:       Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id",       ondelete="SET NULL"), nullable=True)

    title:       Mapped[str]           = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text,        nullable=True)

    day_of_week:      Mapped[int]  = mapped_column(Integer, nullable=False)  # 0=Sunday .. 6=Saturday
    time_of_day:      Mapped[time] = mapped_column(Time,    nullable=False)  # venue-local wall time
    duration_minutes: Mapped[int]  = mapped_column(Integer, default=90, nullable=False)

    price:       Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    max_players: Mapped[int]     = mapped_column(Integer,        nullable=False)

    free_cancellation_hours:        Mapped[int]  = mapped_column(Integer, default=24,   nullable=False)
    allow_conditional_cancellation: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_active:                      Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
