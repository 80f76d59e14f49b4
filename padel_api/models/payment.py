from __future__ import annotations

import enum
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from padel_api.db.session import Base

if TYPE_CHECKING:
    from padel_api.models.booking import Booking


class PaymentStatus(str, enum.Enum):
    pending   = "pending"
    succeeded = "succeeded"
    failed    = "failed"
    refunded  = "refunded"


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    booking_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )

    amount:       Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)  # AED
    platform_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0, nullable=False)
    net_amount:   Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus, name="paymentstatus"),
        default=PaymentStatus.pending,
        nullable=False,
    )

    payment_method:           Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    stripe_payment_intent_id: Mapped[Optional[str]] = mapped_column(String(200), nullable=True, index=True)
    stripe_refund_id:         Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    booking: Mapped["Booking"] = relationship("Booking", back_populates="payments")
