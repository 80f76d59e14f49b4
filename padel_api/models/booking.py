from __future__ import annotations

import enum
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship

from padel_api.db.session import Base

if TYPE_CHECKING:
    from padel_api.models.payment import Payment
    from padel_api.models.session import Session


class BookingPaymentStatus(str, enum.Enum):
    pending   = "pending"
    completed = "completed"
    failed    = "failed"
    refunded  = "refunded"


class CancellationStatus(str, enum.Enum):
    pending_replacement = "pending_replacement"
    cancelled           = "cancelled"


class RefundStatus(str, enum.Enum):
    pending   = "pending"
    completed = "completed"
    failed    = "failed"


class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id:    Mapped[int] = mapped_column(Integer, ForeignKey("users.id",    ondelete="CASCADE"), nullable=False, index=True)
    session_id: Mapped[int] = mapped_column(Integer, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)

    payment_status: Mapped[BookingPaymentStatus] = mapped_column(
        Enum(BookingPaymentStatus, name="bookingpaymentstatus"),
        default=BookingPaymentStatus.pending,
        nullable=False,
    )

    # ── Cancellation lifecycle ────────────────────────────────────────────────
    # Active:               cancelled_at NULL, cancellation_status NULL
    # PendingReplacement:   cancelled_at NULL, cancellation_status pending_replacement
    # CancelledRefunded:    cancelled_at set (terminal)
    cancelled_at:              Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_requested_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_status: Mapped[Optional[CancellationStatus]] = mapped_column(
        Enum(CancellationStatus, name="cancellationstatus"), nullable=True, index=True
    )
    refund_status: Mapped[Optional[RefundStatus]] = mapped_column(
        Enum(RefundStatus, name="refundstatus"), nullable=True
    )
    refund_amount:       Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    replaced_by_user_id: Mapped[Optional[int]]     = mapped_column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # UPDATEs match the version the row was read at; a stale copy raises StaleDataError
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}

    # String refs avoid circular import at runtime
    session: Mapped["Session"] = relationship("Session", lazy="selectin")
    payments: Mapped[List["Payment"]] = relationship(
        "Payment",
        back_populates="booking",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="Payment.id",
    )

    @property
    def latest_payment(self) -> Optional["Payment"]:
        if not self.payments:
            return None
        return max(self.payments, key=lambda p: (p.created_at, p.id or 0))

    @property
    def is_paid(self) -> bool:
        latest = self.latest_payment
        return latest is not None and latest.status == "succeeded"
