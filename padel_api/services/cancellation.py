"""
Booking cancellation lifecycle.

States (derived from the booking row, never stored as one column):

    Active ──────────────► CancelledRefunded   free window (hours left >= policy)
      │                           ▲
      └──► PendingReplacement ────┘            replacement booking fills the spot

Rules are evaluated in this order:

1. booking already terminal                 -> InvalidStateError
2. session already started (hours left < 0) -> SessionAlreadyStartedError
3. hours left >= free_cancellation_hours    -> immediate cancel, full refund
4. conditional cancellation allowed (or forced by the member)
                                            -> PendingReplacement, refund contingent
5. otherwise                                -> CancellationWindowClosedError

Nothing here touches the database, Stripe or push; ``booking_service`` does the
side effects around these decisions. The clock is always passed in.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from padel_api.core.config import settings
from padel_api.core.errors import (
    CancellationWindowClosedError,
    InvalidStateError,
    SessionAlreadyStartedError,
)
from padel_api.core.timeutils import ensure_utc, hours_until
from padel_api.models.booking import Booking, CancellationStatus, RefundStatus
from padel_api.models.session import Session

logger = logging.getLogger(__name__)


class BookingState(str, enum.Enum):
    active              = "active"
    pending_replacement = "pending_replacement"
    cancelled_refunded  = "cancelled_refunded"


class CancellationType(str, enum.Enum):
    immediate = "immediate"
    pending   = "pending"


@dataclass(frozen=True)
class CancellationDecision:
    type: CancellationType
    hours_until_session: float
    free_cancellation_hours: int
    refund_amount: Decimal

    @property
    def refund_is_immediate(self) -> bool:
        return self.type is CancellationType.immediate


def booking_state(booking: Booking) -> BookingState:
    if booking.cancelled_at is not None:
        return BookingState.cancelled_refunded
    if booking.cancellation_status == CancellationStatus.pending_replacement:
        return BookingState.pending_replacement
    return BookingState.active


def effective_free_hours(session: Session) -> int:
    # NULL falls back to the platform default; an explicit 0 is a real policy
    if session.free_cancellation_hours is None:
        return settings.DEFAULT_FREE_CANCELLATION_HOURS
    return session.free_cancellation_hours


def evaluate_cancellation(
    booking: Booking,
    session: Session,
    now: datetime,
    force: bool = False,
) -> CancellationDecision:
    """Decide what a cancellation request yields. Raises instead of deciding 'no'."""
    state = booking_state(booking)
    if state is BookingState.cancelled_refunded:
        raise InvalidStateError(
            "This booking has already been cancelled.",
            details={"booking_id": booking.id},
        )

    hours_left = hours_until(ensure_utc(session.datetime), now)
    free_hours = effective_free_hours(session)
    price = Decimal(str(session.price))

    if hours_left < 0:
        raise SessionAlreadyStartedError(
            "Cannot cancel a session that has already started.",
            details={"booking_id": booking.id, "hours_until_session": round(hours_left, 2)},
        )

    # boundary favours the member: exactly N hours out is still free
    if hours_left >= free_hours:
        return CancellationDecision(
            type=CancellationType.immediate,
            hours_until_session=hours_left,
            free_cancellation_hours=free_hours,
            refund_amount=price,
        )

    if session.allow_conditional_cancellation or force:
        return CancellationDecision(
            type=CancellationType.pending,
            hours_until_session=hours_left,
            free_cancellation_hours=free_hours,
            refund_amount=price,
        )

    raise CancellationWindowClosedError(
        "Free cancellation period has ended. Cancellations must be made at least "
        f"{free_hours} hours before the session.",
        details={
            "booking_id": booking.id,
            "free_cancellation_hours": free_hours,
            "hours_until_session": round(hours_left, 2),
        },
    )


def apply_decision(booking: Booking, decision: CancellationDecision, now: datetime) -> Booking:
    now = ensure_utc(now)
    if decision.type is CancellationType.immediate:
        booking.cancelled_at        = now
        booking.cancellation_status = CancellationStatus.cancelled
        booking.refund_status       = RefundStatus.completed
        booking.refund_amount       = decision.refund_amount
    else:
        booking.cancellation_status = CancellationStatus.pending_replacement
        # keep the first request time when a pending request is repeated
        if booking.cancellation_requested_at is None:
            booking.cancellation_requested_at = now
        booking.refund_status = RefundStatus.pending
    return booking


def request_cancellation(
    booking: Booking,
    session: Session,
    now: datetime,
    force: bool = False,
) -> CancellationDecision:
    """Evaluate and apply. On any error the booking is left exactly as it was."""
    decision = evaluate_cancellation(booking, session, now, force=force)
    apply_decision(booking, decision, now)
    logger.info(
        "Booking id=%s cancellation=%s hours_left=%.2f free_hours=%d",
        booking.id, decision.type.value, decision.hours_until_session, decision.free_cancellation_hours,
    )
    return decision


def resolve_replacement(
    booking: Booking,
    session: Session,
    now: datetime,
    replaced_by_user_id: Optional[int] = None,
) -> Decimal:
    """PendingReplacement -> CancelledRefunded once another member takes the spot.

    Returns the amount to refund to the original member.
    """
    if booking_state(booking) is not BookingState.pending_replacement:
        raise InvalidStateError(
            "No pending cancellation found for this booking.",
            details={"booking_id": booking.id},
        )
    refund = Decimal(str(session.price))
    booking.cancelled_at        = ensure_utc(now)
    booking.cancellation_status = CancellationStatus.cancelled
    booking.refund_status       = RefundStatus.completed
    booking.refund_amount       = refund
    booking.replaced_by_user_id = replaced_by_user_id
    return refund


def outcome_message(decision: CancellationDecision, currency: str = settings.CURRENCY) -> str:
    amount = f"{decision.refund_amount:.2f}"
    if decision.type is CancellationType.immediate:
        return f"Booking cancelled successfully. Full refund of {currency} {amount} has been processed."
    return (
        f"Cancellation request submitted. You will receive a full refund of {currency} {amount} "
        "if someone takes your spot. Otherwise, no refund will be issued."
    )
