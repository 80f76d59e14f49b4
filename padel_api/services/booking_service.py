"""
Booking orchestration: seat reservation, Stripe charges and refunds, and the
side effects around the cancellation rules in ``cancellation``.

``sessions.booked_count`` is only ever moved by conditional UPDATE
statements here, so two members racing for the last spot cannot both win
and a cancellation can never push the counter below zero.

Booking state changes are versioned (``Booking.version_id``): the flip is
flushed before any seat release, charge or refund, and a request holding a
stale copy of the booking is rejected with a conflict. Refunds are only sent
to Stripe after the state change has been committed.
"""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from padel_api.core.config import settings
from padel_api.core.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    PaymentError,
    PermissionDeniedError,
    SessionAlreadyStartedError,
    ValidationError,
)
from padel_api.core.timeutils import ensure_utc
from padel_api.models.booking import Booking, BookingPaymentStatus, RefundStatus
from padel_api.models.payment import Payment, PaymentStatus
from padel_api.models.session import Session, SessionStatus
from padel_api.models.user import User
from padel_api.services import payments
from padel_api.services.cancellation import (
    BookingState,
    CancellationType,
    booking_state,
    outcome_message,
    request_cancellation,
    resolve_replacement,
)
from padel_api.services.notifications import PushNotifier
from padel_api.services.roles import can_manage_community
from padel_api.services.session_service import get_session_or_404, invalidate_listings

logger = logging.getLogger(__name__)


# ── Private helpers ───────────────────────────────────────────────────────────

async def _booking_or_404(db: AsyncSession, booking_id: int) -> Booking:
    booking = await db.get(Booking, booking_id)
    if not booking:
        raise NotFoundError("Booking not found", details={"booking_id": booking_id})
    return booking


async def _own_booking_or_404(db: AsyncSession, booking_id: int, user: User) -> Booking:
    booking = await _booking_or_404(db, booking_id)
    if booking.user_id != user.id:
        raise PermissionDeniedError("Not your booking", details={"booking_id": booking_id})
    return booking


async def _active_booking_for(db: AsyncSession, session_id: int, user_id: int) -> Optional[Booking]:
    r = await db.execute(
        select(Booking).where(
            Booking.session_id == session_id,
            Booking.user_id    == user_id,
            Booking.cancelled_at.is_(None),
        )
    )
    return r.scalars().first()


def _assert_bookable(session: Session, now: datetime) -> None:
    if session.status != SessionStatus.active:
        raise ValidationError("Session is not available for booking", details={"session_id": session.id})
    if ensure_utc(session.datetime) <= ensure_utc(now):
        raise SessionAlreadyStartedError(
            "This session has already started", details={"session_id": session.id}
        )


async def _reserve_seat(db: AsyncSession, session_id: int) -> None:
    r = await db.execute(
        update(Session)
        .where(
            Session.id           == session_id,
            Session.status       == SessionStatus.active,
            Session.booked_count <  Session.max_players,
        )
        .values(booked_count=Session.booked_count + 1)
        .execution_options(synchronize_session=False)
    )
    if r.rowcount == 0:
        raise ConflictError("Session is fully booked", details={"session_id": session_id})


async def _release_seat(db: AsyncSession, session_id: int) -> None:
    await db.execute(
        update(Session)
        .where(Session.id == session_id, Session.booked_count > 0)
        .values(booked_count=Session.booked_count - 1)
        .execution_options(synchronize_session=False)
    )


async def _flush_state_change(db: AsyncSession, booking_id: int, message: str) -> None:
    try:
        await db.flush()
    except StaleDataError:
        await db.rollback()
        logger.warning("Booking id=%d was changed by a concurrent request", booking_id)
        raise ConflictError(message, details={"booking_id": booking_id})


def _new_paid_booking(
    user_id: int,
    session: Session,
    amount: Decimal,
    result: payments.ChargeResult,
    payment_method_id: Optional[str],
) -> tuple[Booking, Payment]:
    fee, net = payments.split_amount(amount)
    paid = result.status == PaymentStatus.succeeded
    booking = Booking(
        user_id=user_id,
        session_id=session.id,
        payment_status=BookingPaymentStatus.completed if paid else BookingPaymentStatus.pending,
    )
    payment = Payment(
        amount=amount,
        platform_fee=fee,
        net_amount=net,
        status=result.status,
        payment_method=payment_method_id,
        stripe_payment_intent_id=result.payment_intent_id,
    )
    booking.payments.append(payment)
    return booking, payment


async def _rollback_and_void(db: AsyncSession, result: payments.ChargeResult) -> None:
    await db.rollback()
    try:
        if result.status == PaymentStatus.succeeded:
            payments.refund_intent(result.payment_intent_id)
        else:
            payments.cancel_intent(result.payment_intent_id)
    except PaymentError:
        logger.error("Could not void PaymentIntent %s after failed booking", result.payment_intent_id)


async def _settle_refund(db: AsyncSession, booking: Booking) -> bool:
    """Refund a committed cancellation through Stripe and record the outcome."""
    try:
        payments.refund_all_succeeded(booking.payments)
    except PaymentError as exc:
        # payments refunded before the failure keep their refunded status
        booking.refund_status = RefundStatus.failed
        await db.commit()
        logger.error("Refund for booking id=%d failed, needs manual follow-up: %s", booking.id, exc.message)
        return False
    booking.payment_status = BookingPaymentStatus.refunded
    booking.refund_status  = RefundStatus.completed
    await db.commit()
    return True


def _refund_failed_message(amount: Decimal) -> str:
    return (
        f"Booking cancelled. Your refund of {settings.CURRENCY} {amount:.2f} could not be processed "
        "automatically and will be completed by our team."
    )


# ── Create / read ─────────────────────────────────────────────────────────────

async def create_booking(
    db: AsyncSession,
    session_id: int,
    user: User,
    now: datetime,
    payment_method_id: Optional[str] = None,
) -> tuple[Booking, Payment]:
    session = await get_session_or_404(db, session_id)
    _assert_bookable(session, now)
    if await _active_booking_for(db, session_id, user.id):
        raise ConflictError("You have already booked this session", details={"session_id": session_id})

    user_id = user.id
    amount  = Decimal(str(session.price))
    await _reserve_seat(db, session_id)

    try:
        result = payments.charge(
            amount,
            payment_method_id,
            description=f"Padel session: {session.title}",
            metadata={"session_id": session_id, "user_id": user_id},
        )
    except PaymentError:
        await db.rollback()
        raise

    booking, payment = _new_paid_booking(user_id, session, amount, result, payment_method_id)
    db.add(booking)
    try:
        await db.commit()
    except Exception:
        await _rollback_and_void(db, result)
        raise
    await db.refresh(booking)
    await db.refresh(payment)
    await db.refresh(session)

    await invalidate_listings()
    logger.info(
        "Booking created id=%d session=%d user=%d payment=%s booked=%d/%d",
        booking.id, session_id, user_id, payment.status.value, session.booked_count, session.max_players,
    )
    return booking, payment


async def list_user_bookings(db: AsyncSession, user: User) -> list[Booking]:
    r = await db.execute(
        select(Booking)
        .where(Booking.user_id == user.id)
        .order_by(Booking.timestamp.desc())
    )
    return list(r.scalars().all())


async def get_booking(db: AsyncSession, booking_id: int, user: User) -> Booking:
    booking = await _booking_or_404(db, booking_id)
    if booking.user_id != user.id and not await can_manage_community(db, user, booking.session.community_id):
        raise PermissionDeniedError("Not your booking", details={"booking_id": booking_id})
    return booking


# ── Cancellation ──────────────────────────────────────────────────────────────

async def cancel_booking(
    db: AsyncSession,
    booking_id: int,
    user: User,
    now: datetime,
    notifier: PushNotifier,
    force: bool = False,
) -> dict:
    booking = await _own_booking_or_404(db, booking_id, user)
    session = booking.session
    session_id = session.id

    decision  = request_cancellation(booking, session, now, force=force)
    immediate = decision.type is CancellationType.immediate
    if immediate:
        # completed once Stripe accepts the refund
        booking.refund_status = RefundStatus.pending
    await _flush_state_change(
        db, booking_id, "This booking was changed by another request. Please refresh and try again."
    )
    try:
        if immediate:
            await _release_seat(db, session_id)
        await db.commit()
    except Exception:
        await db.rollback()
        logger.error("Cancellation of booking id=%d could not be saved", booking_id)
        raise
    await db.refresh(booking)
    await db.refresh(session)

    message = outcome_message(decision)
    if immediate and not await _settle_refund(db, booking):
        message = _refund_failed_message(decision.refund_amount)
    await invalidate_listings()

    await notifier.notify_cancellation_outcome(db, booking.user_id, session.title, decision.type.value, message)
    await notifier.notify_spot_available(
        db,
        session_id=session_id,
        session_title=session.title,
        community_id=session.community_id,
        is_pending=not immediate,
        exclude_user_id=booking.user_id,
    )
    return {
        "type":          decision.type.value,
        "message":       message,
        "refund_amount": decision.refund_amount,
        "booking":       booking,
    }


async def take_pending_spot(
    db: AsyncSession,
    booking_id: int,
    user: User,
    now: datetime,
    notifier: PushNotifier,
    payment_method_id: Optional[str] = None,
) -> tuple[Booking, Payment]:
    """A member pays for the spot of a pending-replacement booking.

    The seat changes hands, so ``booked_count`` stays as it is. The original
    booking is claimed first, then the new member is charged; only a
    succeeded charge completes the swap. The original owner is refunded
    after the swap is committed.
    """
    original = await _booking_or_404(db, booking_id)
    session  = original.session
    if booking_state(original) is not BookingState.pending_replacement:
        raise InvalidStateError(
            "No pending cancellation found for this booking", details={"booking_id": booking_id}
        )
    if original.user_id == user.id:
        raise ValidationError("You cannot take your own spot")
    _assert_bookable(session, now)
    if await _active_booking_for(db, session.id, user.id):
        raise ConflictError("You have already booked this session", details={"session_id": session.id})

    user_id          = user.id
    original_user_id = original.user_id
    session_title    = session.title
    amount           = Decimal(str(session.price))

    refund_amount = resolve_replacement(original, session, now, replaced_by_user_id=user_id)
    original.refund_status = RefundStatus.pending
    await _flush_state_change(db, booking_id, "This spot has already been taken by another member.")

    try:
        result = payments.charge(
            amount,
            payment_method_id,
            description=f"Padel session: {session_title}",
            metadata={"session_id": session.id, "user_id": user_id, "replaces_booking_id": booking_id},
        )
    except PaymentError:
        await db.rollback()
        raise
    if result.status != PaymentStatus.succeeded:
        await _rollback_and_void(db, result)
        raise PaymentError(
            "Payment was not confirmed, so the spot was not taken. Please use a card that needs no extra steps.",
            details={"booking_id": booking_id, "payment_intent_id": result.payment_intent_id},
        )

    booking, payment = _new_paid_booking(user_id, session, amount, result, payment_method_id)
    db.add(booking)
    try:
        await db.commit()
    except Exception:
        await _rollback_and_void(db, result)
        raise
    await db.refresh(booking)
    await db.refresh(payment)

    refunded = await _settle_refund(db, original)
    await invalidate_listings()
    logger.info(
        "Booking id=%d replaced by booking id=%d (user=%d), refund %s %.2f %s",
        booking_id, booking.id, user_id, settings.CURRENCY, refund_amount,
        "sent" if refunded else "failed",
    )
    if refunded:
        await notifier.notify_refund_processed(db, original_user_id, session_title, refund_amount)
    return booking, payment


# ── Stripe events ─────────────────────────────────────────────────────────────

async def handle_stripe_event(db: AsyncSession, event: dict) -> None:
    if event["type"] != "payment_intent.succeeded":
        return
    pi_id = event["data"]["object"]["id"]
    r = await db.execute(select(Payment).where(Payment.stripe_payment_intent_id == pi_id))
    payment = r.scalar_one_or_none()
    if not payment or payment.status != PaymentStatus.pending:
        return
    payment.status = PaymentStatus.succeeded
    booking = await db.get(Booking, payment.booking_id)
    if booking and booking.payment_status == BookingPaymentStatus.pending:
        booking.payment_status = BookingPaymentStatus.completed
    await db.commit()
    logger.info("Stripe webhook confirmed payment id=%d booking=%d", payment.id, payment.booking_id)
