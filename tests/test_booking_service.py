from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
import stripe
from sqlalchemy import func, select

from padel_api.core.config import settings
from padel_api.core.errors import (
    CancellationWindowClosedError,
    ConflictError,
    InvalidStateError,
    PaymentError,
    SessionAlreadyStartedError,
    ValidationError,
)
from padel_api.models.booking import Booking, BookingPaymentStatus, CancellationStatus, RefundStatus
from padel_api.models.payment import PaymentStatus
from padel_api.models.session import Session
from padel_api.models.user import UserRole
from padel_api.services import booking_service
from tests.conftest import NOW
from tests.factories import add_member, make_community, make_paid_booking, make_session, make_user

INSIDE_WINDOW = datetime(2025, 5, 31, 19, 0, tzinfo=timezone.utc)
AFTER_START   = datetime(2025, 6, 1, 19, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def world(db):
    manager   = await make_user(db, role=UserRole.community_manager)
    community = await make_community(db, manager=manager)
    alice     = await make_user(db, name="Alice")
    bob       = await make_user(db, name="Bob")
    watcher   = await make_user(db, name="Watcher")
    for user in (alice, bob, watcher):
        await add_member(db, community, user)
    session = await make_session(db, community)
    return SimpleNamespace(manager=manager, community=community, alice=alice, bob=bob, watcher=watcher, session=session)


async def _booked_count(db, session_id: int) -> int:
    return await db.scalar(select(Session.booked_count).where(Session.id == session_id))


# ── Booking creation ──────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_booking_reserves_a_seat_and_records_payment(db, world):
    booking, payment = await booking_service.create_booking(db, world.session.id, world.alice, NOW)

    assert booking.payment_status == BookingPaymentStatus.completed
    assert payment.status == PaymentStatus.succeeded
    assert payment.amount == Decimal("100.00")
    assert payment.platform_fee == Decimal("5.00")
    assert payment.net_amount == Decimal("95.00")
    assert booking.is_paid is True
    assert await _booked_count(db, world.session.id) == 1


@pytest.mark.asyncio
async def test_duplicate_booking_is_a_conflict(db, world):
    await booking_service.create_booking(db, world.session.id, world.alice, NOW)
    with pytest.raises(ConflictError):
        await booking_service.create_booking(db, world.session.id, world.alice, NOW)
    assert await _booked_count(db, world.session.id) == 1


@pytest.mark.asyncio
async def test_full_session_cannot_be_booked(db, world):
    small = await make_session(db, world.community, max_players=1, title="Singles")
    await booking_service.create_booking(db, small.id, world.alice, NOW)

    with pytest.raises(ConflictError, match="fully booked"):
        await booking_service.create_booking(db, small.id, world.bob, NOW)
    assert await _booked_count(db, small.id) == 1


@pytest.mark.asyncio
async def test_started_session_cannot_be_booked(db, world):
    with pytest.raises(SessionAlreadyStartedError):
        await booking_service.create_booking(db, world.session.id, world.alice, AFTER_START)


@pytest.mark.asyncio
async def test_capacity_holds_across_book_and_cancel(db, world, notifier):
    pair = await make_session(db, world.community, max_players=2, title="Doubles")
    pair_id = pair.id
    first, _ = await booking_service.create_booking(db, pair_id, world.alice, NOW)
    await booking_service.create_booking(db, pair_id, world.bob, NOW)
    with pytest.raises(ConflictError):
        await booking_service.create_booking(db, pair_id, world.watcher, NOW)

    await booking_service.cancel_booking(db, first.id, world.alice, NOW, notifier)
    assert await _booked_count(db, pair_id) == 1

    await booking_service.create_booking(db, pair_id, world.watcher, NOW)
    assert await _booked_count(db, pair_id) == 2


@pytest.mark.asyncio
async def test_declined_card_leaves_no_trace(db, world, monkeypatch):
    session_id = world.session.id
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setattr(stripe.PaymentIntent, "create", MagicMock(side_effect=stripe.StripeError("Card declined")))

    with pytest.raises(PaymentError):
        await booking_service.create_booking(db, session_id, world.alice, NOW, payment_method_id="pm_card")

    assert await _booked_count(db, session_id) == 0
    assert (await db.execute(select(Booking))).scalars().all() == []


@pytest.mark.asyncio
async def test_stripe_charge_and_webhook_confirmation(db, world, monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_123")
    create = MagicMock(return_value=SimpleNamespace(id="pi_123", status="processing"))
    monkeypatch.setattr(stripe.PaymentIntent, "create", create)

    booking, payment = await booking_service.create_booking(
        db, world.session.id, world.alice, NOW, payment_method_id="pm_card"
    )

    kwargs = create.call_args.kwargs
    assert kwargs["amount"] == 10000
    assert kwargs["currency"] == "aed"
    assert booking.payment_status == BookingPaymentStatus.pending
    assert payment.stripe_payment_intent_id == "pi_123"

    event = {"type": "payment_intent.succeeded", "data": {"object": {"id": "pi_123"}}}
    await booking_service.handle_stripe_event(db, event)
    await db.refresh(booking)
    await db.refresh(payment)

    assert payment.status == PaymentStatus.succeeded
    assert booking.payment_status == BookingPaymentStatus.completed
    assert booking.is_paid is True


# ── Cancellation ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_free_cancellation_refunds_and_frees_the_seat(db, world, notifier):
    booking = await make_paid_booking(db, world.session, world.alice)
    watcher_id = world.watcher.id

    result = await booking_service.cancel_booking(db, booking.id, world.alice, NOW, notifier)

    assert result["type"] == "immediate"
    assert result["refund_amount"] == Decimal("100.00")
    cancelled = result["booking"]
    assert cancelled.cancellation_status == CancellationStatus.cancelled
    assert cancelled.refund_status == RefundStatus.completed
    assert cancelled.payment_status == BookingPaymentStatus.refunded
    assert cancelled.payments[0].status == PaymentStatus.refunded
    assert await _booked_count(db, world.session.id) == 0

    assert notifier.titles() == ["Booking Cancelled", "🎾 Last Minute Spot!"]
    spot = notifier.sent[1]
    assert world.alice.id not in spot["user_ids"] and watcher_id in spot["user_ids"]
    assert spot["data"]["isPending"] is False


@pytest.mark.asyncio
async def test_late_cancellation_goes_pending_and_keeps_the_seat(db, world, notifier):
    booking = await make_paid_booking(db, world.session, world.alice)

    result = await booking_service.cancel_booking(db, booking.id, world.alice, INSIDE_WINDOW, notifier)

    assert result["type"] == "pending"
    pending = result["booking"]
    assert pending.cancelled_at is None
    assert pending.cancellation_status == CancellationStatus.pending_replacement
    assert pending.payments[0].status == PaymentStatus.succeeded
    assert await _booked_count(db, world.session.id) == 1
    assert notifier.titles() == ["Cancellation Requested", "🎾 Last Minute Spot!"]
    assert notifier.sent[1]["data"]["isPending"] is True


@pytest.mark.asyncio
async def test_closed_window_rejects_without_side_effects(db, world, notifier):
    strict = await make_session(db, world.community, allow_conditional_cancellation=False, title="Strict")
    booking = await make_paid_booking(db, strict, world.alice)
    booking_id, strict_id = booking.id, strict.id

    with pytest.raises(CancellationWindowClosedError):
        await booking_service.cancel_booking(db, booking_id, world.alice, INSIDE_WINDOW, notifier)

    await db.refresh(booking)
    assert booking.cancelled_at is None
    assert booking.cancellation_status is None
    assert await _booked_count(db, strict_id) == 1
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_force_turns_closed_window_into_pending_request(db, world, notifier):
    strict = await make_session(db, world.community, allow_conditional_cancellation=False, title="Strict")
    booking = await make_paid_booking(db, strict, world.alice)

    result = await booking_service.cancel_booking(db, booking.id, world.alice, INSIDE_WINDOW, notifier, force=True)

    assert result["type"] == "pending"


@pytest.mark.asyncio
async def test_started_session_cannot_be_cancelled(db, world, notifier):
    booking = await make_paid_booking(db, world.session, world.alice)
    with pytest.raises(SessionAlreadyStartedError):
        await booking_service.cancel_booking(db, booking.id, world.alice, AFTER_START, notifier)


@pytest.mark.asyncio
async def test_cancelling_twice_is_invalid(db, world, notifier):
    booking = await make_paid_booking(db, world.session, world.alice)
    await booking_service.cancel_booking(db, booking.id, world.alice, NOW, notifier)

    with pytest.raises(InvalidStateError):
        await booking_service.cancel_booking(db, booking.id, world.alice, NOW, notifier)
    assert await _booked_count(db, world.session.id) == 0


@pytest.mark.asyncio
async def test_stripe_refund_is_issued_for_the_original_intent(db, world, notifier, monkeypatch):
    booking = await make_paid_booking(db, world.session, world.alice, intent_id="pi_original")
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_123")
    refund = MagicMock(return_value=SimpleNamespace(id="re_1"))
    monkeypatch.setattr(stripe.Refund, "create", refund)

    result = await booking_service.cancel_booking(db, booking.id, world.alice, NOW, notifier)

    refund.assert_called_once_with(payment_intent="pi_original")
    assert result["booking"].payments[0].stripe_refund_id == "re_1"


# ── Replacement ───────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_taking_a_pending_spot_refunds_the_original_member(db, world, notifier):
    booking = await make_paid_booking(db, world.session, world.alice)
    alice_id, bob_id, session_id = world.alice.id, world.bob.id, world.session.id
    await booking_service.cancel_booking(db, booking.id, world.alice, INSIDE_WINDOW, notifier)
    notifier.sent.clear()

    new_booking, payment = await booking_service.take_pending_spot(
        db, booking.id, world.bob, INSIDE_WINDOW, notifier
    )

    assert new_booking.user_id == bob_id
    assert payment.status == PaymentStatus.succeeded
    assert await _booked_count(db, session_id) == 1

    original = await db.get(Booking, booking.id)
    await db.refresh(original)
    assert original.cancellation_status == CancellationStatus.cancelled
    assert original.replaced_by_user_id == bob_id
    assert original.refund_amount == Decimal("100.00")
    assert original.payment_status == BookingPaymentStatus.refunded
    assert notifier.sent == [{
        "user_ids": [alice_id],
        "title": "💰 Refund Processed",
        "body": 'Your spot in "Evening Padel" was filled! Refund of AED 100.00 has been processed.',
        "data": {"type": "refund_processed"},
    }]


@pytest.mark.asyncio
async def test_only_pending_spots_can_be_taken(db, world, notifier):
    booking = await make_paid_booking(db, world.session, world.alice)
    with pytest.raises(InvalidStateError):
        await booking_service.take_pending_spot(db, booking.id, world.bob, INSIDE_WINDOW, notifier)


@pytest.mark.asyncio
async def test_member_cannot_take_their_own_spot(db, world, notifier):
    booking = await make_paid_booking(db, world.session, world.alice)
    await booking_service.cancel_booking(db, booking.id, world.alice, INSIDE_WINDOW, notifier)
    with pytest.raises(ValidationError):
        await booking_service.take_pending_spot(db, booking.id, world.alice, INSIDE_WINDOW, notifier)


# ── Concurrent requests and payment failures ──────────────────────────────────

async def _active_bookings(db, session_id: int) -> int:
    return await db.scalar(
        select(func.count(Booking.id)).where(Booking.session_id == session_id, Booking.cancelled_at.is_(None))
    )


@pytest.mark.asyncio
async def test_concurrent_free_cancellations_release_one_seat(db, session_maker, world, notifier):
    booking = await make_paid_booking(db, world.session, world.alice)
    await make_paid_booking(db, world.session, world.bob)
    booking_id, session_id = booking.id, world.session.id

    async with session_maker() as other:
        # the second request read the booking before the first one committed
        await other.get(Booking, booking_id)
        first = await booking_service.cancel_booking(db, booking_id, world.alice, NOW, notifier)
        with pytest.raises(ConflictError):
            await booking_service.cancel_booking(other, booking_id, world.alice, NOW, notifier)

    assert first["type"] == "immediate"
    assert await _active_bookings(db, session_id) == 1
    assert await _booked_count(db, session_id) == 1


@pytest.mark.asyncio
async def test_two_members_cannot_take_the_same_spot(db, session_maker, world, notifier):
    single = await make_session(db, world.community, max_players=1, title="Singles")
    booking = await make_paid_booking(db, single, world.alice)
    booking_id, single_id, bob_id = booking.id, single.id, world.bob.id
    await booking_service.cancel_booking(db, booking_id, world.alice, INSIDE_WINDOW, notifier)

    async with session_maker() as other:
        await other.get(Booking, booking_id)
        taken, _ = await booking_service.take_pending_spot(db, booking_id, world.bob, INSIDE_WINDOW, notifier)
        with pytest.raises(ConflictError, match="already been taken"):
            await booking_service.take_pending_spot(other, booking_id, world.watcher, INSIDE_WINDOW, notifier)

    assert taken.user_id == bob_id
    assert await _active_bookings(db, single_id) == 1
    assert await _booked_count(db, single_id) == 1
    assert notifier.titles().count("💰 Refund Processed") == 1


@pytest.mark.asyncio
async def test_failed_stripe_refund_is_recorded_on_a_committed_cancellation(
    db, session_maker, world, notifier, monkeypatch
):
    booking = await make_paid_booking(db, world.session, world.alice, intent_id="pi_original")
    booking_id, session_id = booking.id, world.session.id
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setattr(stripe.Refund, "create", MagicMock(side_effect=stripe.StripeError("Stripe unavailable")))

    result = await booking_service.cancel_booking(db, booking_id, world.alice, NOW, notifier)

    assert result["type"] == "immediate"
    assert "could not be processed automatically" in result["message"]
    assert await _booked_count(db, session_id) == 0
    async with session_maker() as fresh:
        stored = await fresh.get(Booking, booking_id)
        assert stored.cancelled_at is not None
        assert stored.refund_status == RefundStatus.failed
        assert stored.payments[0].status == PaymentStatus.succeeded


@pytest.mark.asyncio
async def test_no_refund_is_sent_when_the_cancellation_cannot_be_saved(
    db, session_maker, world, notifier, monkeypatch
):
    booking = await make_paid_booking(db, world.session, world.alice, intent_id="pi_original")
    booking_id, session_id = booking.id, world.session.id
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_123")
    refund = MagicMock(return_value=SimpleNamespace(id="re_1"))
    monkeypatch.setattr(stripe.Refund, "create", refund)
    monkeypatch.setattr(booking_service, "_release_seat", AsyncMock(side_effect=RuntimeError("connection lost")))

    with pytest.raises(RuntimeError):
        await booking_service.cancel_booking(db, booking_id, world.alice, NOW, notifier)

    refund.assert_not_called()
    assert notifier.sent == []
    assert await _booked_count(db, session_id) == 1
    async with session_maker() as fresh:
        stored = await fresh.get(Booking, booking_id)
        assert stored.cancelled_at is None
        assert stored.refund_status is None


@pytest.mark.asyncio
async def test_unconfirmed_replacement_payment_leaves_the_spot_pending(
    db, session_maker, world, notifier, monkeypatch
):
    booking = await make_paid_booking(db, world.session, world.alice, intent_id="pi_alice")
    booking_id, bob_id = booking.id, world.bob.id
    await booking_service.cancel_booking(db, booking_id, world.alice, INSIDE_WINDOW, notifier)

    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setattr(
        stripe.PaymentIntent, "create", MagicMock(return_value=SimpleNamespace(id="pi_bob", status="requires_action"))
    )
    cancel = MagicMock()
    refund = MagicMock()
    monkeypatch.setattr(stripe.PaymentIntent, "cancel", cancel)
    monkeypatch.setattr(stripe.Refund, "create", refund)

    with pytest.raises(PaymentError, match="not confirmed"):
        await booking_service.take_pending_spot(
            db, booking_id, world.bob, INSIDE_WINDOW, notifier, payment_method_id="pm_card_3ds"
        )

    cancel.assert_called_once_with("pi_bob")
    refund.assert_not_called()
    async with session_maker() as fresh:
        stored = await fresh.get(Booking, booking_id)
        assert stored.cancellation_status == CancellationStatus.pending_replacement
        assert stored.cancelled_at is None
        assert stored.replaced_by_user_id is None
        assert stored.payments[0].status == PaymentStatus.succeeded
        bob_bookings = await fresh.scalar(select(func.count(Booking.id)).where(Booking.user_id == bob_id))
        assert bob_bookings == 0
