from datetime import datetime, timezone
from decimal import Decimal

import pytest

from padel_api.core.errors import (
    CancellationWindowClosedError,
    InvalidStateError,
    SessionAlreadyStartedError,
)
from padel_api.models.booking import Booking, CancellationStatus, RefundStatus
from padel_api.models.session import Session
from padel_api.services.cancellation import (
    BookingState,
    CancellationType,
    booking_state,
    evaluate_cancellation,
    outcome_message,
    request_cancellation,
    resolve_replacement,
)

SESSION_AT = datetime(2025, 6, 1, 18, 0, tzinfo=timezone.utc)


def _session(**kw) -> Session:
    fields = {
        "id": 1,
        "title": "Evening Padel",
        "datetime": SESSION_AT,
        "price": Decimal("120.00"),
        "max_players": 4,
        "booked_count": 4,
        "free_cancellation_hours": 24,
        "allow_conditional_cancellation": True,
    }
    fields.update(kw)
    return Session(**fields)


def _booking(**kw) -> Booking:
    return Booking(id=7, user_id=3, session_id=1, **kw)


def _snapshot(booking: Booking) -> tuple:
    return (
        booking.cancelled_at,
        booking.cancellation_status,
        booking.cancellation_requested_at,
        booking.refund_status,
        booking.refund_amount,
    )


def test_free_window_cancels_immediately_with_full_refund():
    booking, session = _booking(), _session()
    now = datetime(2025, 5, 31, 17, 59, tzinfo=timezone.utc)

    decision = request_cancellation(booking, session, now)

    assert decision.type is CancellationType.immediate
    assert decision.hours_until_session == pytest.approx(24.0167, abs=1e-3)
    assert decision.refund_amount == Decimal("120.00")
    assert booking.cancelled_at == now
    assert booking.cancellation_status == CancellationStatus.cancelled
    assert booking.refund_status == RefundStatus.completed
    assert booking_state(booking) is BookingState.cancelled_refunded


def test_exact_boundary_is_still_free():
    booking, session = _booking(), _session()
    now = datetime(2025, 5, 31, 18, 0, tzinfo=timezone.utc)

    decision = evaluate_cancellation(booking, session, now)

    assert decision.hours_until_session == 24
    assert decision.type is CancellationType.immediate


def test_inside_window_with_conditional_goes_pending():
    booking, session = _booking(), _session()
    now = datetime(2025, 5, 31, 19, 0, tzinfo=timezone.utc)

    decision = request_cancellation(booking, session, now)

    assert decision.type is CancellationType.pending
    assert decision.hours_until_session == 23
    assert booking.cancelled_at is None
    assert booking.cancellation_status == CancellationStatus.pending_replacement
    assert booking.cancellation_requested_at == now
    assert booking.refund_status == RefundStatus.pending
    assert booking_state(booking) is BookingState.pending_replacement


def test_inside_window_without_conditional_is_rejected_and_untouched():
    booking, session = _booking(), _session(allow_conditional_cancellation=False)
    before = _snapshot(booking)

    with pytest.raises(CancellationWindowClosedError) as exc:
        request_cancellation(booking, session, datetime(2025, 5, 31, 19, 0, tzinfo=timezone.utc))

    assert "24 hours" in exc.value.message
    assert exc.value.details["free_cancellation_hours"] == 24
    assert _snapshot(booking) == before


def test_force_accepts_pending_request_when_conditional_disallowed():
    booking, session = _booking(), _session(allow_conditional_cancellation=False)

    decision = request_cancellation(
        booking, session, datetime(2025, 5, 31, 19, 0, tzinfo=timezone.utc), force=True
    )

    assert decision.type is CancellationType.pending
    assert booking.cancellation_status == CancellationStatus.pending_replacement


@pytest.mark.parametrize("force", [False, True])
def test_started_session_is_always_rejected(force):
    booking, session = _booking(), _session()
    before = _snapshot(booking)

    with pytest.raises(SessionAlreadyStartedError):
        request_cancellation(booking, session, datetime(2025, 6, 1, 19, 0, tzinfo=timezone.utc), force=force)

    assert _snapshot(booking) == before


def test_naive_and_string_instants_are_read_as_utc():
    # sqlite hands back naive datetimes
    session = _session(datetime=datetime(2025, 6, 1, 18, 0))
    decision = evaluate_cancellation(_booking(), session, datetime(2025, 5, 31, 19, 0))
    assert decision.hours_until_session == 23


def test_missing_policy_falls_back_to_default_hours():
    session = _session(free_cancellation_hours=None)

    free = evaluate_cancellation(_booking(), session, datetime(2025, 5, 31, 18, 0, tzinfo=timezone.utc))
    pending = evaluate_cancellation(_booking(), session, datetime(2025, 5, 31, 18, 1, tzinfo=timezone.utc))

    assert free.free_cancellation_hours == 24
    assert free.type is CancellationType.immediate
    assert pending.type is CancellationType.pending


def test_zero_hour_policy_is_free_until_start():
    session = _session(free_cancellation_hours=0, allow_conditional_cancellation=False)
    decision = evaluate_cancellation(_booking(), session, datetime(2025, 6, 1, 17, 59, tzinfo=timezone.utc))
    assert decision.type is CancellationType.immediate


def test_cancelled_booking_cannot_be_cancelled_again():
    booking = _booking(
        cancelled_at=datetime(2025, 5, 20, tzinfo=timezone.utc),
        cancellation_status=CancellationStatus.cancelled,
    )
    with pytest.raises(InvalidStateError):
        request_cancellation(booking, _session(), datetime(2025, 5, 25, tzinfo=timezone.utc))


def test_repeated_pending_request_keeps_first_request_time():
    booking, session = _booking(), _session()
    first = datetime(2025, 5, 31, 19, 0, tzinfo=timezone.utc)
    request_cancellation(booking, session, first)

    decision = request_cancellation(booking, session, datetime(2025, 5, 31, 20, 0, tzinfo=timezone.utc))

    assert decision.type is CancellationType.pending
    assert booking.cancellation_requested_at == first


def test_pending_booking_inside_free_window_of_moved_session_cancels_immediately():
    booking, session = _booking(), _session()
    request_cancellation(booking, session, datetime(2025, 5, 31, 19, 0, tzinfo=timezone.utc))
    session.datetime = datetime(2025, 6, 8, 18, 0, tzinfo=timezone.utc)

    decision = request_cancellation(booking, session, datetime(2025, 5, 31, 20, 0, tzinfo=timezone.utc))

    assert decision.type is CancellationType.immediate
    assert booking_state(booking) is BookingState.cancelled_refunded


def test_resolve_replacement_refunds_original_member():
    booking, session = _booking(), _session()
    request_cancellation(booking, session, datetime(2025, 5, 31, 19, 0, tzinfo=timezone.utc))
    now = datetime(2025, 5, 31, 21, 0, tzinfo=timezone.utc)

    refund = resolve_replacement(booking, session, now, replaced_by_user_id=11)

    assert refund == Decimal("120.00")
    assert booking.cancelled_at == now
    assert booking.replaced_by_user_id == 11
    assert booking.refund_status == RefundStatus.completed
    assert booking_state(booking) is BookingState.cancelled_refunded


def test_resolve_replacement_requires_pending_booking():
    with pytest.raises(InvalidStateError):
        resolve_replacement(_booking(), _session(), datetime(2025, 5, 31, 21, 0, tzinfo=timezone.utc))


def test_outcome_messages_mention_amount_and_currency():
    booking, session = _booking(), _session()
    immediate = evaluate_cancellation(booking, session, datetime(2025, 5, 30, tzinfo=timezone.utc))
    pending = evaluate_cancellation(booking, session, datetime(2025, 5, 31, 19, 0, tzinfo=timezone.utc))

    assert outcome_message(immediate) == (
        "Booking cancelled successfully. Full refund of AED 120.00 has been processed."
    )
    assert "AED 120.00 if someone takes your spot" in outcome_message(pending)
