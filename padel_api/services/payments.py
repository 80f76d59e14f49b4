"""
Stripe charges and refunds for session bookings.

Without STRIPE_SECRET_KEY (local dev) charges are auto-confirmed and refunds
only update our own records.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

import stripe

from padel_api.core.config import settings
from padel_api.core.errors import PaymentError
from padel_api.models.payment import Payment, PaymentStatus

logger = logging.getLogger(__name__)

stripe.api_key = settings.STRIPE_SECRET_KEY

_CENTS = Decimal("0.01")


@dataclass(frozen=True)
class ChargeResult:
    status: PaymentStatus
    payment_intent_id: Optional[str]


def split_amount(amount: Decimal) -> tuple[Decimal, Decimal]:
    """Return (platform_fee, net_amount) for a gross amount."""
    fee = (amount * Decimal(str(settings.PLATFORM_FEE_PERCENT)) / 100).quantize(_CENTS, ROUND_HALF_UP)
    return fee, amount - fee


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), ROUND_HALF_UP))


def charge(
    amount: Decimal,
    payment_method_id: Optional[str],
    description: str,
    metadata: dict,
) -> ChargeResult:
    if not settings.STRIPE_SECRET_KEY:
        logger.warning("STRIPE_SECRET_KEY not set — payment auto-confirmed (dev mode)")
        return ChargeResult(status=PaymentStatus.succeeded, payment_intent_id=None)

    try:
        intent = stripe.PaymentIntent.create(
            amount=to_minor_units(amount),
            currency=settings.CURRENCY.lower(),
            payment_method=payment_method_id,
            confirm=True,
            automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
            metadata={k: str(v) for k, v in metadata.items()},
            description=description,
        )
    except stripe.StripeError as exc:
        logger.error("Stripe charge failed: %s", exc)
        raise PaymentError(f"Payment failed: {exc}")

    status = PaymentStatus.succeeded if intent.status == "succeeded" else PaymentStatus.pending
    logger.info("Stripe PaymentIntent created: %s (%s)", intent.id, intent.status)
    return ChargeResult(status=status, payment_intent_id=intent.id)


def refund_intent(payment_intent_id: Optional[str]) -> Optional[str]:
    """Refund a PaymentIntent in full. Returns the Stripe refund id, None in dev mode."""
    if not settings.STRIPE_SECRET_KEY or not payment_intent_id:
        return None
    try:
        result = stripe.Refund.create(payment_intent=payment_intent_id)
    except stripe.StripeError as exc:
        logger.error("Stripe refund failed for intent %s: %s", payment_intent_id, exc)
        raise PaymentError(f"Refund failed: {exc}")
    logger.info("Stripe refund %s issued for intent %s", result.id, payment_intent_id)
    return result.id


def cancel_intent(payment_intent_id: Optional[str]) -> None:
    """Cancel a PaymentIntent that never reached succeeded. No-op in dev mode."""
    if not settings.STRIPE_SECRET_KEY or not payment_intent_id:
        return
    try:
        stripe.PaymentIntent.cancel(payment_intent_id)
    except stripe.StripeError as exc:
        logger.error("Stripe cancel failed for intent %s: %s", payment_intent_id, exc)
        raise PaymentError(f"Could not cancel payment: {exc}")
    logger.info("Stripe PaymentIntent %s cancelled", payment_intent_id)


def refund(payment: Payment) -> None:
    """Refund one payment in full and mark it refunded."""
    if payment.status == PaymentStatus.refunded:
        return
    if not (settings.STRIPE_SECRET_KEY and payment.stripe_payment_intent_id):
        logger.warning("No Stripe intent for payment id=%s, refund recorded only", payment.id)
    payment.stripe_refund_id = refund_intent(payment.stripe_payment_intent_id) or payment.stripe_refund_id
    payment.status = PaymentStatus.refunded


def refund_all_succeeded(payments: list[Payment]) -> int:
    refunded = 0
    for payment in payments:
        if payment.status == PaymentStatus.succeeded:
            refund(payment)
            refunded += 1
    return refunded
