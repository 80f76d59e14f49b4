from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

import stripe
from fastapi import APIRouter, Body, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from padel_api.core.config import settings
from padel_api.core.deps import get_current_user, get_notifier, get_now
from padel_api.db.session import get_db
from padel_api.models.user import User
from padel_api.schemas.booking import (
    BookingCancelRequest, BookingCreate, BookingCreated, BookingDetail,
    CancellationResponse, TakeSpotRequest,
)
from padel_api.services import booking_service
from padel_api.services.notifications import PushNotifier

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.get("", response_model=list[BookingDetail])
async def my_bookings(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await booking_service.list_user_bookings(db, current_user)


@router.post("", response_model=BookingCreated, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    now: datetime = Depends(get_now),
):
    """Reserve a spot and charge the session price."""
    booking, payment = await booking_service.create_booking(
        db, payload.session_id, current_user, now, payment_method_id=payload.payment_method_id
    )
    return {"booking": booking, "payment": payment}


@router.get("/{booking_id}", response_model=BookingDetail)
async def get_booking(
    booking_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await booking_service.get_booking(db, booking_id, current_user)


@router.delete("/{booking_id}", response_model=CancellationResponse)
async def cancel_booking(
    booking_id: int,
    payload: Optional[BookingCancelRequest] = Body(default=None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    now: datetime = Depends(get_now),
    notifier: PushNotifier = Depends(get_notifier),
):
    """
    Cancel a booking. Inside the free window this refunds immediately;
    afterwards it becomes a pending request refunded only if the spot is taken.
    """
    force = payload.force if payload else False
    return await booking_service.cancel_booking(db, booking_id, current_user, now, notifier, force=force)


@router.post("/{booking_id}/take-spot", response_model=BookingCreated, status_code=status.HTTP_201_CREATED)
async def take_spot(
    booking_id: int,
    payload: TakeSpotRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    now: datetime = Depends(get_now),
    notifier: PushNotifier = Depends(get_notifier),
):
    booking, payment = await booking_service.take_pending_spot(
        db, booking_id, current_user, now, notifier, payment_method_id=payload.payment_method_id
    )
    return {"booking": booking, "payment": payment}


# ── Stripe webhook ────────────────────────────────────────────────────────────

@router.post("/stripe/webhook", include_in_schema=False)
async def stripe_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    """
    Receives Stripe payment_intent.succeeded events.
    Register in Stripe Dashboard → Webhooks:
      https://your-domain.com/api/v1/bookings/stripe/webhook
    """
    payload    = await request.body()
    sig_header = request.headers.get("stripe-signature", "")

    if not settings.STRIPE_WEBHOOK_SECRET:
        raise HTTPException(status_code=500, detail="Webhook secret not configured")

    try:
        event = stripe.Webhook.construct_event(
            payload, sig_header, settings.STRIPE_WEBHOOK_SECRET
        )
    except (ValueError, stripe.SignatureVerificationError):
        raise HTTPException(status_code=400, detail="Invalid Stripe signature")

    await booking_service.handle_stripe_event(db, event)
    return {"received": True}
