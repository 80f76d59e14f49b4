from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, field_validator

from padel_api.core.timeutils import ensure_utc
from padel_api.models.booking import BookingPaymentStatus, CancellationStatus, RefundStatus
from padel_api.models.payment import PaymentStatus
from padel_api.schemas.session import SessionRead


class BookingCreate(BaseModel):
    session_id:        int
    payment_method_id: Optional[str] = None


class TakeSpotRequest(BaseModel):
    payment_method_id: Optional[str] = None


class BookingCancelRequest(BaseModel):
    # member insists even though the session has no conditional cancellation
    force: bool = False


class PaymentRead(BaseModel):
    id:                       int
    amount:                   Decimal
    platform_fee:             Decimal
    net_amount:               Decimal
    status:                   PaymentStatus
    stripe_payment_intent_id: Optional[str]
    created_at:               datetime

    model_config = {"from_attributes": True}


class BookingRead(BaseModel):
    id:                        int
    user_id:                   int
    session_id:                int
    payment_status:            BookingPaymentStatus
    timestamp:                 datetime
    cancelled_at:              Optional[datetime]
    cancellation_status:       Optional[CancellationStatus]
    cancellation_requested_at: Optional[datetime]
    refund_status:             Optional[RefundStatus]
    refund_amount:             Optional[Decimal]
    replaced_by_user_id:       Optional[int]

    model_config = {"from_attributes": True}

    @field_validator("timestamp", "cancelled_at", "cancellation_requested_at", mode="before")
    @classmethod
    def _normalise_instants(cls, v):
        return ensure_utc(v) if isinstance(v, (str, datetime)) else v


class BookingDetail(BookingRead):
    session:  Optional[SessionRead] = None
    payments: list[PaymentRead] = []
    is_paid:  bool = False


class BookingCreated(BaseModel):
    booking: BookingRead
    payment: PaymentRead


class CancellationResponse(BaseModel):
    type:          str  # "immediate" | "pending"
    message:       str
    refund_amount: Decimal
    booking:       BookingRead
