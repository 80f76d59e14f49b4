from __future__ import annotations

import itertools
from datetime import datetime, time, timezone
from decimal import Decimal
from typing import Optional

from padel_api.core.security import hash_password
from padel_api.models.booking import Booking, BookingPaymentStatus
from padel_api.models.community import Community, CommunityMember
from padel_api.models.payment import Payment, PaymentStatus
from padel_api.models.session import Session, SessionStatus
from padel_api.models.session_template import SessionTemplate
from padel_api.models.user import User, UserRole

_seq = itertools.count(1)

SESSION_AT = datetime(2025, 6, 1, 18, 0, tzinfo=timezone.utc)


async def _save(db, obj):
    db.add(obj)
    await db.commit()
    await db.refresh(obj)
    return obj


async def make_user(db, role: UserRole = UserRole.member, push_token: Optional[str] = None, **kw) -> User:
    n = next(_seq)
    return await _save(db, User(
        email=kw.pop("email", f"player{n}@example.com"),
        hashed_password=hash_password("secret123"),
        role=role,
        name=kw.pop("name", f"Player {n}"),
        push_token=push_token if push_token is not None else f"ExponentPushToken[{n}]",
        **kw,
    ))


async def make_community(db, manager: Optional[User] = None, parent: Optional[Community] = None, **kw) -> Community:
    return await _save(db, Community(
        name=kw.pop("name", f"Community {next(_seq)}"),
        manager_id=manager.id if manager else None,
        parent_community_id=parent.id if parent else None,
        **kw,
    ))


async def add_member(db, community: Community, user: User) -> CommunityMember:
    return await _save(db, CommunityMember(community_id=community.id, user_id=user.id))


async def make_session(db, community: Community, **kw) -> Session:
    fields = {
        "title":                          "Evening Padel",
        "location":                       "Court 1",
        "datetime":                       SESSION_AT,
        "price":                          Decimal("100.00"),
        "max_players":                    4,
        "booked_count":                   0,
        "status":                         SessionStatus.active,
        "free_cancellation_hours":        24,
        "allow_conditional_cancellation": True,
    }
    fields.update(kw)
    return await _save(db, Session(community_id=community.id, **fields))


async def make_template(db, community: Community, **kw) -> SessionTemplate:
    fields = {
        "title":       "Sunday Social",
        "day_of_week": 0,
        "time_of_day": time(18, 0),
        "price":       Decimal("80.00"),
        "max_players": 8,
    }
    fields.update(kw)
    return await _save(db, SessionTemplate(community_id=community.id, **fields))


async def make_paid_booking(db, session: Session, user: User, intent_id: Optional[str] = None) -> Booking:
    """A completed booking holding one seat, as the booking flow leaves it."""
    booking = Booking(user_id=user.id, session_id=session.id, payment_status=BookingPaymentStatus.completed)
    booking.payments.append(Payment(
        amount=session.price,
        platform_fee=Decimal("5.00"),
        net_amount=session.price - Decimal("5.00"),
        status=PaymentStatus.succeeded,
        stripe_payment_intent_id=intent_id,
    ))
    session.booked_count += 1
    db.add(session)
    return await _save(db, booking)
