from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from padel_api.core.errors import NotFoundError, ValidationError
from padel_api.core.timeutils import ensure_utc
from padel_api.models.booking import Booking, CancellationStatus
from padel_api.models.community import Community
from padel_api.models.payment import Payment, PaymentStatus
from padel_api.models.session import Session, SessionStatus
from padel_api.models.user import User, UserRole
from padel_api.schemas.session import SessionCreate, SessionRead, SessionUpdate
from padel_api.services.cache import available_sessions_cache
from padel_api.services.notifications import PushNotifier
from padel_api.services.roles import assert_can_manage, assert_sub_community

logger = logging.getLogger(__name__)


def effective_status(session: Session, now: datetime) -> SessionStatus:
    if session.status == SessionStatus.active and ensure_utc(session.datetime) < ensure_utc(now):
        return SessionStatus.completed
    return session.status


async def get_session_or_404(db: AsyncSession, session_id: int) -> Session:
    session = await db.get(Session, session_id)
    if not session:
        raise NotFoundError("Session not found", details={"session_id": session_id})
    return session


async def invalidate_listings() -> None:
    await available_sessions_cache.clear()


# ── Create ────────────────────────────────────────────────────────────────────

async def insert_session(db: AsyncSession, fields: dict, created_by: Optional[int]) -> Session:
    """Insert and commit one session row. Constraint violations propagate."""
    session = Session(created_by=created_by, status=SessionStatus.active, booked_count=0, **fields)
    db.add(session)
    await db.commit()
    await db.refresh(session)
    return session


async def announce_session(db: AsyncSession, session: Session, notifier: PushNotifier) -> None:
    result = await notifier.notify_new_session(
        db,
        session_id=session.id,
        session_title=session.title,
        session_datetime=session.datetime,
        community_id=session.community_id,
        sub_community_id=session.sub_community_id,
    )
    logger.info(
        "New session id=%d announced: %d sent, %d failed",
        session.id, result.get("sent", 0), result.get("failed", 0),
    )


async def create_session(
    db: AsyncSession,
    payload: SessionCreate,
    manager: User,
    now: datetime,
    notifier: PushNotifier,
) -> Session:
    await assert_can_manage(db, manager, payload.community_id)
    if payload.sub_community_id:
        await assert_sub_community(db, payload.community_id, payload.sub_community_id)
    if ensure_utc(payload.datetime) < ensure_utc(now):
        raise ValidationError("Session date must be in the future")

    session = await insert_session(db, payload.model_dump(), created_by=manager.id)
    logger.info(
        "Session created id=%d community=%d at=%s by user=%d",
        session.id, session.community_id, session.datetime, manager.id,
    )
    await invalidate_listings()
    await announce_session(db, session, notifier)
    return session


# ── Update / cancel ───────────────────────────────────────────────────────────

def validate_session_update(session: Session, updates: dict) -> None:
    if "max_players" in updates:
        new_max = updates["max_players"]
        if new_max is None or new_max < 1:
            raise ValidationError("max_players must be at least 1")
        if new_max < session.booked_count:
            raise ValidationError(
                f"Cannot reduce max players below the current booking count. "
                f"{session.booked_count} players have already booked (minimum allowed is {session.booked_count}).",
                details={"booked_count": session.booked_count, "requested_max_players": new_max},
            )
    if "price" in updates:
        price = updates["price"]
        if price is None or Decimal(str(price)) < 0:
            raise ValidationError("Price must be a non-negative number")
    if "free_cancellation_hours" in updates:
        hours = updates["free_cancellation_hours"]
        if hours is not None and hours < 0:
            raise ValidationError("free_cancellation_hours must be non-negative")
    for required in ("title", "location", "datetime", "visibility", "allow_conditional_cancellation"):
        if required in updates and updates[required] is None:
            raise ValidationError(f"{required} cannot be empty")


async def update_session(
    db: AsyncSession,
    session_id: int,
    payload: SessionUpdate,
    manager: User,
) -> Session:
    session = await get_session_or_404(db, session_id)
    await assert_can_manage(db, manager, session.community_id)

    updates = payload.model_dump(exclude_unset=True)
    if not updates:
        raise ValidationError("No fields provided to update")
    validate_session_update(session, updates)
    if updates.get("sub_community_id"):
        await assert_sub_community(db, session.community_id, updates["sub_community_id"])

    for field, value in updates.items():
        setattr(session, field, value)
    await db.commit()
    await db.refresh(session)
    await invalidate_listings()
    logger.info("Session updated id=%d fields=%s", session.id, sorted(updates))
    return session


async def cancel_session(db: AsyncSession, session_id: int, manager: User) -> Session:
    session = await get_session_or_404(db, session_id)
    await assert_can_manage(db, manager, session.community_id)
    if session.status == SessionStatus.cancelled:
        raise ValidationError("Session is already cancelled")
    session.status = SessionStatus.cancelled
    await db.commit()
    await db.refresh(session)
    await invalidate_listings()
    logger.info("Session cancelled id=%d by user=%d", session.id, manager.id)
    return session


# ── Reads ─────────────────────────────────────────────────────────────────────

async def list_available_sessions(
    db: AsyncSession,
    now: datetime,
    community_id: Optional[int] = None,
    limit: int = 50,
) -> list[dict]:
    cache_key = f"{community_id or 'all'}:{limit}"
    cached = await available_sessions_cache.get(cache_key)
    if cached is not None:
        # cache entries may be up to 5 min old; drop anything that has started since
        return [s for s in cached if ensure_utc(s["datetime"]) >= ensure_utc(now)]

    query = (
        select(Session)
        .where(
            Session.status       == SessionStatus.active,
            Session.visibility   == True,  # noqa: E712
            Session.datetime     >= ensure_utc(now),
            Session.booked_count <  Session.max_players,
        )
        .order_by(Session.datetime.asc())
        .limit(limit)
    )
    if community_id:
        query = query.where(
            (Session.community_id == community_id) | (Session.sub_community_id == community_id)
        )
    r = await db.execute(query)
    sessions = [SessionRead.model_validate(s).model_dump(mode="json") for s in r.scalars().all()]
    await available_sessions_cache.set(cache_key, sessions)
    return sessions


async def list_manager_sessions(
    db: AsyncSession,
    manager: User,
    status: Optional[SessionStatus] = None,
) -> list[Session]:
    query = select(Session).order_by(Session.datetime.desc())
    if manager.role != UserRole.super_admin:
        query = query.where(Session.community_id.in_(_managed_community_ids(manager)))
    if status:
        query = query.where(Session.status == status)
    r = await db.execute(query)
    return list(r.scalars().all())


def _managed_community_ids(manager: User):
    parent_ids = select(Community.id).where(Community.manager_id == manager.id)
    return select(Community.id).where(
        (Community.manager_id == manager.id) | (Community.parent_community_id.in_(parent_ids))
    )


async def get_attendees(db: AsyncSession, session_id: int, manager: User) -> list[dict]:
    session = await get_session_or_404(db, session_id)
    await assert_can_manage(db, manager, session.community_id)
    r = await db.execute(
        select(Booking, User)
        .join(User, User.id == Booking.user_id)
        .where(Booking.session_id == session_id, Booking.cancelled_at.is_(None))
        .order_by(Booking.timestamp.asc())
    )
    return [
        {
            "booking_id":          booking.id,
            "user_id":             user.id,
            "name":                user.name,
            "email":               user.email,
            "phone":               user.phone,
            "payment_status":      booking.payment_status.value,
            "cancellation_status": booking.cancellation_status.value if booking.cancellation_status else None,
        }
        for booking, user in r.all()
    ]


async def send_session_notification(
    db: AsyncSession,
    session_id: int,
    title: str,
    message: str,
    manager: User,
    notifier: PushNotifier,
) -> dict:
    session = await get_session_or_404(db, session_id)
    await assert_can_manage(db, manager, session.community_id)
    logger.info("Sending notification for session id=%d", session_id)
    return await notifier.send_session_notification(db, session_id, title, message)


async def manager_stats(db: AsyncSession, manager: User, now: datetime) -> dict:
    now = ensure_utc(now)
    session_ids = select(Session.id).where(Session.community_id.in_(_managed_community_ids(manager)))
    if manager.role == UserRole.super_admin:
        session_ids = select(Session.id)

    not_cancelled = Session.status != SessionStatus.cancelled
    upcoming = await db.scalar(
        select(func.count(Session.id)).where(Session.id.in_(session_ids), not_cancelled, Session.datetime >= now)
    )
    past = await db.scalar(
        select(func.count(Session.id)).where(Session.id.in_(session_ids), not_cancelled, Session.datetime < now)
    )
    active_bookings = await db.scalar(
        select(func.count(Booking.id)).where(Booking.session_id.in_(session_ids), Booking.cancelled_at.is_(None))
    )
    revenue = await db.scalar(
        select(func.sum(Payment.amount))
        .join(Booking, Booking.id == Payment.booking_id)
        .where(Booking.session_id.in_(session_ids), Payment.status == PaymentStatus.succeeded)
    ) or 0
    pending = await db.scalar(
        select(func.count(Booking.id)).where(
            Booking.session_id.in_(session_ids),
            Booking.cancellation_status == CancellationStatus.pending_replacement,
            Booking.cancelled_at.is_(None),
        )
    )
    members = await db.scalar(
        select(func.count(func.distinct(Booking.user_id))).where(
            Booking.session_id.in_(session_ids), Booking.cancelled_at.is_(None)
        )
    )
    return {
        "upcoming_sessions":     upcoming or 0,
        "past_sessions":         past or 0,
        "total_bookings":        active_bookings or 0,
        "total_revenue":         round(float(revenue), 2),
        "total_members":         members or 0,
        "pending_cancellations": pending or 0,
    }
