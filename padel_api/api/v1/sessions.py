from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from padel_api.core.deps import get_current_manager, get_notifier, get_now
from padel_api.db.session import get_db
from padel_api.models.session import SessionStatus
from padel_api.models.user import User
from padel_api.schemas.community import NotificationResult
from padel_api.schemas.session import (
    AttendeeRead, ManagerStats, SessionCreate, SessionNotificationCreate,
    SessionRead, SessionUpdate,
)
from padel_api.services import session_service
from padel_api.services.notifications import PushNotifier

router = APIRouter(prefix="/sessions", tags=["sessions"])


# ── Member views ──────────────────────────────────────────────────────────────

@router.get("/available", response_model=list[SessionRead])
async def available_sessions(
    community_id: Optional[int] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """Upcoming, visible, not-yet-full sessions. Cached for 5 minutes."""
    return await session_service.list_available_sessions(db, now, community_id=community_id, limit=limit)


# ── Manager views ─────────────────────────────────────────────────────────────

@router.get("/manage", response_model=list[SessionRead])
async def managed_sessions(
    status_filter: Optional[SessionStatus] = Query(default=None, alias="status"),
    db: AsyncSession = Depends(get_db),
    manager: User = Depends(get_current_manager),
):
    return await session_service.list_manager_sessions(db, manager, status=status_filter)


@router.get("/manage/stats", response_model=ManagerStats)
async def stats(
    db: AsyncSession = Depends(get_db),
    manager: User = Depends(get_current_manager),
    now: datetime = Depends(get_now),
):
    return await session_service.manager_stats(db, manager, now)


@router.post("", response_model=SessionRead, status_code=status.HTTP_201_CREATED)
async def create_session(
    payload: SessionCreate,
    db: AsyncSession = Depends(get_db),
    manager: User = Depends(get_current_manager),
    now: datetime = Depends(get_now),
    notifier: PushNotifier = Depends(get_notifier),
):
    return await session_service.create_session(db, payload, manager, now, notifier)


@router.get("/{session_id}", response_model=SessionRead)
async def get_session(
    session_id: int,
    db: AsyncSession = Depends(get_db),
    now: datetime = Depends(get_now),
):
    session = await session_service.get_session_or_404(db, session_id)
    read = SessionRead.model_validate(session)
    return read.model_copy(update={"status": session_service.effective_status(session, now)})


@router.put("/{session_id}", response_model=SessionRead)
async def update_session(
    session_id: int,
    payload: SessionUpdate,
    db: AsyncSession = Depends(get_db),
    manager: User = Depends(get_current_manager),
):
    """Partial update; only the provided fields change."""
    return await session_service.update_session(db, session_id, payload, manager)


@router.delete("/{session_id}", response_model=SessionRead)
async def cancel_session(
    session_id: int,
    db: AsyncSession = Depends(get_db),
    manager: User = Depends(get_current_manager),
):
    return await session_service.cancel_session(db, session_id, manager)


@router.get("/{session_id}/attendees", response_model=list[AttendeeRead])
async def attendees(
    session_id: int,
    db: AsyncSession = Depends(get_db),
    manager: User = Depends(get_current_manager),
):
    return await session_service.get_attendees(db, session_id, manager)


@router.post("/{session_id}/notifications", response_model=NotificationResult)
async def notify_attendees(
    session_id: int,
    payload: SessionNotificationCreate,
    db: AsyncSession = Depends(get_db),
    manager: User = Depends(get_current_manager),
    notifier: PushNotifier = Depends(get_notifier),
):
    return await session_service.send_session_notification(
        db, session_id, payload.title, payload.message, manager, notifier
    )
