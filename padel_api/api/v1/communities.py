from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from padel_api.core.deps import get_current_admin, get_current_manager, get_current_user, get_notifier
from padel_api.db.session import get_db
from padel_api.models.user import User
from padel_api.schemas.community import (
    CommunityCreate, CommunityNotificationCreate, CommunityRead, NotificationResult,
)
from padel_api.services import community_service
from padel_api.services.notifications import PushNotifier
from padel_api.services.roles import get_community_or_404

router = APIRouter(prefix="/communities", tags=["communities"])


@router.get("", response_model=list[CommunityRead])
async def list_communities(db: AsyncSession = Depends(get_db)):
    return await community_service.list_communities(db)


@router.get("/mine", response_model=list[CommunityRead])
async def my_communities(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await community_service.list_user_communities(db, current_user)


@router.post("", response_model=CommunityRead, status_code=status.HTTP_201_CREATED)
async def create_community(
    payload: CommunityCreate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    return await community_service.create_community(db, payload)


@router.get("/{community_id}", response_model=CommunityRead)
async def get_community(community_id: int, db: AsyncSession = Depends(get_db)):
    return await get_community_or_404(db, community_id)


@router.get("/{community_id}/sub-communities", response_model=list[CommunityRead])
async def list_sub_communities(community_id: int, db: AsyncSession = Depends(get_db)):
    return await community_service.list_sub_communities(db, community_id)


@router.post(
    "/{community_id}/sub-communities",
    response_model=CommunityRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_sub_community(
    community_id: int,
    payload: CommunityCreate,
    db: AsyncSession = Depends(get_db),
    manager: User = Depends(get_current_manager),
):
    return await community_service.create_sub_community(db, community_id, payload, manager)


@router.post("/{community_id}/join", status_code=status.HTTP_201_CREATED)
async def join_community(
    community_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    await community_service.join_community(db, community_id, current_user)
    return {"message": "Joined community", "community_id": community_id}


@router.post("/{community_id}/leave")
async def leave_community(
    community_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    await community_service.leave_community(db, community_id, current_user)
    return {"message": "Left community", "community_id": community_id}


@router.post("/{community_id}/notifications", response_model=NotificationResult)
async def notify_community(
    community_id: int,
    payload: CommunityNotificationCreate,
    db: AsyncSession = Depends(get_db),
    manager: User = Depends(get_current_manager),
    notifier: PushNotifier = Depends(get_notifier),
):
    """Push a message to every member (or one sub-community's members)."""
    return await community_service.send_community_notification(
        db, community_id, payload.title, payload.message, manager, notifier,
        sub_community_id=payload.sub_community_id,
    )
