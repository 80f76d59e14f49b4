from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from padel_api.core.errors import ConflictError, NotFoundError, ValidationError
from padel_api.models.community import Community, CommunityMember
from padel_api.models.user import User, UserRole
from padel_api.schemas.community import CommunityCreate
from padel_api.services.notifications import PushNotifier
from padel_api.services.roles import assert_can_manage, assert_sub_community, get_community_or_404

logger = logging.getLogger(__name__)


async def _assert_manager_exists(db: AsyncSession, manager_id: Optional[int]) -> None:
    if manager_id is None:
        return
    manager = await db.get(User, manager_id)
    if not manager:
        raise NotFoundError("Manager not found", details={"manager_id": manager_id})
    if manager.role == UserRole.member:
        raise ValidationError(
            "Assigned manager must have the community_manager role",
            details={"manager_id": manager_id},
        )


async def create_community(db: AsyncSession, payload: CommunityCreate) -> Community:
    await _assert_manager_exists(db, payload.manager_id)
    community = Community(**payload.model_dump())
    db.add(community)
    await db.commit()
    await db.refresh(community)
    logger.info("Community created id=%d name=%r", community.id, community.name)
    return community


async def create_sub_community(
    db: AsyncSession,
    parent_id: int,
    payload: CommunityCreate,
    user: User,
) -> Community:
    await assert_can_manage(db, user, parent_id)
    parent = await get_community_or_404(db, parent_id)
    if parent.parent_community_id is not None:
        raise ValidationError("Sub-communities cannot be nested", details={"community_id": parent_id})
    await _assert_manager_exists(db, payload.manager_id)

    sub = Community(parent_community_id=parent_id, **payload.model_dump())
    db.add(sub)
    await db.commit()
    await db.refresh(sub)
    logger.info("Sub-community created id=%d parent=%d", sub.id, parent_id)
    return sub


async def list_communities(db: AsyncSession, top_level_only: bool = True) -> list[Community]:
    query = select(Community).order_by(Community.name.asc())
    if top_level_only:
        query = query.where(Community.parent_community_id.is_(None))
    r = await db.execute(query)
    return list(r.scalars().all())


async def list_sub_communities(db: AsyncSession, parent_id: int) -> list[Community]:
    await get_community_or_404(db, parent_id)
    r = await db.execute(
        select(Community)
        .where(Community.parent_community_id == parent_id)
        .order_by(Community.name.asc())
    )
    return list(r.scalars().all())


async def list_user_communities(db: AsyncSession, user: User) -> list[Community]:
    r = await db.execute(
        select(Community)
        .join(CommunityMember, CommunityMember.community_id == Community.id)
        .where(CommunityMember.user_id == user.id)
        .order_by(Community.name.asc())
    )
    return list(r.scalars().all())


# ── Membership ────────────────────────────────────────────────────────────────

async def _membership(db: AsyncSession, community_id: int, user_id: int) -> Optional[CommunityMember]:
    r = await db.execute(
        select(CommunityMember).where(
            CommunityMember.community_id == community_id,
            CommunityMember.user_id      == user_id,
        )
    )
    return r.scalar_one_or_none()


async def join_community(db: AsyncSession, community_id: int, user: User) -> CommunityMember:
    community = await get_community_or_404(db, community_id)
    if await _membership(db, community_id, user.id):
        raise ConflictError("You are already a member of this community")

    member = CommunityMember(community_id=community_id, user_id=user.id)
    db.add(member)
    # joining a sub-community implies membership of its parent
    if community.parent_community_id and not await _membership(db, community.parent_community_id, user.id):
        db.add(CommunityMember(community_id=community.parent_community_id, user_id=user.id))
    await db.commit()
    await db.refresh(member)
    logger.info("User id=%d joined community id=%d", user.id, community_id)
    return member


async def leave_community(db: AsyncSession, community_id: int, user: User) -> None:
    await get_community_or_404(db, community_id)
    member = await _membership(db, community_id, user.id)
    if not member:
        raise NotFoundError("You are not a member of this community")
    await db.delete(member)
    await db.commit()
    logger.info("User id=%d left community id=%d", user.id, community_id)


async def send_community_notification(
    db: AsyncSession,
    community_id: int,
    title: str,
    message: str,
    user: User,
    notifier: PushNotifier,
    sub_community_id: Optional[int] = None,
) -> dict:
    await assert_can_manage(db, user, community_id)
    if sub_community_id:
        await assert_sub_community(db, community_id, sub_community_id)
    logger.info("Sending notification to community id=%d sub=%s", community_id, sub_community_id)
    return await notifier.send_community_notification(
        db, community_id, title, message, sub_community_id=sub_community_id
    )
