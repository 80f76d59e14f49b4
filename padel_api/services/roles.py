from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from padel_api.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from padel_api.models.community import Community
from padel_api.models.user import User, UserRole


async def get_community_or_404(db: AsyncSession, community_id: int) -> Community:
    community = await db.get(Community, community_id)
    if not community:
        raise NotFoundError("Community not found", details={"community_id": community_id})
    return community


async def can_manage_community(db: AsyncSession, user: User, community_id: int) -> bool:
    """Super admins manage everything; managers their community and its sub-communities."""
    if user.role == UserRole.super_admin:
        return True
    community = await db.get(Community, community_id)
    if community is None:
        return False
    if community.manager_id == user.id:
        return True
    if community.parent_community_id is not None:
        parent = await db.get(Community, community.parent_community_id)
        return parent is not None and parent.manager_id == user.id
    return False


async def assert_can_manage(db: AsyncSession, user: User, community_id: int) -> None:
    await get_community_or_404(db, community_id)
    if not await can_manage_community(db, user, community_id):
        raise PermissionDeniedError(
            "You do not have permission to manage this community",
            details={"community_id": community_id},
        )


async def assert_sub_community(db: AsyncSession, community_id: int, sub_community_id: int) -> Community:
    r = await db.execute(
        select(Community).where(
            Community.id                  == sub_community_id,
            Community.parent_community_id == community_id,
        )
    )
    sub = r.scalar_one_or_none()
    if not sub:
        raise ValidationError(
            "Sub-community not found or does not belong to this community",
            details={"community_id": community_id, "sub_community_id": sub_community_id},
        )
    return sub
