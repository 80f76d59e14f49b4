from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from padel_api.core.deps import get_current_manager, get_notifier, get_now
from padel_api.db.session import get_db
from padel_api.models.user import User
from padel_api.schemas.session_template import (
    BulkPublishPreview, BulkPublishRequest, BulkPublishResponse,
    SessionTemplateCreate, SessionTemplateRead, SessionTemplateUpdate,
)
from padel_api.services import template_service
from padel_api.services.notifications import PushNotifier

router = APIRouter(prefix="/session-templates", tags=["session-templates"])


@router.get("/community/{community_id}", response_model=list[SessionTemplateRead])
async def list_templates(
    community_id: int,
    include_inactive: bool = Query(default=False),
    db: AsyncSession = Depends(get_db),
    manager: User = Depends(get_current_manager),
):
    return await template_service.list_templates(db, community_id, manager, include_inactive=include_inactive)


@router.post("/bulk-preview", response_model=BulkPublishPreview)
async def bulk_preview(
    payload: BulkPublishRequest,
    manager: User = Depends(get_current_manager),
):
    """How many sessions a bulk publish would create, for the confirm button."""
    return template_service.preview_bulk_publish(payload.template_ids, payload.weeks_ahead)


@router.post(
    "/bulk-create-sessions",
    response_model=BulkPublishResponse,
    status_code=status.HTTP_201_CREATED,
)
async def bulk_create_sessions(
    payload: BulkPublishRequest,
    db: AsyncSession = Depends(get_db),
    manager: User = Depends(get_current_manager),
    now: datetime = Depends(get_now),
    notifier: PushNotifier = Depends(get_notifier),
):
    """
    Expand the selected templates into sessions for the next ``weeks_ahead``
    weeks. Partial success still returns 201; check ``skipped`` and ``errors``.
    """
    result = await template_service.bulk_publish(
        db, manager, payload.template_ids, payload.weeks_ahead, now, notifier,
        start_date=payload.start_date,
    )
    return BulkPublishResponse(
        message=template_service.publish_message(result),
        created=result.created,
        sessions=result.sessions,
        skipped=result.skipped,
        errors=result.errors,
    )


@router.post("", response_model=SessionTemplateRead, status_code=status.HTTP_201_CREATED)
async def create_template(
    payload: SessionTemplateCreate,
    db: AsyncSession = Depends(get_db),
    manager: User = Depends(get_current_manager),
):
    return await template_service.create_template(db, payload, manager)


@router.get("/{template_id}", response_model=SessionTemplateRead)
async def get_template(
    template_id: int,
    db: AsyncSession = Depends(get_db),
    manager: User = Depends(get_current_manager),
):
    return await template_service.get_template(db, template_id, manager)


@router.put("/{template_id}", response_model=SessionTemplateRead)
async def update_template(
    template_id: int,
    payload: SessionTemplateUpdate,
    db: AsyncSession = Depends(get_db),
    manager: User = Depends(get_current_manager),
):
    return await template_service.update_template(db, template_id, payload, manager)


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_template(
    template_id: int,
    db: AsyncSession = Depends(get_db),
    manager: User = Depends(get_current_manager),
):
    await template_service.delete_template(db, template_id, manager)
