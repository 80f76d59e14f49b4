"""
Session template CRUD and bulk publishing.

Bulk publish expands each selected template over ``weeks_ahead`` weeks and
inserts one Session per (template, week). Every instance is committed on
its own: a failure is rolled back, recorded in ``errors`` and the batch
carries on. Instances whose (template_id, datetime) already exist are
reported in ``skipped``, which makes a retry after partial failure safe.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from padel_api.core.errors import NotFoundError, ValidationError
from padel_api.core.timeutils import ensure_utc, isoformat_z
from padel_api.models.community import Community
from padel_api.models.session import Session
from padel_api.models.session_template import SessionTemplate
from padel_api.models.user import User
from padel_api.schemas.session import SessionRead
from padel_api.schemas.session_template import SessionTemplateCreate, SessionTemplateUpdate
from padel_api.services import session_service
from padel_api.services.notifications import PushNotifier
from padel_api.services.roles import assert_can_manage, assert_sub_community
from padel_api.services.template_expansion import (
    BulkPublishResult,
    SessionDraft,
    expand_template,
    expected_instance_count,
    publish_label,
    resolve_anchor,
    validate_weeks_ahead,
)

logger = logging.getLogger(__name__)


async def _template_or_404(db: AsyncSession, template_id: int) -> SessionTemplate:
    template = await db.get(SessionTemplate, template_id)
    if not template:
        raise NotFoundError("Template not found", details={"template_id": template_id})
    return template


# ── CRUD ──────────────────────────────────────────────────────────────────────

async def list_templates(
    db: AsyncSession,
    community_id: int,
    user: User,
    include_inactive: bool = False,
) -> list[SessionTemplate]:
    await assert_can_manage(db, user, community_id)
    query = (
        select(SessionTemplate)
        .where(SessionTemplate.community_id == community_id)
        .order_by(SessionTemplate.day_of_week.asc(), SessionTemplate.time_of_day.asc())
    )
    if not include_inactive:
        query = query.where(SessionTemplate.is_active == True)  # noqa: E712
    r = await db.execute(query)
    return list(r.scalars().all())


async def get_template(db: AsyncSession, template_id: int, user: User) -> SessionTemplate:
    template = await _template_or_404(db, template_id)
    await assert_can_manage(db, user, template.community_id)
    return template


async def create_template(db: AsyncSession, payload: SessionTemplateCreate, user: User) -> SessionTemplate:
    await assert_can_manage(db, user, payload.community_id)
    if payload.sub_community_id:
        await assert_sub_community(db, payload.community_id, payload.sub_community_id)

    template = SessionTemplate(created_by=user.id, **payload.model_dump())
    db.add(template)
    await db.commit()
    await db.refresh(template)
    logger.info(
        "Template created id=%d community=%d day=%d time=%s",
        template.id, template.community_id, template.day_of_week, template.time_of_day,
    )
    return template


async def update_template(
    db: AsyncSession,
    template_id: int,
    payload: SessionTemplateUpdate,
    user: User,
) -> SessionTemplate:
    template = await get_template(db, template_id, user)
    updates = payload.model_dump(exclude_unset=True)
    if not updates:
        raise ValidationError("No fields provided to update")
    for required in ("title", "day_of_week", "time_of_day", "price", "max_players", "is_active"):
        if required in updates and updates[required] is None:
            raise ValidationError(f"{required} cannot be empty")
    if updates.get("sub_community_id"):
        await assert_sub_community(db, template.community_id, updates["sub_community_id"])

    for field, value in updates.items():
        setattr(template, field, value)
    await db.commit()
    await db.refresh(template)
    logger.info("Template updated id=%d fields=%s", template.id, sorted(updates))
    return template


async def delete_template(db: AsyncSession, template_id: int, user: User) -> None:
    template = await get_template(db, template_id, user)
    # sessions already published keep existing; the FK nulls their template link
    await db.delete(template)
    await db.commit()
    logger.info("Template deleted id=%d", template_id)


# ── Bulk publish ──────────────────────────────────────────────────────────────

def preview_bulk_publish(template_ids: Iterable[int], weeks_ahead: int) -> dict:
    ids = list(template_ids)
    validate_weeks_ahead(weeks_ahead)
    if not ids:
        raise ValidationError("Select at least one template")
    total = expected_instance_count(ids, weeks_ahead)
    return {
        "template_count": len(set(ids)),
        "weeks_ahead":    weeks_ahead,
        "total_sessions": total,
        "confirm_label":  publish_label(total),
    }


async def _load_templates(db: AsyncSession, template_ids: list[int]) -> list[SessionTemplate]:
    r = await db.execute(select(SessionTemplate).where(SessionTemplate.id.in_(template_ids)))
    by_id = {t.id: t for t in r.scalars().all()}
    missing = [tid for tid in template_ids if tid not in by_id]
    if missing:
        raise NotFoundError(
            "Some templates were not found",
            details={"missing_template_ids": missing},
        )
    return [by_id[tid] for tid in template_ids]


async def _instance_location(db: AsyncSession, template: SessionTemplate) -> str:
    if template.sub_community_id:
        sub = await db.get(Community, template.sub_community_id)
        if sub and (sub.location or sub.name):
            return sub.location or sub.name
    community = await db.get(Community, template.community_id)
    if community and community.location:
        return community.location
    return "TBD"


async def _existing_keys(db: AsyncSession, drafts: list[SessionDraft]) -> set[tuple[int, datetime]]:
    if not drafts:
        return set()
    r = await db.execute(
        select(Session.created_from_template_id, Session.datetime).where(
            Session.created_from_template_id.in_(sorted({d.template_id for d in drafts})),
            Session.datetime >= min(d.datetime for d in drafts),
        )
    )
    return {(tid, ensure_utc(when)) for tid, when in r.all()}


_DUPLICATE = "Session already exists for this template and time"


def _is_duplicate(exc: IntegrityError) -> bool:
    text = str(exc.orig).lower()
    return "uq_sessions_template_datetime" in text or "unique" in text


def _failure(draft: SessionDraft, message: str) -> dict:
    return {
        "template_id":    draft.template_id,
        "template_title": draft.template_title,
        "week":           draft.week,
        "datetime":       isoformat_z(draft.datetime),
        "error":          message,
    }


async def bulk_publish(
    db: AsyncSession,
    user: User,
    template_ids: list[int],
    weeks_ahead: int,
    now: datetime,
    notifier: PushNotifier,
    start_date: Optional[date] = None,
) -> BulkPublishResult:
    validate_weeks_ahead(weeks_ahead)
    if not template_ids:
        raise ValidationError("Select at least one template")
    # preserve selection order, drop repeats
    ids = list(dict.fromkeys(template_ids))

    templates = await _load_templates(db, ids)
    for community_id in sorted({t.community_id for t in templates}):
        await assert_can_manage(db, user, community_id)

    anchor = resolve_anchor(now, start_date)
    drafts: list[SessionDraft] = []
    for template in templates:
        location = await _instance_location(db, template)
        drafts.extend(expand_template(template, weeks_ahead, anchor, location=location))

    result = BulkPublishResult()
    existing = await _existing_keys(db, drafts)
    # a rollback expires every loaded instance, so keep plain values from here on
    user_id, template_count = user.id, len(templates)

    for draft in drafts:
        if (draft.template_id, draft.datetime) in existing:
            result.skipped.append(_failure(draft, _DUPLICATE))
            continue
        try:
            session = await session_service.insert_session(db, draft.session_fields(), created_by=user_id)
        except IntegrityError as exc:
            await db.rollback()
            if _is_duplicate(exc):
                logger.warning(
                    "Bulk publish: template=%d week=%d already published", draft.template_id, draft.week
                )
                result.skipped.append(_failure(draft, _DUPLICATE))
            else:
                logger.error(
                    "Bulk publish: template=%d week=%d rejected: %s", draft.template_id, draft.week, exc.orig
                )
                result.errors.append(_failure(draft, str(exc.orig)))
            continue
        except Exception as exc:
            await db.rollback()
            logger.error(
                "Bulk publish: template=%d week=%d failed: %s",
                draft.template_id, draft.week, exc,
            )
            result.errors.append(_failure(draft, str(exc)))
            continue

        result.created += 1
        result.sessions.append(SessionRead.model_validate(session))
        await session_service.announce_session(db, session, notifier)

    if result.created:
        await session_service.invalidate_listings()

    logger.info(
        "Bulk publish by user=%d: %d templates x %d weeks -> %d created, %d skipped, %d errors",
        user_id, template_count, weeks_ahead, result.created, len(result.skipped), len(result.errors),
    )
    return result


def publish_message(result: BulkPublishResult) -> str:
    message = f"Successfully created {result.created} session{'' if result.created == 1 else 's'}"
    if result.skipped:
        message += f", {len(result.skipped)} already existed"
    if result.errors:
        message += f", {len(result.errors)} failed"
    return message
