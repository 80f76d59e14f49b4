"""
Push notification fan-out.

Messages go to an Expo-compatible push gateway (PUSH_API_URL) in batches of
100. Every public method is best-effort: failures are logged and counted,
never raised into the booking or publishing flow that triggered them.
"""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Optional
from zoneinfo import ZoneInfo

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from padel_api.core.config import settings
from padel_api.core.timeutils import ensure_utc
from padel_api.models.booking import Booking, BookingPaymentStatus
from padel_api.models.community import Community, CommunityMember
from padel_api.models.user import User

logger = logging.getLogger(__name__)

_BATCH_SIZE = 100


class PushNotifier:
    def __init__(self, api_url: Optional[str] = None, timeout: float = 10.0):
        self.api_url = api_url or settings.PUSH_API_URL
        self.timeout = timeout

    # ── Transport ─────────────────────────────────────────────────────────────

    async def _post(self, messages: list[dict]) -> tuple[int, int]:
        sent = failed = 0
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for start in range(0, len(messages), _BATCH_SIZE):
                batch = messages[start:start + _BATCH_SIZE]
                try:
                    resp = await client.post(self.api_url, json=batch)
                    resp.raise_for_status()
                except httpx.HTTPError as exc:
                    logger.warning("Push batch of %d failed: %s", len(batch), exc)
                    failed += len(batch)
                    continue
                tickets = resp.json().get("data", [])
                ok = sum(1 for t in tickets if t.get("status") == "ok")
                sent   += ok
                failed += len(batch) - ok
        return sent, failed

    async def send_to_users(
        self,
        db: AsyncSession,
        user_ids: Iterable[int],
        title: str,
        body: str,
        data: Optional[dict[str, Any]] = None,
    ) -> dict:
        ids = sorted(set(user_ids))
        if not ids:
            return {"sent": 0, "failed": 0}
        r = await db.execute(select(User.id, User.push_token).where(User.id.in_(ids)))
        tokens = [token for _, token in r.all() if token]
        if not tokens:
            logger.info("No push tokens for %d users", len(ids))
            return {"sent": 0, "failed": len(ids)}
        if not settings.PUSH_ENABLED:
            logger.info("Push disabled, skipping %d messages (%s)", len(tokens), title)
            return {"sent": 0, "failed": 0}

        messages = [
            {"to": token, "title": title, "body": body, "data": data or {}, "sound": "default"}
            for token in tokens
        ]
        sent, failed = await self._post(messages)
        failed += len(ids) - len(tokens)
        logger.info("Push '%s': %d sent, %d failed", title, sent, failed)
        return {"sent": sent, "failed": failed}

    # ── Audiences ─────────────────────────────────────────────────────────────

    async def _community_member_ids(
        self,
        db: AsyncSession,
        community_id: int,
        sub_community_id: Optional[int] = None,
    ) -> list[int]:
        target = sub_community_id or community_id
        r = await db.execute(
            select(CommunityMember.user_id).where(CommunityMember.community_id == target)
        )
        return list(r.scalars().all())

    async def send_community_notification(
        self,
        db: AsyncSession,
        community_id: int,
        title: str,
        message: str,
        sub_community_id: Optional[int] = None,
    ) -> dict:
        user_ids = await self._community_member_ids(db, community_id, sub_community_id)
        result = await self._safe_send(
            db, user_ids, title, message,
            {"type": "community_notification", "communityId": community_id, "subCommunityId": sub_community_id},
        )
        return {**result, "total_recipients": len(user_ids)}

    async def send_session_notification(
        self,
        db: AsyncSession,
        session_id: int,
        title: str,
        message: str,
    ) -> dict:
        r = await db.execute(
            select(Booking.user_id).where(
                Booking.session_id     == session_id,
                Booking.payment_status == BookingPaymentStatus.completed,
                Booking.cancelled_at.is_(None),
            )
        )
        user_ids = sorted(set(r.scalars().all()))
        if not user_ids:
            return {"sent": 0, "failed": 0, "total_recipients": 0, "message": "No attendees to notify"}
        result = await self._safe_send(
            db, user_ids, title, message, {"type": "session_notification", "sessionId": session_id}
        )
        return {**result, "total_recipients": len(user_ids)}

    # ── Lifecycle events ──────────────────────────────────────────────────────

    async def notify_new_session(
        self,
        db: AsyncSession,
        session_id: int,
        session_title: str,
        session_datetime: datetime,
        community_id: int,
        sub_community_id: Optional[int] = None,
    ) -> dict:
        community = await db.get(Community, community_id)
        community_name = community.name if community else "your community"
        local = ensure_utc(session_datetime).astimezone(ZoneInfo(settings.VENUE_TIMEZONE))
        when = local.strftime("%a %b %d at %H:%M")

        user_ids = set(await self._community_member_ids(db, community_id))
        if sub_community_id:
            user_ids |= set(await self._community_member_ids(db, community_id, sub_community_id))
        return await self._safe_send(
            db,
            user_ids,
            "🆕 New Session Available!",
            f'"{session_title}" has been added to {community_name} on {when}. Book your spot now!',
            {"type": "new_session", "sessionId": session_id, "communityId": community_id},
        )

    async def notify_spot_available(
        self,
        db: AsyncSession,
        session_id: int,
        session_title: str,
        community_id: int,
        is_pending: bool,
        exclude_user_id: Optional[int] = None,
    ) -> dict:
        user_ids = [
            uid for uid in await self._community_member_ids(db, community_id)
            if uid != exclude_user_id
        ]
        return await self._safe_send(
            db,
            user_ids,
            "🎾 Last Minute Spot!",
            f'A last minute spot has opened up in "{session_title}". Book now before it\'s gone!',
            {"type": "spot_available", "sessionId": session_id, "isPending": is_pending},
        )

    async def notify_cancellation_outcome(
        self,
        db: AsyncSession,
        user_id: int,
        session_title: str,
        outcome: str,
        message: str,
    ) -> dict:
        title = "Booking Cancelled" if outcome == "immediate" else "Cancellation Requested"
        return await self._safe_send(
            db, [user_id], title, message,
            {"type": "cancellation_outcome", "outcome": outcome, "sessionTitle": session_title},
        )

    async def notify_refund_processed(
        self,
        db: AsyncSession,
        user_id: int,
        session_title: str,
        refund_amount: Decimal,
    ) -> dict:
        return await self._safe_send(
            db,
            [user_id],
            "💰 Refund Processed",
            f'Your spot in "{session_title}" was filled! Refund of {settings.CURRENCY} {refund_amount:.2f} has been processed.',
            {"type": "refund_processed"},
        )

    async def _safe_send(self, db, user_ids, title, body, data) -> dict:
        try:
            return await self.send_to_users(db, user_ids, title, body, data)
        except Exception as exc:
            logger.error("Notification '%s' failed: %s", title, exc)
            return {"sent": 0, "failed": len(set(user_ids))}


# ── Shared instance ───────────────────────────────────────────────────────────

notifier = PushNotifier()
