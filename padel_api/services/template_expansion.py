"""
Weekly template expansion.

Anchor rule: week 0 is the first occurrence of ``day_of_week`` at
``time_of_day`` (venue-local wall time) strictly after the anchor instant.
The anchor is ``now``, or the start of ``start_date`` in the venue zone when
one is given (clamped to ``now`` so nothing is generated in the past).
Week k is week 0 plus k*7 days of local wall time, so a DST change in the
venue zone keeps the advertised clock time.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Iterable, List, Optional
from zoneinfo import ZoneInfo

from padel_api.core.config import settings
from padel_api.core.errors import ValidationError
from padel_api.core.timeutils import ensure_utc
from padel_api.models.session_template import SessionTemplate


def _python_weekday(day_of_week: int) -> int:
    # templates use 0=Sunday..6=Saturday, datetime.weekday() uses 0=Monday
    return (day_of_week - 1) % 7


def venue_zone() -> ZoneInfo:
    return ZoneInfo(settings.VENUE_TIMEZONE)


def next_occurrence(
    day_of_week: int,
    time_of_day: time,
    after: datetime,
    tz: Optional[ZoneInfo] = None,
) -> datetime:
    """First ``day_of_week`` at ``time_of_day`` strictly after ``after``, in UTC."""
    if not 0 <= day_of_week <= 6:
        raise ValidationError("day_of_week must be between 0 (Sunday) and 6 (Saturday)")
    tz = tz or venue_zone()
    local_after = ensure_utc(after).astimezone(tz)
    days_ahead = (_python_weekday(day_of_week) - local_after.weekday()) % 7
    candidate_day = local_after.date() + timedelta(days=days_ahead)
    candidate = datetime.combine(candidate_day, time_of_day.replace(tzinfo=None), tzinfo=tz)
    if candidate <= local_after:
        candidate = datetime.combine(candidate_day + timedelta(days=7), time_of_day.replace(tzinfo=None), tzinfo=tz)
    return candidate.astimezone(timezone.utc)


def occurrences(
    day_of_week: int,
    time_of_day: time,
    weeks_ahead: int,
    anchor: datetime,
    tz: Optional[ZoneInfo] = None,
) -> List[datetime]:
    tz = tz or venue_zone()
    first_local = next_occurrence(day_of_week, time_of_day, anchor, tz).astimezone(tz)
    result = []
    for week in range(weeks_ahead):
        local = datetime.combine(
            first_local.date() + timedelta(weeks=week),
            time_of_day.replace(tzinfo=None),
            tzinfo=tz,
        )
        result.append(local.astimezone(timezone.utc))
    return result


def resolve_anchor(now: datetime, start_date: Optional[date] = None, tz: Optional[ZoneInfo] = None) -> datetime:
    now = ensure_utc(now)
    if start_date is None:
        return now
    tz = tz or venue_zone()
    # just before local midnight so a slot at 00:00 on start_date still counts
    start = datetime.combine(start_date, time.min, tzinfo=tz) - timedelta(microseconds=1)
    return max(start.astimezone(timezone.utc), now)


def validate_weeks_ahead(weeks_ahead: int) -> None:
    limit = settings.BULK_PUBLISH_MAX_WEEKS
    if isinstance(weeks_ahead, bool) or not isinstance(weeks_ahead, int) or not 1 <= weeks_ahead <= limit:
        raise ValidationError(
            f"weeks_ahead must be between 1 and {limit}",
            details={"weeks_ahead": weeks_ahead},
        )


def expected_instance_count(template_ids: Iterable[int], weeks_ahead: int) -> int:
    return len(set(template_ids)) * weeks_ahead


def publish_label(count: int) -> str:
    return f"Publish {count} Session{'' if count == 1 else 's'}"


@dataclass(frozen=True)
class SessionDraft:
    """A Session row ready to insert, copied from its template."""

    template_id: int
    template_title: str
    week: int
    community_id: int
    sub_community_id: Optional[int]
    title: str
    description: Optional[str]
    datetime: datetime
    location: str
    price: Decimal
    max_players: int
    free_cancellation_hours: int
    allow_conditional_cancellation: bool

    def session_fields(self) -> dict:
        return {
            "community_id":                   self.community_id,
            "sub_community_id":               self.sub_community_id,
            "created_from_template_id":       self.template_id,
            "title":                          self.title,
            "description":                    self.description,
            "datetime":                       self.datetime,
            "location":                       self.location,
            "price":                          self.price,
            "max_players":                    self.max_players,
            "free_cancellation_hours":        self.free_cancellation_hours,
            "allow_conditional_cancellation": self.allow_conditional_cancellation,
        }


def expand_template(
    template: SessionTemplate,
    weeks_ahead: int,
    anchor: datetime,
    location: str = "TBD",
    tz: Optional[ZoneInfo] = None,
) -> List[SessionDraft]:
    return [
        SessionDraft(
            template_id=template.id,
            template_title=template.title,
            week=week,
            community_id=template.community_id,
            sub_community_id=template.sub_community_id,
            title=template.title,
            description=template.description,
            datetime=when,
            location=location,
            price=Decimal(str(template.price)),
            max_players=template.max_players,
            free_cancellation_hours=template.free_cancellation_hours,
            allow_conditional_cancellation=template.allow_conditional_cancellation,
        )
        for week, when in enumerate(
            occurrences(template.day_of_week, template.time_of_day, weeks_ahead, anchor, tz)
        )
    ]


@dataclass
class BulkPublishResult:
    created: int = 0
    sessions: list = field(default_factory=list)
    skipped: list = field(default_factory=list)
    errors: list = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return self.created + len(self.skipped) + len(self.errors)
