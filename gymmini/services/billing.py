from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, Optional, Union

from gymmini import settings

UTC = timezone.utc
DAY_SECONDS = 24 * 60 * 60

DateLike = Union[date, datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Mongo hands back naive datetimes unless the client is tz_aware; they are UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _is_plain_date(value: DateLike) -> bool:
    return isinstance(value, date) and not isinstance(value, datetime)


def is_active(end: DateLike, now: Optional[DateLike] = None) -> bool:
    """now <= end. A plain date end date covers that whole calendar day."""
    now = now if now is not None else _utcnow()
    if _is_plain_date(end):
        today = now if _is_plain_date(now) else as_utc(now).date()
        return today <= end
    if _is_plain_date(now):
        return now <= as_utc(end).date()
    return as_utc(now) <= as_utc(end)


def days_left(end: DateLike, now: Optional[DateLike] = None) -> int:
    """Signed days until end: negative once expired, 0 when it ends today."""
    now = now if now is not None else _utcnow()
    if _is_plain_date(end) or _is_plain_date(now):
        end_day = end if _is_plain_date(end) else as_utc(end).date()
        today = now if _is_plain_date(now) else as_utc(now).date()
        return (end_day - today).days
    delta = (as_utc(end) - as_utc(now)).total_seconds()
    return math.ceil(delta / DAY_SECONDS)


def days_left_clamped(end: DateLike, now: Optional[DateLike] = None) -> int:
    return max(days_left(end, now), 0)


def next_billing_date(start: DateLike) -> DateLike:
    """Fixed cycle, not calendar-month aware."""
    return start + timedelta(days=settings.BILLING_CYCLE_DAYS)


def membership_end(member: Dict[str, Any]) -> Optional[DateLike]:
    """
    The stored end date as the value to compare against. Dates are stored as UTC
    midnights, which stand for the whole calendar day, so those come back as a date.
    """
    end = member.get("membership_end_date")
    if isinstance(end, datetime):
        end = as_utc(end)
        if end.time() == time(0):
            return end.date()
    return end


def membership_state(member: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """Read-time fields for a member projection; never stored."""
    end = membership_end(member)
    if end is None:
        return {"is_active": None, "days_until_expiration": None}
    return {
        "is_active": is_active(end, now),
        "days_until_expiration": days_left(end, now),
    }
