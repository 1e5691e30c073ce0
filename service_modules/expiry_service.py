"""
Expiry resolution - decides whether a membership is truly expired once the
grace period is applied. Everything here is pure so it can be reused by the
sweep, the per-member sync, the queued admin actions and the tracker.
"""
import math
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union

from models import ExpiryResolution

NO_EXPIRY_END_DATETIME = "20991231235959"
DEVICE_DATETIME_FORMAT = "%Y%m%d%H%M%S"

Timestamp = Union[str, date, datetime, None]


def parse_timestamp(value: Timestamp) -> Optional[datetime]:
    """Parse a stored plan date into an aware datetime. Naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def effective_grace_days(member_grace_days: Optional[int], default_grace_days: Optional[int]) -> int:
    """Per-member override wins, including an explicit 0 or a negative value."""
    if member_grace_days is not None:
        return int(member_grace_days)
    return int(default_grace_days or 0)


def add_calendar_days(timestamp: datetime, days: int) -> datetime:
    # Shift the date and keep the wall-clock time and zone, so DST never adds or drops an hour.
    shifted = timestamp.date() + timedelta(days=days)
    return datetime.combine(shifted, timestamp.timetz())


def resolve_expiry(
    now: datetime,
    plan_expiry_date: Timestamp,
    member_grace_days: Optional[int],
    default_grace_days: Optional[int]
) -> ExpiryResolution:
    """
    Compute the definitive expiry decision for one member.

    The member stays valid up to and including expiry + grace; one instant
    later they are truly expired. No expiry date means never expired.
    """
    expiry = parse_timestamp(plan_expiry_date)
    if expiry is None:
        return ExpiryResolution(is_truly_expired=False)

    grace = effective_grace_days(member_grace_days, default_grace_days)
    final_expiry = add_calendar_days(expiry, grace)

    return ExpiryResolution(
        is_truly_expired=parse_timestamp(now) > final_expiry,
        final_expiry=final_expiry,
        effective_grace_days=grace
    )


def format_device_end_datetime(final_expiry: Optional[datetime]) -> str:
    """Render an expiry as the device's EndDateTime (YYYYMMDDHHMMSS)."""
    if final_expiry is None:
        return NO_EXPIRY_END_DATETIME
    text = final_expiry.strftime(DEVICE_DATETIME_FORMAT)
    # Date-only expiries stay valid for the whole day on the device
    if text.endswith("000000"):
        text = text[:8] + "235959"
    return text


def remaining_days(
    now: datetime,
    plan_expiry_date: Timestamp,
    member_grace_days: Optional[int],
    default_grace_days: Optional[int]
) -> Optional[int]:
    """Whole days left before the member is truly expired (negative once past). None if no expiry."""
    resolution = resolve_expiry(now, plan_expiry_date, member_grace_days, default_grace_days)
    if resolution.final_expiry is None:
        return None
    delta = resolution.final_expiry - parse_timestamp(now)
    return math.ceil(delta.total_seconds() / 86400)
