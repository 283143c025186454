"""Priority classification for care reminders.

Buckets are decided by the local calendar day of the due instant relative to
today, never by hour-level deltas, so a reminder does not flip buckets as the
clock ticks within a day.
"""

from __future__ import annotations

from datetime import date, datetime, time, tzinfo
from typing import Iterable, Optional

from app.core.config import get_settings
from app.reminders.models import PriorityLevel, Reminder
from app.reminders.scheduling import device_timezone, utc_now

SEVERITY_ORDER = {
    PriorityLevel.LOW: 0,
    PriorityLevel.MEDIUM: 1,
    PriorityLevel.HIGH: 2,
    PriorityLevel.URGENT: 3,
}


def local_date(instant: datetime, tz: Optional[tzinfo] = None) -> date:
    return utc_now(instant).astimezone(tz or device_timezone()).date()


def start_of_day(now: Optional[datetime] = None, tz: Optional[tzinfo] = None) -> datetime:
    """Local midnight of the day containing `now`, as an aware datetime."""
    zone = tz or device_timezone()
    return datetime.combine(local_date(utc_now(now), zone), time.min, tzinfo=zone)


def days_until_due(scheduled_for: datetime, now: Optional[datetime] = None, tz: Optional[tzinfo] = None) -> int:
    """Whole local calendar days from today to the due date (negative when overdue)."""
    zone = tz or device_timezone()
    return (local_date(scheduled_for, zone) - local_date(utc_now(now), zone)).days


def classify_due_date(
    scheduled_for: datetime,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> PriorityLevel:
    delta = days_until_due(scheduled_for, now, tz)
    if delta < 0:
        return PriorityLevel.URGENT
    if delta == 0:
        return PriorityLevel.HIGH
    if delta <= get_settings().REMINDER_DUE_SOON_DAYS:
        return PriorityLevel.MEDIUM
    return PriorityLevel.LOW


def classify(reminder: Reminder, now: Optional[datetime] = None, tz: Optional[tzinfo] = None) -> PriorityLevel:
    """Priority bucket of a reminder; only its due date matters."""
    return classify_due_date(reminder.scheduled_for, now, tz)


def max_priority(levels: Iterable[PriorityLevel]) -> PriorityLevel:
    """Most severe level; an empty input is LOW."""
    return max(levels, key=SEVERITY_ORDER.__getitem__, default=PriorityLevel.LOW)
