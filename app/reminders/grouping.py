"""Partition reminders into priority buckets for display."""

from datetime import datetime, tzinfo
from typing import Iterable, Optional

from app.reminders.models import GroupedReminders, Reminder, ReminderResponse
from app.reminders.priority import classify
from app.reminders.scheduling import device_timezone, utc_now


def with_priority(reminder: Reminder, now: Optional[datetime] = None, tz: Optional[tzinfo] = None) -> ReminderResponse:
    return ReminderResponse(**reminder.model_dump(), priority_level=classify(reminder, now, tz))


def group_reminders(
    reminders: Iterable[Reminder],
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> GroupedReminders:
    """
    Exhaustive partition by priority bucket.

    Input order is kept within each bucket; callers sort by due date first.
    """
    now = utc_now(now)
    tz = tz or device_timezone()

    grouped = GroupedReminders()
    for reminder in reminders:
        item = with_priority(reminder, now, tz)
        grouped.bucket(item.priority_level).append(item)
    return grouped
