"""
Notification schedule validation.

Turns a reminder's due instant (plus an optional snooze offset) into a
trigger date that is safe to hand to the device notification scheduler.
Day arithmetic happens on the device's local calendar, so adding one day
keeps the wall-clock time even when a DST transition lies in between.

Nothing in this module raises for bad input: callers receive a
ScheduleValidationResult and decide how to present the error.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.core.config import get_settings
from app.reminders.models import (
    ScheduleError,
    ScheduleErrorCode,
    ScheduleValidationResult,
)


def device_timezone(tz_name: Optional[str] = None) -> tzinfo:
    """Resolve the device calendar; unknown names fall back to UTC."""
    name = tz_name or get_settings().DEVICE_TIMEZONE
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def utc_now(now: Optional[datetime] = None) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def add_calendar_days(instant: datetime, days: int, tz: Optional[tzinfo] = None) -> datetime:
    """
    Shift an instant by whole calendar days in the given zone.

    Aware arithmetic on a ZoneInfo datetime is wall-clock arithmetic, so the
    local time of day is preserved and the UTC offset is recomputed for the
    target date.
    """
    zone = tz or device_timezone()
    local = utc_now(instant).astimezone(zone)
    return (local + timedelta(days=days)).astimezone(timezone.utc)


def validate_notification_schedule(
    candidate: Optional[datetime],
    days_offset: int = 0,
    min_lead_minutes: Optional[int] = None,
    *,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> ScheduleValidationResult:
    """
    Validate and prepare a date for notification scheduling.

    Args:
        candidate: The reminder's current due instant.
        days_offset: Whole calendar days to add (snooze).
        min_lead_minutes: Minimum minutes in the future; defaults to
            REMINDER_MIN_LEAD_MINUTES.
        now: Reference time (defaults to the current time).
        tz: Device calendar (defaults to DEVICE_TIMEZONE).

    Returns:
        ScheduleValidationResult with either scheduled_date or error.
    """
    if min_lead_minutes is None:
        min_lead_minutes = get_settings().REMINDER_MIN_LEAD_MINUTES

    if not isinstance(candidate, datetime) or isinstance(days_offset, bool) or not isinstance(days_offset, int):
        return ScheduleValidationResult(
            success=False,
            error=ScheduleError(
                code=ScheduleErrorCode.INVALID_DATE,
                message=f"Invalid date provided: {candidate!r} (+{days_offset!r} days)",
            ),
        )

    try:
        target = add_calendar_days(candidate, days_offset, tz) if days_offset else utc_now(candidate)
    except OverflowError:
        return ScheduleValidationResult(
            success=False,
            error=ScheduleError(
                code=ScheduleErrorCode.INVALID_DATE,
                message=f"Date out of range: {candidate.isoformat()} + {days_offset} days",
            ),
        )

    current = utc_now(now)
    earliest = current + timedelta(minutes=min_lead_minutes)
    # A target less than a second behind "now" is the same moment, not the past.
    past_cutoff = current - timedelta(seconds=1)

    if target >= earliest:
        return ScheduleValidationResult(success=True, scheduled_date=target)

    diff_minutes = (target - current).total_seconds() / 60
    if target < past_cutoff:
        return ScheduleValidationResult(
            success=False,
            error=ScheduleError(
                code=ScheduleErrorCode.PAST_DATE,
                message=(
                    f"Scheduled date is {abs(diff_minutes):.1f} minutes in the past "
                    f"(minimum: {min_lead_minutes} minutes ahead)"
                ),
            ),
        )
    return ScheduleValidationResult(
        success=False,
        error=ScheduleError(
            code=ScheduleErrorCode.TOO_SOON,
            message=(
                f"Scheduled date is only {diff_minutes:.1f} minutes ahead "
                f"(minimum: {min_lead_minutes} minutes)"
            ),
        ),
    )


def format_schedule_error(
    error: Optional[ScheduleError],
    fallback_message: str = "Unable to schedule notification",
) -> str:
    """User-facing message for a schedule validation error."""
    if not error:
        return fallback_message

    if error.code == ScheduleErrorCode.PAST_DATE:
        return "The scheduled date is in the past. Please select a future date."
    if error.code == ScheduleErrorCode.TOO_SOON:
        return "The scheduled date is too close to now. Please pick a later time."
    if error.code == ScheduleErrorCode.INVALID_DATE:
        return "Invalid date provided. Please check your date selection."
    return "Unable to schedule notification. Please try again."
