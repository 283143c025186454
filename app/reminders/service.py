"""
Reminder action service - mark-done, snooze and reschedule, single and batch.

Every command is two independent steps:

1. The primary storage mutation. Its result is the command's result, and a
   storage failure is reported to the caller with nothing written.
2. A best-effort notification side effect (cancel or re-schedule the device
   notification), run only after step 1 has completed. Failures are logged
   and never change the command's result.

Batch commands fan out per reminder; one item failing does not stop or
roll back the others.
"""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Iterable, List, Optional

from app.core.config import get_settings
from app.core.exceptions import NotFoundException, StorageException
from app.notifications.scheduler import NotificationSchedulerService
from app.plants.models import Plant
from app.plants.service import PlantService
from app.reminders.models import (
    ActionOutcome,
    ActionStatus,
    BatchActionResult,
    NotificationContent,
    Reminder,
)
from app.reminders.scheduling import (
    device_timezone,
    format_schedule_error,
    utc_now,
    validate_notification_schedule,
)
from app.reminders.store import ReminderStore

logger = logging.getLogger(__name__)

PlantLookup = Callable[[str], Awaitable[Optional[Plant]]]

REMINDER_COMPLETED = "REMINDER_COMPLETED"


def build_notification_content(reminder: Reminder, plant: Plant) -> NotificationContent:
    """Device notification text and payload for a reminder."""
    settings = get_settings()
    title = reminder.title or reminder.type.value.capitalize()
    return NotificationContent(
        title=f"{plant.name} - {title}",
        body=reminder.description or settings.DEFAULT_NOTIFICATION_BODY,
        data={
            "reminder_id": reminder.id,
            "plant_id": plant.id,
            "type": reminder.type.value,
        },
    )


class ReminderActionService:
    """Executes reminder commands against storage and the notification scheduler."""

    def __init__(
        self,
        store: Optional[ReminderStore] = None,
        notifier: Optional[NotificationSchedulerService] = None,
        plant_lookup: Optional[PlantLookup] = None,
        *,
        max_concurrency: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        settings = get_settings()
        self.store = store or ReminderStore()
        self.notifier = notifier or NotificationSchedulerService()
        self.plant_lookup = plant_lookup or PlantService.get_plant
        self.max_concurrency = (
            settings.BATCH_MAX_CONCURRENCY if max_concurrency is None else max_concurrency
        )
        self._clock = clock

    def _now(self) -> datetime:
        return utc_now(self._clock() if self._clock else None)

    async def _load(self, reminder_id: str) -> Reminder:
        reminder = await self.store.find(reminder_id)
        if reminder is None:
            raise NotFoundException(f"Reminder {reminder_id} not found")
        return reminder

    # -------------------------------------------------------------------------
    # Side effects
    # -------------------------------------------------------------------------

    async def _fire_and_log(
        self,
        action: str,
        reminder_id: str,
        effect: Callable[[], Awaitable[None]],
    ) -> bool:
        """Run a best-effort side effect; failures are logged, never raised."""
        try:
            await effect()
            return True
        except Exception as e:
            logger.warning(f"Side effect '{action}' failed for reminder {reminder_id}: {e}")
            return False

    async def _schedule_notification(self, reminder: Reminder) -> None:
        plant = await self.plant_lookup(reminder.plant_id)
        if plant is None:
            logger.warning(
                f"Data integrity: reminder {reminder.id} references unknown plant "
                f"{reminder.plant_id}; notification not scheduled"
            )
            return
        await self.notifier.schedule(
            reminder.id,
            build_notification_content(reminder, plant),
            reminder.scheduled_for,
        )

    # -------------------------------------------------------------------------
    # Mark done
    # -------------------------------------------------------------------------

    async def mark_done(self, reminder_id: str) -> ActionOutcome:
        """
        Complete a reminder and cancel its device notification.

        Completing an already completed reminder is a no-op success.

        Raises:
            NotFoundException: unknown or deleted reminder.
            StorageException: the completion could not be written.
        """
        reminder = await self._load(reminder_id)
        if reminder.is_completed:
            return ActionOutcome(reminder_id=reminder_id, status=ActionStatus.UNCHANGED)

        completed_at = self._now()
        await self.store.update(
            reminder_id,
            lambda r: {} if r.is_completed else {"is_completed": True, "completed_at": completed_at},
        )

        await self._fire_and_log(
            "cancel notification",
            reminder_id,
            lambda: self.notifier.cancel(reminder_id),
        )
        return ActionOutcome(reminder_id=reminder_id, status=ActionStatus.SUCCEEDED)

    async def batch_mark_done(self, reminder_ids: Iterable[str]) -> BatchActionResult:
        return await self._fan_out("mark_done", reminder_ids, self.mark_done)

    # -------------------------------------------------------------------------
    # Snooze / reschedule
    # -------------------------------------------------------------------------

    def _rejected(self, reminder_id: str, code: str, message: str) -> ActionOutcome:
        return ActionOutcome(
            reminder_id=reminder_id,
            status=ActionStatus.REJECTED,
            error_code=code,
            message=message,
        )

    async def _move(self, reminder: Reminder, target: datetime) -> ActionOutcome:
        updated = await self.store.update(reminder.id, lambda r: {"scheduled_for": target})

        await self._fire_and_log(
            "schedule notification",
            reminder.id,
            lambda: self._schedule_notification(updated),
        )
        return ActionOutcome(
            reminder_id=reminder.id,
            status=ActionStatus.SUCCEEDED,
            scheduled_for=updated.scheduled_for,
        )

    async def snooze(self, reminder_id: str, days: int = 1) -> ActionOutcome:
        """
        Push a reminder's due date back by whole calendar days.

        The new date is validated first; a rejected date is returned as a
        REJECTED outcome and nothing is written.

        Raises:
            NotFoundException: unknown or deleted reminder.
            StorageException: the new date could not be written.
        """
        reminder = await self._load(reminder_id)
        if reminder.is_completed:
            return self._rejected(reminder_id, REMINDER_COMPLETED, "Completed reminders cannot be snoozed.")

        result = validate_notification_schedule(
            reminder.scheduled_for,
            days,
            now=self._now(),
            tz=device_timezone(),
        )
        if not result.success:
            return self._rejected(reminder_id, result.error.code.value, format_schedule_error(result.error))

        return await self._move(reminder, result.scheduled_date)

    async def batch_snooze(self, reminder_ids: Iterable[str], days: int = 1) -> BatchActionResult:
        return await self._fan_out("snooze", reminder_ids, lambda rid: self.snooze(rid, days))

    async def reschedule(self, reminder_id: str, scheduled_for: Optional[datetime] = None) -> ActionOutcome:
        """
        Move a reminder to an explicit date.

        Without a date this is a one-day snooze.
        """
        if scheduled_for is None:
            return await self.snooze(reminder_id, 1)

        reminder = await self._load(reminder_id)
        if reminder.is_completed:
            return self._rejected(reminder_id, REMINDER_COMPLETED, "Completed reminders cannot be rescheduled.")

        target = utc_now(scheduled_for)
        if target == reminder.scheduled_for:
            return ActionOutcome(
                reminder_id=reminder_id,
                status=ActionStatus.UNCHANGED,
                scheduled_for=reminder.scheduled_for,
            )

        result = validate_notification_schedule(target, 0, now=self._now(), tz=device_timezone())
        if not result.success:
            return self._rejected(reminder_id, result.error.code.value, format_schedule_error(result.error))

        return await self._move(reminder, result.scheduled_date)

    # -------------------------------------------------------------------------
    # Batch fan-out
    # -------------------------------------------------------------------------

    async def _fan_out(
        self,
        action: str,
        reminder_ids: Iterable[str],
        operation: Callable[[str], Awaitable[ActionOutcome]],
    ) -> BatchActionResult:
        ids: List[str] = list(dict.fromkeys(reminder_ids))
        semaphore = asyncio.Semaphore(self.max_concurrency) if self.max_concurrency > 0 else None

        async def run(reminder_id: str) -> ActionOutcome:
            try:
                if semaphore is None:
                    return await operation(reminder_id)
                async with semaphore:
                    return await operation(reminder_id)
            except NotFoundException as e:
                return ActionOutcome(reminder_id=reminder_id, status=ActionStatus.NOT_FOUND, message=e.detail)
            except StorageException as e:
                logger.error(f"Batch {action} failed for reminder {reminder_id}: {e.detail}")
                return ActionOutcome(reminder_id=reminder_id, status=ActionStatus.FAILED, message=e.detail)
            except Exception as e:
                logger.exception(f"Batch {action} crashed for reminder {reminder_id}")
                return ActionOutcome(reminder_id=reminder_id, status=ActionStatus.FAILED, message=str(e))

        outcomes = await asyncio.gather(*(run(rid) for rid in ids))
        result = BatchActionResult(action=action, outcomes=list(outcomes))

        logger.info(
            f"Batch {action} complete: {result.succeeded} succeeded, {result.failed} failed "
            f"out of {len(ids)}"
        )
        return result
