"""Celery tasks (sync wrappers around the async services)."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from app.worker.celery_app import celery_app

logger = logging.getLogger(__name__)


def _run_async(coro):
    """Run async function in sync Celery task."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _deliver_due() -> Dict[str, int]:
    from app.core.database import Database
    from app.notifications.scheduler import NotificationSchedulerService

    await Database.connect()
    try:
        return await NotificationSchedulerService().deliver_due()
    finally:
        await Database.disconnect()


async def _purge_completed(retention_days: int) -> Dict[str, Any]:
    from app.core.database import Database
    from app.reminders.store import ReminderStore

    cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
    await Database.connect()
    try:
        purged = await ReminderStore().purge_completed(cutoff)
        return {"purged": purged, "cutoff": cutoff.isoformat()}
    finally:
        await Database.disconnect()


# =============================================================================
# Reminder Notification Tasks
# =============================================================================

@celery_app.task(name="app.worker.tasks.deliver_reminder_notifications", acks_late=True)
def deliver_reminder_notifications() -> Dict[str, Any]:
    """
    Push scheduled reminder notifications whose trigger time has passed.

    Runs every minute via Celery Beat.

    Returns:
        Dict with delivery statistics.
    """
    try:
        stats = _run_async(_deliver_due())

        if stats.get("processed", 0) > 0:
            logger.info(f"Reminder notifications delivered: {stats}")

        return stats

    except Exception as e:
        logger.error(f"Failed to deliver reminder notifications: {e}")
        raise


@celery_app.task(name="app.worker.tasks.purge_completed_reminders", acks_late=True)
def purge_completed_reminders() -> Dict[str, Any]:
    """
    Soft-delete completed reminders older than the retention window.

    Runs daily via Celery Beat.
    """
    from app.core.config import get_settings

    retention_days = get_settings().COMPLETED_REMINDER_RETENTION_DAYS
    logger.info(f"Purging completed reminders older than {retention_days} days")

    try:
        result = _run_async(_purge_completed(retention_days))
        logger.info(f"Purge complete: {result}")
        return result

    except Exception as e:
        logger.error(f"Failed to purge completed reminders: {e}")
        raise
