"""
Notification scheduler - device notifications keyed by reminder id.

`schedule` stores (or replaces) a pending notification for a reminder and
`cancel` removes it. A Celery beat task calls `deliver_due` to push pending
notifications whose trigger time has passed.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from pymongo import ReturnDocument

from app.core.config import get_settings
from app.core.database import Database
from app.notifications.models import DeliveryState, ScheduledNotification
from app.notifications.push_service import PushNotificationService
from app.reminders.models import NotificationContent

logger = logging.getLogger(__name__)


class NotificationSchedulerService:
    """Stores pending device notifications and delivers them when due."""

    COLLECTION = "scheduled_notifications"

    def __init__(self, collection=None, push_service=PushNotificationService):
        self._collection = collection
        self._push = push_service

    def _get_collection(self):
        if self._collection is not None:
            return self._collection
        return Database.get_collection(self.COLLECTION)

    async def schedule(
        self,
        reminder_id: str,
        content: NotificationContent,
        trigger_at: datetime,
    ) -> None:
        """Schedule (or replace) the notification for a reminder."""
        now = datetime.now(timezone.utc)
        doc = ScheduledNotification(
            reminder_id=reminder_id,
            title=content.title,
            body=content.body,
            data=content.data,
            deliver_at=trigger_at,
        ).model_dump()
        doc["state"] = DeliveryState.PENDING.value

        await self._get_collection().update_one(
            {"reminder_id": reminder_id},
            {
                "$set": {**doc, "updated_at": now},
                "$setOnInsert": {"created_at": now},
            },
            upsert=True,
        )
        logger.debug(f"Scheduled notification for reminder {reminder_id} at {trigger_at.isoformat()}")

    async def cancel(self, reminder_id: str) -> None:
        """Cancel any notification still pending for a reminder."""
        result = await self._get_collection().delete_one(
            {"reminder_id": reminder_id, "state": DeliveryState.PENDING.value}
        )
        if result.deleted_count:
            logger.debug(f"Cancelled notification for reminder {reminder_id}")

    async def deliver_due(self, now: Optional[datetime] = None, max_attempts: int = 3) -> Dict[str, int]:
        """
        Push every pending notification whose trigger time has passed.

        A notification is claimed by moving it from PENDING to SENDING in one
        atomic update, so overlapping workers never push it twice. Claims left
        behind by a crashed worker return to PENDING after
        NOTIFICATION_CLAIM_TIMEOUT_MINUTES.

        Returns:
            Dict with processing stats.
        """
        collection = self._get_collection()
        now = now or datetime.now(timezone.utc)
        stats = {"processed": 0, "sent": 0, "errors": 0}

        stale_before = now - timedelta(minutes=get_settings().NOTIFICATION_CLAIM_TIMEOUT_MINUTES)
        released = await collection.update_many(
            {"state": DeliveryState.SENDING.value, "claimed_at": {"$lt": stale_before}},
            {"$set": {"state": DeliveryState.PENDING.value}},
        )
        if released.modified_count:
            logger.warning(f"Released {released.modified_count} abandoned notification claim(s)")

        # Failed attempts go back to PENDING; retry them on the next run, not this one.
        attempted = []
        while True:
            notification = await collection.find_one_and_update(
                {
                    "_id": {"$nin": attempted},
                    "state": DeliveryState.PENDING.value,
                    "deliver_at": {"$lte": now},
                    "attempts": {"$lt": max_attempts},
                },
                {
                    "$inc": {"attempts": 1},
                    "$set": {"state": DeliveryState.SENDING.value, "claimed_at": now},
                },
                sort=[("deliver_at", 1)],
                return_document=ReturnDocument.AFTER,
            )
            if notification is None:
                break

            attempted.append(notification["_id"])
            stats["processed"] += 1
            try:
                result = await self._push.send_push(
                    title=notification["title"],
                    body=notification["body"],
                    data=notification.get("data") or {},
                )
                delivered = bool(result.get("success")) or result.get("reason") == "no_devices"
            except Exception as e:
                logger.error(f"Failed to deliver notification for reminder {notification['reminder_id']}: {e}")
                delivered = False
                result = {"error": str(e)}

            if delivered:
                update = {"state": DeliveryState.DELIVERED.value, "delivered_at": now}
                stats["sent"] += 1
            else:
                exhausted = notification.get("attempts", 1) >= max_attempts
                update = {
                    "state": DeliveryState.FAILED.value if exhausted else DeliveryState.PENDING.value,
                    "last_error": str(result),
                }
                stats["errors"] += 1

            # Only finish our own claim; a reschedule in the meantime wins.
            await collection.update_one(
                {"_id": notification["_id"], "state": DeliveryState.SENDING.value, "claimed_at": now},
                {"$set": update},
            )

        if stats["processed"]:
            logger.info(f"Delivered due reminder notifications: {stats}")
        return stats
