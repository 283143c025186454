"""Care reminder storage - MongoDB-backed queries, live queries and mutations."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Dict, List, Optional, Any

from bson import ObjectId
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import OperationFailure, PyMongoError

from app.core.config import get_settings
from app.core.database import Database
from app.core.exceptions import NotFoundException, StorageException
from app.reminders.models import PriorityLevel, Reminder, ReminderStats
from app.reminders.priority import classify
from app.reminders.scheduling import device_timezone, utc_now

logger = logging.getLogger(__name__)

# Receives the current reminder, returns the fields to change (empty = no-op).
Mutator = Callable[[Reminder], Dict[str, Any]]


class ReminderStore:
    """
    Storage collaborator for care reminders.

    Every mutation is a single-document atomic update, so a failed write
    leaves the stored reminder untouched.
    """

    COLLECTION = "care_reminders"

    def __init__(self, collection=None):
        self._collection = collection

    def _get_collection(self):
        if self._collection is not None:
            return self._collection
        return Database.get_collection(self.COLLECTION)

    @staticmethod
    def _id_filter(reminder_id: str) -> dict:
        if ObjectId.is_valid(reminder_id):
            return {"_id": {"$in": [ObjectId(reminder_id), reminder_id]}}
        return {"_id": reminder_id}

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @staticmethod
    def _active_query(show_completed: bool, plant_id: Optional[str]) -> dict:
        query = {"is_deleted": {"$ne": True}, "is_completed": True if show_completed else {"$ne": True}}
        if plant_id:
            query["plant_id"] = plant_id
        return query

    async def query(self, show_completed: bool = False, plant_id: Optional[str] = None) -> List[Reminder]:
        """Non-deleted reminders in the requested view, earliest due first."""
        cursor = self._get_collection().find(
            self._active_query(show_completed, plant_id)
        ).sort("scheduled_for", ASCENDING)
        return [self._doc_to_reminder(doc) async for doc in cursor]

    async def observe(
        self,
        show_completed: bool = False,
        plant_id: Optional[str] = None,
    ) -> AsyncIterator[List[Reminder]]:
        """
        Live query.

        Yields the current result, then a fresh result after every change to
        the collection. Falls back to polling when the deployment has no
        change streams (standalone mongod).
        """
        settings = get_settings()
        yield await self.query(show_completed, plant_id)

        try:
            async with self._get_collection().watch() as stream:
                async for _change in stream:
                    yield await self.query(show_completed, plant_id)
        except OperationFailure as e:
            logger.info(f"Change streams unavailable for reminders, polling instead: {e}")

        while True:
            await asyncio.sleep(settings.LIVE_QUERY_POLL_SECONDS)
            yield await self.query(show_completed, plant_id)

    async def find(self, reminder_id: str) -> Optional[Reminder]:
        """Get a non-deleted reminder by id, or None."""
        try:
            doc = await self._get_collection().find_one(
                {**self._id_filter(reminder_id), "is_deleted": {"$ne": True}}
            )
        except PyMongoError as e:
            raise StorageException(f"Failed to load reminder {reminder_id}: {e}")
        return self._doc_to_reminder(doc) if doc else None

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def update(self, reminder_id: str, mutator: Mutator) -> Reminder:
        """
        Apply `mutator` to a reminder and persist the fields it returns.

        Raises:
            NotFoundException: the reminder does not exist or was deleted.
            StorageException: the write failed; nothing was changed.
        """
        reminder = await self.find(reminder_id)
        if reminder is None:
            raise NotFoundException(f"Reminder {reminder_id} not found")

        changes = mutator(reminder)
        if not changes:
            return reminder

        changes = {**changes, "updated_at": datetime.now(timezone.utc)}
        try:
            doc = await self._get_collection().find_one_and_update(
                {**self._id_filter(reminder_id), "is_deleted": {"$ne": True}},
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise StorageException(f"Failed to update reminder {reminder_id}: {e}")

        if doc is None:
            raise NotFoundException(f"Reminder {reminder_id} not found")
        return self._doc_to_reminder(doc)

    async def purge_completed(self, older_than: datetime) -> int:
        """Soft-delete reminders completed before `older_than`. Returns count."""
        now = datetime.now(timezone.utc)
        try:
            result = await self._get_collection().update_many(
                {
                    "is_completed": True,
                    "is_deleted": {"$ne": True},
                    "completed_at": {"$lt": older_than},
                },
                {"$set": {"is_deleted": True, "updated_at": now}},
            )
        except PyMongoError as e:
            raise StorageException(f"Failed to purge completed reminders: {e}")

        if result.modified_count:
            logger.info(f"Soft-deleted {result.modified_count} completed reminders older than {older_than}")
        return result.modified_count

    # -------------------------------------------------------------------------
    # Statistics
    # -------------------------------------------------------------------------

    async def get_stats(self, now: Optional[datetime] = None) -> ReminderStats:
        """Counts over all non-deleted reminders."""
        now = utc_now(now)
        tz = device_timezone()
        stats = ReminderStats()

        cursor = self._get_collection().find({"is_deleted": {"$ne": True}})
        async for doc in cursor:
            reminder = self._doc_to_reminder(doc)
            if reminder.is_completed:
                stats.completed += 1
                continue

            stats.total += 1
            level = classify(reminder, now, tz)
            if level == PriorityLevel.URGENT:
                stats.overdue += 1
            elif level == PriorityLevel.HIGH:
                stats.due_today += 1
            elif level == PriorityLevel.MEDIUM:
                stats.due_soon += 1

        return stats

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _doc_to_reminder(doc: dict) -> Reminder:
        """Convert MongoDB document to Reminder."""
        return Reminder(
            id=str(doc["_id"]),
            plant_id=str(doc["plant_id"]),
            type=doc.get("type") or "other",
            title=doc.get("title"),
            description=doc.get("description"),
            scheduled_for=doc["scheduled_for"],
            is_completed=bool(doc.get("is_completed", False)),
            completed_at=doc.get("completed_at"),
            is_deleted=bool(doc.get("is_deleted", False)),
            created_at=doc.get("created_at") or doc["scheduled_for"],
            updated_at=doc.get("updated_at"),
        )
