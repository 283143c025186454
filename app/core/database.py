"""
MongoDB database connection and utilities.
"""

import logging

import certifi
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from app.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


class Database:
    """MongoDB database connection manager."""

    client: AsyncIOMotorClient = None
    db: AsyncIOMotorDatabase = None

    @classmethod
    async def connect(cls):
        """Connect to MongoDB."""
        client_kwargs = {}
        if "mongodb+srv://" in settings.MONGO_URI or "ssl=true" in settings.MONGO_URI.lower():
            client_kwargs["tlsCAFile"] = certifi.where()
        cls.client = AsyncIOMotorClient(settings.MONGO_URI, tz_aware=True, **client_kwargs)
        cls.db = cls.client[settings.MONGO_DB_NAME]

        # Create indexes
        await cls._create_indexes()

        logger.info(f"Connected to MongoDB: {settings.MONGO_DB_NAME}")

    @classmethod
    async def disconnect(cls):
        """Disconnect from MongoDB."""
        if cls.client:
            cls.client.close()
            logger.info("Disconnected from MongoDB")

    @classmethod
    async def _create_indexes(cls):
        """Create database indexes for better query performance."""
        # Care reminders: active-list queries filter on flags and sort by due time
        await cls.db.care_reminders.create_index(
            [("is_deleted", 1), ("is_completed", 1), ("scheduled_for", 1)]
        )
        await cls.db.care_reminders.create_index("plant_id")

        # Plants collection
        await cls.db.plants.create_index("is_deleted")

        # Pending device notifications, one per reminder
        await cls.db.scheduled_notifications.create_index("reminder_id", unique=True)
        await cls.db.scheduled_notifications.create_index([("state", 1), ("deliver_at", 1)])

    @classmethod
    def get_collection(cls, name: str):
        """Get a collection by name."""
        return cls.db[name]


def get_db() -> AsyncIOMotorDatabase:
    """Get the database instance."""
    return Database.db
