"""Plant service - read-only plant lookups and live plant queries."""

import asyncio
import logging
from typing import AsyncIterator, Dict, List, Optional

from bson import ObjectId
from pymongo.errors import OperationFailure

from app.core.config import get_settings
from app.core.database import Database
from app.plants.models import Plant

logger = logging.getLogger(__name__)


class PlantService:
    """Handles plant-related database reads."""

    @staticmethod
    def _get_plants_collection():
        return Database.get_collection("plants")

    @staticmethod
    def _id_filter(plant_id: str) -> dict:
        """Plants may be keyed by ObjectId or by an externally assigned string."""
        if ObjectId.is_valid(plant_id):
            return {"_id": {"$in": [ObjectId(plant_id), plant_id]}}
        return {"_id": plant_id}

    # ==================== Reads ====================

    @classmethod
    async def get_plant(cls, plant_id: str) -> Optional[Plant]:
        """Get a single non-deleted plant, or None if it cannot be resolved."""
        doc = await cls._get_plants_collection().find_one(
            {**cls._id_filter(plant_id), "is_deleted": {"$ne": True}}
        )
        return cls._doc_to_plant(doc) if doc else None

    @classmethod
    async def list_plants(cls, plant_ids: Optional[List[str]] = None) -> List[Plant]:
        """List non-deleted plants, optionally restricted to the given ids."""
        query: dict = {"is_deleted": {"$ne": True}}
        if plant_ids:
            candidates: list = []
            for pid in plant_ids:
                candidates.append(pid)
                if ObjectId.is_valid(pid):
                    candidates.append(ObjectId(pid))
            query["_id"] = {"$in": candidates}

        cursor = cls._get_plants_collection().find(query)
        return [cls._doc_to_plant(doc) async for doc in cursor]

    @classmethod
    async def get_plant_map(cls, plant_ids: Optional[List[str]] = None) -> Dict[str, Plant]:
        """Plants keyed by id."""
        return {plant.id: plant for plant in await cls.list_plants(plant_ids)}

    @classmethod
    async def observe_plants(cls) -> AsyncIterator[List[Plant]]:
        """
        Live plant query.

        Yields the current plant list, then a fresh list after every change
        to the collection. Deployments without change streams (standalone
        mongod) are polled instead.
        """
        settings = get_settings()
        yield await cls.list_plants()

        try:
            async with cls._get_plants_collection().watch() as stream:
                async for _change in stream:
                    yield await cls.list_plants()
        except OperationFailure as e:
            logger.info(f"Change streams unavailable for plants, polling instead: {e}")

        while True:
            await asyncio.sleep(settings.LIVE_QUERY_POLL_SECONDS)
            yield await cls.list_plants()

    # ==================== Helpers ====================

    @staticmethod
    def _doc_to_plant(doc: dict) -> Plant:
        """Convert MongoDB document to Plant."""
        return Plant(
            id=str(doc["_id"]),
            name=doc.get("name") or doc.get("nickname") or "Your plant",
            strain=doc.get("strain"),
            image_url=doc.get("image_url"),
            health_percentage=doc.get("health_percentage"),
            next_watering_days=doc.get("next_watering_days"),
            next_nutrient_days=doc.get("next_nutrient_days"),
            is_deleted=bool(doc.get("is_deleted", False)),
        )
