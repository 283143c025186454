"""
Seed script for demo plants and care reminders.
Run: python -m scripts.seed_demo_data
"""

import asyncio
from datetime import datetime, timedelta, timezone
from motor.motor_asyncio import AsyncIOMotorClient
import os
from dotenv import load_dotenv

load_dotenv()

MONGO_URL = os.getenv("MONGO_URI", "mongodb://localhost:27017")
DB_NAME = os.getenv("MONGO_DB_NAME", "plant_care")

PLANTS_DATA = [
    {
        "_id": "demo-monstera",
        "name": "Monstera",
        "strain": "Monstera deliciosa",
        "health_percentage": 85,
        "next_watering_days": 2,
        "next_nutrient_days": 12,
    },
    {
        "_id": "demo-fern",
        "name": "Boston Fern",
        "strain": "Nephrolepis exaltata",
        "health_percentage": 42,
        "next_watering_days": 0,
        "next_nutrient_days": 5,
    },
    {
        "_id": "demo-basil",
        "name": "Basil",
        "strain": "Ocimum basilicum",
        "health_percentage": 18,
        "next_watering_days": -1,
        "next_nutrient_days": -3,
    },
]

# (id, plant, type, title, days from now)
REMINDERS_DATA = [
    ("demo-r1", "demo-monstera", "watering", "Water thoroughly", 2),
    ("demo-r2", "demo-monstera", "inspection", "Check for spider mites", 6),
    ("demo-r3", "demo-fern", "watering", "Mist and water", 0),
    ("demo-r4", "demo-fern", "nutrients", "Half-strength feed", 1),
    ("demo-r5", "demo-basil", "watering", "Water", -1),
    ("demo-r6", "demo-basil", "other", "Pinch off flowers", -3),
]


async def seed_demo_data():
    """Drop and re-seed the demo plants and reminders."""
    client = AsyncIOMotorClient(MONGO_URL, tz_aware=True)
    db = client[DB_NAME]

    print(f"Connected to MongoDB: {MONGO_URL}/{DB_NAME}")

    now = datetime.now(timezone.utc)
    plant_ids = [p["_id"] for p in PLANTS_DATA]

    await db.plants.delete_many({"_id": {"$in": plant_ids}})
    await db.care_reminders.delete_many({"plant_id": {"$in": plant_ids}})

    plants = [{**plant, "is_deleted": False, "created_at": now, "updated_at": now} for plant in PLANTS_DATA]
    result = await db.plants.insert_many(plants)
    print(f"Inserted {len(result.inserted_ids)} plants")

    reminders = [
        {
            "_id": reminder_id,
            "plant_id": plant_id,
            "type": reminder_type,
            "title": title,
            "description": None,
            "scheduled_for": now + timedelta(days=days),
            "is_completed": False,
            "is_deleted": False,
            "created_at": now,
            "updated_at": now,
        }
        for reminder_id, plant_id, reminder_type, title, days in REMINDERS_DATA
    ]
    result = await db.care_reminders.insert_many(reminders)
    print(f"Inserted {len(result.inserted_ids)} reminders")

    print("\nSeeded reminders:")
    async for reminder in db.care_reminders.find({"plant_id": {"$in": plant_ids}}).sort("scheduled_for", 1):
        due = reminder["scheduled_for"].strftime("%Y-%m-%d %H:%M")
        print(f"  {reminder['_id']}: {reminder['title']} ({reminder['plant_id']}, due {due})")

    client.close()
    print("\n✅ Seed complete!")


if __name__ == "__main__":
    asyncio.run(seed_demo_data())
