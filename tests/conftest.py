"""Shared fixtures: in-memory stand-ins for storage, plants and notifications."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from app.core.exceptions import NotFoundException, StorageException
from app.plants.models import Plant
from app.reminders.models import Reminder

# Mid-day, well clear of any day boundary in UTC.
NOW = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)


def make_reminder(reminder_id: str, plant_id: str = "p1", days: float = 0, **kwargs) -> Reminder:
    """A reminder due `days` after NOW (negative = overdue)."""
    fields = {
        "type": "watering",
        "title": "Water",
        "created_at": NOW - timedelta(days=7),
        **kwargs,
    }
    return Reminder(
        id=reminder_id,
        plant_id=plant_id,
        scheduled_for=NOW + timedelta(days=days),
        **fields,
    )


def make_plant(plant_id: str = "p1", **kwargs) -> Plant:
    fields = {
        "name": "Monstera",
        "health_percentage": 100,
        "next_watering_days": 5,
        "next_nutrient_days": 5,
        **kwargs,
    }
    return Plant(id=plant_id, **fields)


class FakeReminderStore:
    """In-memory ReminderStore with injectable write failures."""

    def __init__(self, reminders: Optional[List[Reminder]] = None):
        self.reminders: Dict[str, Reminder] = {r.id: r for r in reminders or []}
        self.fail_updates = set()
        self.update_calls: List[str] = []
        self._watchers: List[asyncio.Queue] = []

    async def find(self, reminder_id: str) -> Optional[Reminder]:
        reminder = self.reminders.get(reminder_id)
        if reminder is None or reminder.is_deleted:
            return None
        return reminder

    async def update(self, reminder_id: str, mutator) -> Reminder:
        self.update_calls.append(reminder_id)
        reminder = await self.find(reminder_id)
        if reminder is None:
            raise NotFoundException(f"Reminder {reminder_id} not found")
        if reminder_id in self.fail_updates:
            raise StorageException(f"Failed to update reminder {reminder_id}: write conflict")

        changes = mutator(reminder)
        if not changes:
            return reminder

        updated = reminder.model_copy(update={**changes, "updated_at": NOW})
        self.reminders[reminder_id] = updated
        for queue in self._watchers:
            queue.put_nowait(None)
        return updated

    async def query(self, show_completed: bool = False, plant_id: Optional[str] = None) -> List[Reminder]:
        matches = [
            r for r in self.reminders.values()
            if not r.is_deleted
            and r.is_completed == show_completed
            and (plant_id is None or r.plant_id == plant_id)
        ]
        return sorted(matches, key=lambda r: r.scheduled_for)

    async def observe(self, show_completed: bool = False, plant_id: Optional[str] = None):
        queue: asyncio.Queue = asyncio.Queue()
        self._watchers.append(queue)
        try:
            yield await self.query(show_completed, plant_id)
            while True:
                await queue.get()
                yield await self.query(show_completed, plant_id)
        finally:
            self._watchers.remove(queue)

    @property
    def watcher_count(self) -> int:
        return len(self._watchers)


class FakePlantService:
    """Read-only plant source with a live query that emits once."""

    def __init__(self, plants: Optional[List[Plant]] = None):
        self.plants: Dict[str, Plant] = {p.id: p for p in plants or []}
        self.observers = 0

    async def get_plant(self, plant_id: str) -> Optional[Plant]:
        return self.plants.get(plant_id)

    async def list_plants(self, plant_ids: Optional[List[str]] = None) -> List[Plant]:
        if plant_ids:
            return [p for pid, p in self.plants.items() if pid in plant_ids]
        return list(self.plants.values())

    async def observe_plants(self):
        self.observers += 1
        try:
            yield await self.list_plants()
            await asyncio.Event().wait()
        finally:
            self.observers -= 1


class FakeNotifier:
    """Records notification calls; ids in `fail_for` raise."""

    def __init__(self):
        self.scheduled: Dict[str, tuple] = {}
        self.cancelled: List[str] = []
        self.fail_for = set()

    async def schedule(self, reminder_id, content, trigger_at):
        if reminder_id in self.fail_for:
            raise RuntimeError("notification scheduler unavailable")
        self.scheduled[reminder_id] = (content, trigger_at)

    async def cancel(self, reminder_id):
        if reminder_id in self.fail_for:
            raise RuntimeError("notification scheduler unavailable")
        self.cancelled.append(reminder_id)


async def settle(rounds: int = 20) -> None:
    """Let background subscription tasks process pending emissions."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def plants():
    return FakePlantService([
        make_plant("p1"),
        make_plant("p2", name="Fern", health_percentage=40),
    ])


@pytest.fixture
def store():
    return FakeReminderStore([
        make_reminder("r1", "p1", days=-1),
        make_reminder("r2", "p1", days=0),
        make_reminder("r3", "p2", days=1),
        make_reminder("r4", "p2", days=10),
    ])


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def actions(store, notifier, plants):
    from app.reminders.service import ReminderActionService

    return ReminderActionService(
        store=store,
        notifier=notifier,
        plant_lookup=plants.get_plant,
        clock=lambda: NOW,
    )
