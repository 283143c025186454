"""
Reminder lifecycle controller.

Subscribes to the live reminder and plant queries, re-derives the grouped
reminder view and per-plant attention on every emission, owns the batch-mode
selection, and routes user commands to ReminderActionService.

Per-reminder states: Scheduled -> Completed (mark done, terminal),
Scheduled -> Scheduled (snooze / reschedule), Scheduled -> Deleted (external,
terminal).

Use as an async context manager so subscriptions are always torn down:

    async with ReminderLifecycleController(actions) as controller:
        controller.subscribe(render)
        ...
"""

import asyncio
import logging
from datetime import datetime
from typing import AsyncIterator, Callable, Dict, Iterable, List, Optional, Set

from app.plants.models import Plant
from app.plants.service import PlantService
from app.reminders.attention import aggregate_all, default_status, summarize
from app.reminders.grouping import group_reminders
from app.reminders.models import (
    ActionOutcome,
    AttentionSummary,
    BatchActionResult,
    GroupedReminders,
    PlantAttentionStatus,
    Reminder,
)
from app.reminders.scheduling import device_timezone, utc_now
from app.reminders.service import ReminderActionService

logger = logging.getLogger(__name__)

Listener = Callable[["ReminderLifecycleController"], None]


class ReminderLifecycleController:
    """Live, derived reminder state plus the commands that mutate it."""

    def __init__(
        self,
        actions: ReminderActionService,
        plant_service=PlantService,
        *,
        show_completed: bool = False,
        plant_id: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.actions = actions
        self.store = actions.store
        self.plant_service = plant_service
        self.show_completed = show_completed
        self.plant_id = plant_id
        self._clock = clock

        self.reminders: List[Reminder] = []
        self.plants: Dict[str, Plant] = {}
        self._plants_loaded = False
        self.grouped = GroupedReminders()
        self.attention: Dict[str, PlantAttentionStatus] = {}

        self.selection: Set[str] = set()
        self.batch_mode = False

        # Attention always reflects every active reminder, whatever the view.
        self._active_reminders: List[Reminder] = []
        self._listeners: List[Listener] = []
        self._tasks: List[asyncio.Task] = []

    # -------------------------------------------------------------------------
    # Subscription lifecycle
    # -------------------------------------------------------------------------

    @property
    def _view_is_active_set(self) -> bool:
        return not self.show_completed and self.plant_id is None

    async def __aenter__(self) -> "ReminderLifecycleController":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def start(self) -> None:
        if self._tasks:
            return
        self._tasks.append(asyncio.create_task(
            self._consume(self.store.observe(self.show_completed, self.plant_id), self._on_view),
        ))
        if not self._view_is_active_set:
            self._tasks.append(asyncio.create_task(
                self._consume(self.store.observe(False, None), self._on_active),
            ))
        self._tasks.append(asyncio.create_task(
            self._consume(self.plant_service.observe_plants(), self._on_plants),
        ))

    async def close(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _consume(self, stream: AsyncIterator, handler: Callable[[list], None]) -> None:
        try:
            async for snapshot in stream:
                handler(snapshot)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Live subscription failed")
        finally:
            await stream.aclose()

    async def refresh(self) -> None:
        """Re-query everything once (pull to refresh)."""
        self._on_plants(await self.plant_service.list_plants())
        if not self._view_is_active_set:
            self._active_reminders = await self.store.query(False, None)
        self._on_view(await self.store.query(self.show_completed, self.plant_id))

    # -------------------------------------------------------------------------
    # Derived state
    # -------------------------------------------------------------------------

    def _on_view(self, reminders: List[Reminder]) -> None:
        self.reminders = list(reminders)
        if self._view_is_active_set:
            self._active_reminders = self.reminders
        self._recompute()

    def _on_active(self, reminders: List[Reminder]) -> None:
        self._active_reminders = list(reminders)
        self._recompute()

    def _on_plants(self, plants: List[Plant]) -> None:
        self.plants = {plant.id: plant for plant in plants}
        self._plants_loaded = True
        self._recompute()

    def _recompute(self) -> None:
        now = utc_now(self._clock() if self._clock else None)
        tz = device_timezone()

        self.grouped = group_reminders(self.reminders, now, tz)
        # Until the plant stream has emitted, every reminder would look orphaned.
        if self._plants_loaded:
            self.attention = aggregate_all(list(self.plants.values()), self._active_reminders, now, tz)

        visible = {r.id for r in self.reminders}
        self.selection &= visible
        self._notify()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call `listener(controller)` after every change; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Reminder listener failed")

    def attention_status(self, plant_id: str) -> PlantAttentionStatus:
        return self.attention.get(plant_id) or default_status(plant_id)

    def attention_statuses(self, plant_ids: Optional[Iterable[str]] = None) -> List[PlantAttentionStatus]:
        if plant_ids is None:
            return list(self.attention.values())
        return [self.attention_status(pid) for pid in plant_ids]

    @property
    def summary(self) -> AttentionSummary:
        return summarize(self.attention.values())

    def snapshot(self) -> dict:
        """JSON-ready view state."""
        return {
            "grouped": self.grouped.model_dump(mode="json"),
            "attention": [s.model_dump(mode="json") for s in self.attention.values()],
            "summary": self.summary.model_dump(),
            "batch_mode": self.batch_mode,
            "selection": sorted(self.selection),
        }

    # -------------------------------------------------------------------------
    # Batch-mode selection
    # -------------------------------------------------------------------------

    def toggle_batch_mode(self) -> bool:
        self.batch_mode = not self.batch_mode
        self.selection.clear()
        self._notify()
        return self.batch_mode

    def select(self, reminder_id: str) -> None:
        self.batch_mode = True
        self.selection.add(reminder_id)
        self._notify()

    def deselect(self, reminder_id: str) -> None:
        self.selection.discard(reminder_id)
        self._notify()

    def toggle_selection(self, reminder_id: str) -> None:
        if reminder_id in self.selection:
            self.deselect(reminder_id)
        else:
            self.select(reminder_id)

    def clear_selection(self) -> None:
        self.selection.clear()
        self._notify()

    def _finish_batch(self) -> None:
        self.selection.clear()
        self.batch_mode = False
        self._notify()

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    async def mark_done(self, reminder_id: str) -> ActionOutcome:
        return await self.actions.mark_done(reminder_id)

    async def snooze(self, reminder_id: str, days: int = 1) -> ActionOutcome:
        return await self.actions.snooze(reminder_id, days)

    async def reschedule(self, reminder_id: str, scheduled_for: Optional[datetime] = None) -> ActionOutcome:
        return await self.actions.reschedule(reminder_id, scheduled_for)

    async def batch_mark_done(self, reminder_ids: Optional[Iterable[str]] = None) -> BatchActionResult:
        """Complete the given reminders, or the current selection."""
        ids = list(reminder_ids) if reminder_ids is not None else list(self.selection)
        try:
            return await self.actions.batch_mark_done(ids)
        finally:
            self._finish_batch()

    async def batch_snooze(self, days: int = 1, reminder_ids: Optional[Iterable[str]] = None) -> BatchActionResult:
        """Snooze the given reminders, or the current selection."""
        ids = list(reminder_ids) if reminder_ids is not None else list(self.selection)
        try:
            return await self.actions.batch_snooze(ids, days)
        finally:
            self._finish_batch()
