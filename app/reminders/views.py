"""Care reminder API routes."""

import asyncio
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect

from app.core.exceptions import AppException, BadRequestException, NotFoundException
from app.plants.service import PlantService
from app.reminders.attention import aggregate, aggregate_all, summarize
from app.reminders.controller import ReminderLifecycleController
from app.reminders.grouping import group_reminders
from app.reminders.models import (
    ActionOutcome,
    ActionStatus,
    AttentionResponse,
    BatchActionResponse,
    BatchActionResult,
    BatchRequest,
    BatchSnoozeRequest,
    GroupedReminders,
    PlantAttentionStatus,
    ReminderStats,
    RescheduleRequest,
    SnoozeRequest,
)
from app.reminders.service import ReminderActionService
from app.reminders.store import ReminderStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reminders", tags=["Reminders"])


def get_reminder_store() -> ReminderStore:
    return ReminderStore()


def get_plant_service():
    return PlantService


def get_action_service(
    store: ReminderStore = Depends(get_reminder_store),
    plant_service=Depends(get_plant_service),
) -> ReminderActionService:
    return ReminderActionService(store=store, plant_lookup=plant_service.get_plant)


def _outcome_or_error(outcome: ActionOutcome) -> ActionOutcome:
    if outcome.status == ActionStatus.REJECTED:
        raise BadRequestException(outcome.message or "Unable to schedule reminder")
    return outcome


def _batch_response(result: BatchActionResult) -> BatchActionResponse:
    return BatchActionResponse(
        action=result.action,
        outcomes=result.outcomes,
        succeeded=result.succeeded,
        failed=result.failed,
    )


# ==================== Reads ====================


@router.get("", response_model=GroupedReminders)
async def get_grouped_reminders(
    show_completed: bool = Query(default=False),
    plant_id: Optional[str] = Query(default=None),
    store: ReminderStore = Depends(get_reminder_store),
):
    """
    Get reminders grouped by priority (urgent, high, medium, low).

    Within each group reminders are ordered by due date.
    """
    reminders = await store.query(show_completed=show_completed, plant_id=plant_id)
    return group_reminders(reminders)


@router.get("/stats", response_model=ReminderStats)
async def get_reminder_stats(store: ReminderStore = Depends(get_reminder_store)):
    """Counts of active, overdue, due today, due soon and completed reminders."""
    return await store.get_stats()


@router.get("/attention", response_model=AttentionResponse)
async def get_attention(
    plant_ids: Optional[List[str]] = Query(default=None),
    store: ReminderStore = Depends(get_reminder_store),
    plant_service=Depends(get_plant_service),
):
    """Attention status for every plant (or the given plants), plus headline counts."""
    plants = await plant_service.list_plants(plant_ids)
    reminders = await store.query(show_completed=False)
    if plant_ids:
        reminders = [r for r in reminders if r.plant_id in plant_ids]
    statuses = list(aggregate_all(plants, reminders).values())
    return AttentionResponse(statuses=statuses, summary=summarize(statuses))


@router.get("/attention/{plant_id}", response_model=PlantAttentionStatus)
async def get_plant_attention(
    plant_id: str,
    store: ReminderStore = Depends(get_reminder_store),
    plant_service=Depends(get_plant_service),
):
    """Attention status for a single plant."""
    plant = await plant_service.get_plant(plant_id)
    if not plant:
        raise NotFoundException("Plant not found")
    reminders = await store.query(show_completed=False, plant_id=plant_id)
    return aggregate(plant, reminders)


# ==================== Batch commands ====================
# Declared before the /{reminder_id} routes so "batch" is never taken as an id.


@router.post("/batch/done", response_model=BatchActionResponse)
async def batch_mark_done(
    request: BatchRequest,
    actions: ReminderActionService = Depends(get_action_service),
):
    """Mark several reminders as done. Each reminder succeeds or fails on its own."""
    return _batch_response(await actions.batch_mark_done(request.reminder_ids))


@router.post("/batch/snooze", response_model=BatchActionResponse)
async def batch_snooze(
    request: BatchSnoozeRequest,
    actions: ReminderActionService = Depends(get_action_service),
):
    """Snooze several reminders by the same number of days."""
    return _batch_response(await actions.batch_snooze(request.reminder_ids, request.days))


# ==================== Single commands ====================


@router.post("/{reminder_id}/done", response_model=ActionOutcome)
async def mark_done(
    reminder_id: str,
    actions: ReminderActionService = Depends(get_action_service),
):
    """Mark a reminder as done. Marking it again is a no-op."""
    return await actions.mark_done(reminder_id)


@router.post("/{reminder_id}/snooze", response_model=ActionOutcome)
async def snooze(
    reminder_id: str,
    request: SnoozeRequest,
    actions: ReminderActionService = Depends(get_action_service),
):
    """Push a reminder back by whole days."""
    return _outcome_or_error(await actions.snooze(reminder_id, request.days))


@router.post("/{reminder_id}/reschedule", response_model=ActionOutcome)
async def reschedule(
    reminder_id: str,
    request: RescheduleRequest,
    actions: ReminderActionService = Depends(get_action_service),
):
    """Move a reminder to a new date (one day later when no date is given)."""
    return _outcome_or_error(await actions.reschedule(reminder_id, request.scheduled_for))


# ==================== Live view ====================


async def handle_live_message(controller: ReminderLifecycleController, message: dict) -> dict:
    """
    Apply one client message to a live controller.

    Messages look like {"action": "select", "reminder_id": "..."}.
    """
    action = message.get("action") if isinstance(message, dict) else None

    try:
        if not isinstance(message, dict):
            raise BadRequestException("Message must be a JSON object")
        reminder_id = message.get("reminder_id")
        days = message.get("days")
        days = 1 if days is None else SnoozeRequest(days=days).days

        if action == "toggle_batch_mode":
            return {"batch_mode": controller.toggle_batch_mode()}
        if action in ("select", "deselect", "toggle_selection"):
            if not reminder_id:
                raise BadRequestException("reminder_id is required")
            getattr(controller, action)(reminder_id)
            return {"selection": sorted(controller.selection)}
        if action == "clear_selection":
            controller.clear_selection()
            return {"selection": []}
        if action == "refresh":
            await controller.refresh()
            return {"refreshed": True}
        if action == "mark_done":
            outcome = await controller.mark_done(reminder_id)
            return {"outcome": outcome.model_dump(mode="json")}
        if action == "snooze":
            outcome = await controller.snooze(reminder_id, days)
            return {"outcome": outcome.model_dump(mode="json")}
        if action == "reschedule":
            scheduled_for = message.get("scheduled_for")
            target = datetime.fromisoformat(scheduled_for) if scheduled_for else None
            outcome = await controller.reschedule(reminder_id, target)
            return {"outcome": outcome.model_dump(mode="json")}
        if action == "batch_mark_done":
            result = await controller.batch_mark_done(message.get("reminder_ids"))
            return {"batch": _batch_response(result).model_dump(mode="json")}
        if action == "batch_snooze":
            result = await controller.batch_snooze(days, message.get("reminder_ids"))
            return {"batch": _batch_response(result).model_dump(mode="json")}
    except AppException as e:
        return {"error": e.detail}
    except (TypeError, ValueError) as e:
        return {"error": str(e)}

    return {"error": f"Unknown action: {action}"}


async def _push_updates(websocket: WebSocket, controller: ReminderLifecycleController, changed: asyncio.Event):
    while True:
        await changed.wait()
        changed.clear()
        await websocket.send_json({"type": "state", **controller.snapshot()})


@router.websocket("/live")
async def live_reminders(
    websocket: WebSocket,
    show_completed: bool = False,
    plant_id: Optional[str] = None,
    actions: ReminderActionService = Depends(get_action_service),
    plant_service=Depends(get_plant_service),
):
    """
    Live reminder view.

    Pushes {"type": "state", ...} after every change to reminders, plants or
    the selection, and answers each client message with {"type": "result", ...}.
    """
    await websocket.accept()

    async with ReminderLifecycleController(
        actions,
        plant_service,
        show_completed=show_completed,
        plant_id=plant_id,
    ) as controller:
        changed = asyncio.Event()
        controller.subscribe(lambda _: changed.set())
        sender = asyncio.create_task(_push_updates(websocket, controller, changed))
        try:
            while True:
                message = await websocket.receive_json()
                reply = await handle_live_message(controller, message)
                action = message.get("action") if isinstance(message, dict) else None
                await websocket.send_json({"type": "result", "action": action, **reply})
        except WebSocketDisconnect:
            logger.info("Live reminder client disconnected")
        finally:
            sender.cancel()
            await asyncio.gather(sender, return_exceptions=True)
