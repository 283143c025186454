"""
Plant attention aggregation.

Combines a plant's active reminders with its live health metrics into a
single PlantAttentionStatus. The overall priority is the most severe signal
present (never an average), and reasons are ordered reminder signals first,
then health signals, each group most severe first.
"""

import logging
from datetime import datetime, tzinfo
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from app.core.config import get_settings
from app.plants.models import Plant
from app.reminders.models import (
    AttentionReason,
    AttentionSummary,
    PlantAttentionStatus,
    PriorityLevel,
    Reminder,
)
from app.reminders.priority import SEVERITY_ORDER, classify, max_priority
from app.reminders.scheduling import device_timezone, utc_now

logger = logging.getLogger(__name__)

# Reminder bucket -> reason code; LOW reminders contribute no signal.
_REMINDER_REASONS = (
    (PriorityLevel.URGENT, AttentionReason.OVERDUE_TASK),
    (PriorityLevel.HIGH, AttentionReason.DUE_TODAY),
    (PriorityLevel.MEDIUM, AttentionReason.DUE_SOON),
)

Signal = Tuple[PriorityLevel, AttentionReason]


def _by_severity(signals: List[Signal]) -> List[Signal]:
    # sorted() is stable, so equal severities keep declaration order
    return sorted(signals, key=lambda s: SEVERITY_ORDER[s[0]], reverse=True)


def health_signals(plant: Plant) -> List[Signal]:
    """Attention signals derived from plant metrics alone."""
    settings = get_settings()
    signals: List[Signal] = []

    health = plant.health_percentage
    if health is not None:
        if health < settings.HEALTH_CRITICAL_THRESHOLD:
            signals.append((PriorityLevel.URGENT, AttentionReason.CRITICAL_HEALTH))
        elif health < settings.HEALTH_LOW_THRESHOLD:
            signals.append((PriorityLevel.HIGH, AttentionReason.LOW_HEALTH))

    if plant.next_watering_days is not None and plant.next_watering_days <= 0:
        signals.append((PriorityLevel.HIGH, AttentionReason.OVERDUE_WATERING))

    if plant.next_nutrient_days is not None and plant.next_nutrient_days <= 0:
        signals.append((PriorityLevel.MEDIUM, AttentionReason.OVERDUE_NUTRIENTS))

    return _by_severity(signals)


def aggregate(
    plant: Plant,
    reminders: Iterable[Reminder],
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> PlantAttentionStatus:
    """
    Attention status for one plant.

    `reminders` may contain other plants' reminders and inactive ones; both
    are ignored.
    """
    now = utc_now(now)
    tz = tz or device_timezone()

    levels = [
        classify(r, now, tz)
        for r in reminders
        if r.plant_id == plant.id and r.is_active
    ]
    present = set(levels)

    reminder_signals = [(level, reason) for level, reason in _REMINDER_REASONS if level in present]
    signals = reminder_signals + health_signals(plant)

    priority_level = max_priority(level for level, _ in signals)

    return PlantAttentionStatus(
        plant_id=plant.id,
        needs_attention=priority_level != PriorityLevel.LOW,
        priority_level=priority_level,
        reminder_count=len(levels),
        overdue_count=levels.count(PriorityLevel.URGENT),
        due_today_count=levels.count(PriorityLevel.HIGH),
        reasons=[reason for _, reason in signals],
    )


def aggregate_all(
    plants: Sequence[Plant],
    reminders: Sequence[Reminder],
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> Dict[str, PlantAttentionStatus]:
    """
    Attention statuses for every plant, keyed by plant id.

    Active reminders whose plant cannot be resolved are left out and
    reported as a data-integrity warning.
    """
    now = utc_now(now)
    tz = tz or device_timezone()

    by_plant: Dict[str, List[Reminder]] = {plant.id: [] for plant in plants}
    orphaned: List[Reminder] = []
    for reminder in reminders:
        if not reminder.is_active:
            continue
        bucket = by_plant.get(reminder.plant_id)
        if bucket is None:
            orphaned.append(reminder)
        else:
            bucket.append(reminder)

    if orphaned:
        logger.warning(
            f"Data integrity: {len(orphaned)} reminder(s) reference unknown plants and were "
            f"excluded from attention: "
            f"{sorted({(r.id, r.plant_id) for r in orphaned})}"
        )

    return {
        plant.id: aggregate(plant, by_plant[plant.id], now, tz)
        for plant in plants
    }


def default_status(plant_id: str) -> PlantAttentionStatus:
    """Status for a plant with no signals (or no data yet)."""
    return PlantAttentionStatus(plant_id=plant_id)


def summarize(statuses: Iterable[PlantAttentionStatus]) -> AttentionSummary:
    summary = AttentionSummary()
    for status in statuses:
        if status.needs_attention:
            summary.total_needing_attention += 1
        if status.priority_level == PriorityLevel.URGENT:
            summary.urgent_count += 1
        elif status.priority_level == PriorityLevel.HIGH:
            summary.high_priority_count += 1
    return summary
