"""Care reminder models and schemas."""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class ReminderType(str, Enum):
    """Kinds of care task."""
    WATERING = "watering"
    NUTRIENTS = "nutrients"
    INSPECTION = "inspection"
    OTHER = "other"


class PriorityLevel(str, Enum):
    """Priority buckets, least to most severe."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ScheduleErrorCode(str, Enum):
    """Why a notification trigger date was rejected."""
    PAST_DATE = "PAST_DATE"
    TOO_SOON = "TOO_SOON"
    INVALID_DATE = "INVALID_DATE"


class AttentionReason(str, Enum):
    """Reason codes for a plant's attention status."""
    OVERDUE_TASK = "overdue_task"
    DUE_TODAY = "due_today"
    DUE_SOON = "due_soon"
    CRITICAL_HEALTH = "critical_health"
    LOW_HEALTH = "low_health"
    OVERDUE_WATERING = "overdue_watering"
    OVERDUE_NUTRIENTS = "overdue_nutrients"


class ActionStatus(str, Enum):
    """Per-reminder result of a command."""
    SUCCEEDED = "succeeded"
    UNCHANGED = "unchanged"  # already completed / already at the target date
    REJECTED = "rejected"  # validation failed, nothing written
    NOT_FOUND = "not_found"
    FAILED = "failed"  # storage failure, nothing written


def _as_utc(value: datetime) -> datetime:
    """Naive datetimes coming out of storage are UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ==================== Reminders ====================


class Reminder(BaseModel):
    """A scheduled care task for one plant."""
    id: str
    plant_id: str
    type: ReminderType = ReminderType.OTHER
    title: Optional[str] = None
    description: Optional[str] = None
    scheduled_for: datetime
    is_completed: bool = False
    completed_at: Optional[datetime] = None
    is_deleted: bool = False
    created_at: datetime
    updated_at: Optional[datetime] = None

    @field_validator("type", mode="before")
    @classmethod
    def _legacy_type(cls, value):
        if value == "custom":
            return ReminderType.OTHER
        return value

    @field_validator("scheduled_for", "created_at", "completed_at", "updated_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value) if value is not None else None

    @property
    def is_active(self) -> bool:
        return not self.is_deleted and not self.is_completed


class ReminderResponse(Reminder):
    """Reminder with its derived priority bucket."""
    priority_level: PriorityLevel


class GroupedReminders(BaseModel):
    """Reminders partitioned by priority bucket; empty buckets are empty lists."""
    urgent: List[ReminderResponse] = Field(default_factory=list)
    high: List[ReminderResponse] = Field(default_factory=list)
    medium: List[ReminderResponse] = Field(default_factory=list)
    low: List[ReminderResponse] = Field(default_factory=list)

    def bucket(self, level: PriorityLevel) -> List[ReminderResponse]:
        return getattr(self, level.value)

    @property
    def total(self) -> int:
        return len(self.urgent) + len(self.high) + len(self.medium) + len(self.low)


class ReminderStats(BaseModel):
    """Counts over the non-deleted reminder set."""
    total: int = 0  # active (not completed)
    overdue: int = 0
    due_today: int = 0
    due_soon: int = 0
    completed: int = 0


# ==================== Scheduling ====================


class ScheduleError(BaseModel):
    code: ScheduleErrorCode
    message: str


class ScheduleValidationResult(BaseModel):
    """Either a validated trigger date or a structured rejection."""
    success: bool
    scheduled_date: Optional[datetime] = None
    error: Optional[ScheduleError] = None


class NotificationContent(BaseModel):
    """Payload handed to the notification scheduler."""
    title: str
    body: str
    data: dict = Field(default_factory=dict)


# ==================== Attention ====================


class PlantAttentionStatus(BaseModel):
    """Derived attention signal for one plant (never persisted)."""
    plant_id: str
    needs_attention: bool = False
    priority_level: PriorityLevel = PriorityLevel.LOW
    reminder_count: int = 0
    overdue_count: int = 0
    due_today_count: int = 0
    reasons: List[AttentionReason] = Field(default_factory=list)


class AttentionSummary(BaseModel):
    """Headline counters over a set of attention statuses."""
    total_needing_attention: int = 0
    urgent_count: int = 0
    high_priority_count: int = 0


class AttentionResponse(BaseModel):
    statuses: List[PlantAttentionStatus]
    summary: AttentionSummary


# ==================== Commands ====================


class SnoozeRequest(BaseModel):
    days: int = Field(default=1, ge=1, le=365)


class RescheduleRequest(BaseModel):
    """Explicit target date; omit to push the reminder back by one day."""
    scheduled_for: Optional[datetime] = None


class BatchRequest(BaseModel):
    reminder_ids: List[str] = Field(..., min_length=1, max_length=500)


class BatchSnoozeRequest(BatchRequest):
    days: int = Field(default=1, ge=1, le=365)


class ActionOutcome(BaseModel):
    """Result of a command for a single reminder."""
    reminder_id: str
    status: ActionStatus
    error_code: Optional[str] = None
    message: Optional[str] = None
    scheduled_for: Optional[datetime] = None

    @property
    def ok(self) -> bool:
        return self.status in (ActionStatus.SUCCEEDED, ActionStatus.UNCHANGED)


class BatchActionResult(BaseModel):
    """Per-item report of a batch command; there is no batch-level rollback."""
    action: str
    outcomes: List[ActionOutcome] = Field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed(self) -> int:
        return len(self.outcomes) - self.succeeded


class BatchActionResponse(BaseModel):
    action: str
    outcomes: List[ActionOutcome]
    succeeded: int
    failed: int
