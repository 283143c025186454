"""Scheduled notification models."""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field
from enum import Enum


class DeliveryState(str, Enum):
    """Lifecycle of a scheduled device notification."""
    PENDING = "pending"
    SENDING = "sending"
    DELIVERED = "delivered"
    FAILED = "failed"


class ScheduledNotification(BaseModel):
    """A pending device notification, one per reminder."""
    reminder_id: str
    title: str
    body: str
    data: dict = Field(default_factory=dict)
    deliver_at: datetime
    state: DeliveryState = DeliveryState.PENDING
    attempts: int = 0
    claimed_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    last_error: Optional[str] = None
