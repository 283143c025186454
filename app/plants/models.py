"""Plant-related models and schemas."""

from typing import Optional
from pydantic import BaseModel, Field


class Plant(BaseModel):
    """
    A plant as seen by the reminder core (read-only).

    Health metrics are maintained elsewhere; missing values simply
    contribute no attention signal.
    """
    id: str
    name: str
    strain: Optional[str] = None
    image_url: Optional[str] = None
    health_percentage: Optional[float] = Field(None, ge=0, le=100)
    next_watering_days: Optional[int] = None  # <= 0 means watering is due/overdue
    next_nutrient_days: Optional[int] = None
    is_deleted: bool = False
