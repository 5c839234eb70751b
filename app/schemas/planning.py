"""Weekly planning schemas."""

from pydantic import BaseModel
from typing import Optional, Any

from app.schemas.types import DayIndex, WeekState


class DailyPlanResponse(BaseModel):
    date: str
    day_index: int
    day_of_week: str
    visits: list[dict[str, Any]]
    total_visits: int
    total_duration: float

    class Config:
        from_attributes = True


class WeeklyGridResponse(BaseModel):
    """One Saturday-to-Friday planning week."""
    week_number: int
    year: int
    week_start_date: str
    week_end_date: str
    visits: list[dict[str, Any]]
    daily_plans: list[DailyPlanResponse]
    skipped_count: int = 0

    class Config:
        from_attributes = True


class WeekStatusResponse(BaseModel):
    week_number: int
    year: int
    total_visits: int
    completed_visits: int
    pending_visits: int
    cancelled_visits: int
    emergency_visits: int
    status: WeekState

    class Config:
        from_attributes = True


class MoveVisitRequest(BaseModel):
    visit_id: str
    from_day: DayIndex
    to_day: DayIndex


class MovementResponse(BaseModel):
    visit_id: str
    from_day: int
    to_day: int
    from_date: Optional[str] = None
    to_date: str
    performed_by: str
    timestamp: str

    class Config:
        from_attributes = True


class MoveVisitResponse(BaseModel):
    movement: MovementResponse
    grid: WeeklyGridResponse
