from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class WorkingDaysBreakdown(BaseModel):
    """Teaching-day accounting for one month.

    saturdays + holidays + events + exams + available_days == total_days: each non-teaching date is
    counted in exactly one category.
    """

    month: int
    year: int
    total_days: int
    saturdays: int
    holidays: int
    events: int
    exams: int
    available_days: int
    last_calculated: Optional[datetime] = None

    class Config:
        from_attributes = True


class DateEventInfo(BaseModel):
    id: UUID
    name: str
    type: str
    event_scope: Optional[str] = None
    description: str


class DateStatusResponse(BaseModel):
    date: date
    is_working_day: bool
    is_holiday: bool
    is_emergency_closure: bool
    message: str
    event: Optional[DateEventInfo] = None
