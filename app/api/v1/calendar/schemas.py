from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from app.core.enums import CalendarEntryType, EventScope


class CalendarEntryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    type: CalendarEntryType
    event_scope: Optional[EventScope] = Field(None, description="Required for EVENT entries")
    start_date: date
    end_date: date
    description: Optional[str] = Field(None, max_length=2000)

    @model_validator(mode="after")
    def validate_range_and_scope(self) -> "CalendarEntryCreate":
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        if self.type == CalendarEntryType.EVENT and self.event_scope is None:
            raise ValueError("event_scope is required for EVENT entries")
        return self


class CalendarEntryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    type: Optional[CalendarEntryType] = None
    event_scope: Optional[EventScope] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    description: Optional[str] = Field(None, max_length=2000)


class CalendarEntryResponse(BaseModel):
    id: UUID
    name: str
    type: str
    event_scope: Optional[str] = None
    start_date: date
    end_date: date
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
