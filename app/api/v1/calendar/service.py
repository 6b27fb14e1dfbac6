"""Calendar entries. Every change invalidates the cached working days of the months it touches."""

import logging
from datetime import date
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.working_days import service as working_days_service
from app.core.enums import CalendarEntryType
from app.core.exceptions import FieldError, NotFoundError, raise_if_errors
from app.core.models import CalendarEntry
from app.db.session import utcnow

from .schemas import CalendarEntryCreate, CalendarEntryResponse, CalendarEntryUpdate

logger = logging.getLogger(__name__)


async def _get_active(db: AsyncSession, entry_id: UUID) -> CalendarEntry:
    entry = await db.get(CalendarEntry, entry_id)
    if not entry or entry.deleted_at is not None:
        raise NotFoundError("Calendar entry not found")
    return entry


async def create_entry(db: AsyncSession, payload: CalendarEntryCreate) -> CalendarEntryResponse:
    entry = CalendarEntry(
        name=payload.name.strip(),
        type=payload.type.value,
        event_scope=payload.event_scope.value if payload.event_scope else None,
        start_date=payload.start_date,
        end_date=payload.end_date,
        description=payload.description,
    )
    db.add(entry)
    await working_days_service.invalidate_range(db, entry.start_date, entry.end_date)
    await db.commit()
    await db.refresh(entry)
    logger.info("Calendar entry %s (%s) created for %s..%s", entry.id, entry.type, entry.start_date, entry.end_date)
    return CalendarEntryResponse.model_validate(entry)


async def list_entries(
    db: AsyncSession,
    start: Optional[date] = None,
    end: Optional[date] = None,
    entry_type: Optional[CalendarEntryType] = None,
) -> List[CalendarEntryResponse]:
    q = select(CalendarEntry).where(CalendarEntry.deleted_at.is_(None))
    if start:
        q = q.where(CalendarEntry.end_date >= start)
    if end:
        q = q.where(CalendarEntry.start_date <= end)
    if entry_type:
        q = q.where(CalendarEntry.type == entry_type.value)
    result = await db.execute(q.order_by(CalendarEntry.start_date))
    return [CalendarEntryResponse.model_validate(e) for e in result.scalars().all()]


async def get_entry(db: AsyncSession, entry_id: UUID) -> CalendarEntryResponse:
    return CalendarEntryResponse.model_validate(await _get_active(db, entry_id))


async def update_entry(db: AsyncSession, entry_id: UUID, payload: CalendarEntryUpdate) -> CalendarEntryResponse:
    entry = await _get_active(db, entry_id)
    old_start, old_end = entry.start_date, entry.end_date

    data = payload.model_dump(exclude_unset=True)
    if "name" in data and data["name"] is not None:
        entry.name = data["name"].strip()
    if data.get("type") is not None:
        entry.type = data["type"].value
    if "event_scope" in data:
        entry.event_scope = data["event_scope"].value if data["event_scope"] else None
    if data.get("start_date") is not None:
        entry.start_date = data["start_date"]
    if data.get("end_date") is not None:
        entry.end_date = data["end_date"]
    if "description" in data:
        entry.description = data["description"]

    errors = []
    if entry.end_date < entry.start_date:
        errors.append(FieldError("end_date", "end_date must be on or after start_date"))
    if entry.type == CalendarEntryType.EVENT.value and not entry.event_scope:
        errors.append(FieldError("event_scope", "event_scope is required for EVENT entries"))
    if errors:
        await db.rollback()
        raise_if_errors(errors)

    await working_days_service.invalidate_range(db, min(old_start, entry.start_date), max(old_end, entry.end_date))
    await db.commit()
    await db.refresh(entry)
    return CalendarEntryResponse.model_validate(entry)


async def delete_entry(db: AsyncSession, entry_id: UUID) -> None:
    """Soft delete."""
    entry = await _get_active(db, entry_id)
    entry.deleted_at = utcnow()
    await working_days_service.invalidate_range(db, entry.start_date, entry.end_date)
    await db.commit()
    logger.info("Calendar entry %s deleted", entry_id)
