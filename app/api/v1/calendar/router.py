from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import check_permission
from app.core.enums import CalendarEntryType
from app.core.exceptions import ServiceError
from app.db.session import get_db

from . import service
from .schemas import CalendarEntryCreate, CalendarEntryResponse, CalendarEntryUpdate

router = APIRouter(prefix="/api/v1/calendar", tags=["calendar"])


@router.post(
    "",
    response_model=CalendarEntryResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("calendar", "manage"))],
)
async def create_calendar_entry(
    payload: CalendarEntryCreate,
    db: AsyncSession = Depends(get_db),
) -> CalendarEntryResponse:
    return await service.create_entry(db, payload)


@router.get(
    "",
    response_model=List[CalendarEntryResponse],
    dependencies=[Depends(check_permission("calendar", "read"))],
)
async def list_calendar_entries(
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    type: Optional[CalendarEntryType] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> List[CalendarEntryResponse]:
    """Entries overlapping [start, end] (either bound optional)."""
    return await service.list_entries(db, start=start, end=end, entry_type=type)


@router.get(
    "/{entry_id}",
    response_model=CalendarEntryResponse,
    dependencies=[Depends(check_permission("calendar", "read"))],
)
async def get_calendar_entry(
    entry_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> CalendarEntryResponse:
    try:
        return await service.get_entry(db, entry_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.put(
    "/{entry_id}",
    response_model=CalendarEntryResponse,
    dependencies=[Depends(check_permission("calendar", "manage"))],
)
async def update_calendar_entry(
    entry_id: UUID,
    payload: CalendarEntryUpdate,
    db: AsyncSession = Depends(get_db),
) -> CalendarEntryResponse:
    try:
        return await service.update_entry(db, entry_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.delete(
    "/{entry_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(check_permission("calendar", "manage"))],
)
async def delete_calendar_entry(
    entry_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> None:
    try:
        await service.delete_entry(db, entry_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
