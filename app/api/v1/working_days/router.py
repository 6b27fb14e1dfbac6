"""Working days API: monthly breakdown and per-date attendance status."""

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import check_permission
from app.core.exceptions import ServiceError
from app.db.session import get_db

from . import service
from .schemas import DateStatusResponse, WorkingDaysBreakdown

router = APIRouter(prefix="/api/v1/working-days", tags=["working-days"])


@router.get(
    "",
    response_model=WorkingDaysBreakdown,
    dependencies=[Depends(check_permission("calendar", "read"))],
)
async def get_working_days(
    month: int = Query(..., description="1-12"),
    year: int = Query(...),
    db: AsyncSession = Depends(get_db),
) -> WorkingDaysBreakdown:
    """Teaching days available in a month after weekly offs, holidays, school-wide events and exams."""
    try:
        return await service.get_breakdown(db, month, year)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get(
    "/current",
    response_model=WorkingDaysBreakdown,
    dependencies=[Depends(check_permission("calendar", "read"))],
)
async def get_current_month_working_days(
    db: AsyncSession = Depends(get_db),
) -> WorkingDaysBreakdown:
    return await service.current_month_breakdown(db)


@router.get(
    "/date-status",
    response_model=DateStatusResponse,
    dependencies=[Depends(check_permission("calendar", "read"))],
)
async def get_date_status(
    target: date = Query(..., alias="date", description="YYYY-MM-DD"),
    db: AsyncSession = Depends(get_db),
) -> DateStatusResponse:
    """Is attendance required on this date? Weekly offs, holidays and school-wide events say no."""
    return await service.check_date_status(db, target)
