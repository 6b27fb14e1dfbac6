from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import check_permission
from app.auth.schemas import CurrentUser
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import (
    AttendanceEntryUpdate,
    AttendanceRecordResponse,
    AttendanceUnlock,
    ClassAttendanceForDate,
    ClassTeacherCheck,
    ClassWiseAttendanceStats,
    RecordAttendanceRequest,
    StudentAttendanceHistory,
    StudentMonthlyStats,
)
from . import service

router = APIRouter(prefix="/api/v1/attendance", tags=["attendance"])


@router.post(
    "",
    response_model=AttendanceRecordResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("attendance", "create"))],
)
async def record_attendance(
    payload: RecordAttendanceRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AttendanceRecordResponse:
    """Take attendance for a class. Class teacher only; the record is locked on submission."""
    try:
        return await service.record_attendance(db, current_user, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get(
    "/class-teacher/check",
    response_model=ClassTeacherCheck,
    dependencies=[Depends(check_permission("attendance", "read"))],
)
async def check_class_teacher(
    class_id: UUID = Query(...),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ClassTeacherCheck:
    """Whether the current user is the class teacher of the class (drives the take-attendance button)."""
    return ClassTeacherCheck(
        class_id=class_id,
        teacher_id=current_user.teacher_id,
        is_class_teacher=await service.is_class_teacher(db, current_user.teacher_id, class_id),
    )


@router.get(
    "/classes/{class_id}",
    response_model=ClassAttendanceForDate,
    dependencies=[Depends(check_permission("attendance", "read"))],
)
async def get_class_attendance(
    class_id: UUID,
    att_date: date = Query(..., alias="date"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ClassAttendanceForDate:
    """The record for the date (null if not taken) with the date's working-day status."""
    try:
        return await service.get_class_attendance(db, class_id, att_date, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get(
    "/students/{student_id}/stats",
    response_model=StudentMonthlyStats,
    dependencies=[Depends(check_permission("attendance", "read"))],
)
async def get_student_monthly_stats(
    student_id: UUID,
    month: int = Query(..., description="1-12"),
    year: int = Query(...),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentMonthlyStats:
    try:
        return await service.student_monthly_stats(db, student_id, month, year, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get(
    "/students/{student_id}",
    response_model=StudentAttendanceHistory,
    dependencies=[Depends(check_permission("attendance", "read"))],
)
async def get_student_attendance(
    student_id: UUID,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    month: Optional[int] = Query(None),
    year: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(31, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> StudentAttendanceHistory:
    try:
        return await service.get_student_attendance(
            db,
            student_id,
            current_user,
            start_date=start_date,
            end_date=end_date,
            month=month,
            year=year,
            page=page,
            limit=limit,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get(
    "/class-wise/stats",
    response_model=ClassWiseAttendanceStats,
    dependencies=[Depends(check_permission("attendance", "override"))],
)
async def get_class_wise_stats(
    att_date: Optional[date] = Query(None, alias="date"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ClassWiseAttendanceStats:
    """Present/absent per class for a date (default today)."""
    try:
        return await service.class_wise_stats(db, current_user, att_date)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get(
    "/{attendance_id}",
    response_model=AttendanceRecordResponse,
    dependencies=[Depends(check_permission("attendance", "read"))],
)
async def get_attendance_record(
    attendance_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AttendanceRecordResponse:
    try:
        return await service.get_record(db, attendance_id, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.patch(
    "/{attendance_id}/entries/{student_id}",
    response_model=AttendanceRecordResponse,
    dependencies=[Depends(check_permission("attendance", "create"))],
)
async def update_attendance_entry(
    attendance_id: UUID,
    student_id: UUID,
    payload: AttendanceEntryUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AttendanceRecordResponse:
    """Edit one entry. Locked records require override=true and a reason (admins only)."""
    try:
        return await service.update_entry(db, attendance_id, student_id, current_user, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.post(
    "/{attendance_id}/unlock",
    response_model=AttendanceRecordResponse,
    dependencies=[Depends(check_permission("attendance", "override"))],
)
async def unlock_attendance(
    attendance_id: UUID,
    payload: AttendanceUnlock,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AttendanceRecordResponse:
    try:
        return await service.unlock_record(db, attendance_id, current_user, payload.reason)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.post(
    "/{attendance_id}/lock",
    response_model=AttendanceRecordResponse,
    dependencies=[Depends(check_permission("attendance", "create"))],
)
async def lock_attendance(
    attendance_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> AttendanceRecordResponse:
    try:
        return await service.lock_record(db, attendance_id, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
