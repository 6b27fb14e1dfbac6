from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import check_permission
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import TeacherCreate, TeacherProfileUpdate, TeacherResponse
from . import service

router = APIRouter(prefix="/api/v1/teachers", tags=["teachers"])


@router.post(
    "",
    response_model=TeacherResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("classes", "manage"))],
)
async def create_teacher(
    payload: TeacherCreate,
    db: AsyncSession = Depends(get_db),
) -> TeacherResponse:
    try:
        return await service.create_teacher(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get(
    "",
    response_model=List[TeacherResponse],
    dependencies=[Depends(check_permission("classes", "read"))],
)
async def list_teachers(
    db: AsyncSession = Depends(get_db),
) -> List[TeacherResponse]:
    return await service.list_teachers(db)


@router.get(
    "/{teacher_id}",
    response_model=TeacherResponse,
    dependencies=[Depends(check_permission("classes", "read"))],
)
async def get_teacher(
    teacher_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> TeacherResponse:
    try:
        return await service.get_teacher(db, teacher_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.put(
    "/{teacher_id}/profile",
    response_model=TeacherResponse,
    dependencies=[Depends(check_permission("classes", "manage"))],
)
async def update_teacher_profile(
    teacher_id: UUID,
    payload: TeacherProfileUpdate,
    db: AsyncSession = Depends(get_db),
) -> TeacherResponse:
    """Update designation and the structured additional_data block."""
    try:
        return await service.update_teacher_profile(db, teacher_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
