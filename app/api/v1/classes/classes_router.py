from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import check_permission
from app.core.exceptions import ServiceError
from app.db.session import get_db

from .schemas import ClassCreate, ClassResponse, ClassStudentsResponse, ClassTeacherAssign, ClassUpdate
from . import service

router = APIRouter(prefix="/api/v1/classes", tags=["classes"])


@router.post(
    "",
    response_model=ClassResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("classes", "manage"))],
)
async def create_class(
    payload: ClassCreate,
    db: AsyncSession = Depends(get_db),
) -> ClassResponse:
    try:
        return await service.create_class(db, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get(
    "",
    response_model=List[ClassResponse],
    dependencies=[Depends(check_permission("classes", "read"))],
)
async def list_classes(
    active_only: bool = Query(True, description="Return only is_active=true by default"),
    db: AsyncSession = Depends(get_db),
) -> List[ClassResponse]:
    return await service.list_classes(db, active_only=active_only)


@router.get(
    "/{class_id}",
    response_model=ClassResponse,
    dependencies=[Depends(check_permission("classes", "read"))],
)
async def get_class(
    class_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> ClassResponse:
    try:
        return await service.get_class(db, class_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.put(
    "/{class_id}",
    response_model=ClassResponse,
    dependencies=[Depends(check_permission("classes", "manage"))],
)
async def update_class(
    class_id: UUID,
    payload: ClassUpdate,
    db: AsyncSession = Depends(get_db),
) -> ClassResponse:
    try:
        return await service.update_class(db, class_id, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.put(
    "/{class_id}/class-teacher",
    response_model=ClassResponse,
    dependencies=[Depends(check_permission("classes", "manage"))],
)
async def assign_class_teacher(
    class_id: UUID,
    payload: ClassTeacherAssign,
    db: AsyncSession = Depends(get_db),
) -> ClassResponse:
    """Set or clear the single class teacher of a class."""
    try:
        return await service.assign_class_teacher(db, class_id, payload.teacher_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get(
    "/{class_id}/students",
    response_model=ClassStudentsResponse,
    dependencies=[Depends(check_permission("classes", "read"))],
)
async def list_class_students(
    class_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> ClassStudentsResponse:
    try:
        return await service.list_class_students(db, class_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
