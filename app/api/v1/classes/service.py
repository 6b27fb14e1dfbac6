"""Class registry. A class has at most one class teacher; a teacher is class teacher of at most one class."""

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import StudentProfile, TeacherProfile, User
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.core.models import SchoolClass

from .schemas import (
    ClassCreate,
    ClassResponse,
    ClassStudentItem,
    ClassStudentsResponse,
    ClassUpdate,
)

logger = logging.getLogger(__name__)


async def _student_count(db: AsyncSession, class_id: UUID) -> int:
    result = await db.execute(
        select(func.count(StudentProfile.id)).where(StudentProfile.class_id == class_id)
    )
    return result.scalar_one()


async def _class_to_response(db: AsyncSession, c: SchoolClass) -> ClassResponse:
    return ClassResponse(
        id=c.id,
        name=c.name,
        grade=c.grade,
        section=c.section,
        class_teacher_id=c.class_teacher_id,
        capacity=c.capacity,
        shift=c.shift,
        is_active=c.is_active,
        student_count=await _student_count(db, c.id),
        created_at=c.created_at,
        updated_at=c.updated_at,
    )


async def get_class_or_404(db: AsyncSession, class_id: UUID) -> SchoolClass:
    c = await db.get(SchoolClass, class_id)
    if not c:
        raise NotFoundError("Class not found")
    return c


async def get_class_by_teacher(db: AsyncSession, teacher_id: UUID) -> Optional[SchoolClass]:
    result = await db.execute(select(SchoolClass).where(SchoolClass.class_teacher_id == teacher_id))
    return result.scalar_one_or_none()


async def _ensure_teacher_free(db: AsyncSession, teacher_id: UUID, class_id: Optional[UUID]) -> None:
    teacher = await db.get(TeacherProfile, teacher_id)
    if not teacher:
        raise ValidationError.single("teacher_id", "Selected teacher does not exist")
    current = await get_class_by_teacher(db, teacher_id)
    if current and current.id != class_id:
        raise ConflictError(f"Teacher is already class teacher of {current.name}")


async def create_class(db: AsyncSession, payload: ClassCreate) -> ClassResponse:
    if payload.class_teacher_id:
        await _ensure_teacher_free(db, payload.class_teacher_id, None)
    section = payload.section.strip().upper()
    obj = SchoolClass(
        name=(payload.name or f"{payload.grade}-{section}").strip(),
        grade=payload.grade,
        section=section,
        capacity=payload.capacity,
        shift=payload.shift.value,
        class_teacher_id=payload.class_teacher_id,
        is_active=True,
    )
    db.add(obj)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Class with this grade, section and shift already exists")
    await db.refresh(obj)
    return await _class_to_response(db, obj)


async def list_classes(db: AsyncSession, active_only: bool = True) -> List[ClassResponse]:
    q = select(SchoolClass)
    if active_only:
        q = q.where(SchoolClass.is_active.is_(True))
    result = await db.execute(q.order_by(SchoolClass.grade, SchoolClass.section))
    return [await _class_to_response(db, c) for c in result.scalars().all()]


async def get_class(db: AsyncSession, class_id: UUID) -> ClassResponse:
    return await _class_to_response(db, await get_class_or_404(db, class_id))


async def update_class(db: AsyncSession, class_id: UUID, payload: ClassUpdate) -> ClassResponse:
    c = await get_class_or_404(db, class_id)
    if payload.name is not None:
        c.name = payload.name.strip()
    if payload.capacity is not None:
        enrolled = await _student_count(db, class_id)
        if payload.capacity < enrolled:
            raise ValidationError.single("capacity", f"Capacity cannot be below current enrolment ({enrolled})")
        c.capacity = payload.capacity
    if payload.shift is not None:
        c.shift = payload.shift.value
    if payload.is_active is not None:
        c.is_active = payload.is_active
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Class with this grade, section and shift already exists")
    await db.refresh(c)
    return await _class_to_response(db, c)


async def assign_class_teacher(db: AsyncSession, class_id: UUID, teacher_id: Optional[UUID]) -> ClassResponse:
    """Replace (or clear) the class teacher. The previous class teacher loses attendance rights immediately."""
    c = await get_class_or_404(db, class_id)
    if teacher_id:
        await _ensure_teacher_free(db, teacher_id, class_id)
    previous = c.class_teacher_id
    c.class_teacher_id = teacher_id
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Teacher is already class teacher of another class")
    await db.refresh(c)
    logger.info("Class %s class teacher changed from %s to %s", class_id, previous, teacher_id)
    return await _class_to_response(db, c)


async def list_class_students(db: AsyncSession, class_id: UUID) -> ClassStudentsResponse:
    await get_class_or_404(db, class_id)
    result = await db.execute(
        select(StudentProfile, User.full_name)
        .join(User, StudentProfile.user_id == User.id)
        .where(StudentProfile.class_id == class_id)
        .order_by(StudentProfile.roll_number, User.full_name)
    )
    return ClassStudentsResponse(
        class_id=class_id,
        students=[
            ClassStudentItem(id=sp.id, user_id=sp.user_id, full_name=name, roll_number=sp.roll_number)
            for sp, name in result.all()
        ],
    )
