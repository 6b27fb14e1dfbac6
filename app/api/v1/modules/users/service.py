"""Teacher and student records: the user row plus its profile."""

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.classes.service import get_class_by_teacher, get_class_or_404
from app.auth.models import StudentProfile, TeacherProfile, User
from app.core.enums import UserRole
from app.core.exceptions import ConflictError, NotFoundError, ValidationError

from .schemas import (
    StudentClassUpdate,
    StudentCreate,
    StudentResponse,
    TeacherAdditionalData,
    TeacherCreate,
    TeacherProfileUpdate,
    TeacherResponse,
)

logger = logging.getLogger(__name__)


async def _check_duplicate_email(db: AsyncSession, email: str) -> None:
    existing = await db.execute(select(User.id).where(func.lower(User.email) == email.lower()))
    if existing.scalar_one_or_none():
        raise ConflictError("A user with this email already exists")


async def _teacher_to_response(db: AsyncSession, profile: TeacherProfile, user: User) -> TeacherResponse:
    cls = await get_class_by_teacher(db, profile.id)
    return TeacherResponse(
        id=profile.id,
        user_id=user.id,
        full_name=user.full_name,
        email=user.email,
        employee_id=profile.employee_id,
        designation=profile.designation,
        additional_data=TeacherAdditionalData.model_validate(profile.additional_data) if profile.additional_data else None,
        class_id=cls.id if cls else None,
        created_at=profile.created_at,
    )


def _student_to_response(profile: StudentProfile, user: User) -> StudentResponse:
    return StudentResponse(
        id=profile.id,
        user_id=user.id,
        full_name=user.full_name,
        email=user.email,
        class_id=profile.class_id,
        roll_number=profile.roll_number,
        created_at=profile.created_at,
    )


async def _ensure_class_has_room(db: AsyncSession, class_id: UUID) -> None:
    cls = await get_class_or_404(db, class_id)
    if not cls.is_active:
        raise ValidationError.single("class_id", "Class is not active")
    enrolled = (
        await db.execute(select(func.count(StudentProfile.id)).where(StudentProfile.class_id == class_id))
    ).scalar_one()
    if enrolled >= cls.capacity:
        raise ConflictError(f"Class {cls.name} is full ({cls.capacity} students)")


# ----- Teachers -----
async def create_teacher(db: AsyncSession, payload: TeacherCreate) -> TeacherResponse:
    await _check_duplicate_email(db, payload.email)
    user = User(
        full_name=payload.full_name.strip(),
        email=payload.email.lower(),
        role=UserRole.TEACHER.value,
        user_type="teacher",
        status="ACTIVE",
    )
    db.add(user)
    await db.flush()
    profile = TeacherProfile(
        user_id=user.id,
        employee_id=payload.employee_id,
        designation=payload.designation,
        additional_data=payload.additional_data.model_dump() if payload.additional_data else None,
    )
    db.add(profile)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("A user with this email already exists")
    await db.refresh(profile)
    logger.info("Teacher %s created (user %s)", profile.id, user.id)
    return await _teacher_to_response(db, profile, user)


async def get_teacher(db: AsyncSession, teacher_id: UUID) -> TeacherResponse:
    profile = await db.get(TeacherProfile, teacher_id)
    if not profile:
        raise NotFoundError("Teacher not found")
    user = await db.get(User, profile.user_id)
    return await _teacher_to_response(db, profile, user)


async def list_teachers(db: AsyncSession) -> List[TeacherResponse]:
    result = await db.execute(
        select(TeacherProfile, User).join(User, TeacherProfile.user_id == User.id).order_by(User.full_name)
    )
    return [await _teacher_to_response(db, p, u) for p, u in result.all()]


async def update_teacher_profile(db: AsyncSession, teacher_id: UUID, payload: TeacherProfileUpdate) -> TeacherResponse:
    profile = await db.get(TeacherProfile, teacher_id)
    if not profile:
        raise NotFoundError("Teacher not found")
    if payload.designation is not None:
        profile.designation = payload.designation
    if payload.additional_data is not None:
        profile.additional_data = payload.additional_data.model_dump()
    await db.commit()
    await db.refresh(profile)
    user = await db.get(User, profile.user_id)
    return await _teacher_to_response(db, profile, user)


# ----- Students -----
async def create_student(db: AsyncSession, payload: StudentCreate) -> StudentResponse:
    await _check_duplicate_email(db, payload.email)
    if payload.class_id:
        await _ensure_class_has_room(db, payload.class_id)
    user = User(
        full_name=payload.full_name.strip(),
        email=payload.email.lower(),
        role=UserRole.STUDENT.value,
        user_type="student",
        status="ACTIVE",
    )
    db.add(user)
    await db.flush()
    profile = StudentProfile(user_id=user.id, class_id=payload.class_id, roll_number=payload.roll_number)
    db.add(profile)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("A user with this email already exists")
    await db.refresh(profile)
    return _student_to_response(profile, user)


async def get_student(db: AsyncSession, student_id: UUID) -> StudentResponse:
    profile = await db.get(StudentProfile, student_id)
    if not profile:
        raise NotFoundError("Student not found")
    user = await db.get(User, profile.user_id)
    return _student_to_response(profile, user)


async def list_students(db: AsyncSession, class_id: Optional[UUID] = None) -> List[StudentResponse]:
    q = select(StudentProfile, User).join(User, StudentProfile.user_id == User.id)
    if class_id:
        q = q.where(StudentProfile.class_id == class_id)
    result = await db.execute(q.order_by(User.full_name))
    return [_student_to_response(p, u) for p, u in result.all()]


async def change_student_class(db: AsyncSession, student_id: UUID, payload: StudentClassUpdate) -> StudentResponse:
    """Move a student. Past attendance entries stay attached to the class they were taken in."""
    profile = await db.get(StudentProfile, student_id)
    if not profile:
        raise NotFoundError("Student not found")
    if payload.class_id and payload.class_id != profile.class_id:
        await _ensure_class_has_room(db, payload.class_id)
    profile.class_id = payload.class_id
    if payload.roll_number is not None:
        profile.roll_number = payload.roll_number
    await db.commit()
    await db.refresh(profile)
    user = await db.get(User, profile.user_id)
    return _student_to_response(profile, user)
