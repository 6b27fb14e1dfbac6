"""
Resolve who a leave request belongs to and who hears about it.
student -> own student profile; leave is visible to the class teacher of the student's class
teacher -> own teacher profile
New requests notify the active administrators; decisions notify the requester.
"""

from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import StudentProfile, TeacherProfile, User
from app.auth.permissions import ADMIN_ROLES
from app.auth.schemas import CurrentUser
from app.core.enums import RequesterType
from app.core.exceptions import AuthorizationError
from app.core.models import LeaveRequest, SchoolClass


def resolve_requester(actor: CurrentUser) -> Tuple[RequesterType, Optional[UUID], Optional[UUID]]:
    """Return (requester_type, student_id, teacher_id) for the acting user."""
    if actor.student_id:
        return RequesterType.STUDENT, actor.student_id, None
    if actor.teacher_id:
        return RequesterType.TEACHER, None, actor.teacher_id
    raise AuthorizationError("Only students and teachers can submit leave requests")


def is_requester(actor: CurrentUser, req: LeaveRequest) -> bool:
    if req.requester_type == RequesterType.STUDENT.value:
        return actor.student_id is not None and actor.student_id == req.student_id
    return actor.teacher_id is not None and actor.teacher_id == req.teacher_id


def students_of_teacher_class(teacher_id: UUID):
    """Subquery of student profile ids enrolled in the class this teacher is class teacher of."""
    return (
        select(StudentProfile.id)
        .join(SchoolClass, StudentProfile.class_id == SchoolClass.id)
        .where(SchoolClass.class_teacher_id == teacher_id)
    )


async def requester_user_id(db: AsyncSession, req: LeaveRequest) -> Optional[UUID]:
    if req.requester_type == RequesterType.STUDENT.value and req.student_id:
        r = await db.execute(select(StudentProfile.user_id).where(StudentProfile.id == req.student_id))
        return r.scalar_one_or_none()
    if req.teacher_id:
        r = await db.execute(select(TeacherProfile.user_id).where(TeacherProfile.id == req.teacher_id))
        return r.scalar_one_or_none()
    return None


async def approver_user_ids(db: AsyncSession) -> List[UUID]:
    """Active administrators. Custom roles granting leave.approve are not expanded here."""
    r = await db.execute(
        select(User.id).where(
            User.role.in_(ADMIN_ROLES),
            User.status == "ACTIVE",
        )
    )
    return list(r.scalars().all())
