"""Teacher leave usage: approved days per leave type, summed from APPROVED requests.

Usage is not stored. A request counts while it is APPROVED and stops counting once it leaves that status.
"""

from datetime import date
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, case, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.auth.models import TeacherProfile, User
from app.auth.permissions import has_permission
from app.auth.schemas import CurrentUser
from app.core.enums import LeaveRequestStatus, LeaveRequestType, RequesterType
from app.core.exceptions import AuthorizationError, NotFoundError
from app.core.models import LeaveRequest

from .schemas import LeaveTypeUsage, PersonSummary, TeacherLeaveUsage

# teacher_id -> type -> (total, this year, this month)
UsageTable = Dict[UUID, Dict[str, Tuple[int, int, int]]]


def _period_bounds(today: date) -> Tuple[date, date, date, date]:
    year_start = date(today.year, 1, 1)
    next_year = date(today.year + 1, 1, 1)
    month_start = today.replace(day=1)
    next_month = date(today.year + 1, 1, 1) if today.month == 12 else date(today.year, today.month + 1, 1)
    return year_start, next_year, month_start, next_month


async def _usage_table(db: AsyncSession, today: date, teacher_id: Optional[UUID] = None) -> UsageTable:
    year_start, next_year, month_start, next_month = _period_bounds(today)
    in_year = and_(LeaveRequest.start_date >= year_start, LeaveRequest.start_date < next_year)
    in_month = and_(LeaveRequest.start_date >= month_start, LeaveRequest.start_date < next_month)
    q = (
        select(
            LeaveRequest.teacher_id,
            LeaveRequest.type,
            func.sum(LeaveRequest.days),
            func.sum(case((in_year, LeaveRequest.days), else_=0)),
            func.sum(case((in_month, LeaveRequest.days), else_=0)),
        )
        .where(
            LeaveRequest.requester_type == RequesterType.TEACHER.value,
            LeaveRequest.status == LeaveRequestStatus.APPROVED.value,
        )
        .group_by(LeaveRequest.teacher_id, LeaveRequest.type)
    )
    if teacher_id is not None:
        q = q.where(LeaveRequest.teacher_id == teacher_id)
    table: UsageTable = {}
    for t_id, leave_type, total, yearly, monthly in (await db.execute(q)).all():
        table.setdefault(t_id, {})[leave_type] = (int(total or 0), int(yearly or 0), int(monthly or 0))
    return table


def _teacher_usage(teacher: TeacherProfile, by_type: Dict[str, Tuple[int, int, int]]) -> TeacherLeaveUsage:
    usage = []
    for leave_type in LeaveRequestType:
        total, yearly, monthly = by_type.get(leave_type.value, (0, 0, 0))
        usage.append(LeaveTypeUsage(type=leave_type, total_days=total, yearly_days=yearly, monthly_days=monthly))
    return TeacherLeaveUsage(
        teacher=PersonSummary(
            id=teacher.id,
            user_id=teacher.user_id,
            full_name=teacher.user.full_name,
            email=teacher.user.email,
        ),
        usage=usage,
        total_days=sum(u.total_days for u in usage),
        yearly_days=sum(u.yearly_days for u in usage),
        monthly_days=sum(u.monthly_days for u in usage),
    )


async def get_teacher_leave_usage(
    db: AsyncSession,
    actor: CurrentUser,
    teacher_id: UUID,
    today: Optional[date] = None,
) -> TeacherLeaveUsage:
    """A teacher sees their own usage; approvers see anyone's."""
    if not (has_permission(actor, "leave", "approve") or actor.teacher_id == teacher_id):
        raise AuthorizationError("You can only view your own leave usage")
    teacher = (
        await db.execute(
            select(TeacherProfile).where(TeacherProfile.id == teacher_id).options(selectinload(TeacherProfile.user))
        )
    ).scalar_one_or_none()
    if not teacher:
        raise NotFoundError("Teacher not found")
    table = await _usage_table(db, today or date.today(), teacher_id)
    return _teacher_usage(teacher, table.get(teacher_id, {}))


async def list_teachers_leave_usage(
    db: AsyncSession,
    actor: CurrentUser,
    today: Optional[date] = None,
) -> List[TeacherLeaveUsage]:
    if not has_permission(actor, "leave", "approve"):
        raise AuthorizationError("Only administrators can view all teachers' leave usage")
    teachers = (
        await db.execute(
            select(TeacherProfile)
            .join(User, TeacherProfile.user_id == User.id)
            .options(selectinload(TeacherProfile.user))
            .order_by(User.full_name)
        )
    ).scalars().all()
    table = await _usage_table(db, today or date.today())
    return [_teacher_usage(t, table.get(t.id, {})) for t in teachers]
