"""Class attendance: one locked record per class and date, taken by the class teacher.

Locked records change only through an audited admin override or an explicit unlock. Every
check-then-set runs as a conditional UPDATE on is_locked or leans on the (class_id, date) unique
constraint, so a lost race surfaces as ConflictError or InvalidStateError instead of a silent overwrite.
"""

import logging
from datetime import date
from typing import List, Optional
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.api.v1.classes.service import get_class_or_404
from app.api.v1.working_days import service as working_days_service
from app.api.v1.working_days.calculator import month_bounds, validate_month
from app.auth.models import StudentProfile
from app.auth.permissions import has_permission
from app.auth.schemas import CurrentUser
from app.core.config import settings
from app.core.enums import AttendanceStatus
from app.core.exceptions import (
    AuthorizationError,
    ConflictError,
    FieldError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
    raise_if_errors,
)
from app.core.models import AttendanceAuditLog, AttendanceEntry, AttendanceRecord, SchoolClass
from app.db.session import utcnow

from .schemas import (
    AttendanceEntryInput,
    AttendanceEntryResponse,
    AttendanceEntryUpdate,
    AttendanceRecordResponse,
    ClassAttendanceForDate,
    ClassDayStats,
    ClassWiseAttendanceStats,
    RecordAttendanceRequest,
    StudentAttendanceHistory,
    StudentAttendanceItem,
    StudentMonthlyStats,
)

logger = logging.getLogger(__name__)

REMARK_MAX_LENGTH = 255


# ----- Class-teacher checks -----
async def is_class_teacher(db: AsyncSession, teacher_id: Optional[UUID], class_id: UUID) -> bool:
    """Exact match against the class's current class teacher, read fresh from the database."""
    if teacher_id is None:
        return False
    result = await db.execute(select(SchoolClass.class_teacher_id).where(SchoolClass.id == class_id))
    current = result.scalar_one_or_none()
    return current is not None and current == teacher_id


async def is_student_in_teacher_class(db: AsyncSession, teacher_id: Optional[UUID], student_id: UUID) -> bool:
    result = await db.execute(select(StudentProfile.class_id).where(StudentProfile.id == student_id))
    class_id = result.scalar_one_or_none()
    if class_id is None:
        return False
    return await is_class_teacher(db, teacher_id, class_id)


def _can_override(actor: CurrentUser) -> bool:
    return has_permission(actor, "attendance", "override")


async def _ensure_can_take(db: AsyncSession, actor: CurrentUser, class_id: UUID) -> None:
    if _can_override(actor):
        return
    if not await is_class_teacher(db, actor.teacher_id, class_id):
        raise AuthorizationError("Only the class teacher can take attendance for this class")


async def _ensure_can_view(db: AsyncSession, actor: CurrentUser, class_id: UUID) -> None:
    if _can_override(actor) or await is_class_teacher(db, actor.teacher_id, class_id):
        return
    raise AuthorizationError("You do not have access to this class's attendance")


# ----- Helpers -----
def validate_entries(
    entries: List[AttendanceEntryInput],
    att_date: date,
    enrolled: set,
    today: Optional[date] = None,
) -> List[FieldError]:
    errors: List[FieldError] = []
    today = today or date.today()
    if att_date > today and not settings.allow_future_attendance:
        errors.append(FieldError("date", "Cannot take attendance for a future date"))
    if not entries:
        errors.append(FieldError("entries", "At least one attendance entry is required"))
    seen = set()
    for i, e in enumerate(entries):
        if e.student_id in seen:
            errors.append(FieldError(f"entries[{i}].student_id", "Duplicate entry for student"))
        seen.add(e.student_id)
        if e.student_id not in enrolled:
            errors.append(FieldError(f"entries[{i}].student_id", "Student is not enrolled in this class"))
        if e.remark and len(e.remark) > REMARK_MAX_LENGTH:
            errors.append(FieldError(f"entries[{i}].remark", f"Remark must be at most {REMARK_MAX_LENGTH} characters"))
    return errors


async def _enrolled_student_ids(db: AsyncSession, class_id: UUID) -> set:
    result = await db.execute(select(StudentProfile.id).where(StudentProfile.class_id == class_id))
    return set(result.scalars().all())


async def _log_attendance_audit(
    db: AsyncSession,
    attendance_id: UUID,
    action: str,
    actor: CurrentUser,
    student_id: Optional[UUID] = None,
    from_status: Optional[str] = None,
    to_status: Optional[str] = None,
    reason: Optional[str] = None,
) -> None:
    db.add(
        AttendanceAuditLog(
            attendance_id=attendance_id,
            action=action,
            student_id=student_id,
            from_status=from_status,
            to_status=to_status,
            performed_by=actor.id,
            performed_by_role=actor.role,
            reason=reason,
        )
    )


async def _get_record_or_404(db: AsyncSession, attendance_id: UUID, with_entries: bool = False) -> AttendanceRecord:
    q = select(AttendanceRecord).where(AttendanceRecord.id == attendance_id)
    if with_entries:
        q = q.options(
            selectinload(AttendanceRecord.school_class),
            selectinload(AttendanceRecord.entries).selectinload(AttendanceEntry.student).selectinload(StudentProfile.user),
        )
    record = (await db.execute(q.execution_options(populate_existing=True))).scalar_one_or_none()
    if not record:
        raise NotFoundError("Attendance record not found")
    return record


def _entry_sort_key(e: AttendanceEntry) -> tuple:
    """Roll number order, unnumbered students last by name."""
    student = e.student
    if student is None:
        return (1, 0, "")
    name = student.user.full_name if student.user else ""
    return (student.roll_number is None, student.roll_number or 0, name)


def _record_to_response(record: AttendanceRecord) -> AttendanceRecordResponse:
    entries = sorted(record.entries, key=_entry_sort_key)
    present = sum(1 for e in entries if e.status == AttendanceStatus.PRESENT.value)
    return AttendanceRecordResponse(
        id=record.id,
        class_id=record.class_id,
        class_name=record.school_class.name if record.school_class else "",
        date=record.date,
        taken_by=record.taken_by,
        taken_by_user_id=record.taken_by_user_id,
        is_locked=record.is_locked,
        taken_at=record.taken_at,
        updated_at=record.updated_at,
        entries=[
            AttendanceEntryResponse(
                student_id=e.student_id,
                student_name=e.student.user.full_name if e.student and e.student.user else "",
                roll_number=e.student.roll_number if e.student else None,
                status=e.status,
                remark=e.remark,
            )
            for e in entries
        ],
        present_count=present,
        absent_count=len(entries) - present,
        total=len(entries),
    )


# ----- Take attendance -----
async def record_attendance(
    db: AsyncSession,
    actor: CurrentUser,
    payload: RecordAttendanceRequest,
) -> AttendanceRecordResponse:
    """Create the day's record, or overwrite it while it is still unlocked. Always leaves it locked."""
    await get_class_or_404(db, payload.class_id)
    await _ensure_can_take(db, actor, payload.class_id)
    enrolled = await _enrolled_student_ids(db, payload.class_id)
    raise_if_errors(validate_entries(payload.entries, payload.date, enrolled))

    existing = (
        await db.execute(
            select(AttendanceRecord)
            .where(AttendanceRecord.class_id == payload.class_id, AttendanceRecord.date == payload.date)
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()
    if existing and existing.is_locked:
        raise ConflictError("Attendance for this class and date has already been submitted and is locked")

    now = utcnow()
    if existing:
        result = await db.execute(
            update(AttendanceRecord)
            .where(AttendanceRecord.id == existing.id, AttendanceRecord.is_locked.is_(False))
            .values(
                is_locked=True,
                taken_by=actor.teacher_id,
                taken_by_user_id=actor.id,
                taken_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await db.rollback()
            raise ConflictError("Attendance for this class and date was locked by another submission")
        await db.execute(delete(AttendanceEntry).where(AttendanceEntry.attendance_id == existing.id))
        attendance_id = existing.id
        action = "RETAKEN"
    else:
        record = AttendanceRecord(
            class_id=payload.class_id,
            date=payload.date,
            taken_by=actor.teacher_id,
            taken_by_user_id=actor.id,
            is_locked=True,
            taken_at=now,
        )
        db.add(record)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            raise ConflictError("Attendance for this class and date has already been submitted")
        attendance_id = record.id
        action = "TAKEN"

    for e in payload.entries:
        db.add(
            AttendanceEntry(
                attendance_id=attendance_id,
                student_id=e.student_id,
                status=e.status.value,
                remark=e.remark,
            )
        )
    await _log_attendance_audit(db, attendance_id, action, actor)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Attendance for this class and date has already been submitted")
    logger.info(
        "Attendance %s for class %s on %s (%d entries) by %s",
        action.lower(), payload.class_id, payload.date, len(payload.entries), actor.id,
    )
    return _record_to_response(await _get_record_or_404(db, attendance_id, with_entries=True))


# ----- Edit -----
async def update_entry(
    db: AsyncSession,
    attendance_id: UUID,
    student_id: UUID,
    actor: CurrentUser,
    payload: AttendanceEntryUpdate,
) -> AttendanceRecordResponse:
    """Edit one student's entry. A locked record needs override=true, a reason and attendance.override."""
    record = await _get_record_or_404(db, attendance_id)
    await _ensure_can_take(db, actor, record.class_id)

    entry = (
        await db.execute(
            select(AttendanceEntry).where(
                AttendanceEntry.attendance_id == attendance_id,
                AttendanceEntry.student_id == student_id,
            )
        )
    ).scalar_one_or_none()
    if not entry:
        raise NotFoundError("Student has no entry in this attendance record")
    if payload.remark and len(payload.remark) > REMARK_MAX_LENGTH:
        raise ValidationError.single("remark", f"Remark must be at most {REMARK_MAX_LENGTH} characters")

    from_status = entry.status
    reason = (payload.reason or "").strip() or None
    stmt = update(AttendanceEntry).where(AttendanceEntry.id == entry.id)
    if record.is_locked:
        if not payload.override:
            raise InvalidStateError("Attendance record is locked", current_status="LOCKED")
        if not _can_override(actor):
            raise AuthorizationError("Only administrators can override locked attendance")
        if not reason:
            raise ValidationError.single("reason", "A reason is required to override locked attendance")
        action = "ENTRY_OVERRIDDEN"
    else:
        # Guard on the record still being unlocked at write time.
        stmt = stmt.where(
            AttendanceEntry.attendance_id.in_(
                select(AttendanceRecord.id).where(
                    AttendanceRecord.id == attendance_id,
                    AttendanceRecord.is_locked.is_(False),
                )
            )
        )
        action = "ENTRY_UPDATED"

    values = {"status": payload.status.value}
    # A status-only edit keeps the existing remark.
    if "remark" in payload.model_fields_set:
        values["remark"] = payload.remark
    result = await db.execute(stmt.values(**values).execution_options(synchronize_session=False))
    if result.rowcount == 0:
        await db.rollback()
        raise InvalidStateError("Attendance record was locked while editing", current_status="LOCKED")
    await _log_attendance_audit(
        db, attendance_id, action, actor,
        student_id=student_id,
        from_status=from_status,
        to_status=payload.status.value,
        reason=reason,
    )
    await db.commit()
    if action == "ENTRY_OVERRIDDEN":
        logger.warning(
            "Locked attendance %s overridden for student %s by %s (%s -> %s): %s",
            attendance_id, student_id, actor.id, from_status, payload.status.value, reason,
        )
    return _record_to_response(await _get_record_or_404(db, attendance_id, with_entries=True))


async def unlock_record(db: AsyncSession, attendance_id: UUID, actor: CurrentUser, reason: str) -> AttendanceRecordResponse:
    if not _can_override(actor):
        raise AuthorizationError("Only administrators can unlock attendance")
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError.single("reason", "A reason is required to unlock attendance")
    record = await _get_record_or_404(db, attendance_id)
    result = await db.execute(
        update(AttendanceRecord)
        .where(AttendanceRecord.id == record.id, AttendanceRecord.is_locked.is_(True))
        .values(is_locked=False, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise InvalidStateError("Attendance record is already unlocked", current_status="UNLOCKED")
    await _log_attendance_audit(db, attendance_id, "UNLOCKED", actor, reason=reason)
    await db.commit()
    logger.warning("Attendance %s unlocked by %s: %s", attendance_id, actor.id, reason)
    return _record_to_response(await _get_record_or_404(db, attendance_id, with_entries=True))


async def lock_record(db: AsyncSession, attendance_id: UUID, actor: CurrentUser) -> AttendanceRecordResponse:
    record = await _get_record_or_404(db, attendance_id)
    await _ensure_can_take(db, actor, record.class_id)
    result = await db.execute(
        update(AttendanceRecord)
        .where(AttendanceRecord.id == record.id, AttendanceRecord.is_locked.is_(False))
        .values(is_locked=True, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise InvalidStateError("Attendance record is already locked", current_status="LOCKED")
    await _log_attendance_audit(db, attendance_id, "LOCKED", actor)
    await db.commit()
    return _record_to_response(await _get_record_or_404(db, attendance_id, with_entries=True))


# ----- Queries -----
async def get_record(db: AsyncSession, attendance_id: UUID, actor: CurrentUser) -> AttendanceRecordResponse:
    record = await _get_record_or_404(db, attendance_id, with_entries=True)
    await _ensure_can_view(db, actor, record.class_id)
    return _record_to_response(record)


async def get_class_attendance(
    db: AsyncSession,
    class_id: UUID,
    att_date: date,
    actor: CurrentUser,
) -> ClassAttendanceForDate:
    """The day's record with the date's working-day status. record is None until attendance is taken."""
    await get_class_or_404(db, class_id)
    await _ensure_can_view(db, actor, class_id)
    date_status = await working_days_service.check_date_status(db, att_date)
    attendance_id = (
        await db.execute(
            select(AttendanceRecord.id).where(
                AttendanceRecord.class_id == class_id,
                AttendanceRecord.date == att_date,
            )
        )
    ).scalar_one_or_none()
    record = None
    if attendance_id is not None:
        record = _record_to_response(await _get_record_or_404(db, attendance_id, with_entries=True))
    return ClassAttendanceForDate(class_id=class_id, date=att_date, date_status=date_status, record=record)


async def _get_student_for_viewer(db: AsyncSession, student_id: UUID, actor: CurrentUser) -> StudentProfile:
    """The student themself, their class teacher or an administrator."""
    student = (
        await db.execute(
            select(StudentProfile)
            .where(StudentProfile.id == student_id)
            .options(selectinload(StudentProfile.user), selectinload(StudentProfile.school_class))
        )
    ).scalar_one_or_none()
    if not student:
        raise NotFoundError("Student not found")
    if not (
        actor.student_id == student_id
        or _can_override(actor)
        or await is_student_in_teacher_class(db, actor.teacher_id, student_id)
    ):
        raise AuthorizationError("You do not have access to this student's attendance")
    return student


def _status_counts(rows) -> tuple:
    counts = {s: n for s, n in rows}
    return counts.get(AttendanceStatus.PRESENT.value, 0), counts.get(AttendanceStatus.ABSENT.value, 0)


async def student_monthly_stats(
    db: AsyncSession,
    student_id: UUID,
    month: int,
    year: int,
    actor: CurrentUser,
) -> StudentMonthlyStats:
    """Present/absent counts for the month against the month's working days."""
    validate_month(month, year)
    await _get_student_for_viewer(db, student_id, actor)

    first, last = month_bounds(month, year)
    rows = await db.execute(
        select(AttendanceEntry.status, func.count(AttendanceEntry.id))
        .join(AttendanceRecord, AttendanceEntry.attendance_id == AttendanceRecord.id)
        .where(
            AttendanceEntry.student_id == student_id,
            AttendanceRecord.date >= first,
            AttendanceRecord.date <= last,
        )
        .group_by(AttendanceEntry.status)
    )
    present, absent = _status_counts(rows.all())
    recorded = present + absent
    breakdown = await working_days_service.get_breakdown(db, month, year)
    return StudentMonthlyStats(
        student_id=student_id,
        month=month,
        year=year,
        present=present,
        absent=absent,
        recorded_days=recorded,
        working_days=breakdown.available_days,
        attendance_percentage=round(present * 100.0 / recorded, 2) if recorded else 0.0,
    )


async def get_student_attendance(
    db: AsyncSession,
    student_id: UUID,
    actor: CurrentUser,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    month: Optional[int] = None,
    year: Optional[int] = None,
    page: int = 1,
    limit: int = 31,
) -> StudentAttendanceHistory:
    """Newest-first history of one student. An explicit date range wins over month/year."""
    student = await _get_student_for_viewer(db, student_id, actor)

    conditions = [AttendanceEntry.student_id == student_id]
    if start_date and end_date:
        if end_date < start_date:
            raise ValidationError.single("end_date", "End date must be on or after start date")
        conditions += [AttendanceRecord.date >= start_date, AttendanceRecord.date <= end_date]
    elif month is not None and year is not None:
        validate_month(month, year)
        first, last = month_bounds(month, year)
        conditions += [AttendanceRecord.date >= first, AttendanceRecord.date <= last]

    joined = select(AttendanceEntry.status, func.count(AttendanceEntry.id)).join(
        AttendanceRecord, AttendanceEntry.attendance_id == AttendanceRecord.id
    )
    present, absent = _status_counts((await db.execute(joined.where(*conditions).group_by(AttendanceEntry.status))).all())
    total = present + absent

    rows = await db.execute(
        select(AttendanceRecord.id, AttendanceRecord.date, AttendanceRecord.is_locked, AttendanceEntry.status, AttendanceEntry.remark)
        .join(AttendanceEntry, AttendanceEntry.attendance_id == AttendanceRecord.id)
        .where(*conditions)
        .order_by(AttendanceRecord.date.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return StudentAttendanceHistory(
        student_id=student.id,
        student_name=student.user.full_name if student.user else "",
        roll_number=student.roll_number,
        class_id=student.class_id,
        class_name=student.school_class.name if student.school_class else None,
        present=present,
        absent=absent,
        items=[
            StudentAttendanceItem(attendance_id=r_id, date=r_date, status=st, remark=remark, is_locked=locked)
            for r_id, r_date, locked, st, remark in rows.all()
        ],
        total=total,
        page=page,
        limit=limit,
        total_pages=(total + limit - 1) // limit,
    )


async def class_wise_stats(db: AsyncSession, actor: CurrentUser, att_date: Optional[date] = None) -> ClassWiseAttendanceStats:
    """Per-class present/absent for one date (default today), for the administration dashboard."""
    if not _can_override(actor):
        raise AuthorizationError("Only administrators can view class-wise attendance")
    att_date = att_date or date.today()

    classes = (
        await db.execute(
            select(SchoolClass)
            .where(SchoolClass.is_active.is_(True))
            .order_by(SchoolClass.grade, SchoolClass.section)
        )
    ).scalars().all()
    enrolled = dict(
        (
            await db.execute(
                select(StudentProfile.class_id, func.count(StudentProfile.id))
                .where(StudentProfile.class_id.is_not(None))
                .group_by(StudentProfile.class_id)
            )
        ).all()
    )

    taken = {}
    rows = await db.execute(
        select(AttendanceRecord.class_id, AttendanceRecord.is_locked, AttendanceEntry.status, func.count(AttendanceEntry.id))
        .outerjoin(AttendanceEntry, AttendanceEntry.attendance_id == AttendanceRecord.id)
        .where(AttendanceRecord.date == att_date)
        .group_by(AttendanceRecord.class_id, AttendanceRecord.is_locked, AttendanceEntry.status)
    )
    for class_id, is_locked, st, n in rows.all():
        day = taken.setdefault(class_id, {"locked": is_locked, AttendanceStatus.PRESENT.value: 0, AttendanceStatus.ABSENT.value: 0})
        if st is not None:
            day[st] = n

    items: List[ClassDayStats] = []
    for c in classes:
        total_students = enrolled.get(c.id, 0)
        day = taken.get(c.id)
        if day is None:
            present = absent = 0
            state = "pending"
        else:
            present = day[AttendanceStatus.PRESENT.value]
            absent = day[AttendanceStatus.ABSENT.value]
            state = "completed" if day["locked"] else "partial"
        items.append(
            ClassDayStats(
                class_id=c.id,
                class_name=c.name,
                grade=c.grade,
                section=c.section,
                total_students=total_students,
                present=present,
                absent=absent,
                attendance_percentage=round(present * 100.0 / total_students, 2) if total_students else 0.0,
                status=state,
            )
        )

    total_students = sum(i.total_students for i in items)
    total_present = sum(i.present for i in items)
    return ClassWiseAttendanceStats(
        date=att_date,
        classes=items,
        total_students=total_students,
        total_present=total_present,
        total_absent=sum(i.absent for i in items),
        completed_classes=sum(1 for i in items if i.status == "completed"),
        partial_classes=sum(1 for i in items if i.status == "partial"),
        pending_classes=sum(1 for i in items if i.status == "pending"),
        overall_attendance_rate=round(total_present * 100.0 / total_students, 2) if total_students else 0.0,
    )
