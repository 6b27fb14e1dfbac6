"""Leave submit, admin-create, decide, cancel and queries, with audit and post-commit notifications.

Status transitions run as conditional UPDATEs guarded on PENDING_ADMINISTRATION, so two concurrent
deciders cannot both win: the loser sees zero affected rows and gets InvalidStateError.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import BackgroundTasks
from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.auth.models import StudentProfile, TeacherProfile
from app.auth.permissions import has_permission
from app.auth.schemas import CurrentUser
from app.core.config import settings
from app.core.enums import LeaveDecision, LeaveRequestStatus, NotificationCategory, RequesterType
from app.core.exceptions import (
    AuthorizationError,
    ConflictError,
    FieldError,
    InvalidStateError,
    NotFoundError,
    raise_if_errors,
)
from app.core.models import LeaveAuditLog, LeaveRequest
from app.core.notifications import NotificationDispatcher, NotificationEvent, notify_safely
from app.db.session import utcnow

from .resolver import (
    approver_user_ids,
    is_requester,
    requester_user_id,
    resolve_requester,
    students_of_teacher_class,
)
from .schemas import (
    AdminLeaveRequestAction,
    ApproverSummary,
    AttachmentResponse,
    CreateLeaveRequest,
    CreateTeacherLeaveRequestByAdmin,
    LeaveRequestPage,
    LeaveRequestResponse,
    LeaveStatistics,
    PersonSummary,
    UpdateLeaveRequest,
)

logger = logging.getLogger(__name__)

PENDING = LeaveRequestStatus.PENDING_ADMINISTRATION.value

TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 1000
REASON_MAX_LENGTH = 500
MIN_DAYS = 1
MAX_DAYS = 365


# ----- Validation -----
def inclusive_span(start_date: date, end_date: date) -> int:
    return (end_date - start_date).days + 1


def validate_leave_fields(
    title: Optional[str],
    description: Optional[str],
    start_date: date,
    end_date: date,
    days: int,
    enforce_span: bool = True,
) -> List[FieldError]:
    """Field checks shared by every create path. enforce_span=False lets an admin set days freely."""
    errors: List[FieldError] = []
    if title is None or not title.strip():
        errors.append(FieldError("title", "Title is required"))
    elif len(title.strip()) > TITLE_MAX_LENGTH:
        errors.append(FieldError("title", f"Title must be at most {TITLE_MAX_LENGTH} characters"))
    if description and len(description) > DESCRIPTION_MAX_LENGTH:
        errors.append(FieldError("description", f"Description must be at most {DESCRIPTION_MAX_LENGTH} characters"))
    if end_date < start_date:
        errors.append(FieldError("end_date", "End date must be on or after start date"))
    if days < MIN_DAYS or days > MAX_DAYS:
        errors.append(FieldError("days", f"Days must be between {MIN_DAYS} and {MAX_DAYS}"))
    elif enforce_span and end_date >= start_date:
        span = inclusive_span(start_date, end_date)
        if days != span:
            errors.append(FieldError("days", f"Days must equal the inclusive date range ({span})"))
    return errors


def validate_leave_request(payload: CreateLeaveRequest) -> List[FieldError]:
    return validate_leave_fields(
        payload.title, payload.description, payload.start_date, payload.end_date, payload.days
    )


def validate_admin_leave_request(payload: CreateTeacherLeaveRequestByAdmin) -> List[FieldError]:
    errors = validate_leave_fields(
        payload.title,
        payload.description,
        payload.start_date,
        payload.end_date,
        payload.days,
        enforce_span=False,
    )
    reason = (payload.admin_creation_reason or "").strip()
    if not reason:
        errors.append(FieldError("admin_creation_reason", "Admin creation reason is required"))
    elif len(reason) > REASON_MAX_LENGTH:
        errors.append(
            FieldError("admin_creation_reason", f"Admin creation reason must be at most {REASON_MAX_LENGTH} characters")
        )
    return errors


def validate_decision(payload: AdminLeaveRequestAction) -> List[FieldError]:
    errors: List[FieldError] = []
    if payload.status == LeaveDecision.REJECTED:
        reason = (payload.rejection_reason or "").strip()
        if not reason:
            errors.append(FieldError("rejection_reason", "Rejection reason is required when rejecting"))
        elif len(reason) > REASON_MAX_LENGTH:
            errors.append(
                FieldError("rejection_reason", f"Rejection reason must be at most {REASON_MAX_LENGTH} characters")
            )
    return errors


# ----- Helpers -----
def _person(profile: Any) -> Optional[PersonSummary]:
    if profile is None or profile.user is None:
        return None
    return PersonSummary(
        id=profile.id,
        user_id=profile.user_id,
        full_name=profile.user.full_name,
        email=profile.user.email,
    )


def _request_to_response(r: LeaveRequest) -> LeaveRequestResponse:
    return LeaveRequestResponse(
        id=r.id,
        requester_type=r.requester_type,
        student=_person(r.student),
        teacher=_person(r.teacher),
        type=r.type,
        title=r.title,
        description=r.description,
        start_date=r.start_date,
        end_date=r.end_date,
        days=r.days,
        status=r.status,
        approver=ApproverSummary.model_validate(r.approver) if r.approver else None,
        approved_at=r.approved_at,
        rejected_at=r.rejected_at,
        rejection_reason=r.rejection_reason,
        cancelled_at=r.cancelled_at,
        admin_creation_reason=r.admin_creation_reason,
        created_by_id=r.created_by_id,
        attachments=[AttachmentResponse.model_validate(a) for a in r.attachments],
        created_at=r.created_at,
        updated_at=r.updated_at,
    )


def _with_relations(q):
    return q.options(
        selectinload(LeaveRequest.student).selectinload(StudentProfile.user),
        selectinload(LeaveRequest.teacher).selectinload(TeacherProfile.user),
        selectinload(LeaveRequest.approver),
        selectinload(LeaveRequest.attachments),
    ).execution_options(populate_existing=True)


async def get_leave_or_404(db: AsyncSession, leave_id: UUID, with_relations: bool = False) -> LeaveRequest:
    """Fresh read: an identity-map copy from earlier in the session is overwritten."""
    q = select(LeaveRequest).where(LeaveRequest.id == leave_id)
    q = _with_relations(q) if with_relations else q.execution_options(populate_existing=True)
    req = (await db.execute(q)).scalar_one_or_none()
    if not req:
        raise NotFoundError("Leave request not found")
    return req


async def _log_leave_audit(
    db: AsyncSession,
    leave_request_id: UUID,
    action: str,
    performed_by: UUID,
    performed_by_role: str,
    from_status: Optional[str] = None,
    to_status: Optional[str] = None,
    remarks: Optional[str] = None,
) -> None:
    entry = LeaveAuditLog(
        leave_request_id=leave_request_id,
        action=action,
        from_status=from_status,
        to_status=to_status,
        performed_by=performed_by,
        performed_by_role=performed_by_role,
        remarks=remarks,
    )
    db.add(entry)


async def _transition_from_pending(db: AsyncSession, leave_id: UUID, values: Dict[str, Any]) -> None:
    """Apply values only if the request is still pending. Rolls back and raises when another writer won."""
    result = await db.execute(
        update(LeaveRequest)
        .where(LeaveRequest.id == leave_id, LeaveRequest.status == PENDING)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        current = (await db.execute(select(LeaveRequest.status).where(LeaveRequest.id == leave_id))).scalar_one_or_none()
        raise InvalidStateError(f"Leave request is no longer pending (status: {current})", current_status=current)


async def _ensure_no_overlap(
    db: AsyncSession,
    requester_type: RequesterType,
    student_id: Optional[UUID],
    teacher_id: Optional[UUID],
    start_date: date,
    end_date: date,
    exclude_id: Optional[UUID] = None,
) -> None:
    owner = (
        LeaveRequest.student_id == student_id
        if requester_type == RequesterType.STUDENT
        else LeaveRequest.teacher_id == teacher_id
    )
    conditions = [
        owner,
        LeaveRequest.status.in_([PENDING, LeaveRequestStatus.APPROVED.value]),
        LeaveRequest.start_date <= end_date,
        LeaveRequest.end_date >= start_date,
    ]
    if exclude_id:
        conditions.append(LeaveRequest.id != exclude_id)
    overlap = await db.execute(select(LeaveRequest.id).where(*conditions).limit(1))
    if overlap.scalar_one_or_none():
        raise ConflictError("An overlapping pending or approved leave request exists for this period")


async def _notify(
    notifier: Optional[NotificationDispatcher],
    user_ids: List[UUID],
    title: str,
    message: str,
    ref: UUID,
    background_tasks: Optional[BackgroundTasks] = None,
) -> None:
    """Dispatch after the response when background_tasks is given, otherwise inline."""
    for user_id in user_ids:
        event = NotificationEvent(
            user_id=user_id,
            title=title,
            message=message,
            category=NotificationCategory.LEAVE.value,
            reference_id=ref,
        )
        if background_tasks is not None:
            background_tasks.add_task(notify_safely, notifier, event)
        else:
            await notify_safely(notifier, event)


def _visibility_filter(actor: CurrentUser):
    """None means unrestricted. Users with neither profile nor approve capability see nothing."""
    if has_permission(actor, "leave", "approve"):
        return None
    conditions = []
    if actor.student_id:
        conditions.append(LeaveRequest.student_id == actor.student_id)
    if actor.teacher_id:
        conditions.append(LeaveRequest.teacher_id == actor.teacher_id)
        conditions.append(LeaveRequest.student_id.in_(students_of_teacher_class(actor.teacher_id)))
    if not conditions:
        raise AuthorizationError("You do not have access to leave requests")
    return or_(*conditions)


async def ensure_visible(db: AsyncSession, actor: CurrentUser, req: LeaveRequest) -> None:
    if has_permission(actor, "leave", "approve") or is_requester(actor, req):
        return
    if actor.teacher_id and req.student_id:
        r = await db.execute(
            students_of_teacher_class(actor.teacher_id).where(StudentProfile.id == req.student_id)
        )
        if r.scalar_one_or_none():
            return
    raise AuthorizationError("You do not have access to this leave request")


# ----- Create -----
async def submit_leave_request(
    db: AsyncSession,
    actor: CurrentUser,
    payload: CreateLeaveRequest,
    notifier: Optional[NotificationDispatcher] = None,
    background_tasks: Optional[BackgroundTasks] = None,
) -> LeaveRequestResponse:
    """Create a PENDING_ADMINISTRATION request owned by the acting student or teacher."""
    if not has_permission(actor, "leave", "create"):
        raise AuthorizationError("You are not allowed to submit leave requests")
    requester_type, student_id, teacher_id = resolve_requester(actor)
    raise_if_errors(validate_leave_request(payload))

    if settings.leave_block_overlapping:
        await _ensure_no_overlap(db, requester_type, student_id, teacher_id, payload.start_date, payload.end_date)

    req = LeaveRequest(
        requester_type=requester_type.value,
        student_id=student_id,
        teacher_id=teacher_id,
        type=payload.type.value,
        title=payload.title.strip(),
        description=payload.description,
        start_date=payload.start_date,
        end_date=payload.end_date,
        days=payload.days,
        status=PENDING,
        created_by_id=actor.id,
    )
    db.add(req)
    await db.flush()
    await _log_leave_audit(db, req.id, "APPLIED", actor.id, actor.role, to_status=PENDING)
    await db.commit()
    logger.info("Leave request %s submitted by %s %s", req.id, requester_type.value, student_id or teacher_id)

    await _notify(
        notifier,
        await approver_user_ids(db),
        "New leave request",
        f"{actor.full_name or 'A user'} requested {req.days} day(s) of {req.type} leave from {req.start_date}",
        req.id,
        background_tasks=background_tasks,
    )
    return _request_to_response(await get_leave_or_404(db, req.id, with_relations=True))


async def create_teacher_leave_by_admin(
    db: AsyncSession,
    actor: CurrentUser,
    payload: CreateTeacherLeaveRequestByAdmin,
    notifier: Optional[NotificationDispatcher] = None,
    background_tasks: Optional[BackgroundTasks] = None,
) -> LeaveRequestResponse:
    """Admin files leave for a teacher. With auto_approve the request starts APPROVED."""
    if not has_permission(actor, "leave", "manage"):
        raise AuthorizationError("Only administrators can create leave on behalf of a teacher")
    raise_if_errors(validate_admin_leave_request(payload))

    teacher = await db.get(TeacherProfile, payload.teacher_id)
    if not teacher:
        raise NotFoundError("Teacher not found")

    now = utcnow()
    status = LeaveRequestStatus.APPROVED.value if payload.auto_approve else PENDING
    req = LeaveRequest(
        requester_type=RequesterType.TEACHER.value,
        teacher_id=teacher.id,
        type=payload.type.value,
        title=payload.title.strip(),
        description=payload.description,
        start_date=payload.start_date,
        end_date=payload.end_date,
        days=payload.days,
        status=status,
        approver_id=actor.id if payload.auto_approve else None,
        approved_at=now if payload.auto_approve else None,
        admin_creation_reason=payload.admin_creation_reason.strip(),
        created_by_id=actor.id,
    )
    db.add(req)
    await db.flush()
    await _log_leave_audit(
        db, req.id, "CREATED_BY_ADMIN", actor.id, actor.role,
        to_status=status,
        remarks=req.admin_creation_reason,
    )
    await db.commit()
    logger.info("Leave request %s created by admin %s for teacher %s (%s)", req.id, actor.id, teacher.id, status)

    await _notify(
        notifier,
        [teacher.user_id],
        "Leave created on your behalf",
        f"An administrator recorded {req.days} day(s) of {req.type} leave for you ({status})",
        req.id,
        background_tasks=background_tasks,
    )
    return _request_to_response(await get_leave_or_404(db, req.id, with_relations=True))


# ----- Transitions -----
async def decide_leave_request(
    db: AsyncSession,
    leave_id: UUID,
    actor: CurrentUser,
    payload: AdminLeaveRequestAction,
    notifier: Optional[NotificationDispatcher] = None,
    background_tasks: Optional[BackgroundTasks] = None,
) -> LeaveRequestResponse:
    """Approve or reject a pending request."""
    req = await get_leave_or_404(db, leave_id)
    if not has_permission(actor, "leave", "approve"):
        raise AuthorizationError("You are not allowed to decide leave requests")
    if req.status != PENDING:
        raise InvalidStateError(f"Leave request is already {req.status}", current_status=req.status)
    raise_if_errors(validate_decision(payload))

    now = utcnow()
    to_status = payload.status.value
    values: Dict[str, Any] = {"status": to_status, "approver_id": actor.id, "updated_at": now}
    if payload.status == LeaveDecision.APPROVED:
        values["approved_at"] = now
    else:
        values["rejected_at"] = now
        values["rejection_reason"] = payload.rejection_reason.strip()

    await _transition_from_pending(db, leave_id, values)
    await _log_leave_audit(
        db, leave_id, to_status, actor.id, actor.role,
        from_status=PENDING,
        to_status=to_status,
        remarks=values.get("rejection_reason"),
    )
    await db.commit()
    logger.info("Leave request %s %s by %s", leave_id, to_status, actor.id)

    req = await get_leave_or_404(db, leave_id, with_relations=True)
    recipient = await requester_user_id(db, req)
    if recipient:
        message = f"Your leave request '{req.title}' was {to_status.lower()}"
        if req.rejection_reason:
            message += f": {req.rejection_reason}"
        await _notify(
            notifier, [recipient], f"Leave request {to_status.lower()}", message, req.id,
            background_tasks=background_tasks,
        )
    return _request_to_response(req)


async def cancel_leave_request(
    db: AsyncSession,
    leave_id: UUID,
    actor: CurrentUser,
) -> LeaveRequestResponse:
    """Requester withdraws a pending request. approved_at and rejected_at stay unset."""
    req = await get_leave_or_404(db, leave_id)
    if not is_requester(actor, req):
        raise InvalidStateError("Only the requester can cancel a leave request", current_status=req.status)
    if req.status != PENDING:
        raise InvalidStateError(f"Cannot cancel a leave request that is {req.status}", current_status=req.status)

    now = utcnow()
    to_status = LeaveRequestStatus.CANCELLED.value
    await _transition_from_pending(db, leave_id, {"status": to_status, "cancelled_at": now, "updated_at": now})
    await _log_leave_audit(db, leave_id, "CANCELLED", actor.id, actor.role, from_status=PENDING, to_status=to_status)
    await db.commit()
    logger.info("Leave request %s cancelled by requester %s", leave_id, actor.id)
    return _request_to_response(await get_leave_or_404(db, leave_id, with_relations=True))


async def update_leave_request(
    db: AsyncSession,
    leave_id: UUID,
    actor: CurrentUser,
    payload: UpdateLeaveRequest,
) -> LeaveRequestResponse:
    """Requester edits a pending request. Changing either date recomputes days from the new span."""
    req = await get_leave_or_404(db, leave_id)
    if not is_requester(actor, req):
        raise AuthorizationError("You can only update your own leave requests")
    if req.status != PENDING:
        raise InvalidStateError(f"Cannot update a leave request that is {req.status}", current_status=req.status)

    changes = payload.model_dump(exclude_unset=True)
    title = changes["title"] if "title" in changes else req.title
    description = changes["description"] if "description" in changes else req.description
    start_date = changes.get("start_date") or req.start_date
    end_date = changes.get("end_date") or req.end_date
    dates_changed = start_date != req.start_date or end_date != req.end_date
    days = inclusive_span(start_date, end_date) if dates_changed and end_date >= start_date else req.days
    raise_if_errors(validate_leave_fields(title, description, start_date, end_date, days, enforce_span=False))

    if dates_changed and settings.leave_block_overlapping and not req.admin_creation_reason:
        await _ensure_no_overlap(
            db,
            RequesterType(req.requester_type),
            req.student_id,
            req.teacher_id,
            start_date,
            end_date,
            exclude_id=req.id,
        )

    values: Dict[str, Any] = {
        "title": title.strip(),
        "description": description,
        "start_date": start_date,
        "end_date": end_date,
        "days": days,
        "updated_at": utcnow(),
    }
    if changes.get("type"):
        values["type"] = changes["type"].value
    await _transition_from_pending(db, leave_id, values)
    await _log_leave_audit(
        db, leave_id, "UPDATED", actor.id, actor.role,
        from_status=PENDING,
        to_status=PENDING,
        remarks=", ".join(sorted(changes)) or None,
    )
    await db.commit()
    logger.info("Leave request %s updated by requester %s (%s)", leave_id, actor.id, ", ".join(sorted(changes)))
    return _request_to_response(await get_leave_or_404(db, leave_id, with_relations=True))


# ----- Queries -----
async def get_leave_request(db: AsyncSession, leave_id: UUID, actor: CurrentUser) -> LeaveRequestResponse:
    req = await get_leave_or_404(db, leave_id, with_relations=True)
    await ensure_visible(db, actor, req)
    return _request_to_response(req)


async def list_leave_requests(
    db: AsyncSession,
    actor: CurrentUser,
    status: Optional[LeaveRequestStatus] = None,
    leave_type: Optional[str] = None,
    requester_type: Optional[RequesterType] = None,
    page: int = 1,
    limit: int = 20,
) -> LeaveRequestPage:
    """Newest first, restricted to what the actor may see."""
    conditions = []
    visibility = _visibility_filter(actor)
    if visibility is not None:
        conditions.append(visibility)
    if status:
        conditions.append(LeaveRequest.status == status.value)
    if leave_type:
        conditions.append(LeaveRequest.type == leave_type)
    if requester_type:
        conditions.append(LeaveRequest.requester_type == requester_type.value)

    total = (
        await db.execute(select(func.count()).select_from(LeaveRequest).where(*conditions))
    ).scalar_one()
    q = (
        _with_relations(select(LeaveRequest).where(*conditions))
        .order_by(LeaveRequest.created_at.desc(), LeaveRequest.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    rows = (await db.execute(q)).scalars().all()
    return LeaveRequestPage(
        items=[_request_to_response(r) for r in rows],
        total=total,
        page=page,
        limit=limit,
        total_pages=(total + limit - 1) // limit,
    )


async def get_statistics(db: AsyncSession, actor: CurrentUser) -> LeaveStatistics:
    """Counts per status over the requests the actor can see."""
    q = select(LeaveRequest.status, func.count(LeaveRequest.id)).group_by(LeaveRequest.status)
    visibility = _visibility_filter(actor)
    if visibility is not None:
        q = q.where(visibility)
    counts = {s: n for s, n in (await db.execute(q)).all()}
    return LeaveStatistics(
        total=sum(counts.values()),
        pending=counts.get(PENDING, 0),
        approved=counts.get(LeaveRequestStatus.APPROVED.value, 0),
        rejected=counts.get(LeaveRequestStatus.REJECTED.value, 0),
        cancelled=counts.get(LeaveRequestStatus.CANCELLED.value, 0),
    )
