from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.rbac import check_permission
from app.auth.schemas import CurrentUser
from app.core.enums import LeaveRequestStatus, LeaveRequestType, RequesterType
from app.core.exceptions import ServiceError
from app.core.notifications import NotificationDispatcher, get_notifier
from app.db.session import get_db

from .schemas import (
    AdminLeaveRequestAction,
    AttachmentResponse,
    AttachmentsAdd,
    CreateLeaveRequest,
    CreateTeacherLeaveRequestByAdmin,
    LeaveRequestPage,
    LeaveRequestResponse,
    LeaveStatistics,
    TeacherLeaveUsage,
    UpdateLeaveRequest,
)
from . import attachments, service, usage

router = APIRouter(prefix="/api/v1/leave-requests", tags=["leave-requests"])


@router.post(
    "",
    response_model=LeaveRequestResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("leave", "create"))],
)
async def submit_leave_request(
    payload: CreateLeaveRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> LeaveRequestResponse:
    """Submit a leave request for the current student or teacher."""
    try:
        return await service.submit_leave_request(
            db, current_user, payload, notifier=notifier, background_tasks=background_tasks
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.post(
    "/teacher/by-admin",
    response_model=LeaveRequestResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(check_permission("leave", "manage"))],
)
async def create_teacher_leave_by_admin(
    payload: CreateTeacherLeaveRequestByAdmin,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> LeaveRequestResponse:
    """Record leave for a teacher. Approved immediately unless auto_approve is false."""
    try:
        return await service.create_teacher_leave_by_admin(
            db, current_user, payload, notifier=notifier, background_tasks=background_tasks
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get(
    "",
    response_model=LeaveRequestPage,
    dependencies=[Depends(check_permission("leave", "read"))],
)
async def list_leave_requests(
    status_filter: Optional[LeaveRequestStatus] = Query(None, alias="status"),
    leave_type: Optional[LeaveRequestType] = Query(None, alias="type"),
    requester_type: Optional[RequesterType] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> LeaveRequestPage:
    try:
        return await service.list_leave_requests(
            db,
            current_user,
            status=status_filter,
            leave_type=leave_type.value if leave_type else None,
            requester_type=requester_type,
            page=page,
            limit=limit,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get(
    "/statistics",
    response_model=LeaveStatistics,
    dependencies=[Depends(check_permission("leave", "read"))],
)
async def get_statistics(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> LeaveStatistics:
    try:
        return await service.get_statistics(db, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get(
    "/teacher/usage",
    response_model=List[TeacherLeaveUsage],
    dependencies=[Depends(check_permission("leave", "approve"))],
)
async def list_teachers_leave_usage(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[TeacherLeaveUsage]:
    """Approved leave days of every teacher, per type."""
    try:
        return await usage.list_teachers_leave_usage(db, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get(
    "/teacher/{teacher_id}/usage",
    response_model=TeacherLeaveUsage,
    dependencies=[Depends(check_permission("leave", "read"))],
)
async def get_teacher_leave_usage(
    teacher_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> TeacherLeaveUsage:
    try:
        return await usage.get_teacher_leave_usage(db, current_user, teacher_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.patch(
    "/{leave_id}",
    response_model=LeaveRequestResponse,
    dependencies=[Depends(check_permission("leave", "create"))],
)
async def update_leave_request(
    leave_id: UUID,
    payload: UpdateLeaveRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> LeaveRequestResponse:
    """Edit a pending request. Only the requester may edit; days follows the new dates."""
    try:
        return await service.update_leave_request(db, leave_id, current_user, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get(
    "/{leave_id}",
    response_model=LeaveRequestResponse,
    dependencies=[Depends(check_permission("leave", "read"))],
)
async def get_leave_request(
    leave_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> LeaveRequestResponse:
    try:
        return await service.get_leave_request(db, leave_id, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.post(
    "/{leave_id}/decision",
    response_model=LeaveRequestResponse,
)
async def decide_leave_request(
    leave_id: UUID,
    payload: AdminLeaveRequestAction,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> LeaveRequestResponse:
    """Approve or reject. Checks run in order: existence, approve capability, pending status, rejection reason."""
    try:
        return await service.decide_leave_request(
            db, leave_id, current_user, payload, notifier=notifier, background_tasks=background_tasks
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.post(
    "/{leave_id}/cancel",
    response_model=LeaveRequestResponse,
)
async def cancel_leave_request(
    leave_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> LeaveRequestResponse:
    """Withdraw a pending request. Only the requester may cancel."""
    try:
        return await service.cancel_leave_request(db, leave_id, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


# ----- Attachments -----
@router.post(
    "/{leave_id}/attachments",
    response_model=List[AttachmentResponse],
    status_code=status.HTTP_201_CREATED,
)
async def add_attachments(
    leave_id: UUID,
    payload: AttachmentsAdd,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[AttachmentResponse]:
    try:
        return await attachments.add_attachments(db, leave_id, current_user, payload)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.get(
    "/{leave_id}/attachments",
    response_model=List[AttachmentResponse],
    dependencies=[Depends(check_permission("leave", "read"))],
)
async def list_attachments(
    leave_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[AttachmentResponse]:
    try:
        return await attachments.list_attachments(db, leave_id, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.delete(
    "/{leave_id}/attachments/{attachment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def remove_attachment(
    leave_id: UUID,
    attachment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> Response:
    try:
        await attachments.remove_attachment(db, leave_id, attachment_id, current_user)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
