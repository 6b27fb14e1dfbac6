"""Attachment metadata for leave requests. Changes are allowed only while the request is pending."""

import logging
from typing import List
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.permissions import has_permission
from app.auth.schemas import CurrentUser
from app.core.config import settings
from app.core.exceptions import AuthorizationError, FieldError, InvalidStateError, NotFoundError, raise_if_errors
from app.core.models import LeaveRequest, LeaveRequestAttachment

from .resolver import is_requester
from .schemas import AttachmentCreate, AttachmentResponse, AttachmentsAdd
from .service import PENDING, ensure_visible, _log_leave_audit, get_leave_or_404

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = frozenset(
    {
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/gif",
        "image/webp",
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    }
)


def validate_attachments(files: List[AttachmentCreate], existing_count: int) -> List[FieldError]:
    errors: List[FieldError] = []
    max_files = settings.leave_attachment_max_files
    if existing_count + len(files) > max_files:
        errors.append(FieldError("files", f"A leave request can have at most {max_files} attachments"))
    for i, f in enumerate(files):
        if f.mime_type.lower() not in ALLOWED_MIME_TYPES:
            errors.append(FieldError(f"files[{i}].mime_type", f"File type {f.mime_type} is not allowed"))
        if f.size > settings.leave_attachment_max_bytes:
            errors.append(
                FieldError(f"files[{i}].size", f"File exceeds the {settings.leave_attachment_max_bytes} byte limit")
            )
    return errors


def _ensure_can_modify(actor: CurrentUser, req: LeaveRequest) -> None:
    if not (is_requester(actor, req) or has_permission(actor, "leave", "manage")):
        raise AuthorizationError("Only the requester or an administrator can change attachments")
    if req.status != PENDING:
        raise InvalidStateError(
            f"Attachments cannot be changed on a leave request that is {req.status}",
            current_status=req.status,
        )


async def _attachment_rows(db: AsyncSession, leave_id: UUID) -> List[LeaveRequestAttachment]:
    result = await db.execute(
        select(LeaveRequestAttachment)
        .where(LeaveRequestAttachment.leave_request_id == leave_id)
        .order_by(LeaveRequestAttachment.uploaded_at, LeaveRequestAttachment.id)
    )
    return list(result.scalars().all())


async def add_attachments(
    db: AsyncSession,
    leave_id: UUID,
    actor: CurrentUser,
    payload: AttachmentsAdd,
) -> List[AttachmentResponse]:
    req = await get_leave_or_404(db, leave_id)
    _ensure_can_modify(actor, req)
    existing = (
        await db.execute(
            select(func.count(LeaveRequestAttachment.id)).where(LeaveRequestAttachment.leave_request_id == leave_id)
        )
    ).scalar_one()
    raise_if_errors(validate_attachments(payload.files, existing))

    for f in payload.files:
        db.add(
            LeaveRequestAttachment(
                leave_request_id=leave_id,
                uploaded_by_id=actor.id,
                filename=f.filename,
                original_name=f.original_name,
                mime_type=f.mime_type.lower(),
                size=f.size,
                url=f.url,
            )
        )
    await _log_leave_audit(
        db, leave_id, "ATTACHMENT_ADDED", actor.id, actor.role,
        remarks=", ".join(f.original_name for f in payload.files),
    )
    await db.commit()
    logger.info("%d attachment(s) added to leave request %s", len(payload.files), leave_id)
    return [AttachmentResponse.model_validate(a) for a in await _attachment_rows(db, leave_id)]


async def list_attachments(db: AsyncSession, leave_id: UUID, actor: CurrentUser) -> List[AttachmentResponse]:
    req = await get_leave_or_404(db, leave_id)
    await ensure_visible(db, actor, req)
    return [AttachmentResponse.model_validate(a) for a in await _attachment_rows(db, leave_id)]


async def remove_attachment(db: AsyncSession, leave_id: UUID, attachment_id: UUID, actor: CurrentUser) -> None:
    req = await get_leave_or_404(db, leave_id)
    _ensure_can_modify(actor, req)
    attachment = await db.get(LeaveRequestAttachment, attachment_id)
    if not attachment or attachment.leave_request_id != leave_id:
        raise NotFoundError("Attachment not found")
    await db.delete(attachment)
    await _log_leave_audit(
        db, leave_id, "ATTACHMENT_REMOVED", actor.id, actor.role,
        remarks=attachment.original_name,
    )
    await db.commit()
