from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.core.enums import LeaveDecision, LeaveRequestType, RequesterType


# ----- Create -----
class CreateLeaveRequest(BaseModel):
    """Submitted by a student or teacher. The requester is taken from the authenticated user."""

    type: LeaveRequestType
    title: str
    description: Optional[str] = None
    start_date: date
    end_date: date
    days: int


class CreateTeacherLeaveRequestByAdmin(BaseModel):
    """Admin-initiated leave for a teacher. days may differ from the date span."""

    teacher_id: UUID
    type: LeaveRequestType
    title: str
    description: Optional[str] = None
    start_date: date
    end_date: date
    days: int
    admin_creation_reason: str
    auto_approve: bool = True


class UpdateLeaveRequest(BaseModel):
    """Partial edit of a pending request by its requester. days follows the new date span when dates change."""

    type: Optional[LeaveRequestType] = None
    title: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


# ----- Decision -----
class AdminLeaveRequestAction(BaseModel):
    status: LeaveDecision
    rejection_reason: Optional[str] = None


# ----- Attachments -----
class AttachmentCreate(BaseModel):
    """Metadata of a file already stored externally."""

    filename: str = Field(..., min_length=1, max_length=255)
    original_name: str = Field(..., min_length=1, max_length=255)
    mime_type: str = Field(..., max_length=100)
    size: int = Field(..., ge=1)
    url: str = Field(..., min_length=1, max_length=1024)


class AttachmentsAdd(BaseModel):
    files: List[AttachmentCreate] = Field(..., min_length=1)


class AttachmentResponse(BaseModel):
    id: UUID
    filename: str
    original_name: str
    mime_type: str
    size: int
    url: str
    uploaded_by_id: Optional[UUID] = None
    uploaded_at: datetime

    class Config:
        from_attributes = True


# ----- Response -----
class PersonSummary(BaseModel):
    """id is the profile id (student or teacher); user_id is the login account."""

    id: UUID
    user_id: UUID
    full_name: str
    email: str


class ApproverSummary(BaseModel):
    id: UUID
    full_name: str
    email: str

    class Config:
        from_attributes = True


class LeaveRequestResponse(BaseModel):
    id: UUID
    requester_type: RequesterType
    student: Optional[PersonSummary] = None
    teacher: Optional[PersonSummary] = None
    type: LeaveRequestType
    title: str
    description: Optional[str] = None
    start_date: date
    end_date: date
    days: int
    status: str
    approver: Optional[ApproverSummary] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    admin_creation_reason: Optional[str] = None
    created_by_id: UUID
    attachments: List[AttachmentResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class LeaveRequestPage(BaseModel):
    items: List[LeaveRequestResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class LeaveStatistics(BaseModel):
    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    cancelled: int = 0


# ----- Teacher usage -----
class LeaveTypeUsage(BaseModel):
    type: LeaveRequestType
    total_days: int = 0
    yearly_days: int = 0
    monthly_days: int = 0


class TeacherLeaveUsage(BaseModel):
    """Approved leave days of one teacher, per type and summed."""

    teacher: PersonSummary
    usage: List[LeaveTypeUsage]
    total_days: int
    yearly_days: int
    monthly_days: int
