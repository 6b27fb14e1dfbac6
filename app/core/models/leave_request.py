"""Leave requests raised by students and teachers (or by an admin on a teacher's behalf)."""

import uuid

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship

from app.core.enums import LeaveRequestStatus
from app.db.session import Base, utcnow


class LeaveRequest(Base):
    """Never physically deleted: the lifecycle ends in APPROVED, REJECTED or CANCELLED."""

    __tablename__ = "leave_requests"
    __table_args__ = (
        CheckConstraint("days >= 1 AND days <= 365", name="ck_leave_days_range"),
        CheckConstraint("end_date >= start_date", name="ck_leave_date_range"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    requester_type = Column(String(20), nullable=False)
    student_id = Column(Uuid, ForeignKey("student_profiles.id", ondelete="SET NULL"), nullable=True, index=True)
    teacher_id = Column(Uuid, ForeignKey("teacher_profiles.id", ondelete="SET NULL"), nullable=True, index=True)
    type = Column(String(50), nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    days = Column(Integer, nullable=False)
    status = Column(String(30), nullable=False, default=LeaveRequestStatus.PENDING_ADMINISTRATION.value, index=True)
    approver_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(String(500), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    admin_creation_reason = Column(String(500), nullable=True)
    created_by_id = Column(Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    student = relationship("StudentProfile", foreign_keys=[student_id])
    teacher = relationship("TeacherProfile", foreign_keys=[teacher_id])
    approver = relationship("User", foreign_keys=[approver_id])
    created_by = relationship("User", foreign_keys=[created_by_id])
    attachments = relationship(
        "LeaveRequestAttachment",
        back_populates="leave_request",
        cascade="all, delete-orphan",
        order_by="LeaveRequestAttachment.uploaded_at",
    )
