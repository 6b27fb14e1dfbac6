"""Audit log for leave lifecycle: APPLIED, CREATED_BY_ADMIN, APPROVED, REJECTED, CANCELLED, attachment changes."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import backref, relationship

from app.db.session import Base, utcnow


class LeaveAuditLog(Base):
    __tablename__ = "leave_audit_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    leave_request_id = Column(
        Uuid,
        ForeignKey("leave_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    action = Column(String(50), nullable=False)
    from_status = Column(String(30), nullable=True)
    to_status = Column(String(30), nullable=True)
    performed_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    performed_by_role = Column(String(50), nullable=True)
    remarks = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    leave_request = relationship(
        "LeaveRequest",
        backref=backref("audit_logs", cascade="all, delete-orphan"),
        foreign_keys=[leave_request_id],
    )
