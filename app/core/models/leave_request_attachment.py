"""Files attached to a leave request. Bytes live in external storage; this row holds metadata and the URL."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import relationship

from app.db.session import Base, utcnow


class LeaveRequestAttachment(Base):
    __tablename__ = "leave_request_attachments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    leave_request_id = Column(
        Uuid,
        ForeignKey("leave_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    uploaded_by_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    filename = Column(String(255), nullable=False)
    original_name = Column(String(255), nullable=False)
    mime_type = Column(String(100), nullable=False)
    size = Column(Integer, nullable=False)
    url = Column(String(1024), nullable=False)
    uploaded_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    leave_request = relationship("LeaveRequest", back_populates="attachments")
