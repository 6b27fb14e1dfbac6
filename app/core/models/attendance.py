"""Daily class attendance. One record per class/date; one entry per student in the record."""

import uuid

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from app.db.session import Base, utcnow


class AttendanceRecord(Base):
    """One row per (class_id, date). Locked after the first successful submission."""

    __tablename__ = "attendance_records"
    __table_args__ = (
        UniqueConstraint("class_id", "date", name="uq_attendance_class_date"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    class_id = Column(Uuid, ForeignKey("classes.id", ondelete="RESTRICT"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    # Teacher profile of the class teacher; null when an administrator took attendance.
    taken_by = Column(Uuid, ForeignKey("teacher_profiles.id", ondelete="SET NULL"), nullable=True)
    taken_by_user_id = Column(Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    is_locked = Column(Boolean, nullable=False, default=False)
    taken_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    school_class = relationship("SchoolClass")
    entries = relationship(
        "AttendanceEntry",
        back_populates="attendance",
        cascade="all, delete-orphan",
    )
    audit_logs = relationship(
        "AttendanceAuditLog",
        back_populates="attendance",
        cascade="all, delete-orphan",
    )


class AttendanceEntry(Base):
    """One row per student per attendance record."""

    __tablename__ = "attendance_entries"
    __table_args__ = (
        UniqueConstraint("attendance_id", "student_id", name="uq_attendance_entry_student"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    attendance_id = Column(
        Uuid,
        ForeignKey("attendance_records.id", ondelete="CASCADE"),
        nullable=False,
    )
    student_id = Column(Uuid, ForeignKey("student_profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False)  # PRESENT, ABSENT
    remark = Column(String(255), nullable=True)

    attendance = relationship("AttendanceRecord", back_populates="entries")
    student = relationship("StudentProfile", foreign_keys=[student_id])


class AttendanceAuditLog(Base):
    """Every take, retake, unlock and entry change. Overrides of locked records always land here."""

    __tablename__ = "attendance_audit_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    attendance_id = Column(
        Uuid,
        ForeignKey("attendance_records.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    action = Column(String(50), nullable=False)
    student_id = Column(Uuid, nullable=True)
    from_status = Column(String(20), nullable=True)
    to_status = Column(String(20), nullable=True)
    performed_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    performed_by_role = Column(String(50), nullable=True)
    reason = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    attendance = relationship("AttendanceRecord", back_populates="audit_logs")
