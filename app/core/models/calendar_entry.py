"""Academic calendar: holidays, events, exams and emergency closures. Soft delete via deleted_at."""

import uuid

from sqlalchemy import CheckConstraint, Column, Date, DateTime, String, Text, Uuid

from app.db.session import Base, utcnow


class CalendarEntry(Base):
    __tablename__ = "calendar_entries"
    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="ck_calendar_date_range"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False)
    type = Column(String(30), nullable=False)  # HOLIDAY, EVENT, EXAM, EMERGENCY_CLOSURE
    # SCHOOL_WIDE | PARTIAL; only meaningful for EVENT entries.
    event_scope = Column(String(20), nullable=True)
    start_date = Column(Date, nullable=False, index=True)
    end_date = Column(Date, nullable=False, index=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
