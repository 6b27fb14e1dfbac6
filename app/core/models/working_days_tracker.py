"""Cached working-days breakdown per month. Rows are dropped whenever a calendar entry touching the month changes."""

import uuid

from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint, Uuid

from app.db.session import Base, utcnow


class WorkingDaysTracker(Base):
    __tablename__ = "working_days_trackers"
    __table_args__ = (
        UniqueConstraint("month", "year", name="uq_working_days_month_year"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    # Comma-separated ISO weekdays the row was computed with, e.g. "6".
    weekly_off_days = Column(String(20), nullable=False)
    total_days = Column(Integer, nullable=False)
    saturdays = Column(Integer, nullable=False)
    holidays = Column(Integer, nullable=False)
    events = Column(Integer, nullable=False)
    exams = Column(Integer, nullable=False)
    available_days = Column(Integer, nullable=False)
    last_calculated = Column(DateTime(timezone=True), default=utcnow, nullable=False)
