"""School classes (grade + section). Model named SchoolClass to avoid Python 'class' keyword."""
import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from app.db.session import Base, utcnow


class SchoolClass(Base):
    """One class-section (e.g. grade 5 section A). class_teacher_id is the single active class teacher."""

    __tablename__ = "classes"
    __table_args__ = (
        UniqueConstraint("grade", "section", "shift", name="uq_class_grade_section_shift"),
        CheckConstraint("capacity > 0", name="ck_class_capacity_positive"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(50), nullable=False)
    grade = Column(Integer, nullable=False)
    section = Column(String(10), nullable=False)
    # A teacher can be class teacher of at most one class.
    class_teacher_id = Column(
        Uuid,
        ForeignKey("teacher_profiles.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
    )
    capacity = Column(Integer, nullable=False, default=40)
    shift = Column(String(20), nullable=False, default="MORNING")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    class_teacher = relationship("TeacherProfile", foreign_keys=[class_teacher_id])
    students = relationship("StudentProfile", back_populates="school_class", foreign_keys="StudentProfile.class_id")
