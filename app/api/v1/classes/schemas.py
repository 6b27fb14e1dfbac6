from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.core.enums import ClassShift


class ClassCreate(BaseModel):
    grade: int = Field(..., ge=1, le=12)
    section: str = Field(..., min_length=1, max_length=10)
    name: Optional[str] = Field(None, max_length=50, description="Defaults to '<grade>-<section>'")
    capacity: int = Field(40, gt=0, le=200)
    shift: ClassShift = ClassShift.MORNING
    class_teacher_id: Optional[UUID] = None


class ClassUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=50)
    capacity: Optional[int] = Field(None, gt=0, le=200)
    shift: Optional[ClassShift] = None
    is_active: Optional[bool] = None


class ClassTeacherAssign(BaseModel):
    """teacher_id null removes the current class teacher."""

    teacher_id: Optional[UUID] = None


class ClassResponse(BaseModel):
    id: UUID
    name: str
    grade: int
    section: str
    class_teacher_id: Optional[UUID] = None
    capacity: int
    shift: str
    is_active: bool
    student_count: int = 0
    created_at: datetime
    updated_at: datetime


class ClassStudentItem(BaseModel):
    id: UUID
    user_id: UUID
    full_name: str
    roll_number: Optional[int] = None


class ClassStudentsResponse(BaseModel):
    class_id: UUID
    students: List[ClassStudentItem]
