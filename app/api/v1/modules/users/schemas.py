from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


# ----- Teacher profile -----
class EmergencyContact(BaseModel):
    name: str = Field(..., max_length=255)
    phone: str = Field(..., max_length=50)
    relation: Optional[str] = Field(None, max_length=50)


class TeacherAdditionalData(BaseModel):
    """Structured extra profile data. Unknown keys are rejected."""

    qualifications: List[str] = Field(default_factory=list)
    specialization: Optional[str] = Field(None, max_length=100)
    experience_years: Optional[int] = Field(None, ge=0, le=60)
    emergency_contact: Optional[EmergencyContact] = None

    class Config:
        extra = "forbid"


class TeacherCreate(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    employee_id: Optional[str] = Field(None, max_length=50)
    designation: Optional[str] = Field(None, max_length=100)
    additional_data: Optional[TeacherAdditionalData] = None


class TeacherProfileUpdate(BaseModel):
    designation: Optional[str] = Field(None, max_length=100)
    additional_data: Optional[TeacherAdditionalData] = None


class TeacherResponse(BaseModel):
    id: UUID
    user_id: UUID
    full_name: str
    email: str
    employee_id: Optional[str] = None
    designation: Optional[str] = None
    additional_data: Optional[TeacherAdditionalData] = None
    class_id: Optional[UUID] = None
    created_at: datetime


# ----- Student -----
class StudentCreate(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    class_id: Optional[UUID] = None
    roll_number: Optional[int] = Field(None, ge=1)


class StudentClassUpdate(BaseModel):
    """class_id null unassigns the student."""

    class_id: Optional[UUID] = None
    roll_number: Optional[int] = Field(None, ge=1)


class StudentResponse(BaseModel):
    id: UUID
    user_id: UUID
    full_name: str
    email: str
    class_id: Optional[UUID] = None
    roll_number: Optional[int] = None
    created_at: datetime
