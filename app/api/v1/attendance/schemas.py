from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.api.v1.working_days.schemas import DateStatusResponse
from app.core.enums import AttendanceStatus


# ----- Record -----
class AttendanceEntryInput(BaseModel):
    """Status of one student in the submitted roll."""

    student_id: UUID
    status: AttendanceStatus
    remark: Optional[str] = None


class RecordAttendanceRequest(BaseModel):
    """Whole-class submission for one date. The record is locked once saved."""

    class_id: UUID
    date: date
    entries: List[AttendanceEntryInput]


class AttendanceEntryUpdate(BaseModel):
    """Change one entry. override=true with a reason edits a locked record (attendance.override)."""

    status: AttendanceStatus
    remark: Optional[str] = None
    override: bool = False
    reason: Optional[str] = None


class AttendanceUnlock(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


# ----- Responses -----
class AttendanceEntryResponse(BaseModel):
    student_id: UUID
    student_name: str
    roll_number: Optional[int] = None
    status: AttendanceStatus
    remark: Optional[str] = None


class AttendanceRecordResponse(BaseModel):
    id: UUID
    class_id: UUID
    class_name: str
    date: date
    taken_by: Optional[UUID] = None
    taken_by_user_id: UUID
    is_locked: bool
    taken_at: datetime
    updated_at: datetime
    entries: List[AttendanceEntryResponse]
    present_count: int
    absent_count: int
    total: int


class StudentMonthlyStats(BaseModel):
    student_id: UUID
    month: int
    year: int
    present: int
    absent: int
    recorded_days: int
    working_days: int
    attendance_percentage: float


class ClassTeacherCheck(BaseModel):
    class_id: UUID
    teacher_id: Optional[UUID] = None
    is_class_teacher: bool


class ClassAttendanceForDate(BaseModel):
    """The class's record for a date (null when not taken yet) and whether attendance is expected."""

    class_id: UUID
    date: date
    date_status: DateStatusResponse
    record: Optional[AttendanceRecordResponse] = None


# ----- Student history -----
class StudentAttendanceItem(BaseModel):
    attendance_id: UUID
    date: date
    status: AttendanceStatus
    remark: Optional[str] = None
    is_locked: bool


class StudentAttendanceHistory(BaseModel):
    student_id: UUID
    student_name: str
    roll_number: Optional[int] = None
    class_id: Optional[UUID] = None
    class_name: Optional[str] = None
    present: int
    absent: int
    items: List[StudentAttendanceItem]
    total: int
    page: int
    limit: int
    total_pages: int


# ----- Class-wise dashboard -----
class ClassDayStats(BaseModel):
    """status: completed (record locked), partial (record unlocked) or pending (not taken)."""

    class_id: UUID
    class_name: str
    grade: int
    section: str
    total_students: int
    present: int
    absent: int
    attendance_percentage: float
    status: str


class ClassWiseAttendanceStats(BaseModel):
    date: date
    classes: List[ClassDayStats]
    total_students: int
    total_present: int
    total_absent: int
    completed_classes: int
    partial_classes: int
    pending_classes: int
    overall_attendance_rate: float
