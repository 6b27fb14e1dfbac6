from app.auth.models import Role, StudentProfile, TeacherProfile, User
from app.core.models.class_model import SchoolClass
from app.core.models.leave_request import LeaveRequest
from app.core.models.leave_request_attachment import LeaveRequestAttachment
from app.core.models.leave_audit_log import LeaveAuditLog
from app.core.models.attendance import AttendanceAuditLog, AttendanceEntry, AttendanceRecord
from app.core.models.calendar_entry import CalendarEntry
from app.core.models.working_days_tracker import WorkingDaysTracker
from app.core.models.notification import Notification

__all__ = [
    "User",
    "Role",
    "TeacherProfile",
    "StudentProfile",
    "SchoolClass",
    "LeaveRequest",
    "LeaveRequestAttachment",
    "LeaveAuditLog",
    "AttendanceRecord",
    "AttendanceEntry",
    "AttendanceAuditLog",
    "CalendarEntry",
    "WorkingDaysTracker",
    "Notification",
]
