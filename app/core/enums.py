from enum import Enum


class UserRole(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    TEACHER = "TEACHER"
    STUDENT = "STUDENT"
    PARENT = "PARENT"


class LeaveRequestType(str, Enum):
    SICK = "SICK"
    PERSONAL = "PERSONAL"
    VACATION = "VACATION"
    EMERGENCY = "EMERGENCY"
    MEDICAL = "MEDICAL"
    FAMILY = "FAMILY"
    PROFESSIONAL_DEVELOPMENT = "PROFESSIONAL_DEVELOPMENT"
    CONFERENCE = "CONFERENCE"
    WORKSHOP = "WORKSHOP"
    OTHER = "OTHER"


class LeaveRequestStatus(str, Enum):
    PENDING_ADMINISTRATION = "PENDING_ADMINISTRATION"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class RequesterType(str, Enum):
    STUDENT = "STUDENT"
    TEACHER = "TEACHER"


class LeaveDecision(str, Enum):
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class AttendanceStatus(str, Enum):
    PRESENT = "PRESENT"
    ABSENT = "ABSENT"


class CalendarEntryType(str, Enum):
    HOLIDAY = "HOLIDAY"
    EVENT = "EVENT"
    EXAM = "EXAM"
    EMERGENCY_CLOSURE = "EMERGENCY_CLOSURE"


class EventScope(str, Enum):
    SCHOOL_WIDE = "SCHOOL_WIDE"
    PARTIAL = "PARTIAL"


class ClassShift(str, Enum):
    MORNING = "MORNING"
    DAY = "DAY"


class NotificationCategory(str, Enum):
    LEAVE = "LEAVE"
    ATTENDANCE = "ATTENDANCE"
