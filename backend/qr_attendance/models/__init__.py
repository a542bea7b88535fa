"""Models package with all models."""
from .base import BaseModel
from .user import User, UserRole
from .course import Course, Enrollment
from .class_session import ClassSession, SessionStatus
from .attendance import AttendanceRecord, AttendanceStatus, RecordMethod

__all__ = [
    'BaseModel', 'User', 'UserRole', 'Course', 'Enrollment',
    'ClassSession', 'SessionStatus',
    'AttendanceRecord', 'AttendanceStatus', 'RecordMethod'
]
