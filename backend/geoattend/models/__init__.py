"""Models package with all models."""
from .base import BaseModel
from .enums import VerificationMethod, AttendanceStatus, ScheduleType
from .class_session import ClassSession
from .attendance import AttendanceRecord

__all__ = [
    'BaseModel', 'VerificationMethod', 'AttendanceStatus', 'ScheduleType',
    'ClassSession', 'AttendanceRecord'
]
