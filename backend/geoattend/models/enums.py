"""Enumerations shared by models and services."""
from enum import Enum


class VerificationMethod(Enum):
    """Channels a student can use to prove presence."""
    QR = 'QR'
    LOCATION = 'Location'
    MANUAL = 'Manual'
    BIOMETRIC = 'Biometric'
    FACIAL = 'Facial'
    NFC = 'NFC'

    @classmethod
    def parse(cls, value) -> 'VerificationMethod':
        """Accept a method tag in either its value or member-name spelling."""
        if isinstance(value, cls):
            return value
        for method in cls:
            if value == method.value or str(value).upper() == method.name:
                return method
        raise ValueError(f"Unknown verification method: {value}")


class AttendanceStatus(Enum):
    """Outcome recorded for a check-in."""
    PRESENT = 'Present'
    LATE = 'Late'
    ABSENT = 'Absent'


class ScheduleType(Enum):
    """How a class repeats."""
    ONE_TIME = 'one-time'
    DAILY = 'daily'
    WEEKLY = 'weekly'
    CUSTOM = 'custom'
