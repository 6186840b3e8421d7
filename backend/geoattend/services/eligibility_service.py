"""Time-window eligibility for class check-ins."""
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from geoattend.models.enums import AttendanceStatus


class AdmissionOutcome(Enum):
    NOT_YET_OPEN = 'NotYetOpen'
    OPEN = 'Open'
    CLOSED = 'Closed'


@dataclass(frozen=True)
class AdmissionWindow:
    """Closed interval [opens_at, closes_at]; Late after late_boundary_at."""
    opens_at: datetime
    late_boundary_at: datetime
    closes_at: datetime

    def to_dict(self):
        return {
            'opens_at': self.opens_at.isoformat(),
            'late_boundary_at': self.late_boundary_at.isoformat(),
            'closes_at': self.closes_at.isoformat()
        }


@dataclass(frozen=True)
class AdmissionDecision:
    outcome: AdmissionOutcome
    message: str
    window: Optional[AdmissionWindow] = None
    status: Optional[AttendanceStatus] = None

    @property
    def is_open(self) -> bool:
        return self.outcome is AdmissionOutcome.OPEN


def _fmt(moment: datetime) -> str:
    return moment.strftime('%Y-%m-%d %H:%M:%S UTC')


class EligibilityPolicy:
    """
    Decide whether a check-in is permitted at a given instant.

    Only the class's temporal configuration and the clock are consulted; the
    verification method plays no part. Both window boundaries are inclusive.
    """

    @staticmethod
    def admission_window(session) -> AdmissionWindow:
        opens_at = session.start_time
        late_boundary_at = opens_at + timedelta(minutes=session.duration_minutes)
        closes_at = late_boundary_at + timedelta(minutes=session.grace_period_minutes)
        return AdmissionWindow(opens_at, late_boundary_at, closes_at)

    @classmethod
    def evaluate(cls, session, now: datetime) -> AdmissionDecision:
        window = cls.admission_window(session)

        if now < window.opens_at:
            return AdmissionDecision(
                AdmissionOutcome.NOT_YET_OPEN,
                f"Check-in opens at {_fmt(window.opens_at)}",
                window
            )

        if now > window.closes_at:
            return AdmissionDecision(
                AdmissionOutcome.CLOSED,
                f"Check-in closed. The class ended at {_fmt(window.late_boundary_at)} "
                f"and late check-in closed at {_fmt(window.closes_at)}",
                window
            )

        if now <= window.late_boundary_at:
            status = AttendanceStatus.PRESENT
        else:
            status = AttendanceStatus.LATE

        return AdmissionDecision(
            AdmissionOutcome.OPEN,
            f"Check-in open; attendance will be recorded as {status.value}",
            window,
            status
        )

    @staticmethod
    def check_active(session) -> Optional[AdmissionDecision]:
        """Closed-equivalent decision for an inactive class, else None."""
        if session.active:
            return None
        return AdmissionDecision(AdmissionOutcome.CLOSED, "Class is not active")

    @classmethod
    def accepting_check_ins(cls, session, now: datetime) -> bool:
        if cls.check_active(session) is not None:
            return False
        return cls.evaluate(session, now).is_open
