"""Check-in orchestration: the single entry point for marking attendance."""
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from geoattend.models.attendance import AttendanceRecord
from geoattend.models.enums import AttendanceStatus, VerificationMethod
from geoattend.services.eligibility_service import AdmissionOutcome, EligibilityPolicy
from geoattend.services.event_service import AttendanceMarkedEvent
from geoattend.services.gps_service import Coordinate, GPSService, LocationUnavailableError
from geoattend.services.ledger_service import (
    DuplicateDeviceRecord, DuplicateStudentRecord, NewAttendanceRecord, PersistenceUnavailable
)
from geoattend.utils.helpers import utcnow
from geoattend.utils.validators import ValidationError

logger = logging.getLogger(__name__)


class ErrorKind(Enum):
    METHOD_NOT_ENABLED = 'MethodNotEnabled'
    CLASS_NOT_ACTIVE = 'ClassNotActive'
    ALREADY_MARKED = 'AlreadyMarked'
    LOCATION_NOT_CONFIGURED = 'LocationNotConfigured'
    TOO_FAR = 'TooFar'
    LOCATION_UNAVAILABLE = 'LocationUnavailable'
    TOKEN_EXPIRED = 'TokenExpired'
    INVALID_TOKEN = 'InvalidToken'
    INVALID_PAYLOAD = 'InvalidPayload'
    NOT_YET_OPEN = 'NotYetOpen'
    WINDOW_CLOSED = 'WindowClosed'
    DUPLICATE_STUDENT_RECORD = 'DuplicateStudentRecord'
    DUPLICATE_DEVICE_RECORD = 'DuplicateDeviceRecord'
    PERSISTENCE_UNAVAILABLE = 'PersistenceUnavailable'


@dataclass
class AttendanceResult:
    success: bool
    record: Optional[AttendanceRecord] = None
    status: Optional[AttendanceStatus] = None
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {'success': self.success, 'message': self.message}
        if self.record is not None:
            data['record'] = self.record.to_dict()
        if self.status is not None:
            data['status'] = self.status.value
        if self.error_kind is not None:
            data['error_kind'] = self.error_kind.value
        if self.details is not None:
            data['details'] = self.details
        return data


def _fail(kind: ErrorKind, message: str, **extra) -> AttendanceResult:
    return AttendanceResult(success=False, error_kind=kind, message=message, **extra)


# Payload key carrying the opaque blob for each unvalidated method
BLOB_KEYS = {
    VerificationMethod.BIOMETRIC: 'biometric_blob',
    VerificationMethod.FACIAL: 'facial_blob',
    VerificationMethod.NFC: 'nfc_blob',
}


class VerificationCoordinator:
    """
    Run one check-in attempt through its checks, in order, and record it.

    Order: method enabled, class active, duplicate lookup, method admission,
    time window, write. The first failing check decides the result. Expected
    rejections come back as ``AttendanceResult`` values; nothing is retried.
    """

    def __init__(
        self,
        ledger,
        device_identity=None,
        events=None,
        clock: Callable[[], datetime] = utcnow,
        location_timeout: float = 15
    ):
        self.ledger = ledger
        self.device_identity = device_identity
        self.events = events
        self.clock = clock
        self.location_timeout = location_timeout

    def mark_attendance(
        self,
        method,
        session,
        student_id: str,
        payload: Optional[Dict[str, Any]] = None
    ) -> AttendanceResult:
        method = VerificationMethod.parse(method)
        payload = payload or {}
        now = self.clock()

        result = self._check(method, session, student_id, payload, now)
        if result.success:
            logger.info(
                "Attendance marked: class=%s student=%s method=%s status=%s",
                session.id, student_id, method.value, result.status.value
            )
            if self.events is not None:
                self.events.publish(AttendanceMarkedEvent(session.id, student_id, now))
        else:
            logger.info(
                "Attendance rejected: class=%s student=%s method=%s kind=%s",
                session.id, student_id, method.value, result.error_kind.value
            )
        return result

    def _check(self, method, session, student_id, payload, now) -> AttendanceResult:
        if method not in session.verification_methods:
            return _fail(
                ErrorKind.METHOD_NOT_ENABLED,
                f"{method.value} verification is not enabled for this class"
            )

        inactive = EligibilityPolicy.check_active(session)
        if inactive is not None:
            return _fail(ErrorKind.CLASS_NOT_ACTIVE, inactive.message)

        try:
            existing = self.ledger.find_by_class_and_student(session.id, student_id)
        except PersistenceUnavailable as e:
            return _fail(ErrorKind.PERSISTENCE_UNAVAILABLE, str(e))
        if existing:
            return _fail(
                ErrorKind.ALREADY_MARKED,
                "Attendance already marked for this class",
                record=existing
            )

        failure, verified_location, details = self._admit(method, session, payload, now)
        if failure is not None:
            return failure

        decision = EligibilityPolicy.evaluate(session, now)
        window_failure = self._window_failure(decision)
        if window_failure is not None:
            return window_failure

        device_id = self.device_identity.get_or_create() if self.device_identity else None
        try:
            record = self.ledger.create(NewAttendanceRecord(
                class_id=session.id,
                student_id=student_id,
                check_in_time=now,
                status=decision.status,
                verification_method=method,
                verified_location=verified_location,
                device_id=device_id
            ))
        except DuplicateStudentRecord as e:
            return _fail(
                ErrorKind.DUPLICATE_STUDENT_RECORD,
                "Attendance already marked for this class",
                record=e.existing
            )
        except DuplicateDeviceRecord:
            return _fail(
                ErrorKind.DUPLICATE_DEVICE_RECORD,
                "Attendance has already been marked from this device"
            )
        except PersistenceUnavailable as e:
            return _fail(ErrorKind.PERSISTENCE_UNAVAILABLE, str(e))

        message = f"Attendance marked as {decision.status.value}"
        if details is not None:
            message += f" ({details['distance']:.0f}m from class location)"
        return AttendanceResult(
            success=True,
            record=record,
            status=decision.status,
            message=message,
            details=details
        )

    @staticmethod
    def _window_failure(decision) -> Optional[AttendanceResult]:
        details = decision.window.to_dict() if decision.window else None
        if decision.outcome is AdmissionOutcome.NOT_YET_OPEN:
            return _fail(ErrorKind.NOT_YET_OPEN, decision.message, details=details)
        if decision.outcome is AdmissionOutcome.CLOSED:
            return _fail(ErrorKind.WINDOW_CLOSED, decision.message, details=details)
        return None

    def _admit(self, method, session, payload, now) -> Tuple[Optional[AttendanceResult], Optional[Coordinate], Optional[Dict]]:
        """Method-specific admission. Returns (failure, verified location, details)."""
        if method is VerificationMethod.LOCATION:
            return self._admit_location(session, payload, now)

        if method is VerificationMethod.QR:
            token = session.current_check_in_token
            if token is None or token.is_expired(now):
                return _fail(
                    ErrorKind.TOKEN_EXPIRED,
                    "This check-in code has expired. Ask the lecturer for a new one"
                ), None, None
            scanned = payload.get('scanned_token')
            if not isinstance(scanned, str) or not token.matches(scanned):
                return _fail(ErrorKind.INVALID_TOKEN, "Invalid check-in code for this class"), None, None
            return None, None, None

        if method in BLOB_KEYS:
            # Opaque payloads are not matched against enrolled templates
            blob = payload.get(BLOB_KEYS[method])
            if not isinstance(blob, str) or not blob.strip():
                return _fail(
                    ErrorKind.INVALID_PAYLOAD,
                    f"{method.value} verification data is missing"
                ), None, None

        return None, None, None

    def _admit_location(self, session, payload, now):
        if session.location is None:
            return _fail(
                ErrorKind.LOCATION_NOT_CONFIGURED,
                "Class has no location set"
            ), None, None

        try:
            current = self._resolve_location(payload)
        except LocationUnavailableError as e:
            return _fail(ErrorKind.LOCATION_UNAVAILABLE, str(e)), None, None

        check = GPSService.verify_location(current, session)
        details = {
            'distance': round(check['distance'], 1),
            'threshold': check['threshold']
        }
        if not check['is_inside']:
            # A shut window cannot be fixed by moving closer, so it wins
            window_failure = self._window_failure(EligibilityPolicy.evaluate(session, now))
            if window_failure is not None:
                return window_failure, None, None
            return _fail(
                ErrorKind.TOO_FAR,
                f"You are too far from the class location "
                f"({check['distance']:.0f}m away, threshold is {check['threshold']}m)",
                details=details
            ), None, None

        return None, current, details

    def _resolve_location(self, payload) -> Coordinate:
        error = payload.get('location_error')
        if error:
            raise LocationUnavailableError(f"Location unavailable: {error}")

        location = payload.get('current_location')
        provider = payload.get('location_provider')
        if location is None and provider is not None:
            location = GPSService.acquire_location(provider, self.location_timeout)
        if location is None:
            raise LocationUnavailableError("No location was provided")

        try:
            if not isinstance(location, Coordinate):
                location = Coordinate.from_dict(location)
            return GPSService.validate_coordinate(location)
        except ValidationError as e:
            raise LocationUnavailableError(f"Invalid location reading: {e}") from e
