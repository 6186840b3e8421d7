"""Attendance ledger: uniqueness-checked record storage."""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from geoattend.models.attendance import AttendanceRecord
from geoattend.models.enums import AttendanceStatus, VerificationMethod
from geoattend.services.gps_service import Coordinate

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    """Base class for ledger failures."""
    pass


class DuplicateStudentRecord(LedgerError):
    def __init__(self, existing: AttendanceRecord):
        super().__init__(
            f"Student {existing.student_id} already has attendance for class {existing.class_id}"
        )
        self.existing = existing


class DuplicateDeviceRecord(LedgerError):
    def __init__(self, existing: AttendanceRecord):
        super().__init__(
            f"Device {existing.device_id} already recorded attendance for class {existing.class_id}"
        )
        self.existing = existing


class PersistenceUnavailable(LedgerError):
    """The store could not be reached or rejected the operation."""
    pass


class RecordNotFound(LedgerError):
    pass


@dataclass
class NewAttendanceRecord:
    class_id: str
    student_id: str
    check_in_time: datetime
    status: AttendanceStatus
    verification_method: VerificationMethod
    verified_location: Optional[Coordinate] = None
    device_id: Optional[str] = None


class AttendanceLedger:
    """
    Record store for attendance.

    Two keys are unique per class: the student and, when known, the device.
    The pre-insert lookups give a fast, descriptive rejection; the database
    unique constraints are what actually hold under concurrent writers. A
    failed lookup aborts the create instead of being read as "no duplicate".
    """

    CORRECTABLE_FIELDS = {'status'}

    def __init__(self, session):
        self.session = session

    def _first(self, **filters) -> Optional[AttendanceRecord]:
        try:
            return self.session.query(AttendanceRecord).filter_by(**filters).first()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Attendance lookup failed for %s: %s", filters, e)
            raise PersistenceUnavailable("Attendance store is unavailable") from e

    def get(self, record_id: str) -> Optional[AttendanceRecord]:
        return self._first(id=record_id)

    def find_by_class_and_student(self, class_id: str, student_id: str) -> Optional[AttendanceRecord]:
        return self._first(class_id=class_id, student_id=student_id)

    def find_by_class_and_device(self, class_id: str, device_id: str) -> Optional[AttendanceRecord]:
        return self._first(class_id=class_id, device_id=device_id)

    def create(self, new: NewAttendanceRecord) -> AttendanceRecord:
        existing = self.find_by_class_and_student(new.class_id, new.student_id)
        if existing:
            raise DuplicateStudentRecord(existing)

        if new.device_id:
            existing = self.find_by_class_and_device(new.class_id, new.device_id)
            if existing:
                logger.warning(
                    "Device %s reused for class %s by student %s (first used by %s)",
                    new.device_id, new.class_id, new.student_id, existing.student_id
                )
                raise DuplicateDeviceRecord(existing)

        location = new.verified_location
        record = AttendanceRecord(
            class_id=new.class_id,
            student_id=new.student_id,
            check_in_time=new.check_in_time,
            status=new.status,
            verification_method=new.verification_method,
            verified_latitude=location.latitude if location else None,
            verified_longitude=location.longitude if location else None,
            device_id=new.device_id
        )

        try:
            self.session.add(record)
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise self._duplicate_from_conflict(new, e)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Attendance insert failed for class %s: %s", new.class_id, e)
            raise PersistenceUnavailable("Attendance store is unavailable") from e

        return record

    def _duplicate_from_conflict(self, new: NewAttendanceRecord, error: IntegrityError) -> LedgerError:
        """Work out which unique key a lost insert race collided with."""
        existing = self.find_by_class_and_student(new.class_id, new.student_id)
        if existing:
            logger.info(
                "Concurrent check-in lost for student %s in class %s",
                new.student_id, new.class_id
            )
            return DuplicateStudentRecord(existing)

        if new.device_id:
            existing = self.find_by_class_and_device(new.class_id, new.device_id)
            if existing:
                logger.warning(
                    "Concurrent check-in from device %s lost in class %s",
                    new.device_id, new.class_id
                )
                return DuplicateDeviceRecord(existing)

        logger.error("Attendance insert rejected for class %s: %s", new.class_id, error)
        return PersistenceUnavailable("Attendance store rejected the record")

    def update(self, record_id: str, **changes) -> AttendanceRecord:
        """Administrative correction. Only the status may change."""
        unknown = set(changes) - self.CORRECTABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be corrected: {', '.join(sorted(unknown))}")

        record = self.get(record_id)
        if record is None:
            raise RecordNotFound(f"Attendance record {record_id} not found")

        if 'status' in changes:
            status = changes['status']
            record.status = status if isinstance(status, AttendanceStatus) else AttendanceStatus(status)

        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceUnavailable("Attendance store is unavailable") from e
        return record

    def _list(self, **filters) -> List[AttendanceRecord]:
        try:
            return (
                self.session.query(AttendanceRecord)
                .filter_by(**filters)
                .order_by(AttendanceRecord.check_in_time.desc())
                .all()
            )
        except SQLAlchemyError as e:
            self.session.rollback()
            raise PersistenceUnavailable("Attendance store is unavailable") from e

    def list_by_class(self, class_id: str) -> List[AttendanceRecord]:
        return self._list(class_id=class_id)

    def list_by_student(self, student_id: str) -> List[AttendanceRecord]:
        return self._list(student_id=student_id)

    @staticmethod
    def summarize(records: Iterable[AttendanceRecord]) -> Dict[str, int]:
        counts = {status.value.lower(): 0 for status in AttendanceStatus}
        total = 0
        for record in records:
            counts[record.status.value.lower()] += 1
            total += 1
        counts['total'] = total
        return counts
