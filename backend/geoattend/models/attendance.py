"""Attendance model with verification details."""
from geoattend import db
from geoattend.models.base import BaseModel
from geoattend.models.enums import AttendanceStatus, VerificationMethod
from geoattend.services.gps_service import Coordinate
from geoattend.utils.helpers import utcnow


class AttendanceRecord(BaseModel):
    """One student's admitted check-in for one class."""

    __tablename__ = 'attendance_records'
    # Uniqueness is enforced here, at write time. NULL device ids never collide.
    __table_args__ = (
        db.UniqueConstraint('class_id', 'student_id', name='uq_attendance_class_student'),
        db.UniqueConstraint('class_id', 'device_id', name='uq_attendance_class_device'),
    )

    class_id = db.Column(
        db.String(36),
        db.ForeignKey('class_sessions.id', ondelete='CASCADE'),
        nullable=False,
        index=True
    )
    student_id = db.Column(db.String(64), nullable=False, index=True)
    check_in_time = db.Column(db.DateTime, nullable=False, default=utcnow)
    status = db.Column(db.Enum(AttendanceStatus), nullable=False, default=AttendanceStatus.PRESENT)

    # Verification details
    verification_method = db.Column(db.Enum(VerificationMethod), nullable=False)
    verified_latitude = db.Column(db.Float, nullable=True)
    verified_longitude = db.Column(db.Float, nullable=True)
    device_id = db.Column(db.String(128), nullable=True)

    @property
    def verified_location(self):
        if self.verified_latitude is None or self.verified_longitude is None:
            return None
        return Coordinate(self.verified_latitude, self.verified_longitude)

    def to_dict(self):
        """Convert to dictionary."""
        data = super().to_dict(exclude=['verified_latitude', 'verified_longitude'])
        data['status'] = self.status.value
        data['verification_method'] = self.verification_method.value
        location = self.verified_location
        data['verified_location'] = location.to_dict() if location else None
        return data

    def __repr__(self):
        return f'<AttendanceRecord {self.class_id}-{self.student_id}>'
