"""Class session model: the scheduled teaching session students check in to."""
from typing import Optional, Set
from geoattend import db
from geoattend.models.base import BaseModel
from geoattend.models.enums import VerificationMethod, ScheduleType
from geoattend.services.gps_service import Coordinate, GPSService
from geoattend.services.qr_service import CheckInToken
from geoattend.utils.helpers import utcnow
from geoattend.utils.validators import ValidationError


class ClassSession(BaseModel):
    """Class session model."""

    __tablename__ = 'class_sessions'

    name = db.Column(db.String(255), nullable=False)
    owner_id = db.Column(db.String(64), nullable=False, index=True)

    # Location fields for distance admission
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    distance_threshold_meters = db.Column(db.Integer, nullable=False, default=100)

    # Timing
    start_time = db.Column(db.DateTime, nullable=False, default=utcnow)
    end_time = db.Column(db.DateTime, nullable=True)
    active = db.Column(db.Boolean, nullable=False, default=False)
    duration_minutes = db.Column(db.Integer, nullable=False, default=60)
    grace_period_minutes = db.Column(db.Integer, nullable=False, default=15)

    enabled_verification_methods = db.Column(
        db.JSON, nullable=False, default=lambda: [VerificationMethod.QR.value]
    )

    # Current QR check-in token
    check_in_token = db.Column(db.String(128), nullable=True)
    check_in_token_expires_at = db.Column(db.DateTime, nullable=True)

    # Recurrence metadata (read-only for eligibility)
    schedule_type = db.Column(db.Enum(ScheduleType), nullable=False, default=ScheduleType.ONE_TIME)
    recurrence_days = db.Column(db.JSON, nullable=True)
    recurrence_end_date = db.Column(db.Date, nullable=True)

    # Relationships
    attendance_records = db.relationship(
        'AttendanceRecord',
        backref='class_session',
        cascade='all, delete-orphan'
    )

    @property
    def location(self) -> Optional[Coordinate]:
        if self.latitude is None or self.longitude is None:
            return None
        return Coordinate(self.latitude, self.longitude)

    @location.setter
    def location(self, value: Optional[Coordinate]) -> None:
        if value is None:
            self.latitude = None
            self.longitude = None
        else:
            self.latitude = value.latitude
            self.longitude = value.longitude

    @property
    def verification_methods(self) -> Set[VerificationMethod]:
        return {VerificationMethod.parse(m) for m in (self.enabled_verification_methods or [])}

    @property
    def current_check_in_token(self) -> Optional[CheckInToken]:
        if not self.check_in_token or self.check_in_token_expires_at is None:
            return None
        return CheckInToken(self.check_in_token, self.check_in_token_expires_at)

    def set_check_in_token(self, token: Optional[CheckInToken]) -> None:
        self.check_in_token = token.value if token else None
        self.check_in_token_expires_at = token.expires_at if token else None

    def activate(self, now, token: Optional[CheckInToken] = None) -> None:
        """Open the class: start now, forget any previous end."""
        self.active = True
        self.start_time = now
        self.end_time = None
        self.set_check_in_token(token)

    def deactivate(self, now) -> None:
        """Close the class and revoke its check-in token."""
        self.active = False
        self.end_time = now
        self.set_check_in_token(None)

    def validate(self) -> None:
        """Check the class invariants, raising ValidationError on the first breach."""
        methods = self.enabled_verification_methods or []
        if not methods:
            raise ValidationError("At least one verification method must be enabled")
        try:
            parsed = {VerificationMethod.parse(m) for m in methods}
        except ValueError as e:
            raise ValidationError(str(e))

        if (self.latitude is None) != (self.longitude is None):
            raise ValidationError("Latitude and longitude must be set together")
        if self.location is not None:
            GPSService.validate_coordinate(self.location)

        if VerificationMethod.LOCATION in parsed and self.location is None:
            raise ValidationError("Location verification requires a class location")
        if self.distance_threshold_meters is None or self.distance_threshold_meters <= 0:
            raise ValidationError("Distance threshold must be a positive number of meters")
        if self.duration_minutes is None or self.duration_minutes <= 0:
            raise ValidationError("Duration must be a positive number of minutes")
        if self.grace_period_minutes is None or self.grace_period_minutes < 0:
            raise ValidationError("Grace period cannot be negative")

    def to_dict(self, include_token: bool = False):
        """Convert to dictionary."""
        data = super().to_dict(exclude=['check_in_token', 'check_in_token_expires_at'])
        data['schedule_type'] = self.schedule_type.value if self.schedule_type else None
        if self.recurrence_end_date:
            data['recurrence_end_date'] = self.recurrence_end_date.isoformat()
        data['location'] = self.location.to_dict() if self.location else None
        if include_token:
            token = self.current_check_in_token
            data['check_in_token'] = token.to_dict() if token else None
        return data

    def __repr__(self):
        return f'<ClassSession {self.name}>'
