"""Class session management for lecturers."""
import logging
from typing import Dict, List

from sqlalchemy.exc import SQLAlchemyError

from geoattend import db
from geoattend.models.class_session import ClassSession
from geoattend.models.enums import ScheduleType, VerificationMethod
from geoattend.services.gps_service import Coordinate
from geoattend.services.qr_service import QRService
from geoattend.utils.validators import ValidationError, Validator

logger = logging.getLogger(__name__)


class ClassService:
    """Create, update, start, end and delete class sessions."""

    INT_FIELDS = {
        'distance_threshold_meters': 1,
        'duration_minutes': 1,
        'grace_period_minutes': 0,
    }

    def __init__(self, config: Dict):
        self.config = config

    def create_class(self, owner_id: str, data: Dict) -> ClassSession:
        """Create an inactive class from request data."""
        check = Validator.validate_name(data.get('name'))
        if not check['is_valid']:
            raise ValidationError(check['errors'][0])

        session = ClassSession(
            owner_id=owner_id,
            active=False,
            distance_threshold_meters=self.config['DEFAULT_DISTANCE_THRESHOLD_METERS'],
            duration_minutes=self.config['DEFAULT_DURATION_MINUTES'],
            grace_period_minutes=self.config['DEFAULT_GRACE_PERIOD_MINUTES'],
            enabled_verification_methods=[VerificationMethod.QR.value],
            schedule_type=ScheduleType.ONE_TIME
        )
        self._apply(session, data)
        session.validate()
        self._commit(session)
        logger.info("Class %s created by %s", session.id, owner_id)
        return session

    def update_class(self, session: ClassSession, data: Dict) -> ClassSession:
        if 'enabled_verification_methods' in data and not data['enabled_verification_methods']:
            raise ValidationError("Cannot remove the last verification method")
        if session.active and 'start_time' in data:
            raise ValidationError("Cannot change the start time of an active class")
        self._apply(session, data)
        session.validate()
        self._commit(session)
        return session

    def start_class(self, session: ClassSession, now, mint_token: bool = True) -> ClassSession:
        token = None
        if mint_token:
            token = QRService.mint_token(now, self.config['CHECK_IN_TOKEN_TTL_SECONDS'])
        session.activate(now, token)
        self._commit(session)
        logger.info("Class %s started at %s", session.id, now.isoformat())
        return session

    def end_class(self, session: ClassSession, now) -> ClassSession:
        session.deactivate(now)
        self._commit(session)
        logger.info("Class %s ended at %s", session.id, now.isoformat())
        return session

    def refresh_token(self, session: ClassSession, now, ttl_seconds: int = None) -> ClassSession:
        if not session.active:
            raise ValidationError("Start the class before generating a check-in code")
        ttl = ttl_seconds or self.config['CHECK_IN_TOKEN_TTL_SECONDS']
        session.set_check_in_token(QRService.mint_token(now, ttl))
        self._commit(session)
        return session

    def delete_class(self, session: ClassSession) -> None:
        """Delete the class and, through the cascade, its attendance."""
        try:
            session.delete()
        except SQLAlchemyError:
            db.session.rollback()
            raise
        logger.info("Class %s deleted", session.id)

    @staticmethod
    def list_for_owner(owner_id: str) -> List[ClassSession]:
        return (
            ClassSession.query
            .filter_by(owner_id=owner_id)
            .order_by(ClassSession.start_time.desc())
            .all()
        )

    @staticmethod
    def list_active() -> List[ClassSession]:
        return ClassSession.query.filter_by(active=True).all()

    def _apply(self, session: ClassSession, data: Dict) -> None:
        if 'name' in data:
            check = Validator.validate_name(data['name'])
            if not check['is_valid']:
                raise ValidationError(check['errors'][0])
            session.name = data['name'].strip()

        if 'location' in data:
            location = data['location']
            session.location = Coordinate.from_dict(location) if location is not None else None

        for field, minimum in self.INT_FIELDS.items():
            if field in data:
                setattr(session, field, Validator.as_int(data, field, minimum))

        if 'start_time' in data:
            session.start_time = Validator.as_datetime(data, 'start_time')

        if 'enabled_verification_methods' in data:
            methods = data['enabled_verification_methods']
            if not isinstance(methods, list):
                raise ValidationError("enabled_verification_methods must be a list")
            try:
                parsed = [VerificationMethod.parse(m) for m in methods]
            except ValueError as e:
                raise ValidationError(str(e))
            # Keep order, drop repeats
            session.enabled_verification_methods = list(dict.fromkeys(m.value for m in parsed))

        if 'schedule_type' in data:
            try:
                session.schedule_type = ScheduleType(data['schedule_type'])
            except ValueError:
                raise ValidationError(f"Unknown schedule type: {data['schedule_type']}")

        if 'recurrence_days' in data:
            days = data['recurrence_days']
            if days is not None and (
                not isinstance(days, list)
                or not all(isinstance(d, int) and 0 <= d <= 6 for d in days)
            ):
                raise ValidationError("recurrence_days must be a list of weekday numbers 0-6")
            session.recurrence_days = days

        if 'recurrence_end_date' in data:
            session.recurrence_end_date = (
                Validator.as_date(data, 'recurrence_end_date')
                if data['recurrence_end_date'] else None
            )

    @staticmethod
    def _commit(session: ClassSession) -> None:
        try:
            session.save()
        except SQLAlchemyError:
            db.session.rollback()
            raise
