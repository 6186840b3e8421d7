"""Shared test fixtures."""
import math
from datetime import datetime, timedelta

import pytest
from flask_jwt_extended import create_access_token

from geoattend import create_app, db
from geoattend.models.class_session import ClassSession
from geoattend.models.enums import VerificationMethod
from geoattend.services.device_identity_service import DeviceIdentityService, DictKeyValueStore
from geoattend.services.event_service import AttendanceEventBus
from geoattend.services.gps_service import Coordinate, EARTH_RADIUS_METERS
from geoattend.services.ledger_service import AttendanceLedger
from geoattend.services.qr_service import CheckInToken
from geoattend.services.verification_service import VerificationCoordinator

T0 = datetime(2024, 3, 4, 9, 0, 0)
CLASS_LOCATION = Coordinate(6.5244, 3.3792)
CHECK_IN_CODE = 'check-in-code-123'


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, **offset) -> None:
        self.now = T0 + timedelta(**offset)


def offset_north(origin: Coordinate, meters: float) -> Coordinate:
    """Point ``meters`` due north of ``origin`` along the meridian."""
    return Coordinate(origin.latitude + math.degrees(meters / EARTH_RADIUS_METERS), origin.longitude)


@pytest.fixture
def app():
    """Create test app."""
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def auth_header(app):
    """Build an Authorization header for a user id and role."""
    def make(user_id: str, role: str):
        token = create_access_token(identity=user_id, additional_claims={'role': role})
        return {'Authorization': f'Bearer {token}'}
    return make


@pytest.fixture
def clock():
    return FixedClock(T0 + timedelta(minutes=10))


@pytest.fixture
def make_class(app):
    """Persist an active class that accepts every method by default."""
    def make(**overrides):
        fields = dict(
            name='Algorithms',
            owner_id='lecturer-1',
            latitude=CLASS_LOCATION.latitude,
            longitude=CLASS_LOCATION.longitude,
            distance_threshold_meters=100,
            start_time=T0,
            active=True,
            duration_minutes=60,
            grace_period_minutes=15,
            enabled_verification_methods=[m.value for m in VerificationMethod],
        )
        fields.update(overrides)
        session = ClassSession(**fields)
        session.set_check_in_token(CheckInToken(CHECK_IN_CODE, T0 + timedelta(days=1)))
        db.session.add(session)
        db.session.commit()
        return session
    return make


@pytest.fixture
def events():
    return AttendanceEventBus()


@pytest.fixture
def make_coordinator(app, clock, events):
    """Coordinator per simulated client device."""
    def make(ledger=None, store=None):
        return VerificationCoordinator(
            ledger=ledger or AttendanceLedger(db.session),
            device_identity=DeviceIdentityService(store if store is not None else DictKeyValueStore()),
            events=events,
            clock=clock,
            location_timeout=0.5
        )
    return make
