"""Tests for the check-in coordinator."""
import time
from datetime import timedelta

import pytest

from geoattend import db
from geoattend.models.attendance import AttendanceRecord
from geoattend.models.enums import AttendanceStatus, VerificationMethod
from geoattend.services.device_identity_service import DictKeyValueStore
from geoattend.services.gps_service import GPSService
from geoattend.services.ledger_service import AttendanceLedger
from geoattend.services.verification_service import ErrorKind
from conftest import CHECK_IN_CODE, CLASS_LOCATION, T0, offset_north
from test_ledger_service import FailingSession, StaleReadLedger


def location_payload(meters_away=0):
    return {'current_location': offset_north(CLASS_LOCATION, meters_away).to_dict()}


@pytest.fixture
def coordinator(make_coordinator):
    return make_coordinator()


def test_qr_check_in_succeeds(coordinator, make_class):
    session = make_class()

    result = coordinator.mark_attendance('QR', session, 'student-1', {'scanned_token': CHECK_IN_CODE})

    assert result.success
    assert result.status is AttendanceStatus.PRESENT
    assert result.record.verification_method is VerificationMethod.QR
    assert result.record.device_id.startswith('device_')
    assert result.record.verified_location is None


def test_second_check_in_is_already_marked(make_coordinator, make_class):
    """The same student never gets a second record, whatever the method."""
    session = make_class()
    coordinator = make_coordinator()
    first = coordinator.mark_attendance('QR', session, 'student-1', {'scanned_token': CHECK_IN_CODE})

    for method, payload in [
        ('QR', {'scanned_token': CHECK_IN_CODE}),
        ('Location', location_payload()),
        ('Manual', {}),
    ]:
        result = make_coordinator().mark_attendance(method, session, 'student-1', payload)
        assert not result.success
        assert result.error_kind is ErrorKind.ALREADY_MARKED
        assert result.record.id == first.record.id

    assert AttendanceRecord.query.filter_by(class_id=session.id).count() == 1


def test_same_device_cannot_check_in_another_student(make_coordinator, make_class):
    session = make_class()
    shared_device = DictKeyValueStore()
    make_coordinator(store=shared_device).mark_attendance('Manual', session, 'student-1')

    result = make_coordinator(store=shared_device).mark_attendance('Manual', session, 'student-2')

    assert result.error_kind is ErrorKind.DUPLICATE_DEVICE_RECORD


def test_location_within_threshold(coordinator, make_class):
    session = make_class(distance_threshold_meters=100)

    result = coordinator.mark_attendance('Location', session, 'student-1', location_payload(99))

    assert result.success
    assert result.details['threshold'] == 100
    assert result.details['distance'] == pytest.approx(99, abs=0.1)
    assert result.record.verified_location == offset_north(CLASS_LOCATION, 99)


def test_location_just_outside_threshold(coordinator, make_class):
    session = make_class(distance_threshold_meters=100)

    result = coordinator.mark_attendance('Location', session, 'student-1', location_payload(101))

    assert result.error_kind is ErrorKind.TOO_FAR
    assert result.details == {'distance': pytest.approx(101, abs=0.1), 'threshold': 100}
    assert '101m away' in result.message
    assert AttendanceRecord.query.count() == 0


def test_location_exactly_at_threshold(coordinator, make_class, monkeypatch):
    session = make_class(distance_threshold_meters=100)
    monkeypatch.setattr(GPSService, 'distance_meters', staticmethod(lambda a, b: 100.0))

    result = coordinator.mark_attendance('Location', session, 'student-1', location_payload())

    assert result.success


def test_too_far_yields_to_closed_window(coordinator, make_class, clock):
    session = make_class()
    clock.set(minutes=90)

    result = coordinator.mark_attendance('Location', session, 'student-1', location_payload(5000))

    assert result.error_kind is ErrorKind.WINDOW_CLOSED


def test_location_not_configured(coordinator, make_class):
    session = make_class(latitude=None, longitude=None)

    result = coordinator.mark_attendance('Location', session, 'student-1', location_payload())

    assert result.error_kind is ErrorKind.LOCATION_NOT_CONFIGURED


@pytest.mark.parametrize('payload', [
    {},
    {'location_error': 'permission denied'},
    {'current_location': {'latitude': 123, 'longitude': 0}},
    {'current_location': {'latitude': 'here'}},
])
def test_location_unavailable(coordinator, make_class, payload):
    session = make_class()

    result = coordinator.mark_attendance('Location', session, 'student-1', payload)

    assert result.error_kind is ErrorKind.LOCATION_UNAVAILABLE


def test_location_provider_timeout_fails_fast(coordinator, make_class):
    session = make_class()

    def slow_fix():
        time.sleep(2)
        return CLASS_LOCATION

    result = coordinator.mark_attendance(
        'Location', session, 'student-1', {'location_provider': slow_fix}
    )

    assert result.error_kind is ErrorKind.LOCATION_UNAVAILABLE
    assert AttendanceRecord.query.count() == 0


def test_location_provider_result_is_used(coordinator, make_class):
    session = make_class()

    result = coordinator.mark_attendance(
        'Location', session, 'student-1', {'location_provider': lambda: CLASS_LOCATION}
    )

    assert result.success


def test_method_not_enabled_wins_over_everything(coordinator, make_class, clock):
    session = make_class(enabled_verification_methods=['QR'])
    clock.set(hours=5)

    result = coordinator.mark_attendance('Location', session, 'student-1', location_payload(10_000))

    assert result.error_kind is ErrorKind.METHOD_NOT_ENABLED


def test_inactive_class(coordinator, make_class):
    session = make_class(active=False)

    result = coordinator.mark_attendance('Manual', session, 'student-1')

    assert result.error_kind is ErrorKind.CLASS_NOT_ACTIVE


@pytest.mark.parametrize('minutes, expected', [
    (59, AttendanceStatus.PRESENT),
    (61, AttendanceStatus.LATE),
    (75, AttendanceStatus.LATE),
])
def test_status_follows_window(coordinator, make_class, clock, minutes, expected):
    session = make_class(duration_minutes=60, grace_period_minutes=15)
    clock.set(minutes=minutes)

    result = coordinator.mark_attendance('Manual', session, 'student-1')

    assert result.success
    assert result.status is expected
    assert result.record.status is expected


def test_after_grace_period(coordinator, make_class, clock):
    session = make_class(duration_minutes=60, grace_period_minutes=15)
    clock.set(minutes=76)

    result = coordinator.mark_attendance('Manual', session, 'student-1')

    assert result.error_kind is ErrorKind.WINDOW_CLOSED
    assert result.details['closes_at'] == (T0 + timedelta(minutes=75)).isoformat()


def test_before_window_opens(coordinator, make_class, clock):
    session = make_class()
    clock.set(minutes=-1)

    result = coordinator.mark_attendance('Manual', session, 'student-1')

    assert result.error_kind is ErrorKind.NOT_YET_OPEN
    assert '09:00:00' in result.message


def test_expired_token_rejected_even_when_matching(coordinator, make_class, clock):
    session = make_class()
    clock.set(days=1, seconds=1)
    # Keep the window open so only the token can fail
    session.start_time = clock.now - timedelta(minutes=1)

    result = coordinator.mark_attendance('QR', session, 'student-1', {'scanned_token': CHECK_IN_CODE})

    assert result.error_kind is ErrorKind.TOKEN_EXPIRED


def test_missing_token_counts_as_expired(coordinator, make_class):
    session = make_class()
    session.set_check_in_token(None)

    result = coordinator.mark_attendance('QR', session, 'student-1', {'scanned_token': CHECK_IN_CODE})

    assert result.error_kind is ErrorKind.TOKEN_EXPIRED


def test_wrong_token(coordinator, make_class):
    session = make_class()

    result = coordinator.mark_attendance('QR', session, 'student-1', {'scanned_token': 'guess'})

    assert result.error_kind is ErrorKind.INVALID_TOKEN


@pytest.mark.parametrize('method, key', [
    ('Biometric', 'biometric_blob'),
    ('Facial', 'facial_blob'),
    ('NFC', 'nfc_blob'),
])
def test_opaque_methods_need_non_empty_payload(make_coordinator, make_class, method, key):
    session = make_class()

    empty = make_coordinator().mark_attendance(method, session, 'student-1', {key: '  '})
    given = make_coordinator().mark_attendance(method, session, 'student-1', {key: 'opaque'})

    assert empty.error_kind is ErrorKind.INVALID_PAYLOAD
    assert given.success
    assert given.record.verification_method is VerificationMethod(method)


def test_success_emits_event(coordinator, make_class, events, clock):
    session = make_class()
    received = []
    events.subscribe(received.append)

    coordinator.mark_attendance('Manual', session, 'student-1')
    coordinator.mark_attendance('Manual', session, 'student-1')

    assert len(received) == 1
    assert received[0].class_id == session.id
    assert received[0].student_id == 'student-1'
    assert received[0].timestamp == clock.now
    assert received[0].to_dict()['type'] == 'class-attendance-marked'


def test_lookup_failure_is_not_read_as_no_duplicate(make_coordinator, make_class):
    session = make_class()
    coordinator = make_coordinator(ledger=AttendanceLedger(FailingSession()))

    result = coordinator.mark_attendance('Manual', session, 'student-1')

    assert result.error_kind is ErrorKind.PERSISTENCE_UNAVAILABLE


def test_concurrent_check_ins_leave_one_record(make_coordinator, make_class):
    """Both attempts pass the optimistic read; the write decides."""
    session = make_class()
    winner = make_coordinator().mark_attendance('QR', session, 'student-1', {'scanned_token': CHECK_IN_CODE})

    loser = make_coordinator(ledger=StaleReadLedger(db.session)).mark_attendance(
        'Location', session, 'student-1', location_payload()
    )

    assert winner.success
    assert loser.error_kind is ErrorKind.DUPLICATE_STUDENT_RECORD
    assert AttendanceRecord.query.filter_by(class_id=session.id, student_id='student-1').count() == 1


def test_unknown_method_is_a_programming_error(coordinator, make_class):
    with pytest.raises(ValueError):
        coordinator.mark_attendance('Telepathy', make_class(), 'student-1')


def test_result_to_dict(coordinator, make_class):
    session = make_class()

    data = coordinator.mark_attendance('Location', session, 'student-1', location_payload(500)).to_dict()

    assert data['success'] is False
    assert data['error_kind'] == 'TooFar'
    assert data['details']['threshold'] == 100


@pytest.mark.parametrize('scanned', ['café-code', 12345, ['check-in-code-123'], {'value': CHECK_IN_CODE}])
def test_malformed_token_is_rejected_not_raised(coordinator, make_class, scanned):
    """Tokens of the wrong type or outside ASCII are plain mismatches."""
    session = make_class()

    result = coordinator.mark_attendance('QR', session, 'student-1', {'scanned_token': scanned})

    assert result.error_kind is ErrorKind.INVALID_TOKEN
    assert AttendanceRecord.query.count() == 0
