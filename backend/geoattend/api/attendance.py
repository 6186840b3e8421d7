"""Attendance API endpoints."""
from flask import Blueprint, request, current_app
from flask_jwt_extended import get_jwt_identity
from geoattend import db, limiter, EVENTS_EXTENSION
from geoattend.models.class_session import ClassSession
from geoattend.models.enums import AttendanceStatus, VerificationMethod
from geoattend.services.device_identity_service import DeviceIdentityService, SessionKeyValueStore
from geoattend.services.ledger_service import AttendanceLedger, PersistenceUnavailable
from geoattend.services.verification_service import ErrorKind, VerificationCoordinator
from geoattend.utils.decorators import lecturer_required, student_required
from geoattend.utils.helpers import success_response, error_response
from geoattend.utils.validators import Validator

attendance_bp = Blueprint('attendance', __name__)

ERROR_STATUS_CODES = {
    ErrorKind.METHOD_NOT_ENABLED: 403,
    ErrorKind.CLASS_NOT_ACTIVE: 403,
    ErrorKind.ALREADY_MARKED: 409,
    ErrorKind.DUPLICATE_STUDENT_RECORD: 409,
    ErrorKind.DUPLICATE_DEVICE_RECORD: 409,
    ErrorKind.INVALID_PAYLOAD: 400,
    ErrorKind.PERSISTENCE_UNAVAILABLE: 503,
}


def build_coordinator() -> VerificationCoordinator:
    """Coordinator wired to this request's database session and client cookie."""
    return VerificationCoordinator(
        ledger=AttendanceLedger(db.session),
        device_identity=DeviceIdentityService(SessionKeyValueStore()),
        events=current_app.extensions[EVENTS_EXTENSION],
        location_timeout=current_app.config['LOCATION_TIMEOUT_SECONDS']
    )


@attendance_bp.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    return success_response(message='Attendance service is running')


@attendance_bp.route('/mark', methods=['POST'])
@student_required
@limiter.limit(lambda: current_app.config['MARK_ATTENDANCE_RATE_LIMIT'])
def mark_attendance():
    """
    Check in to a class.

    Expects JSON:
    {
        "method": "Location",
        "class_id": "...",
        "payload": {"current_location": {"latitude": 0.0, "longitude": 0.0}}
    }
    """
    data = request.get_json(silent=True) or {}
    check = Validator.validate_required_fields(data, ['method', 'class_id'])
    if not check['is_valid']:
        return error_response(check['errors'][0], 400)

    try:
        method = VerificationMethod.parse(data['method'])
    except ValueError as e:
        return error_response(str(e), 400)

    payload = data.get('payload') or {}
    if not isinstance(payload, dict):
        return error_response("payload must be an object", 400)
    # Location providers are server-side only
    payload.pop('location_provider', None)

    if not isinstance(data['class_id'], str):
        return error_response("class_id must be a string", 400)

    session = ClassSession.get_by_id(data['class_id'])
    if session is None:
        return error_response("Class not found", 404)

    result = build_coordinator().mark_attendance(method, session, get_jwt_identity(), payload)

    if result.success:
        return success_response(data=result.to_dict(), message=result.message, status_code=201)

    status_code = ERROR_STATUS_CODES.get(result.error_kind, 422)
    return error_response(result.message, status_code, data=result.to_dict())


@attendance_bp.route('/my-records', methods=['GET'])
@student_required
def get_my_attendance():
    """Get the current student's attendance records."""
    ledger = AttendanceLedger(db.session)
    try:
        records = ledger.list_by_student(get_jwt_identity())
    except PersistenceUnavailable as e:
        return error_response(str(e), 503)

    return success_response(data={
        'records': [r.to_dict() for r in records],
        'statistics': AttendanceLedger.summarize(records)
    })


@attendance_bp.route('/<record_id>', methods=['PATCH'])
@lecturer_required
def correct_attendance(record_id):
    """Administrative status correction by the class owner."""
    data = request.get_json(silent=True) or {}
    if 'status' not in data:
        return error_response("status is required", 400)
    try:
        status = AttendanceStatus(data['status'])
    except ValueError:
        allowed = ', '.join(s.value for s in AttendanceStatus)
        return error_response(f"Invalid status. Must be one of: {allowed}", 400)

    ledger = AttendanceLedger(db.session)
    try:
        record = ledger.get(record_id)
        if record is None:
            return error_response("Attendance record not found", 404)
        if record.class_session.owner_id != get_jwt_identity():
            return error_response("You can only correct attendance for your classes", 403)

        record = ledger.update(record_id, status=status)
    except PersistenceUnavailable as e:
        return error_response(str(e), 503)

    current_app.logger.info(
        "Attendance %s corrected to %s by %s", record.id, status.value, get_jwt_identity()
    )
    return success_response(data=record.to_dict(), message="Attendance updated")
