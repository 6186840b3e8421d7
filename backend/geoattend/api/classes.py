"""Class session API endpoints for lecturers."""
from flask import Blueprint, request, current_app
from flask_jwt_extended import jwt_required, get_jwt_identity
from sqlalchemy.exc import SQLAlchemyError
from geoattend import db
from geoattend.models.class_session import ClassSession
from geoattend.services.class_service import ClassService
from geoattend.services.eligibility_service import EligibilityPolicy
from geoattend.services.ledger_service import AttendanceLedger, PersistenceUnavailable
from geoattend.services.qr_service import QRService
from geoattend.utils.decorators import lecturer_required
from geoattend.utils.helpers import success_response, error_response, utcnow
from geoattend.utils.validators import Validator

classes_bp = Blueprint('classes', __name__)


def _class_service() -> ClassService:
    return ClassService(current_app.config)


def _owned_class(class_id: str):
    """Return (class, None) if the caller owns it, else (None, error response)."""
    session = ClassSession.get_by_id(class_id)
    if session is None:
        return None, error_response("Class not found", 404)
    if session.owner_id != get_jwt_identity():
        return None, error_response("You can only manage your own classes", 403)
    return session, None


def _storage_error(action: str, error: Exception):
    db.session.rollback()
    current_app.logger.error("Error %s: %s", action, error)
    return error_response(f"Error {action}. Please try again", 503)


def _class_payload(session: ClassSession, include_token: bool = False, now=None):
    data = session.to_dict(include_token=include_token)
    data['admission_window'] = EligibilityPolicy.admission_window(session).to_dict()
    if now is not None:
        data['accepting_check_ins'] = EligibilityPolicy.accepting_check_ins(session, now)
    return data


@classes_bp.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    return success_response(message='Classes service is running')


@classes_bp.route('', methods=['POST'])
@lecturer_required
def create_class():
    """Create a new (inactive) class."""
    data = request.get_json(silent=True) or {}
    check = Validator.validate_required_fields(data, ['name'])
    if not check['is_valid']:
        return error_response(check['errors'][0], 400)

    try:
        session = _class_service().create_class(get_jwt_identity(), data)
    except SQLAlchemyError as e:
        return _storage_error("creating class", e)

    return success_response(
        data=_class_payload(session, include_token=True),
        message="Class created successfully",
        status_code=201
    )


@classes_bp.route('', methods=['GET'])
@lecturer_required
def list_my_classes():
    """List classes owned by the current lecturer."""
    now = utcnow()
    classes = ClassService.list_for_owner(get_jwt_identity())
    return success_response(data={
        'classes': [_class_payload(c, include_token=True, now=now) for c in classes],
        'total': len(classes)
    })


@classes_bp.route('/active', methods=['GET'])
@jwt_required()
def list_open_classes():
    """Classes currently accepting check-ins."""
    now = utcnow()
    classes = [
        c for c in ClassService.list_active()
        if EligibilityPolicy.accepting_check_ins(c, now)
    ]
    return success_response(data={
        'classes': [_class_payload(c, now=now) for c in classes],
        'total': len(classes)
    })


@classes_bp.route('/<class_id>', methods=['GET'])
@jwt_required()
def get_class(class_id):
    """Class detail. The check-in token is only shown to the owner."""
    session = ClassSession.get_by_id(class_id)
    if session is None:
        return error_response("Class not found", 404)

    is_owner = session.owner_id == get_jwt_identity()
    return success_response(data=_class_payload(session, include_token=is_owner, now=utcnow()))


@classes_bp.route('/<class_id>', methods=['PATCH'])
@lecturer_required
def update_class(class_id):
    """Update class settings."""
    session, error = _owned_class(class_id)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    try:
        session = _class_service().update_class(session, data)
    except SQLAlchemyError as e:
        return _storage_error("updating class", e)

    return success_response(
        data=_class_payload(session, include_token=True),
        message="Class updated successfully"
    )


@classes_bp.route('/<class_id>/start', methods=['POST'])
@lecturer_required
def start_class(class_id):
    """Activate the class and mint a check-in token."""
    session, error = _owned_class(class_id)
    if error:
        return error
    if session.active:
        return error_response("Class is already active", 400)

    data = request.get_json(silent=True) or {}
    try:
        session = _class_service().start_class(
            session, utcnow(), mint_token=data.get('mint_token', True)
        )
    except SQLAlchemyError as e:
        return _storage_error("starting class", e)

    return success_response(
        data=_class_payload(session, include_token=True),
        message="Class started"
    )


@classes_bp.route('/<class_id>/end', methods=['POST'])
@lecturer_required
def end_class(class_id):
    """Deactivate the class and revoke its check-in token."""
    session, error = _owned_class(class_id)
    if error:
        return error
    if not session.active:
        return error_response("Class is not active", 400)

    try:
        session = _class_service().end_class(session, utcnow())
    except SQLAlchemyError as e:
        return _storage_error("ending class", e)

    return success_response(data=_class_payload(session), message="Class ended")


@classes_bp.route('/<class_id>/token', methods=['POST'])
@lecturer_required
def refresh_token(class_id):
    """Rotate the QR check-in token and return it with a rendered QR image."""
    session, error = _owned_class(class_id)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    ttl = None
    if data.get('expires_in_seconds') is not None:
        ttl = Validator.as_int(data, 'expires_in_seconds', minimum=30)

    try:
        session = _class_service().refresh_token(session, utcnow(), ttl)
    except SQLAlchemyError as e:
        return _storage_error("generating check-in code", e)

    token = session.current_check_in_token
    return success_response(
        data={
            'class_id': session.id,
            'token': token.value,
            'expires_at': token.expires_at.isoformat(),
            'qr_image': QRService.render_qr(token)
        },
        message="Check-in code generated"
    )


@classes_bp.route('/<class_id>', methods=['DELETE'])
@lecturer_required
def delete_class(class_id):
    """Delete a class together with its attendance records."""
    session, error = _owned_class(class_id)
    if error:
        return error

    try:
        _class_service().delete_class(session)
    except SQLAlchemyError as e:
        return _storage_error("deleting class", e)

    return success_response(message="Class deleted")


@classes_bp.route('/<class_id>/attendance', methods=['GET'])
@lecturer_required
def class_attendance(class_id):
    """Attendance report for one class."""
    session, error = _owned_class(class_id)
    if error:
        return error

    ledger = AttendanceLedger(db.session)
    try:
        records = ledger.list_by_class(session.id)
    except PersistenceUnavailable as e:
        return error_response(str(e), 503)

    return success_response(data={
        'class': _class_payload(session),
        'records': [r.to_dict() for r in records],
        'statistics': AttendanceLedger.summarize(records)
    })
