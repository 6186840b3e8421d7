"""Custom decorators for authorization."""
from functools import wraps
from flask_jwt_extended import get_jwt, verify_jwt_in_request
from geoattend.utils.helpers import error_response

LECTURER = 'lecturer'
STUDENT = 'student'


def current_role() -> str:
    """Role claim of the verified access token."""
    return get_jwt().get('role')


def role_required(role: str):
    """Require a valid access token carrying the given role claim."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            verify_jwt_in_request()

            if current_role() != role:
                return error_response(f"{role.title()} access required", 403)

            return f(*args, **kwargs)
        return decorated_function
    return decorator


lecturer_required = role_required(LECTURER)
student_required = role_required(STUDENT)
