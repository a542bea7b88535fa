"""Custom decorators for authorization."""
from functools import wraps
from flask import g
from flask_jwt_extended import get_jwt_identity
from qr_attendance import db
from qr_attendance.models.user import User, UserRole
from qr_attendance.utils.exceptions import PermissionDenied
from qr_attendance.utils.helpers import error_response

def _load_caller():
    """Resolve the JWT identity to an active user, or None."""
    try:
        user_id = int(get_jwt_identity())
    except (TypeError, ValueError):
        return None
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user

def roles_required(*roles: UserRole):
    """Require the JWT user (see jwt_required) to hold one of ``roles``."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = _load_caller()

            if not user:
                return error_response("User not found", 404)

            if roles and user.role not in roles:
                allowed = ' or '.join(role.value for role in roles)
                return error_response(f"{allowed.capitalize()} access required", 403)

            g.current_user = user
            return f(*args, **kwargs)
        return decorated_function
    return decorator

teacher_required = roles_required(UserRole.TEACHER, UserRole.ADMIN)
student_required = roles_required(UserRole.STUDENT)
admin_required = roles_required(UserRole.ADMIN)
any_user_required = roles_required()

def ensure_can_manage(session) -> None:
    """Admins manage every session, teachers only their own courses'."""
    user = g.current_user
    if user.is_admin():
        return
    if session.course is None or session.course.teacher_id != user.id:
        raise PermissionDenied("You can only manage sessions of your own courses")
