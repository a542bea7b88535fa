"""Class session API endpoints."""
from flask import Blueprint, g, request
from flask_jwt_extended import jwt_required
from qr_attendance import db
from qr_attendance.models.course import Course
from qr_attendance.services.round_service import RoundService
from qr_attendance.services.session_service import SessionService
from qr_attendance.utils.decorators import (
    admin_required, any_user_required, ensure_can_manage, teacher_required
)
from qr_attendance.utils.exceptions import PermissionDenied, ValidationError
from qr_attendance.utils.helpers import success_response
from qr_attendance.utils.validators import Validator

sessions_bp = Blueprint('sessions', __name__)

@sessions_bp.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    return success_response(message='Session service is running')

@sessions_bp.route('', methods=['POST'])
@jwt_required()
@teacher_required
def open_session():
    """Open a session for one of the caller's courses."""
    data = Validator.require(request.get_json(silent=True), ['course_id', 'date', 'time'])

    course = db.session.get(Course, Validator.parse_positive_int(data['course_id'], 'course_id'))
    if course is None:
        raise ValidationError(f"Unknown course {data['course_id']}")
    if not g.current_user.is_admin() and course.teacher_id != g.current_user.id:
        raise PermissionDenied("You can only open sessions for your own courses")

    session = SessionService.open_session(course.id, data)
    return success_response(data=session.to_dict(), message="Session created", status_code=201)

@sessions_bp.route('', methods=['GET'])
@jwt_required()
@teacher_required
def list_sessions():
    """List sessions, optionally for one course."""
    course_id = request.args.get('course_id', type=int)
    sessions = SessionService.list_sessions(course_id)
    return success_response(data=[s.to_dict() for s in sessions])

@sessions_bp.route('/<int:session_id>', methods=['GET'])
@jwt_required()
@any_user_required
def get_session(session_id):
    """Session metadata with round bookkeeping."""
    return success_response(data=SessionService.get_session(session_id).to_dict())

@sessions_bp.route('/<int:session_id>/close', methods=['POST'])
@jwt_required()
@teacher_required
def close_session(session_id):
    """Stop accepting scans for the session."""
    ensure_can_manage(SessionService.get_session(session_id))
    session = SessionService.close_session(session_id)
    return success_response(data=session.to_dict(), message="Session closed")

@sessions_bp.route('/<int:session_id>/max-count', methods=['PUT'])
@jwt_required()
@teacher_required
def update_max_count(session_id):
    """Change how many rounds the session may run."""
    data = Validator.require(request.get_json(silent=True), ['max_count'])
    ensure_can_manage(SessionService.get_session(session_id))
    session = SessionService.update_max_count(session_id, data['max_count'])
    return success_response(data=session.to_dict(), message="max_count updated")

@sessions_bp.route('/<int:session_id>', methods=['DELETE'])
@jwt_required()
@admin_required
def delete_session(session_id):
    """Administrative override: delete a session with its attendance."""
    SessionService.delete_session(session_id)
    return success_response(message="Session deleted")

@sessions_bp.route('/<int:session_id>/rounds/advance', methods=['POST'])
@jwt_required()
@teacher_required
def advance_round(session_id):
    """Start the next round; the QR secret rotates with it."""
    ensure_can_manage(SessionService.get_session(session_id))
    data = request.get_json(silent=True) or {}
    expected = data.get('expected_round')
    if expected is not None:
        try:
            expected = int(expected)
        except (TypeError, ValueError):
            raise ValidationError("expected_round must be an integer")

    new_round = RoundService.advance_round(session_id, expected_round=expected)
    session = SessionService.get_session(session_id)
    return success_response(
        data={'round': new_round, 'max_count': session.max_count,
              'secret_expires_at': session.secret_expires_at.isoformat()},
        message=f"Round {new_round} started"
    )

@sessions_bp.route('/<int:session_id>/rounds/current', methods=['GET'])
@jwt_required()
@any_user_required
def current_round(session_id):
    """Active round of the session."""
    return success_response(data={'round': RoundService.current_round(session_id)})
