# backend/qr_attendance/api/attendance.py
"""Attendance API endpoints."""
from flask import Blueprint, g, request
from flask_jwt_extended import jwt_required
from qr_attendance import db
from qr_attendance.models.attendance import AttendanceRecord
from qr_attendance.models.user import UserRole
from qr_attendance.services.attendance_service import AttendanceService
from qr_attendance.services.session_service import SessionService
from qr_attendance.utils.decorators import (
    any_user_required, ensure_can_manage, student_required, teacher_required
)
from qr_attendance.utils.exceptions import NotFoundError, PermissionDenied, ValidationError
from qr_attendance.utils.helpers import success_response
from qr_attendance.utils.validators import Validator

attendance_bp = Blueprint('attendance', __name__)

def _optional_round(value):
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError("round must be an integer")

@attendance_bp.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    return success_response(message='Attendance service is running')

@attendance_bp.route('/check-in', methods=['POST'])
@jwt_required()
@student_required
def check_in():
    """Record the caller's attendance from a scanned QR token."""
    data = Validator.require(request.get_json(silent=True), ['qr_token'])
    location = Validator.parse_location(data.get('location'))
    device_id = Validator.parse_device_id(data.get('device_id'))

    record = AttendanceService.check_in(data['qr_token'], g.current_user.id,
                                        location=location, device_id=device_id)
    return success_response(
        data=record.to_dict(),
        message=f"Attendance recorded for round {record.round_no}"
    )

@attendance_bp.route('/manual', methods=['POST'])
@jwt_required()
@teacher_required
def manual_entry():
    """Instructor records attendance for a student by university code."""
    data = Validator.require(request.get_json(silent=True), ['session_id', 'university_code'])
    session_id = Validator.parse_positive_int(data['session_id'], 'session_id')
    ensure_can_manage(SessionService.get_session(session_id))

    record = AttendanceService.record_manual(
        session_id,
        data['university_code'],
        status=data.get('status') or 'attended',
        round_no=_optional_round(data.get('round')),
        note=data.get('note')
    )
    return success_response(data=record.to_dict(), message="Attendance recorded")

@attendance_bp.route('/<int:record_id>', methods=['PUT'])
@jwt_required()
@teacher_required
def update_record(record_id):
    """Change the status or note of a record."""
    data = request.get_json(silent=True) or {}
    record = db.session.get(AttendanceRecord, record_id)
    if record is None:
        raise NotFoundError(f"Attendance record {record_id} not found")
    ensure_can_manage(record.session)

    record = AttendanceService.update_record(record_id, data.get('status'), data.get('note'))
    return success_response(data=record.to_dict(), message="Attendance record updated")

@attendance_bp.route('/sessions/<int:session_id>', methods=['GET'])
@jwt_required()
@teacher_required
def session_attendance(session_id):
    """Records of a session (optionally one round) with per-round summary."""
    ensure_can_manage(SessionService.get_session(session_id))
    round_no = _optional_round(request.args.get('round'))

    records = AttendanceService.list_records(session_id, round_no)
    return success_response(data={
        'records': [r.to_dict() for r in records],
        'summary': AttendanceService.session_summary(session_id)
    })

@attendance_bp.route('/students/<int:student_id>', methods=['GET'])
@jwt_required()
@any_user_required
def student_attendance(student_id):
    """A student's own records; teachers and admins may read anyone's."""
    user = g.current_user
    if user.role == UserRole.STUDENT and user.id != student_id:
        raise PermissionDenied("Students can only view their own attendance")

    records = AttendanceService.student_records(student_id)
    return success_response(data=[r.to_dict() for r in records])
