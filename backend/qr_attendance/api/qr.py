# backend/qr_attendance/api/qr.py
"""QR Code API endpoints."""
from flask import Blueprint, request
from flask_jwt_extended import jwt_required
from qr_attendance import limiter
from qr_attendance.services.qr_service import QRService
from qr_attendance.services.session_service import SessionService
from qr_attendance.utils.decorators import any_user_required, ensure_can_manage, teacher_required
from qr_attendance.utils.helpers import success_response
from qr_attendance.utils.validators import Validator

qr_bp = Blueprint('qr', __name__)

@qr_bp.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    return success_response(message='QR service is running')

@qr_bp.route('/generate', methods=['POST'])
@jwt_required()
@teacher_required
@limiter.limit("120 per minute")
def generate_qr():
    """Token and QR image for the session's active round.

    The projector polls this endpoint; the secret is rotated whenever its
    broadcast window has passed.
    """
    data = Validator.require(request.get_json(silent=True), ['session_id'])
    session_id = Validator.parse_positive_int(data['session_id'], 'session_id')
    ensure_can_manage(SessionService.get_session(session_id))

    payload = QRService.broadcast(session_id, with_image=data.get('with_image', True))
    return success_response(data=payload, message="QR code generated successfully")

@qr_bp.route('/validate', methods=['POST'])
@jwt_required()
@any_user_required
def validate_qr():
    """Check a scanned token without recording attendance."""
    data = Validator.require(request.get_json(silent=True), ['qr_token'])
    claims = QRService.validate_token(data['qr_token'])
    return success_response(data=dict(claims.to_dict(), valid=True), message="QR code is valid")
