"""Helper functions for the application."""
from flask import jsonify
from typing import Any

from qr_attendance.utils.exceptions import AttendanceError

def handle_error(error, status_code: int):
    """Handle application errors with consistent format."""
    if isinstance(error, AttendanceError):
        return jsonify(error.to_dict()), error.status_code

    message = getattr(error, 'description', None) or str(error)
    return jsonify({
        'error': True,
        'message': message,
        'status_code': status_code
    }), status_code

def success_response(data: Any = None, message: str = "Success", status_code: int = 200):
    """Return consistent success response."""
    response = {
        'error': False,
        'message': message
    }

    if data is not None:
        response['data'] = data

    return jsonify(response), status_code

def error_response(message: str, status_code: int = 400):
    """Return consistent error response."""
    return jsonify({
        'error': True,
        'message': message,
        'status_code': status_code
    }), status_code
