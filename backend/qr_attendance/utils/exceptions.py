"""Domain errors raised by the attendance services.

Every error carries an HTTP ``status_code`` and a stable machine ``code`` so
the API layer can render it without knowing which service raised it.
"""
from enum import Enum
from typing import Any, Dict, Optional


class AttendanceError(Exception):
    """Base class for every per-request failure in the attendance core."""

    status_code = 400
    code = 'attendance_error'

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            'error': True,
            'message': self.message,
            'status_code': self.status_code,
            'code': self.code,
        }
        if self.details:
            payload['details'] = self.details
        return payload


class ValidationError(AttendanceError):
    """Malformed input."""
    code = 'validation_error'


class InvalidRound(ValidationError):
    """Round outside 1..max_count."""
    code = 'invalid_round'


class NotFoundError(AttendanceError):
    status_code = 404
    code = 'not_found'


class StateError(AttendanceError):
    """Operation not allowed in the session's current state."""
    status_code = 409
    code = 'state_error'


class RoundLimitReached(StateError):
    code = 'round_limit_reached'


class StaleRound(StateError):
    """Round is not the session's active round."""
    code = 'stale_round'


class DeviceAlreadyUsed(StateError):
    """Device already checked in another student for this round."""
    code = 'device_already_used'


class TokenRejection(Enum):
    """Why a presented QR token was refused."""
    FORGED = 'forged'
    EXPIRED = 'expired'
    SESSION_CLOSED = 'session_closed'
    STALE_ROUND = 'stale_round'


class TokenError(AttendanceError):
    status_code = 401
    code = 'token_error'

    def __init__(self, reason: TokenRejection, message: str,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.reason = reason
        self.code = f'token_{reason.value}'


class OutOfRange(AttendanceError):
    """Submitted location is outside the course geofence."""
    status_code = 403
    code = 'out_of_range'

    def __init__(self, distance: float, radius: float):
        super().__init__(
            f'You are {distance:.0f} m away from the classroom; '
            f'check-in is allowed within {radius:.0f} m',
            {'distance_meters': round(distance, 1), 'radius_meters': radius}
        )
        self.distance = distance
        self.radius = radius


class StorageTimeout(AttendanceError):
    status_code = 503
    code = 'storage_timeout'


class StorageConflict(AttendanceError):
    """Transient write conflict; retried internally, never shown to users."""
    status_code = 503
    code = 'storage_conflict'


class ConsistencyError(AttendanceError):
    """Attendance store holds rows violating the uniqueness invariant."""
    status_code = 500
    code = 'consistency_error'


class PermissionDenied(AttendanceError):
    """Caller may not act on this session."""
    status_code = 403
    code = 'forbidden'


class NotEnrolled(PermissionDenied):
    """Student is not enrolled in the session's course."""
    code = 'not_enrolled'
