"""Tests for the session registry."""
from datetime import timedelta

import pytest

from qr_attendance.models import SessionStatus
from qr_attendance.services.attendance_service import AttendanceService
from qr_attendance.services.round_service import RoundService
from qr_attendance.services.session_service import SessionService
from qr_attendance.utils.exceptions import NotFoundError, StateError, ValidationError
from tests.helpers import T0, open_session

def test_open_session_starts_without_secret(course):
    session = open_session(course, max_count=3, broadcast_duration=15)

    assert session.id is not None
    assert session.current_secret is None
    assert session.current_round == 0
    assert session.status == SessionStatus.CREATED
    assert session.max_count == 3
    assert session.broadcast_duration == 15

def test_open_session_uses_configured_defaults(app, course):
    session = open_session(course)

    assert session.broadcast_duration == app.config['DEFAULT_BROADCAST_DURATION']
    assert session.max_count == app.config['DEFAULT_MAX_COUNT']

def test_open_session_unknown_course(app):
    with pytest.raises(ValidationError):
        SessionService.open_session(999, {'date': '2025-03-10', 'time': '09:30'})

@pytest.mark.parametrize('schedule', [
    {'time': '09:30'},
    {'date': '10/03/2025', 'time': '09:30'},
    {'date': '2025-03-10', 'time': '9.30'},
    {'date': '2025-03-10', 'time': '25:00'},
    {'date': '2025-03-10', 'time': '09:30', 'broadcast_duration': 0},
    {'date': '2025-03-10', 'time': '09:30', 'broadcast_duration': 10000},
    {'date': '2025-03-10', 'time': '09:30', 'max_count': 0},
])
def test_open_session_rejects_malformed_schedule(course, schedule):
    with pytest.raises(ValidationError):
        SessionService.open_session(course.id, schedule)

def test_rotate_secret_requires_active_round(course):
    session = open_session(course)

    with pytest.raises(StateError):
        SessionService.rotate_secret(session.id)

def test_rotate_secret_replaces_secret_and_sets_expiry(class_session):
    previous = class_session.current_secret
    now = T0 + timedelta(seconds=30)

    secret, expires_at = SessionService.rotate_secret(class_session.id, now=now)

    session = SessionService.get_session(class_session.id)
    assert secret != previous
    assert len(secret) >= 43  # 32 random bytes, urlsafe base64
    assert session.current_secret == secret
    assert expires_at == now + timedelta(seconds=session.broadcast_duration)
    assert session.secret_expires_at == expires_at

def test_rotate_secret_unknown_session(app):
    with pytest.raises(NotFoundError):
        SessionService.rotate_secret(12345)

def test_rotate_secret_on_closed_session(class_session):
    SessionService.close_session(class_session.id)

    with pytest.raises(StateError):
        SessionService.rotate_secret(class_session.id)

def test_close_session_clears_secret_and_is_idempotent(class_session):
    first = SessionService.close_session(class_session.id)
    closed_at = first.closed_at

    again = SessionService.close_session(class_session.id)

    assert again.current_secret is None
    assert again.status == SessionStatus.CLOSED
    assert again.closed_at == closed_at

def test_update_max_count_cannot_drop_below_recorded_rounds(class_session, student):
    RoundService.advance_round(class_session.id, now=T0)
    AttendanceService.record_attendance(class_session.id, student.id, 2, 'attended')

    with pytest.raises(ValidationError) as exc:
        SessionService.update_max_count(class_session.id, 1)
    assert exc.value.details['minimum'] == 2

    session = SessionService.update_max_count(class_session.id, 4)
    assert session.max_count == 4

def test_delete_session_removes_attendance(class_session, student):
    AttendanceService.record_attendance(class_session.id, student.id, 1, 'attended')

    SessionService.delete_session(class_session.id)

    with pytest.raises(NotFoundError):
        SessionService.get_session(class_session.id)
    assert AttendanceService.get_record(class_session.id, student.id, 1) is None

def test_list_sessions_by_course(course):
    open_session(course, date='2025-03-10')
    open_session(course, date='2025-03-17')

    sessions = SessionService.list_sessions(course.id)

    assert [s.date.isoformat() for s in sessions] == ['2025-03-17', '2025-03-10']
