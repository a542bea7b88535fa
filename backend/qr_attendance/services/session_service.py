"""Session registry: class sessions, their QR secret and round configuration."""
import secrets
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from flask import current_app
from sqlalchemy import func, update

from qr_attendance import db
from qr_attendance.models.attendance import AttendanceRecord
from qr_attendance.models.class_session import ClassSession
from qr_attendance.models.course import Course
from qr_attendance.services.storage import run_in_transaction
from qr_attendance.utils.exceptions import NotFoundError, StateError, ValidationError
from qr_attendance.utils.validators import Validator

SECRET_BYTES = 32


def _setting(schedule: Dict, key: str, default):
    value = schedule.get(key)
    return default if value is None else value


class SessionService:
    """Service for class session lifecycle."""

    @staticmethod
    def get_session(session_id: int) -> ClassSession:
        """Get session by ID or raise NotFoundError."""
        session = db.session.get(ClassSession, session_id)
        if session is None:
            raise NotFoundError(f"Session {session_id} not found")
        return session

    @staticmethod
    def open_session(course_id: int, schedule: Dict) -> ClassSession:
        """Create a session for a course.

        ``schedule`` holds ``date`` (YYYY-MM-DD), ``time`` (HH:MM) and the
        optional ``topic``, ``classroom``, ``broadcast_duration`` and
        ``max_count``. The session starts with no secret and round 0.
        """
        course_id = Validator.parse_positive_int(course_id, 'course_id')
        if db.session.get(Course, course_id) is None:
            raise ValidationError(f"Unknown course {course_id}")
        if not isinstance(schedule, dict):
            raise ValidationError("schedule must be an object")

        Validator.require(schedule, ['date', 'time'])
        config = current_app.config

        broadcast_duration = Validator.parse_positive_int(
            _setting(schedule, 'broadcast_duration', config['DEFAULT_BROADCAST_DURATION']),
            'broadcast_duration',
            maximum=config['MAX_BROADCAST_DURATION']
        )
        max_count = Validator.parse_positive_int(
            _setting(schedule, 'max_count', config['DEFAULT_MAX_COUNT']), 'max_count'
        )

        session = ClassSession(
            course_id=course_id,
            date=Validator.parse_date(schedule['date']),
            scheduled_time=Validator.parse_time(schedule['time']),
            topic=schedule.get('topic'),
            classroom=schedule.get('classroom'),
            broadcast_duration=broadcast_duration,
            max_count=max_count,
            current_round=0,
            current_secret=None
        )

        run_in_transaction(lambda: db.session.add(session), label='open_session')
        current_app.logger.info('Session %s opened for course %s (max_count=%s)',
                                session.id, course_id, max_count)
        return session

    @staticmethod
    def mint_secret(broadcast_duration: int, now: datetime) -> Tuple[str, datetime]:
        """Fresh unguessable secret (256 bits) and the end of its broadcast window."""
        return (secrets.token_urlsafe(SECRET_BYTES),
                now + timedelta(seconds=broadcast_duration))

    @staticmethod
    def rotate_secret(session_id: int, now: datetime = None) -> Tuple[str, datetime]:
        """Replace the session's QR secret and return (secret, expiry).

        Secret and expiry are written by one UPDATE, so concurrent rotations
        serialize on the row and the surviving pair is always consistent.
        """
        session = SessionService.get_session(session_id)
        if session.is_closed:
            raise StateError("Session is closed")
        if session.current_round == 0:
            raise StateError("Session has no active round yet; advance to round 1 first")

        now = now or datetime.utcnow()
        secret, expires_at = SessionService.mint_secret(session.broadcast_duration, now)

        def _rotate():
            return db.session.execute(
                update(ClassSession)
                .where(ClassSession.id == session_id,
                       ClassSession.closed_at.is_(None))
                .values(current_secret=secret,
                        secret_issued_at=now,
                        secret_expires_at=expires_at,
                        updated_at=now)
                .execution_options(synchronize_session=False)
            ).rowcount

        if run_in_transaction(_rotate, label='rotate_secret') == 0:
            raise StateError("Session is closed")

        current_app.logger.debug('Secret rotated for session %s (expires %s)',
                                 session_id, expires_at.isoformat())
        return secret, expires_at

    @staticmethod
    def close_session(session_id: int, now: datetime = None) -> ClassSession:
        """Clear the secret and mark the session closed. Idempotent."""
        session = SessionService.get_session(session_id)
        if session.is_closed:
            return session

        now = now or datetime.utcnow()

        def _close():
            db.session.execute(
                update(ClassSession)
                .where(ClassSession.id == session_id,
                       ClassSession.closed_at.is_(None))
                .values(current_secret=None,
                        secret_issued_at=None,
                        secret_expires_at=None,
                        closed_at=now,
                        updated_at=now)
                .execution_options(synchronize_session=False)
            )

        run_in_transaction(_close, label='close_session')
        current_app.logger.info('Session %s closed', session_id)
        return SessionService.get_session(session_id)

    @staticmethod
    def highest_recorded_round(session_id: int) -> int:
        return db.session.query(
            func.coalesce(func.max(AttendanceRecord.round_no), 0)
        ).filter(AttendanceRecord.session_id == session_id).scalar()

    @staticmethod
    def update_max_count(session_id: int, max_count) -> ClassSession:
        """Change the number of rounds a session may run.

        Never lowers below the active round or a round that already holds
        attendance.
        """
        max_count = Validator.parse_positive_int(max_count, 'max_count')
        session = SessionService.get_session(session_id)
        if session.is_closed:
            raise StateError("Session is closed")

        floor = max(session.current_round, SessionService.highest_recorded_round(session_id))
        if max_count < floor:
            raise ValidationError(
                f"max_count cannot be lower than the rounds already taken ({floor})",
                {'code': 'MAX_COUNT_TOO_LOW', 'minimum': floor}
            )

        def _update():
            return db.session.execute(
                update(ClassSession)
                .where(ClassSession.id == session_id,
                       ClassSession.closed_at.is_(None),
                       ClassSession.current_round <= max_count)
                .values(max_count=max_count, updated_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            ).rowcount

        if run_in_transaction(_update, label='update_max_count') == 0:
            raise StateError("Session changed while updating max_count, please retry")

        db.session.expire(session)
        return SessionService.get_session(session_id)

    @staticmethod
    def delete_session(session_id: int) -> None:
        """Administrative override: remove a session and all its attendance."""
        session = SessionService.get_session(session_id)

        def _delete():
            removed = AttendanceRecord.query.filter_by(session_id=session_id).delete(
                synchronize_session=False)
            db.session.delete(session)
            return removed

        removed = run_in_transaction(_delete, label='delete_session')
        current_app.logger.warning('Session %s deleted with %s attendance records',
                                   session_id, removed)

    @staticmethod
    def list_sessions(course_id: Optional[int] = None) -> List[ClassSession]:
        query = ClassSession.query
        if course_id is not None:
            query = query.filter_by(course_id=course_id)
        return query.order_by(ClassSession.date.desc(),
                              ClassSession.scheduled_time.desc()).all()
