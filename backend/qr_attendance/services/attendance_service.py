"""Attendance recorder: one row per (session, student, round).

Every write, QR scan or instructor override, goes through
``record_attendance``, which issues a single INSERT ... ON CONFLICT DO UPDATE
against the unique index on (session_id, student_id, round_no). There is no
read-then-insert step, so concurrent or repeated scans for the same key can
only ever update the one existing row.
"""
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Tuple, Union

from flask import current_app
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError

from qr_attendance import db
from qr_attendance.models.attendance import (
    AttendanceRecord, AttendanceStatus, RecordMethod, UNIQUE_KEY
)
from qr_attendance.models.class_session import ClassSession
from qr_attendance.models.user import User, UserRole
from qr_attendance.services.gps_service import GPSService
from qr_attendance.services.qr_service import QRService
from qr_attendance.services.session_service import SessionService
from qr_attendance.services.storage import run_in_transaction
from qr_attendance.utils.exceptions import (
    DeviceAlreadyUsed, InvalidRound, NotEnrolled, NotFoundError, ValidationError
)

UPSERT_DIALECTS = {
    'postgresql': postgresql.insert,
    'sqlite': sqlite.insert,
}

Location = Optional[Tuple[float, float]]


def parse_status(status: Union[str, AttendanceStatus]) -> AttendanceStatus:
    if isinstance(status, AttendanceStatus):
        return status
    try:
        return AttendanceStatus(str(status).lower())
    except ValueError:
        allowed = ', '.join(s.value for s in AttendanceStatus)
        raise ValidationError(f"Invalid status '{status}'. Allowed: {allowed}")


class AttendanceService:
    """Service for recording and reading attendance."""

    @staticmethod
    def _upsert_statement(values: Dict):
        dialect = db.engine.dialect.name
        insert = UPSERT_DIALECTS.get(dialect)
        if insert is None:
            raise NotImplementedError(f"Attendance upsert is not supported on {dialect}")

        table = AttendanceRecord.__table__
        stmt = insert(table).values(**values)
        return stmt.on_conflict_do_update(
            index_elements=list(UNIQUE_KEY),
            set_={
                'status': stmt.excluded.status,
                'recorded_at': stmt.excluded.recorded_at,
                'updated_at': stmt.excluded.updated_at,
                'latitude': stmt.excluded.latitude,
                'longitude': stmt.excluded.longitude,
                'method': stmt.excluded.method,
                'note': db.func.coalesce(stmt.excluded.note, table.c.note),
                'device_id': db.func.coalesce(stmt.excluded.device_id, table.c.device_id),
                'count': table.c.count + 1,
            }
        )

    @staticmethod
    def get_record(session_id: int, student_id: int, round_no: int) -> Optional[AttendanceRecord]:
        return AttendanceRecord.query.filter_by(
            session_id=session_id, student_id=student_id, round_no=round_no
        ).one_or_none()

    @staticmethod
    def _device_holder(session_id: int, device_id: Optional[str],
                       round_no: int) -> Optional[AttendanceRecord]:
        if device_id is None:
            return None
        return AttendanceRecord.query.filter_by(
            session_id=session_id, device_id=device_id, round_no=round_no
        ).first()

    @staticmethod
    def record_attendance(
        session_id: int,
        student_id: int,
        round_no: int,
        status: Union[str, AttendanceStatus],
        location: Location = None,
        method: RecordMethod = RecordMethod.QR,
        note: str = None,
        now: datetime = None,
        device_id: str = None
    ) -> AttendanceRecord:
        """Create or update the single record for (session, student, round).

        QR submissions are checked against the course geofence; manual
        entries are not. Repeated calls update status and timestamp and
        bump ``count``; they never add a second row. A ``device_id`` may
        check in only one student per round.
        """
        status = parse_status(status)
        session = SessionService.get_session(session_id)

        student = db.session.get(User, student_id)
        if student is None or student.role != UserRole.STUDENT:
            raise NotFoundError(f"Student {student_id} not found")
        if session.course is not None and not session.course.is_enrolled(student_id):
            raise NotEnrolled(
                f"Student {student_id} is not enrolled in this course",
                {'course_id': session.course_id}
            )

        if isinstance(round_no, bool) or not isinstance(round_no, int) \
                or not 1 <= round_no <= session.max_count:
            raise InvalidRound(
                f"Round must be between 1 and {session.max_count}",
                {'round': round_no, 'max_count': session.max_count}
            )

        if method == RecordMethod.QR:
            GPSService.enforce_geofence(session.course, location,
                                        current_app.config['GEOFENCE_RADIUS_METERS'])

        now = now or datetime.utcnow()
        lat, lng = location if location is not None else (None, None)
        values = {
            'session_id': session_id,
            'student_id': student_id,
            'round_no': round_no,
            'status': status,
            'count': 1,
            'recorded_at': now,
            'created_at': now,
            'updated_at': now,
            'latitude': lat,
            'longitude': lng,
            'method': method,
            'note': note,
            'device_id': device_id,
        }

        try:
            run_in_transaction(
                lambda: db.session.execute(AttendanceService._upsert_statement(values)),
                label='record_attendance'
            )
        except IntegrityError:
            holder = AttendanceService._device_holder(session_id, device_id, round_no)
            if holder is None or holder.student_id == student_id:
                raise
            current_app.logger.warning(
                'Device %s already checked in student %s for session %s round %s',
                device_id, holder.student_id, session_id, round_no
            )
            raise DeviceAlreadyUsed(
                "This device has already been used to check in for this round",
                {'round': round_no}
            )

        record = AttendanceService.get_record(session_id, student_id, round_no)
        current_app.logger.info(
            'Attendance %s for student %s in session %s round %s (scan #%s, %s)',
            status.value, student_id, session_id, round_no, record.count, method.value
        )
        return record

    @staticmethod
    def check_in(token: str, student_id: int, location: Location = None,
                 now: datetime = None, device_id: str = None) -> AttendanceRecord:
        """Student path: validate the scanned token, then record attendance."""
        claims = QRService.validate_token(token, now=now)
        return AttendanceService.record_attendance(
            claims.session_id, student_id, claims.round_no,
            AttendanceStatus.ATTENDED, location=location,
            method=RecordMethod.QR, now=now, device_id=device_id
        )

    @staticmethod
    def record_manual(session_id: int, university_code: str,
                      status: Union[str, AttendanceStatus] = AttendanceStatus.ATTENDED,
                      round_no: int = None, note: str = None) -> AttendanceRecord:
        """Instructor override by university code; defaults to the active round."""
        if not university_code:
            raise ValidationError("university_code is required")
        student = User.query.filter_by(university_code=university_code,
                                       role=UserRole.STUDENT).one_or_none()
        if student is None:
            raise NotFoundError(f"No student with university code {university_code}")

        if round_no is None:
            round_no = max(SessionService.get_session(session_id).current_round, 1)

        return AttendanceService.record_attendance(
            session_id, student.id, round_no, status,
            method=RecordMethod.MANUAL, note=note or 'Manual entry'
        )

    @staticmethod
    def update_record(record_id: int, status: Union[str, AttendanceStatus] = None,
                      note: str = None) -> AttendanceRecord:
        """Edit status and/or note of an existing record in place."""
        if status is None and note is None:
            raise ValidationError("Nothing to update (status or note)")
        record = db.session.get(AttendanceRecord, record_id)
        if record is None:
            raise NotFoundError(f"Attendance record {record_id} not found")

        def _update():
            if status is not None:
                record.status = parse_status(status)
            if note is not None:
                record.note = note
            record.recorded_at = datetime.utcnow()
            return record

        run_in_transaction(_update, label='update_record')
        current_app.logger.info('Attendance record %s updated to %s',
                                record_id, record.status.value)
        return record

    @staticmethod
    def list_records(session_id: int, round_no: int = None) -> List[AttendanceRecord]:
        SessionService.get_session(session_id)
        query = AttendanceRecord.query.filter_by(session_id=session_id)
        if round_no is not None:
            query = query.filter_by(round_no=round_no)
        return query.order_by(AttendanceRecord.round_no, AttendanceRecord.student_id).all()

    @staticmethod
    def student_records(student_id: int) -> List[AttendanceRecord]:
        if db.session.get(User, student_id) is None:
            raise NotFoundError(f"Student {student_id} not found")
        return AttendanceRecord.query.filter_by(student_id=student_id).join(
            ClassSession, AttendanceRecord.session_id == ClassSession.id
        ).order_by(ClassSession.date.desc(), AttendanceRecord.round_no).all()

    @staticmethod
    def session_summary(session_id: int) -> Dict:
        """Per-round status counts plus round bookkeeping for dashboards."""
        session = SessionService.get_session(session_id)
        rows = db.session.query(
            AttendanceRecord.round_no, AttendanceRecord.status, db.func.count()
        ).filter(AttendanceRecord.session_id == session_id).group_by(
            AttendanceRecord.round_no, AttendanceRecord.status
        ).all()

        rounds = defaultdict(lambda: {s.value: 0 for s in AttendanceStatus})
        for round_no, status, total in rows:
            rounds[round_no or 1][status.value] += total

        return {
            'session_id': session.id,
            'status': session.status.value,
            'current_round': session.current_round,
            'max_count': session.max_count,
            'rounds': {str(r): counts for r, counts in sorted(rounds.items())}
        }
