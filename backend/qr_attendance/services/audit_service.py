"""Consistency auditor for the attendance store.

With the unique index in place and every write going through the upsert,
``find_violations`` should never yield anything. It exists to clean up rows
written before rounds and the index existed (``round_no`` NULL, counted as
round 1) and as an oracle for the recorder in tests.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, List, Optional, Tuple

from flask import current_app
from sqlalchemy import func, tuple_

from qr_attendance import db
from qr_attendance.models.attendance import AttendanceRecord, UNIQUE_INDEX_NAME
from qr_attendance.models.class_session import ClassSession
from qr_attendance.services.storage import run_in_transaction
from qr_attendance.utils.exceptions import ConsistencyError, NotFoundError

ROUND_KEY = func.coalesce(AttendanceRecord.round_no, 1)


@dataclass(frozen=True)
class Violation:
    """Rows sharing one (session, student, round) key."""
    session_id: int
    student_id: int
    round_no: int
    record_ids: Tuple[int, ...]

    @property
    def key(self) -> Tuple[int, int, int]:
        return self.session_id, self.student_id, self.round_no

    def to_dict(self):
        return {
            'session_id': self.session_id,
            'student_id': self.student_id,
            'round': self.round_no,
            'record_ids': list(self.record_ids)
        }


def _rows_for(session_id: int, student_id: int, round_no: int) -> List[AttendanceRecord]:
    return AttendanceRecord.query.filter(
        AttendanceRecord.session_id == session_id,
        AttendanceRecord.student_id == student_id,
        ROUND_KEY == round_no
    ).order_by(AttendanceRecord.id).all()


class AuditService:
    """Detects and repairs duplicate attendance rows."""

    @staticmethod
    def find_violations(after: Optional[Violation] = None,
                        batch_size: int = None) -> Iterator[Violation]:
        """Lazily yield every key held by more than one row.

        Keys come in (session, student, round) order, one batch per query;
        pass the last violation seen as ``after`` to resume a scan.
        """
        batch_size = batch_size or current_app.config['AUDIT_BATCH_SIZE']
        key_columns = (AttendanceRecord.session_id, AttendanceRecord.student_id, ROUND_KEY)
        cursor = after.key if after is not None else None

        while True:
            query = db.session.query(*key_columns)
            if cursor is not None:
                query = query.filter(tuple_(*key_columns) > tuple_(*cursor))
            groups = query.group_by(*key_columns).having(
                func.count(AttendanceRecord.id) > 1
            ).order_by(*key_columns).limit(batch_size).all()

            for session_id, student_id, round_no in groups:
                rows = _rows_for(session_id, student_id, round_no)
                if len(rows) > 1:
                    yield Violation(session_id, student_id, round_no,
                                    tuple(row.id for row in rows))

            if len(groups) < batch_size:
                return
            cursor = tuple(groups[-1])

    @staticmethod
    def repair(violation: Violation) -> AttendanceRecord:
        """Collapse a violating group onto one canonical row.

        Keeps the row with the highest count (ties: latest recorded_at,
        then highest id), deletes the rest, stamps the group round on the
        survivor and widens the session's max_count if it falls short.
        """
        def _repair():
            rows = _rows_for(*violation.key)
            if not rows:
                raise NotFoundError(f"No attendance rows for {violation.key}")

            survivor = max(rows, key=lambda row: (
                row.count or 1, row.recorded_at or datetime.min, row.id
            ))
            removed = [row.id for row in rows if row is not survivor]
            for row in rows:
                if row is not survivor:
                    db.session.delete(row)
            db.session.flush()

            survivor.round_no = violation.round_no
            session = db.session.get(ClassSession, survivor.session_id)
            if session is not None and survivor.round_no > session.max_count:
                session.max_count = survivor.round_no
            return survivor, removed

        survivor, removed = run_in_transaction(_repair, label='repair')
        current_app.logger.warning(
            'Repaired duplicate attendance for %s: kept %s, removed %s',
            violation.key, survivor.id, removed
        )
        return survivor

    @staticmethod
    def repair_all() -> int:
        repaired = 0
        for violation in AuditService.find_violations():
            AuditService.repair(violation)
            repaired += 1
        return repaired

    @staticmethod
    def assert_consistent() -> None:
        """Raise ConsistencyError if any key holds more than one row."""
        violations = list(AuditService.find_violations())
        if violations:
            raise ConsistencyError(
                f"{len(violations)} attendance key(s) hold duplicate rows",
                {'violations': [v.to_dict() for v in violations]}
            )

    @staticmethod
    def unique_index():
        for index in AttendanceRecord.__table__.indexes:
            if index.name == UNIQUE_INDEX_NAME:
                return index
        raise LookupError(UNIQUE_INDEX_NAME)

    @staticmethod
    def ensure_unique_index() -> None:
        """Create the uniqueness index on legacy databases; repair first."""
        AuditService.assert_consistent()
        db.session.commit()
        AuditService.unique_index().create(bind=db.engine, checkfirst=True)
