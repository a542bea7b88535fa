"""Tests for transaction retries and storage error mapping."""
import pytest
from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError

from qr_attendance import db
from qr_attendance.models import AttendanceRecord
from qr_attendance.services.attendance_service import AttendanceService
from qr_attendance.services.storage import run_in_transaction
from qr_attendance.utils.exceptions import StorageTimeout

def locked():
    return OperationalError('INSERT INTO attendance_records ...', {},
                            Exception('database is locked'))

@pytest.fixture
def flaky_execute(monkeypatch):
    """Make the next ``failures`` statements fail with ``error``."""
    calls = []
    real_execute = db.session.execute

    def install(failures, error=locked):
        def execute(*args, **kwargs):
            calls.append(args)
            if len(calls) <= failures:
                raise error()
            return real_execute(*args, **kwargs)
        monkeypatch.setattr(db.session, 'execute', execute)
        return calls

    return install

def test_conflict_retried_once(class_session, student, flaky_execute):
    calls = flaky_execute(1)

    record = AttendanceService.record_attendance(class_session.id, student.id, 1, 'attended')

    assert len(calls) == 2
    assert record.count == 1
    assert AttendanceRecord.query.count() == 1

def test_repeated_conflict_surfaces_as_timeout(class_session, student, flaky_execute):
    calls = flaky_execute(2)

    with pytest.raises(StorageTimeout) as exc:
        AttendanceService.record_attendance(class_session.id, student.id, 1, 'attended')

    assert len(calls) == 2
    assert exc.value.status_code == 503
    assert not db.session.new and not db.session.dirty
    assert AttendanceRecord.query.count() == 0

def test_pool_timeout_is_not_retried(class_session, student, flaky_execute):
    calls = flaky_execute(1, error=lambda: PoolTimeoutError('QueuePool limit reached'))

    with pytest.raises(StorageTimeout):
        AttendanceService.record_attendance(class_session.id, student.id, 1, 'attended')

    assert len(calls) == 1
    assert AttendanceRecord.query.count() == 0

def test_other_errors_roll_back_and_propagate(class_session, student):
    def operation():
        db.session.add(AttendanceRecord(session_id=class_session.id, student_id=student.id,
                                        round_no=1))
        db.session.flush()
        raise RuntimeError('boom')

    with pytest.raises(RuntimeError):
        run_in_transaction(operation)

    assert AttendanceRecord.query.count() == 0

def test_retries_are_configurable(app, flaky_execute):
    calls = flaky_execute(2)

    result = run_in_transaction(lambda: db.session.execute(db.text('SELECT 1')).scalar(),
                                retries=2)

    assert result == 1
    assert len(calls) == 3
