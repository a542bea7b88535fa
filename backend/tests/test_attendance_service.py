"""Tests for the attendance recorder."""
from datetime import timedelta

import pytest

from qr_attendance.models import AttendanceRecord, AttendanceStatus, RecordMethod, UserRole
from qr_attendance.services.attendance_service import AttendanceService
from qr_attendance.services.audit_service import AuditService
from qr_attendance.services.qr_service import QRService
from qr_attendance.services.round_service import RoundService
from qr_attendance.utils.exceptions import (
    DeviceAlreadyUsed, InvalidRound, NotEnrolled, NotFoundError, OutOfRange, TokenError,
    TokenRejection, ValidationError
)
from tests.helpers import T0, make_user, open_session

# Roughly 15 m and 1.1 km from the geofenced course centre
NEAR = (40.3322, 36.4841)
FAR = (40.3421, 36.4841)

def records_for(session_id, student_id):
    return AttendanceRecord.query.filter_by(session_id=session_id, student_id=student_id).all()

def test_first_scan_creates_record(class_session, student):
    record = AttendanceService.record_attendance(class_session.id, student.id, 1, 'attended', now=T0)

    assert record.status == AttendanceStatus.ATTENDED
    assert record.count == 1
    assert record.round_no == 1
    assert record.recorded_at == T0
    assert record.method == RecordMethod.QR

def test_repeated_scans_update_single_record(class_session, student):
    statuses = ['attended', 'late', 'excused', 'absent', 'late']
    for offset, status in enumerate(statuses):
        record = AttendanceService.record_attendance(
            class_session.id, student.id, 1, status, now=T0 + timedelta(seconds=offset)
        )

    rows = records_for(class_session.id, student.id)
    assert len(rows) == 1
    assert rows[0].id == record.id
    assert rows[0].status == AttendanceStatus.LATE
    assert rows[0].count == len(statuses)
    assert rows[0].recorded_at == T0 + timedelta(seconds=len(statuses) - 1)

@pytest.mark.parametrize('round_no', [0, -1, 3, '1', None])
def test_round_outside_bounds_writes_nothing(class_session, student, round_no):
    with pytest.raises(InvalidRound):
        AttendanceService.record_attendance(class_session.id, student.id, round_no, 'attended')

    assert records_for(class_session.id, student.id) == []

def test_unknown_status_rejected(class_session, student):
    with pytest.raises(ValidationError):
        AttendanceService.record_attendance(class_session.id, student.id, 1, 'present')

def test_unknown_student_or_session(class_session, teacher):
    with pytest.raises(NotFoundError):
        AttendanceService.record_attendance(class_session.id, 9999, 1, 'attended')
    with pytest.raises(NotFoundError):
        AttendanceService.record_attendance(class_session.id, teacher.id, 1, 'attended')
    with pytest.raises(NotFoundError):
        AttendanceService.record_attendance(9999, teacher.id, 1, 'attended')

def test_two_round_scenario(course, student):
    session = open_session(course, max_count=2, broadcast_duration=10)
    RoundService.advance_round(session.id, now=T0)

    token = QRService.issue_token(session.id, 1, now=T0)
    claims = QRService.validate_token(token, now=T0 + timedelta(seconds=1))
    AttendanceService.record_attendance(session.id, student.id, claims.round_no, 'attended')
    first = AttendanceService.record_attendance(session.id, student.id, claims.round_no, 'late')
    assert first.status == AttendanceStatus.LATE
    assert len(records_for(session.id, student.id)) == 1

    assert RoundService.advance_round(session.id, now=T0 + timedelta(seconds=20)) == 2
    token = QRService.issue_token(session.id, 2, now=T0 + timedelta(seconds=20))
    claims = QRService.validate_token(token, now=T0 + timedelta(seconds=21))
    second = AttendanceService.record_attendance(session.id, student.id, claims.round_no, 'attended')

    rows = records_for(session.id, student.id)
    assert len(rows) == 2
    assert second.round_no == 2
    assert second.status == AttendanceStatus.ATTENDED
    assert AttendanceService.get_record(session.id, student.id, 1).status == AttendanceStatus.LATE
    AuditService.assert_consistent()

def test_check_in_validates_token(class_session, student):
    token = QRService.issue_token(class_session.id, 1, now=T0)

    record = AttendanceService.check_in(token, student.id, now=T0 + timedelta(seconds=2))
    assert record.status == AttendanceStatus.ATTENDED

    with pytest.raises(TokenError) as exc:
        AttendanceService.check_in(token, student.id, now=T0 + timedelta(seconds=11))
    assert exc.value.reason == TokenRejection.EXPIRED
    assert AttendanceService.get_record(class_session.id, student.id, 1).count == 1

def test_geofence_accepts_nearby_location(geofenced_course, student):
    session = open_session(geofenced_course)
    RoundService.advance_round(session.id)

    record = AttendanceService.record_attendance(session.id, student.id, 1, 'attended', location=NEAR)

    assert record.latitude == NEAR[0]
    assert record.longitude == NEAR[1]

def test_geofence_rejects_far_location(geofenced_course, student):
    session = open_session(geofenced_course)
    RoundService.advance_round(session.id)

    with pytest.raises(OutOfRange) as exc:
        AttendanceService.record_attendance(session.id, student.id, 1, 'attended', location=FAR)

    assert exc.value.distance > 1000
    assert exc.value.radius == 50
    assert records_for(session.id, student.id) == []

def test_geofence_requires_location(geofenced_course, student):
    session = open_session(geofenced_course)
    RoundService.advance_round(session.id)

    with pytest.raises(ValidationError):
        AttendanceService.record_attendance(session.id, student.id, 1, 'attended')

def test_course_specific_radius(geofenced_course, student):
    geofenced_course.geofence_radius_meters = 2000
    geofenced_course.save()
    session = open_session(geofenced_course)
    RoundService.advance_round(session.id)

    record = AttendanceService.record_attendance(session.id, student.id, 1, 'attended', location=FAR)

    assert record.id is not None

def test_manual_entry_skips_geofence(geofenced_course, student):
    session = open_session(geofenced_course, max_count=2)
    RoundService.advance_round(session.id)

    record = AttendanceService.record_manual(session.id, 'S001', status='excused', note='Medical report')

    assert record.method == RecordMethod.MANUAL
    assert record.round_no == 1
    assert record.status == AttendanceStatus.EXCUSED
    assert record.note == 'Medical report'

def test_manual_entry_then_scan_shares_row(class_session, student):
    AttendanceService.record_manual(class_session.id, 'S001', status='absent')
    record = AttendanceService.record_attendance(class_session.id, student.id, 1, 'attended')

    assert record.count == 2
    assert record.method == RecordMethod.QR
    assert len(records_for(class_session.id, student.id)) == 1

def test_manual_entry_unknown_code(class_session):
    with pytest.raises(NotFoundError):
        AttendanceService.record_manual(class_session.id, 'NOPE')

def test_update_record(class_session, student):
    record = AttendanceService.record_attendance(class_session.id, student.id, 1, 'attended')

    updated = AttendanceService.update_record(record.id, status='excused', note='Approved by chair')

    assert updated.status == AttendanceStatus.EXCUSED
    assert updated.note == 'Approved by chair'
    with pytest.raises(ValidationError):
        AttendanceService.update_record(record.id)
    with pytest.raises(NotFoundError):
        AttendanceService.update_record(9999, status='late')

def test_session_summary_counts_per_round(class_session, student, other_student):
    AttendanceService.record_attendance(class_session.id, student.id, 1, 'attended')
    AttendanceService.record_attendance(class_session.id, other_student.id, 1, 'late')
    RoundService.advance_round(class_session.id)
    AttendanceService.record_attendance(class_session.id, student.id, 2, 'attended')

    summary = AttendanceService.session_summary(class_session.id)

    assert summary['current_round'] == 2
    assert summary['max_count'] == 2
    assert summary['rounds']['1']['attended'] == 1
    assert summary['rounds']['1']['late'] == 1
    assert summary['rounds']['2']['attended'] == 1
    assert len(AttendanceService.list_records(class_session.id)) == 3
    assert len(AttendanceService.list_records(class_session.id, round_no=2)) == 1
    assert len(AttendanceService.student_records(student.id)) == 2

def test_unenrolled_student_cannot_check_in(class_session):
    outsider = make_user('Can Ozturk', UserRole.STUDENT, 'S900')
    token = QRService.issue_token(class_session.id, 1, now=T0)

    with pytest.raises(NotEnrolled) as exc:
        AttendanceService.check_in(token, outsider.id, now=T0 + timedelta(seconds=1))

    assert exc.value.status_code == 403
    assert records_for(class_session.id, outsider.id) == []

def test_unenrolled_student_cannot_be_entered_manually(class_session):
    make_user('Can Ozturk', UserRole.STUDENT, 'S900')

    with pytest.raises(NotEnrolled):
        AttendanceService.record_manual(class_session.id, 'S900')

    assert AttendanceRecord.query.count() == 0

def test_scan_keeps_instructor_note(class_session, student):
    AttendanceService.record_manual(class_session.id, 'S001', status='excused', note='Medical report')
    token = QRService.issue_token(class_session.id, 1, now=T0)

    record = AttendanceService.check_in(token, student.id, now=T0 + timedelta(seconds=1))

    assert record.note == 'Medical report'
    assert record.status == AttendanceStatus.ATTENDED

def test_device_checks_in_one_student_per_round(class_session, student, other_student):
    token = QRService.issue_token(class_session.id, 1, now=T0)
    now = T0 + timedelta(seconds=1)

    AttendanceService.check_in(token, student.id, now=now, device_id='pixel-7-abc')
    again = AttendanceService.check_in(token, student.id, now=now, device_id='pixel-7-abc')
    assert again.count == 2
    assert again.device_id == 'pixel-7-abc'

    with pytest.raises(DeviceAlreadyUsed) as exc:
        AttendanceService.check_in(token, other_student.id, now=now, device_id='pixel-7-abc')
    assert exc.value.status_code == 409
    assert exc.value.code == 'device_already_used'
    assert records_for(class_session.id, other_student.id) == []

    other = AttendanceService.check_in(token, other_student.id, now=now, device_id='iphone-15-xyz')
    assert other.device_id == 'iphone-15-xyz'

def test_device_may_scan_again_next_round(class_session, student, other_student):
    AttendanceService.record_attendance(class_session.id, student.id, 1, 'attended',
                                        device_id='pixel-7-abc')
    RoundService.advance_round(class_session.id)

    record = AttendanceService.record_attendance(class_session.id, other_student.id, 2,
                                                 'attended', device_id='pixel-7-abc')

    assert record.round_no == 2
    assert record.device_id == 'pixel-7-abc'

def test_manual_entry_keeps_scanned_device(class_session, student):
    AttendanceService.record_attendance(class_session.id, student.id, 1, 'attended',
                                        device_id='pixel-7-abc')

    record = AttendanceService.record_manual(class_session.id, 'S001', status='late')

    assert record.device_id == 'pixel-7-abc'
    assert record.method == RecordMethod.MANUAL
