"""Attendance record (yoklama), unique per session, student and round."""
from datetime import datetime
from enum import Enum
from qr_attendance import db
from qr_attendance.models.base import BaseModel

class AttendanceStatus(Enum):
    ATTENDED = 'attended'
    ABSENT = 'absent'
    LATE = 'late'
    EXCUSED = 'excused'

class RecordMethod(Enum):
    QR = 'qr'
    MANUAL = 'manual'

UNIQUE_KEY = ('session_id', 'student_id', 'round_no')
UNIQUE_INDEX_NAME = 'uq_attendance_session_student_round'
DEVICE_INDEX_NAME = 'uq_attendance_session_device_round'

class AttendanceRecord(BaseModel):
    """Attendance record model."""

    __tablename__ = 'attendance_records'

    session_id = db.Column(db.Integer, db.ForeignKey('class_sessions.id', ondelete='CASCADE'),
                           nullable=False)
    student_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    # NULL only on rows written before rounds existed; audited as round 1
    round_no = db.Column(db.Integer, nullable=True)

    status = db.Column(db.Enum(AttendanceStatus), nullable=False, default=AttendanceStatus.ATTENDED)
    count = db.Column(db.Integer, nullable=False, default=1)
    recorded_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    # Location where check-in happened
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)

    method = db.Column(db.Enum(RecordMethod), nullable=False, default=RecordMethod.QR)
    # Scanning phone; one device checks in one student per round
    device_id = db.Column(db.String(128), nullable=True)
    note = db.Column(db.Text, nullable=True)

    __table_args__ = (
        # A unique index rather than a table constraint so maintenance can
        # drop and rebuild it around a legacy data repair.
        db.Index(UNIQUE_INDEX_NAME, *UNIQUE_KEY, unique=True),
        db.Index(DEVICE_INDEX_NAME, 'session_id', 'device_id', 'round_no', unique=True,
                 postgresql_where=db.text('device_id IS NOT NULL'),
                 sqlite_where=db.text('device_id IS NOT NULL')),
    )

    student = db.relationship('User', backref=db.backref('attendance_records', lazy='dynamic'))

    @property
    def key(self):
        return self.session_id, self.student_id, self.round_no

    def __repr__(self):
        return f'<AttendanceRecord {self.session_id}-{self.student_id}-{self.round_no}>'
