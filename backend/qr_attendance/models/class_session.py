"""Class session (oturum) with rotating QR secret."""
from datetime import datetime
from enum import Enum
from qr_attendance import db
from qr_attendance.models.base import BaseModel

class SessionStatus(Enum):
    """Lifecycle of a class session."""
    CREATED = 'created'
    OPEN = 'open'
    CLOSED = 'closed'

class ClassSession(BaseModel):
    """One scheduled class meeting during which attendance can be recorded."""

    __tablename__ = 'class_sessions'

    course_id = db.Column(db.Integer, db.ForeignKey('courses.id'), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False)
    scheduled_time = db.Column(db.String(5), nullable=False)  # HH:MM
    topic = db.Column(db.String(255), nullable=True)
    classroom = db.Column(db.String(50), nullable=True)

    # QR broadcast state; the secret is only set while the session is open
    current_secret = db.Column(db.String(64), nullable=True)
    secret_issued_at = db.Column(db.DateTime, nullable=True)
    secret_expires_at = db.Column(db.DateTime, nullable=True)
    broadcast_duration = db.Column(db.Integer, nullable=False)

    # Rounds (tur_no)
    max_count = db.Column(db.Integer, nullable=False, default=1)
    current_round = db.Column(db.Integer, nullable=False, default=0)

    closed_at = db.Column(db.DateTime, nullable=True)

    __table_args__ = (
        db.CheckConstraint('broadcast_duration > 0', name='ck_session_broadcast_positive'),
        db.CheckConstraint('max_count >= 1', name='ck_session_max_count_positive'),
        db.CheckConstraint('current_round >= 0 AND current_round <= max_count',
                           name='ck_session_round_bounds'),
    )

    # Relationships
    records = db.relationship('AttendanceRecord', backref='session', lazy='dynamic',
                              passive_deletes=True)

    @property
    def status(self) -> SessionStatus:
        if self.closed_at is not None:
            return SessionStatus.CLOSED
        if self.current_round == 0:
            return SessionStatus.CREATED
        return SessionStatus.OPEN

    @property
    def is_closed(self) -> bool:
        return self.closed_at is not None

    def secret_is_expired(self, now: datetime = None) -> bool:
        """True when no secret is set or its broadcast window has passed."""
        if not self.current_secret or self.secret_expires_at is None:
            return True
        return (now or datetime.utcnow()) > self.secret_expires_at

    def to_dict(self, include_secret: bool = False):
        """Convert to dictionary."""
        exclude = [] if include_secret else ['current_secret']
        data = super().to_dict(exclude=exclude)
        data['status'] = self.status.value
        return data

    def __repr__(self):
        return f'<ClassSession {self.id} course={self.course_id} round={self.current_round}>'
