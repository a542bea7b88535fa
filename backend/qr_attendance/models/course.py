"""Course model with geofence support."""
from qr_attendance import db
from qr_attendance.models.base import BaseModel

class Course(BaseModel):
    """Course metadata consumed by the attendance core."""

    __tablename__ = 'courses'

    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(50), nullable=True)
    teacher_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)

    # Location fields for GPS verification
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    geofence_enabled = db.Column(db.Boolean, default=False, nullable=False)
    geofence_radius_meters = db.Column(db.Float, nullable=True)

    # Relationships
    sessions = db.relationship('ClassSession', backref='course', lazy='dynamic')

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def is_enrolled(self, student_id: int) -> bool:
        return self.enrollments.filter_by(student_id=student_id).first() is not None

    def enroll(self, student) -> 'Enrollment':
        """Register a student for this course; no-op when already registered."""
        enrollment = self.enrollments.filter_by(student_id=student.id).first()
        if enrollment is None:
            enrollment = Enrollment(course_id=self.id, student_id=student.id).save()
        return enrollment

    def to_dict(self):
        """Convert to dictionary."""
        data = super().to_dict()
        data['location'] = {
            'latitude': self.latitude,
            'longitude': self.longitude
        }
        return data

    def __repr__(self):
        return f'<Course {self.name}>'

class Enrollment(BaseModel):
    """A student registered for a course (ders kaydi)."""

    __tablename__ = 'course_enrollments'

    course_id = db.Column(db.Integer, db.ForeignKey('courses.id', ondelete='CASCADE'),
                          nullable=False)
    student_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'),
                           nullable=False, index=True)

    __table_args__ = (
        db.UniqueConstraint('course_id', 'student_id', name='uq_enrollment_course_student'),
    )

    course = db.relationship('Course', backref=db.backref('enrollments', lazy='dynamic',
                                                          passive_deletes=True))
    student = db.relationship('User', backref=db.backref('enrollments', lazy='dynamic'))

    def __repr__(self):
        return f'<Enrollment course={self.course_id} student={self.student_id}>'
