"""User model as seen by the attendance core.

Accounts are owned by the auth service; this table only carries what the
core needs to resolve a caller or a student.
"""
from enum import Enum
from qr_attendance import db
from qr_attendance.models.base import BaseModel

class UserRole(Enum):
    """User roles enumeration."""
    STUDENT = 'student'
    TEACHER = 'teacher'
    ADMIN = 'admin'

class User(BaseModel):
    """User model for all system users."""

    __tablename__ = 'users'

    name = db.Column(db.String(255), nullable=False)
    university_code = db.Column(db.String(50), unique=True, nullable=True, index=True)
    role = db.Column(db.Enum(UserRole), nullable=False, default=UserRole.STUDENT)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    # Relationships
    courses = db.relationship('Course', backref='teacher', lazy='dynamic')

    def is_teacher(self) -> bool:
        """Teachers and admins may manage sessions."""
        return self.role in (UserRole.TEACHER, UserRole.ADMIN)

    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def __repr__(self):
        return f'<User {self.name}>'
