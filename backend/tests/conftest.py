"""Shared fixtures for the attendance tests."""
import pytest

from qr_attendance import create_app, db
from qr_attendance.models import Course, UserRole
from qr_attendance.services.round_service import RoundService
from qr_attendance.services.session_service import SessionService
from tests.helpers import T0, make_user, open_session

@pytest.fixture
def app():
    """Create test app."""
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()

@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()

@pytest.fixture
def teacher(app):
    return make_user('Dr. Ayse Demir', UserRole.TEACHER, 'T100')

@pytest.fixture
def other_teacher(app):
    return make_user('Dr. Mehmet Kaya', UserRole.TEACHER, 'T200')

@pytest.fixture
def admin(app):
    return make_user('Admin', UserRole.ADMIN)

@pytest.fixture
def student(app):
    return make_user('Ali Yilmaz', UserRole.STUDENT, 'S001')

@pytest.fixture
def other_student(app):
    return make_user('Zeynep Aydin', UserRole.STUDENT, 'S002')

@pytest.fixture
def course(teacher, student, other_student):
    """A course without geofencing; both students enrolled."""
    course = Course(name='Algorithms', code='CENG201', teacher_id=teacher.id).save()
    course.enroll(student)
    course.enroll(other_student)
    return course

@pytest.fixture
def geofenced_course(teacher, student):
    course = Course(
        name='Engineering Faculty Lab',
        code='CENG301',
        teacher_id=teacher.id,
        latitude=40.3321324819595,
        longitude=36.484079917748815,
        geofence_enabled=True
    ).save()
    course.enroll(student)
    return course

@pytest.fixture
def class_session(course):
    """Open session with max_count=2, advanced to round 1 at T0."""
    session = open_session(course, max_count=2, broadcast_duration=10)
    RoundService.advance_round(session.id, now=T0)
    return SessionService.get_session(session.id)
