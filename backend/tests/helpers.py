"""Test helpers shared across modules."""
from datetime import datetime

from flask_jwt_extended import create_access_token

from qr_attendance.models import User
from qr_attendance.services.session_service import SessionService

# Fixed clock for token tests
T0 = datetime(2025, 3, 10, 9, 30, 0)

def make_user(name, role, code=None):
    user = User(name=name, role=role, university_code=code)
    return user.save()

def open_session(course, **schedule):
    data = {'date': '2025-03-10', 'time': '09:30', 'topic': 'Graphs'}
    data.update(schedule)
    return SessionService.open_session(course.id, data)

def auth_headers(user):
    token = create_access_token(identity=str(user.id))
    return {'Authorization': f'Bearer {token}'}
