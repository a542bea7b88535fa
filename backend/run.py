# File: backend/run.py
"""Application entry point."""
import os
import click
from flask.cli import with_appcontext
from qr_attendance import create_app, db
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Create Flask app
app = create_app(os.getenv('FLASK_ENV', 'development'))

@app.cli.command('seed-demo')
@with_appcontext
def seed_demo():
    """Create a teacher, a geofenced course and a few students."""
    from qr_attendance.models import Course, Enrollment, User, UserRole

    teacher = User.query.filter_by(university_code='T0001').first()
    if not teacher:
        teacher = User(name='Demo Teacher', university_code='T0001', role=UserRole.TEACHER)
        db.session.add(teacher)
        db.session.flush()

    course = Course.query.filter_by(code='CENG101').first()
    if not course:
        course = Course(
            name='Introduction to Computer Engineering',
            code='CENG101',
            teacher_id=teacher.id,
            latitude=40.3321324819595,
            longitude=36.484079917748815,
            geofence_enabled=True
        )
        db.session.add(course)
        db.session.flush()

    for number in range(1, 6):
        code = f'S{number:04d}'
        student = User.query.filter_by(university_code=code).first()
        if not student:
            student = User(name=f'Student {number}', university_code=code, role=UserRole.STUDENT)
            db.session.add(student)
            db.session.flush()
        if not course.is_enrolled(student.id):
            db.session.add(Enrollment(course_id=course.id, student_id=student.id))

    db.session.commit()
    click.echo('Demo data created: teacher T0001, course CENG101, students S0001-S0005 enrolled')

@app.cli.command('reset-db')
@with_appcontext
def reset_db():
    """Reset database completely."""
    if click.confirm('This will delete all data and recreate tables. Continue?'):
        db.drop_all()
        db.create_all()
        click.echo('Database reset complete!')

if __name__ == '__main__':
    # Development server
    port = int(os.environ.get('PORT', 5000))
    host = os.environ.get('HOST', '127.0.0.1')
    debug = os.environ.get('FLASK_ENV') == 'development'

    app.run(host=host, port=port, debug=debug)
