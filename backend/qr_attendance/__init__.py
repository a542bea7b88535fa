"""QR Attendance Service - Application Factory."""
import logging
import os
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_jwt_extended import JWTManager
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Initialize extensions
db = SQLAlchemy()
migrate = Migrate()
jwt = JWTManager()
limiter = Limiter(key_func=get_remote_address)

def create_app(config_name: str = None) -> Flask:
    """Application factory pattern."""
    app = Flask(__name__)

    # Load configuration
    from config import get_config
    config_class = get_config(config_name)
    app.config.from_object(config_class)
    configure_storage_timeouts(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    limiter.init_app(app)

    # Configure CORS
    CORS(app, origins=app.config.get('CORS_ORIGINS', ["*"]))

    # Setup logging
    setup_logging(app)

    # Register blueprints
    register_blueprints(app)

    # Register error handlers
    register_error_handlers(app)

    # Setup database
    setup_database(app)

    # Add CLI commands
    register_commands(app)

    # Add health check
    @app.route('/health')
    def health_check():
        return jsonify({
            'status': 'healthy',
            'service': 'QR Attendance Service',
            'version': '1.0.0'
        })

    return app

def configure_storage_timeouts(app: Flask) -> None:
    """Bound every storage call by STORAGE_TIMEOUT_SECONDS."""
    timeout = app.config.get('STORAGE_TIMEOUT_SECONDS', 5)
    uri = app.config.get('SQLALCHEMY_DATABASE_URI') or ''
    options = dict(app.config.get('SQLALCHEMY_ENGINE_OPTIONS', {}))

    if uri.startswith('sqlite'):
        options.setdefault('connect_args', {'timeout': timeout})
    elif uri.startswith('postgresql'):
        options.setdefault('pool_timeout', timeout)
        options.setdefault('connect_args', {
            'connect_timeout': timeout,
            'options': f'-c statement_timeout={int(timeout * 1000)}'
        })

    app.config['SQLALCHEMY_ENGINE_OPTIONS'] = options

def register_blueprints(app: Flask) -> None:
    """Register all application blueprints."""
    from qr_attendance.api.sessions import sessions_bp
    from qr_attendance.api.qr import qr_bp
    from qr_attendance.api.attendance import attendance_bp
    from qr_attendance.api.audit import audit_bp
    from qr_attendance.utils.swagger import API_URL, generate_swagger_spec, get_swagger_blueprint

    app.register_blueprint(sessions_bp, url_prefix='/api/sessions')
    app.register_blueprint(qr_bp, url_prefix='/api/qr')
    app.register_blueprint(attendance_bp, url_prefix='/api/attendance')
    app.register_blueprint(audit_bp, url_prefix='/api/audit')

    # Swagger UI
    @app.route(API_URL)
    def swagger_spec():
        """Serve Swagger/OpenAPI specification."""
        return jsonify(generate_swagger_spec())

    app.register_blueprint(get_swagger_blueprint())

def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""
    from qr_attendance.utils.exceptions import AttendanceError
    from qr_attendance.utils.helpers import handle_error
    from werkzeug.exceptions import HTTPException

    @app.errorhandler(AttendanceError)
    def attendance_error(error):
        db.session.rollback()
        if error.status_code >= 500:
            app.logger.error('%s: %s', error.code, error.message)
        else:
            app.logger.info('Request rejected (%s): %s', error.code, error.message)
        return handle_error(error, error.status_code)

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return handle_error(error, 500)

    @app.errorhandler(HTTPException)
    def handle_exception(e):
        return handle_error(e, e.code)

    # JWT error handlers
    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return jsonify({
            'error': True,
            'message': 'Token has expired',
            'status_code': 401
        }), 401

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        return jsonify({
            'error': True,
            'message': 'Invalid token',
            'status_code': 401
        }), 401

    @jwt.unauthorized_loader
    def missing_token_callback(error):
        return jsonify({
            'error': True,
            'message': 'Authorization token required',
            'status_code': 401
        }), 401

def setup_logging(app: Flask) -> None:
    """Setup application logging."""
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    if not app.debug and not app.testing:
        log_file = app.config.get('LOG_FILE', 'logs/app.log')
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(logging.INFO)
        app.logger.addHandler(file_handler)

        app.logger.info('QR Attendance Service startup')

def setup_database(app: Flask) -> None:
    """Setup database connections."""
    with app.app_context():
        # Import all models
        from qr_attendance.models import (
            User, UserRole, Course, Enrollment, ClassSession, AttendanceRecord
        )

def register_commands(app: Flask) -> None:
    """Register CLI commands."""
    import click

    @app.cli.command('init-db')
    @click.option('--drop', is_flag=True, help='Drop existing tables')
    def init_db(drop):
        """Initialize the database."""
        if drop:
            db.drop_all()
            click.echo('Dropped all tables.')

        db.create_all()
        click.echo('Created all tables.')

    @app.cli.command('audit-attendance')
    @click.option('--repair', is_flag=True, help='Collapse duplicate rows onto one record')
    @click.option('--restore-index', is_flag=True,
                  help='Recreate the uniqueness index after a repair')
    def audit_attendance(repair, restore_index):
        """Report (and optionally repair) duplicate attendance rows."""
        from qr_attendance.services.audit_service import AuditService

        found = 0
        for violation in AuditService.find_violations():
            found += 1
            click.echo(
                f'Session {violation.session_id}, student {violation.student_id}, '
                f'round {violation.round_no}: rows {list(violation.record_ids)}'
            )
            if repair:
                survivor = AuditService.repair(violation)
                click.echo(f'  kept record {survivor.id} (count {survivor.count})')

        click.echo(f'{found} duplicate group(s) found.')
        if restore_index:
            AuditService.ensure_unique_index()
            click.echo('Uniqueness index in place.')
