"""Testing configuration."""
from datetime import timedelta

from .base import Config


class TestingConfig(Config):
    """Testing configuration class."""

    DEBUG = False
    TESTING = True
    SECRET_KEY = 'test-secret-key'

    # Database (in-memory SQLite for testing)
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'

    # JWT Configuration
    JWT_SECRET_KEY = 'test-jwt-secret'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=5)

    # Rate Limiting (disabled for testing)
    RATELIMIT_ENABLED = False
    RATELIMIT_STORAGE_URI = 'memory://'

    DEFAULT_BROADCAST_DURATION = 10
    DEFAULT_MAX_COUNT = 1
    GEOFENCE_RADIUS_METERS = 50.0

    # Threads in the concurrency tests queue on the SQLite write lock
    STORAGE_TIMEOUT_SECONDS = 30
    AUDIT_BATCH_SIZE = 2

    LOG_LEVEL = 'WARNING'
