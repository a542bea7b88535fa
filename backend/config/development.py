"""Development configuration."""
import os

from .base import Config


class DevelopmentConfig(Config):
    """Development configuration class."""

    DEBUG = True
    TESTING = False

    # Database
    SQLALCHEMY_DATABASE_URI = os.getenv('DEV_DATABASE_URL') or \
        'sqlite:///qr_attendance_dev.db'
    SQLALCHEMY_ECHO = True

    # Redis (optional in dev)
    REDIS_URL = os.getenv('REDIS_URL')

    # Relaxed broadcast window while testing on phones
    DEFAULT_BROADCAST_DURATION = int(os.getenv('QR_TOKEN_VALIDITY_SECONDS', '30'))

    LOG_LEVEL = 'DEBUG'
