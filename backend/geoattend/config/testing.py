"""Testing configuration."""
from datetime import timedelta

from .base import Config


class TestingConfig(Config):
    """Testing configuration class."""
    DEBUG = False
    TESTING = True
    SECRET_KEY = 'test-secret-key'

    # Database (in-memory SQLite for testing)
    PERSISTENCE_BACKEND = 'remote'
    DATABASE_URL = 'sqlite:///:memory:'

    # No Redis in tests; events stay in-process
    REDIS_URL = None

    # JWT Configuration
    JWT_SECRET_KEY = 'test-jwt-secret'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=5)

    # Rate Limiting (disabled for testing)
    RATELIMIT_ENABLED = False
    RATELIMIT_STORAGE_URI = 'memory://'

    LOCATION_TIMEOUT_SECONDS = 1
    AUTO_END_CLASSES = False

    # Logging
    LOG_LEVEL = 'WARNING'
