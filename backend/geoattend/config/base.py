"""Base configuration shared by every environment."""
import os
from datetime import timedelta
from enum import Enum


class PersistenceBackend(Enum):
    """Where attendance data lives. Chosen explicitly, never on error."""
    REMOTE = 'remote'
    LOCAL_FALLBACK = 'local'


class Config:
    """Base configuration."""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = False

    # Persistence
    PERSISTENCE_BACKEND = os.environ.get('PERSISTENCE_BACKEND', 'remote')
    DATABASE_URL = os.environ.get('DATABASE_URL')
    LOCAL_DATABASE_URL = os.environ.get('LOCAL_DATABASE_URL') or 'sqlite:///geoattend_local.db'

    # JWT Configuration
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY') or 'jwt-secret-key-change-in-production'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=2)
    JWT_ALGORITHM = 'HS256'

    # CORS
    CORS_ORIGINS = ["http://localhost:*", "https://*.vercel.app", "http://127.0.0.1:*"]

    # Redis (event fan-out and rate limit storage)
    REDIS_URL = os.environ.get('REDIS_URL')
    ATTENDANCE_EVENT_CHANNEL = 'class-attendance-marked'

    # Rate Limiting
    RATELIMIT_STORAGE_URI = os.environ.get('REDIS_URL') or 'memory://'
    RATELIMIT_DEFAULT = "200 per day, 50 per hour"
    MARK_ATTENDANCE_RATE_LIMIT = "30 per minute"

    # Class defaults
    DEFAULT_DISTANCE_THRESHOLD_METERS = 100
    DEFAULT_DURATION_MINUTES = 60
    DEFAULT_GRACE_PERIOD_MINUTES = 15

    # Check-in
    CHECK_IN_TOKEN_TTL_SECONDS = 24 * 60 * 60
    LOCATION_TIMEOUT_SECONDS = 15

    # Background class sweep
    AUTO_END_CLASSES = os.environ.get('AUTO_END_CLASSES', 'false').lower() == 'true'
    CLASS_SWEEP_INTERVAL_SECONDS = 60

    # Logging
    LOG_LEVEL = 'INFO'
    LOG_FILE = 'logs/app.log'
