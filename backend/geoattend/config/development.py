"""Development configuration."""
import os

from .base import Config


class DevelopmentConfig(Config):
    """Development configuration class."""
    DEBUG = True
    TESTING = False

    # Local SQLite unless a remote database is given
    DATABASE_URL = os.getenv('DEV_DATABASE_URL') or 'sqlite:///geoattend_dev.db'
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'

    LOG_LEVEL = 'DEBUG'
