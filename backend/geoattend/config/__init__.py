"""Configuration package for GeoAttend."""
import os
from typing import Type

from .base import Config, PersistenceBackend
from .development import DevelopmentConfig
from .production import ProductionConfig
from .testing import TestingConfig

config_map = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}


def get_config(config_name: str = None) -> Type[Config]:
    """Get configuration class based on environment."""
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'default')

    return config_map.get(config_name, config_map['default'])


def resolve_database_uri(config: dict) -> str:
    """Pick the database URI for the configured persistence backend."""
    backend = PersistenceBackend(config.get('PERSISTENCE_BACKEND', 'remote'))
    if backend is PersistenceBackend.LOCAL_FALLBACK:
        return config['LOCAL_DATABASE_URL']

    uri = config.get('DATABASE_URL')
    if not uri:
        raise RuntimeError(
            "DATABASE_URL is required when PERSISTENCE_BACKEND is 'remote'"
        )
    return uri


__all__ = [
    'Config', 'PersistenceBackend', 'DevelopmentConfig', 'ProductionConfig',
    'TestingConfig', 'config_map', 'get_config', 'resolve_database_uri'
]
