"""Tests for configuration and persistence backend selection."""
import pytest

from geoattend import create_app
from geoattend.config import get_config, resolve_database_uri
from geoattend.config.testing import TestingConfig


def test_get_config_falls_back_to_default():
    assert get_config('testing') is TestingConfig
    assert get_config('nonsense').__name__ == 'DevelopmentConfig'


def test_remote_backend_uses_database_url():
    uri = resolve_database_uri({'PERSISTENCE_BACKEND': 'remote', 'DATABASE_URL': 'postgresql://db/attend'})

    assert uri == 'postgresql://db/attend'


def test_remote_backend_requires_database_url():
    """A missing remote database is a startup error, not a silent switch to local."""
    with pytest.raises(RuntimeError):
        resolve_database_uri({'PERSISTENCE_BACKEND': 'remote', 'DATABASE_URL': None,
                              'LOCAL_DATABASE_URL': 'sqlite:///local.db'})


def test_local_backend_is_explicit():
    uri = resolve_database_uri({'PERSISTENCE_BACKEND': 'local', 'LOCAL_DATABASE_URL': 'sqlite:///local.db'})

    assert uri == 'sqlite:///local.db'


def test_unknown_backend_rejected():
    with pytest.raises(ValueError):
        resolve_database_uri({'PERSISTENCE_BACKEND': 'cloud'})


def test_app_reports_backend(app):
    response = app.test_client().get('/health')

    assert response.get_json()['persistence_backend'] == 'remote'
    assert app.config['SQLALCHEMY_DATABASE_URI'] == 'sqlite:///:memory:'


def test_init_db_command_resets_tables(app, make_class):
    """`flask init-db --drop` is the one way to rebuild the schema."""
    from geoattend.models.class_session import ClassSession
    make_class()

    result = app.test_cli_runner().invoke(args=['init-db', '--drop'])

    assert 'Dropped all tables.' in result.output
    assert 'Created all tables.' in result.output
    assert ClassSession.query.count() == 0
