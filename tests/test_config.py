"""
Tests for configuration loading.
"""

import importlib
import logging

import pytest

import postgmem.config as config_module


@pytest.fixture
def reload_config(monkeypatch):
    """Reload the config module after environment changes."""
    def _reload(**env):
        for key, value in env.items():
            monkeypatch.setenv(key, value)
        return importlib.reload(config_module).PostgMemConfig

    yield _reload
    monkeypatch.undo()
    importlib.reload(config_module)


class TestPostgMemConfig:
    """Test environment-driven configuration."""

    def test_defaults(self):
        db_config = config_module.PostgMemConfig.get_db_config()

        assert set(db_config) == {'host', 'port', 'database', 'user', 'password'}
        assert isinstance(db_config['port'], int)

    def test_environment_overrides(self, reload_config):
        config = reload_config(
            POSTGMEM_DB_HOST='db.internal',
            POSTGMEM_DB_PORT='6543',
            POSTGMEM_POOL_MAX_CONN='3',
            POSTGMEM_EMBEDDING_DIMENSION='768',
            POSTGMEM_DISTANCE_METRIC='l2',
        )

        assert config.get_db_config()['host'] == 'db.internal'
        assert config.get_db_config()['port'] == 6543
        assert config.get_pool_config()['maxconn'] == 3
        assert config.get_embedding_config()['dimension'] == 768
        assert config.DISTANCE_METRIC == 'l2'

    def test_embedding_config_keys(self):
        embedding_config = config_module.PostgMemConfig.get_embedding_config()

        assert set(embedding_config) == {'base_url', 'model', 'dimension', 'timeout'}


class TestSetupLogging:
    """Test logging setup."""

    def test_setup_logging_level(self, monkeypatch):
        calls = []
        monkeypatch.setattr(logging, 'basicConfig', lambda **kwargs: calls.append(kwargs))

        config_module.setup_logging('debug')

        assert calls[0]['level'] == logging.DEBUG

    def test_unknown_level_falls_back_to_info(self, monkeypatch):
        calls = []
        monkeypatch.setattr(logging, 'basicConfig', lambda **kwargs: calls.append(kwargs))

        config_module.setup_logging('chatty')

        assert calls[0]['level'] == logging.INFO
