"""Tests for configuration selection and required settings"""

import pytest

from config import ConfigurationError, DevelopmentConfig, ProductionConfig, TestingConfig, get_config


class TestConfig:

    def test_get_config_by_name(self):
        assert get_config('testing') is TestingConfig
        assert get_config('production') is ProductionConfig
        assert get_config('unknown') is DevelopmentConfig

    def test_get_config_falls_back_to_flask_env(self, monkeypatch):
        monkeypatch.setenv('FLASK_ENV', 'production')
        assert get_config() is ProductionConfig

    def test_production_requires_secrets(self, monkeypatch):
        monkeypatch.setenv('FLASK_ENV', 'production')
        monkeypatch.delenv('SKIP_ENV_VALIDATION', raising=False)
        for var in ('UNSUBSCRIBE_SECRET', 'APP_URL', 'DATABASE_URL', 'POSTGRES_URI'):
            monkeypatch.delenv(var, raising=False)

        with pytest.raises(ConfigurationError) as exc_info:
            ProductionConfig.validate_required_config()

        for var in ('UNSUBSCRIBE_SECRET', 'APP_URL', 'DATABASE_URL'):
            assert var in str(exc_info.value)

    def test_production_with_settings(self, monkeypatch):
        monkeypatch.setenv('FLASK_ENV', 'production')
        monkeypatch.setenv('UNSUBSCRIBE_SECRET', 's3cret')
        monkeypatch.setenv('APP_URL', 'https://mail.example.com')
        monkeypatch.setenv('POSTGRES_URI', 'postgresql://mail@db/mail')

        ProductionConfig.validate_required_config()

    def test_testing_config_never_validates(self, monkeypatch):
        monkeypatch.setenv('FLASK_ENV', 'testing')
        monkeypatch.delenv('UNSUBSCRIBE_SECRET', raising=False)

        TestingConfig.validate_required_config()
