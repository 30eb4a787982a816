"""
Tests for release_server/config.py.
"""
import os
from unittest import mock

from release_server.config import Settings


class TestSettingsDefaults:
    """Default values when the environment is empty."""

    def test_defaults(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            settings = Settings()
        assert settings.storage_backend == "local"
        assert settings.data_dir == "./data"
        assert settings.base_url == "http://localhost:8080"
        assert settings.port == 8080
        assert settings.s3_bucket == "lightshell-releases"
        assert settings.aws_region == "us-east-1"
        assert settings.api_key is None
        assert settings.ed25519_public_key is None
        assert settings.rate_limit_latest == "60 per minute"
        assert settings.rate_limit_download == "30 per minute"
        assert settings.rate_limit_api == "100 per hour"


class TestSettingsEnvironment:
    """Values read from environment variables."""

    def test_environment_variables(self):
        env = {
            "STORAGE_BACKEND": " S3 ",
            "BASE_URL": "https://updates.example.com/",
            "PORT": "9090",
            "API_KEY": "secret",
            "S3_PREFIX": "prod",
            "RATE_LIMIT_API": "5 per minute",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            settings = Settings()
        assert settings.storage_backend == "s3"
        assert settings.base_url == "https://updates.example.com"
        assert settings.port == 9090
        assert settings.api_key == "secret"
        assert settings.s3_prefix == "prod"
        assert settings.rate_limit_api == "5 per minute"

    def test_lowercase_names_accepted(self):
        with mock.patch.dict(os.environ, {"data_dir": "/srv/releases"}, clear=True):
            assert Settings().data_dir == "/srv/releases"

    def test_secrets_hidden_from_repr(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            settings = Settings(api_key="super-secret", aws_secret_access_key="aws-secret", audit_ip_salt="salt")
        text = repr(settings)
        assert "super-secret" not in text
        assert "aws-secret" not in text
        assert "salt='salt'" not in text
