"""Tests for environment configuration."""

import os
from unittest.mock import patch

import pytest

from sheets_utils import config


class TestRetrySettings:
    """Test reading retry overrides."""

    def test_unset_variables_are_omitted(self):
        """Should only return settings present in the environment."""
        env = {"SHEETS_UTILS_RETRY_ATTEMPTS": "7", "SHEETS_UTILS_RETRY_JITTER": ""}
        with patch.dict(os.environ, env):
            os.environ.pop("SHEETS_UTILS_RETRY_DELAY", None)
            os.environ.pop("SHEETS_UTILS_RETRY_MAX_ELAPSED", None)
            assert config.get_retry_settings() == {"attempts": 7}

    def test_all_settings(self):
        env = {
            "SHEETS_UTILS_RETRY_DELAY": "0.5",
            "SHEETS_UTILS_RETRY_ATTEMPTS": "2",
            "SHEETS_UTILS_RETRY_JITTER": "1",
            "SHEETS_UTILS_RETRY_MAX_ELAPSED": "120",
        }
        with patch.dict(os.environ, env):
            assert config.get_retry_settings() == {
                "delay": 0.5,
                "attempts": 2,
                "jitter": 1.0,
                "max_elapsed": 120.0,
            }

    def test_invalid_number(self):
        """Should name the offending variable."""
        with patch.dict(os.environ, {"SHEETS_UTILS_RETRY_ATTEMPTS": "three"}):
            with pytest.raises(ValueError, match="SHEETS_UTILS_RETRY_ATTEMPTS"):
                config.get_retry_settings()


class TestEnvFile:
    """Test .env loading."""

    def test_load_env_file(self, tmp_path):
        """Should strip quotes and skip comments."""
        env_path = tmp_path / ".env"
        env_path.write_text(
            "# retry tuning\n"
            'SHEETS_UTILS_TEST_DELAY="2.5"\n'
            "SHEETS_UTILS_TEST_NAME='report'\n"
            "not a setting\n"
        )
        with patch.dict(os.environ, {}):
            loaded = config._load_env_file(env_path)
            assert os.environ["SHEETS_UTILS_TEST_DELAY"] == "2.5"

        assert loaded == {"SHEETS_UTILS_TEST_DELAY": "2.5", "SHEETS_UTILS_TEST_NAME": "report"}

    def test_environment_takes_precedence(self, tmp_path):
        env_path = tmp_path / ".env"
        env_path.write_text("SHEETS_UTILS_TEST_DELAY=2.5\n")
        with patch.dict(os.environ, {"SHEETS_UTILS_TEST_DELAY": "9"}):
            assert config._load_env_file(env_path) == {}
            assert os.environ["SHEETS_UTILS_TEST_DELAY"] == "9"

    def test_missing_env_file(self, tmp_path):
        assert config._load_env_file(tmp_path / ".env") == {}


def test_credential_status():
    """Should report file presence and retry overrides."""
    with patch.dict(os.environ, {"SHEETS_UTILS_RETRY_DELAY": "3"}):
        status = config.get_credential_status()

    assert set(status["google"]) == {"credentials", "token", "service_account"}
    assert status["retry"]["delay"] == 3.0
