"""Tests for configuration loading."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from awx_controller.config import (
    DEFAULT_JOB_TIMEOUT_SECONDS,
    Config,
    ConfigurationError,
    PollerSettings,
)


class TestConfig:
    """Tests for Config class."""

    def test_valid_token_config(self) -> None:
        """Test creating a valid token-authenticated configuration."""
        config = Config(host="https://awx.example.com", token="abc")

        assert config.host == "https://awx.example.com"
        assert config.insecure is False
        assert config.job_timeout_seconds == DEFAULT_JOB_TIMEOUT_SECONDS
        assert config.state_file == Path("awx-state.json")

    def test_valid_basic_auth_config(self) -> None:
        """Test that a username/password pair is accepted instead of a token."""
        config = Config(host="https://awx.example.com", username="admin", password="secret")

        assert config.username == "admin"

    def test_missing_host(self) -> None:
        """Test that a missing host raises error."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config(host="", token="abc")

        assert "AWX_HOST" in str(exc_info.value)

    def test_host_must_be_url(self) -> None:
        """Test that a host without scheme is rejected."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config(host="awx.example.com", token="abc")

        assert "http(s) URL" in str(exc_info.value)

    def test_auth_required(self) -> None:
        """Test that one authentication method is required."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config(host="https://awx.example.com", username="admin")

        assert "AWX_TOKEN" in str(exc_info.value)

    def test_token_and_basic_auth_are_exclusive(self) -> None:
        """Test that a token cannot be combined with basic auth."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config(host="https://awx.example.com", token="abc", username="admin", password="x")

        assert "not both" in str(exc_info.value)

    def test_invalid_poll_interval(self) -> None:
        """Test that out-of-range poll interval raises error."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config(host="https://awx.example.com", token="abc", poll_interval_seconds=0.5)

        assert "JOB_POLL_INTERVAL" in str(exc_info.value)

    def test_invalid_job_timeout(self) -> None:
        """Test that a non-positive job timeout raises error."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config(host="https://awx.example.com", token="abc", job_timeout_seconds=0)

        assert "JOB_TIMEOUT" in str(exc_info.value)

    def test_all_errors_reported_together(self) -> None:
        """Test that every problem is reported in one error."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config(
                host="",
                request_timeout_seconds=0,
                retry_backoff_seconds=-1,
            )

        message = str(exc_info.value)
        assert "AWX_HOST" in message
        assert "AWX_TOKEN" in message
        assert "AWX_REQUEST_TIMEOUT" in message
        assert "JOB_RETRY_BACKOFF" in message

    def test_secrets_not_in_repr(self) -> None:
        """Test that the token and password never show up in repr."""
        config = Config(host="https://awx.example.com", token="very-secret-token")

        assert "very-secret-token" not in repr(config)

    def test_poller_settings(self) -> None:
        """Test conversion to poller settings."""
        config = Config(
            host="https://awx.example.com",
            token="abc",
            poll_interval_seconds=5,
            initial_delay_seconds=0,
            job_timeout_seconds=60,
            retry_backoff_seconds=2,
        )

        assert config.poller_settings == PollerSettings(
            poll_interval=5, initial_delay=0, timeout=60, retry_backoff=2
        )


class TestConfigFromEnv:
    """Tests for Config.from_env."""

    def test_from_env(self, tmp_path: Path) -> None:
        """Test loading config from environment variables."""
        env = {
            "AWX_HOST": "https://awx.example.com/",
            "AWX_TOKEN": "abc",
            "AWX_INSECURE": "true",
            "JOB_POLL_INTERVAL": "15",
            "JOB_INITIAL_DELAY": "0",
            "STATE_FILE": str(tmp_path / "state.json"),
        }

        with patch.dict(os.environ, env, clear=True):
            config = Config.from_env()

        assert config.host == "https://awx.example.com"
        assert config.insecure is True
        assert config.poll_interval_seconds == 15
        assert config.initial_delay_seconds == 0
        assert config.state_file == tmp_path / "state.json"

    def test_defaults(self) -> None:
        """Test that unset variables fall back to defaults."""
        env = {"AWX_HOST": "https://awx.example.com", "AWX_USERNAME": "u", "AWX_PASSWORD": "p"}

        with patch.dict(os.environ, env, clear=True):
            config = Config.from_env()

        assert config.poll_interval_seconds == 10
        assert config.initial_delay_seconds == 30
        assert config.job_timeout_seconds == 7200
        assert config.retry_backoff_seconds == 5

    def test_non_numeric_value(self) -> None:
        """Test that a non-numeric number raises a configuration error."""
        env = {"AWX_HOST": "https://awx.example.com", "AWX_TOKEN": "abc", "JOB_TIMEOUT": "soon"}

        with patch.dict(os.environ, env, clear=True):
            with pytest.raises(ConfigurationError) as exc_info:
                Config.from_env()

        assert "JOB_TIMEOUT" in str(exc_info.value)


class TestPollerSettings:
    """Tests for PollerSettings validation."""

    def test_zero_delays_allowed(self) -> None:
        """Test that zero initial delay and backoff are valid."""
        settings = PollerSettings(poll_interval=0.01, initial_delay=0, timeout=1, retry_backoff=0)

        assert settings.initial_delay == 0

    def test_invalid_values(self) -> None:
        """Test that non-positive interval and timeout are rejected."""
        with pytest.raises(ConfigurationError) as exc_info:
            PollerSettings(poll_interval=0, timeout=-1)

        assert "poll_interval" in str(exc_info.value)
        assert "timeout" in str(exc_info.value)
