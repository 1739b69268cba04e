"""Configuration management with validation.

All settings are validated at load time so that a misconfigured controller
fails before it issues a single request against AWX.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_REQUEST_TIMEOUT_SECONDS = 30.0
MIN_REQUEST_TIMEOUT_SECONDS = 1.0
MAX_REQUEST_TIMEOUT_SECONDS = 300.0

DEFAULT_POLL_INTERVAL_SECONDS = 10.0
MIN_POLL_INTERVAL_SECONDS = 1.0
MAX_POLL_INTERVAL_SECONDS = 600.0

DEFAULT_INITIAL_DELAY_SECONDS = 30.0
MAX_INITIAL_DELAY_SECONDS = 600.0

DEFAULT_JOB_TIMEOUT_SECONDS = 120 * 60
MAX_JOB_TIMEOUT_SECONDS = 24 * 60 * 60

# Fixed backoff before the single retry of a failed status read
DEFAULT_RETRY_BACKOFF_SECONDS = 5.0
MAX_RETRY_BACKOFF_SECONDS = 60.0

DEFAULT_STATE_FILE = "awx-state.json"

# Declaration files larger than this are rejected before parsing
MAX_DECLARATION_FILE_SIZE_BYTES = 1024 * 1024

VALID_HOST_PATTERN = r"^https?://[^\s/]+(/[^\s]*)?$"


@dataclass(frozen=True)
class PollerSettings:
    """Timing parameters for waiting on a launched job.

    Values are seconds. A zero ``initial_delay`` or ``retry_backoff`` is
    allowed; ``poll_interval`` and ``timeout`` must be positive.
    """

    poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS
    initial_delay: float = DEFAULT_INITIAL_DELAY_SECONDS
    timeout: float = DEFAULT_JOB_TIMEOUT_SECONDS
    retry_backoff: float = DEFAULT_RETRY_BACKOFF_SECONDS

    def __post_init__(self) -> None:
        errors: list[str] = []
        if self.poll_interval <= 0:
            errors.append("poll_interval must be positive")
        if self.initial_delay < 0:
            errors.append("initial_delay must not be negative")
        if self.timeout <= 0:
            errors.append("timeout must be positive")
        if self.retry_backoff < 0:
            errors.append("retry_backoff must not be negative")
        if errors:
            raise ConfigurationError("Invalid poller settings:\n  - " + "\n  - ".join(errors))


@dataclass(frozen=True)
class Config:
    """Controller configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing mid-apply.
    """

    host: str

    # Authentication: a token, or a username/password pair
    token: str | None = field(default=None, repr=False)
    username: str | None = None
    password: str | None = field(default=None, repr=False)

    # Transport
    insecure: bool = False
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS

    # Job monitoring
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    initial_delay_seconds: float = DEFAULT_INITIAL_DELAY_SECONDS
    job_timeout_seconds: float = DEFAULT_JOB_TIMEOUT_SECONDS
    retry_backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS

    # Local state
    state_file: Path = field(default_factory=lambda: Path(DEFAULT_STATE_FILE))

    def __post_init__(self) -> None:
        """Validate configuration after initialization.

        Every problem is collected so a single run reports all of them.
        """
        errors: list[str] = []

        if not self.host:
            errors.append("AWX_HOST is required")
        elif not re.match(VALID_HOST_PATTERN, self.host):
            errors.append(f"AWX_HOST must be an http(s) URL: {self.host}")

        if self.token and (self.username or self.password):
            errors.append("Use either AWX_TOKEN or AWX_USERNAME/AWX_PASSWORD, not both")
        elif not self.token:
            if not self.username or not self.password:
                errors.append("AWX_TOKEN or both AWX_USERNAME and AWX_PASSWORD are required")

        if not (
            MIN_REQUEST_TIMEOUT_SECONDS
            <= self.request_timeout_seconds
            <= MAX_REQUEST_TIMEOUT_SECONDS
        ):
            errors.append(
                f"AWX_REQUEST_TIMEOUT must be between {MIN_REQUEST_TIMEOUT_SECONDS} "
                f"and {MAX_REQUEST_TIMEOUT_SECONDS} seconds"
            )

        if not (MIN_POLL_INTERVAL_SECONDS <= self.poll_interval_seconds <= MAX_POLL_INTERVAL_SECONDS):
            errors.append(
                f"JOB_POLL_INTERVAL must be between {MIN_POLL_INTERVAL_SECONDS} "
                f"and {MAX_POLL_INTERVAL_SECONDS} seconds"
            )

        if not (0 <= self.initial_delay_seconds <= MAX_INITIAL_DELAY_SECONDS):
            errors.append(f"JOB_INITIAL_DELAY must be between 0 and {MAX_INITIAL_DELAY_SECONDS} seconds")

        if not (0 < self.job_timeout_seconds <= MAX_JOB_TIMEOUT_SECONDS):
            errors.append(f"JOB_TIMEOUT must be between 1 and {MAX_JOB_TIMEOUT_SECONDS} seconds")

        if not (0 <= self.retry_backoff_seconds <= MAX_RETRY_BACKOFF_SECONDS):
            errors.append(f"JOB_RETRY_BACKOFF must be between 0 and {MAX_RETRY_BACKOFF_SECONDS} seconds")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @property
    def poller_settings(self) -> PollerSettings:
        """Job monitoring parameters as a PollerSettings value."""
        return PollerSettings(
            poll_interval=self.poll_interval_seconds,
            initial_delay=self.initial_delay_seconds,
            timeout=self.job_timeout_seconds,
            retry_backoff=self.retry_backoff_seconds,
        )

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            AWX_HOST: Base URL of the AWX / Tower instance (required)
            AWX_TOKEN: OAuth2 bearer token
            AWX_USERNAME / AWX_PASSWORD: Basic auth, used when no token is set
            AWX_INSECURE: If "true", skip TLS certificate verification (default: false)
            AWX_REQUEST_TIMEOUT: Per-request timeout in seconds (default: 30)
            JOB_POLL_INTERVAL: Seconds between job status reads (default: 10)
            JOB_INITIAL_DELAY: Seconds before the first status read (default: 30)
            JOB_TIMEOUT: Overall budget for waiting on a job (default: 7200)
            JOB_RETRY_BACKOFF: Backoff before retrying a failed status read (default: 5)
            STATE_FILE: Path of the local state file (default: awx-state.json)
        """

        def get_float(key: str, default: float) -> float:
            value = os.environ.get(key)
            if value is None or value == "":
                return default
            try:
                return float(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be a number: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        return cls(
            host=os.environ.get("AWX_HOST", "").rstrip("/"),
            token=os.environ.get("AWX_TOKEN") or None,
            username=os.environ.get("AWX_USERNAME") or None,
            password=os.environ.get("AWX_PASSWORD") or None,
            insecure=get_bool("AWX_INSECURE", False),
            request_timeout_seconds=get_float(
                "AWX_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT_SECONDS
            ),
            poll_interval_seconds=get_float("JOB_POLL_INTERVAL", DEFAULT_POLL_INTERVAL_SECONDS),
            initial_delay_seconds=get_float("JOB_INITIAL_DELAY", DEFAULT_INITIAL_DELAY_SECONDS),
            job_timeout_seconds=get_float("JOB_TIMEOUT", DEFAULT_JOB_TIMEOUT_SECONDS),
            retry_backoff_seconds=get_float("JOB_RETRY_BACKOFF", DEFAULT_RETRY_BACKOFF_SECONDS),
            state_file=Path(os.environ.get("STATE_FILE", DEFAULT_STATE_FILE)),
        )
