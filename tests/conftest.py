"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for awx_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from awx_controller.config import PollerSettings  # noqa: E402
from awx_mock import MockAwxClient  # noqa: E402

TEMPLATE_FIELDS = {
    "name": "deploy-web",
    "job_type": "run",
    "inventory": 3,
    "project": 7,
    "playbook": "site.yml",
}


@pytest.fixture
def awx() -> MockAwxClient:
    """Empty in-memory AWX."""
    return MockAwxClient()


@pytest.fixture
def template_id(awx: MockAwxClient) -> int:
    """Id of an existing job template."""
    return awx.state.add_record("job_template", dict(TEMPLATE_FIELDS))


@pytest.fixture
def fast_settings() -> PollerSettings:
    """Poller timing that keeps tests fast."""
    return PollerSettings(poll_interval=0.01, initial_delay=0.0, timeout=5.0, retry_backoff=0.0)
