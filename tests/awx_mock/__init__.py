"""AWX API Mock for Integration Testing.

This module provides an in-memory AWX that the controller can be run
against without a real AWX instance.

Key Features:
- In-memory records for job templates, credentials and jobs
- Server-side defaults and masked credential secrets on read
- Scripted job status sequences
- Error injection and call recording on the RemoteClient level
- An httpx.MockTransport serving the same state over the REST API

Usage:
    from awx_mock import MockAwxClient

    client = MockAwxClient()
    template_id = client.state.add_record("job_template", {...})
    client.state.script_job(template_id, ["pending", "running", "successful"])

    # Run engine, launcher or poller against the client
    assert client.call_count("get_job_status") == 3
"""

from .client import MockAwxClient
from .records import ENCRYPTED, MockAwxState, MockJob
from .transport import create_mock_transport

__all__ = [
    "ENCRYPTED",
    "MockAwxClient",
    "MockAwxState",
    "MockJob",
    "create_mock_transport",
]
