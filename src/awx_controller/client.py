"""Remote capability for the AWX / Ansible Tower REST API.

The reconciliation engine, launcher and poller only depend on the
RemoteClient protocol below. AwxClient is the production implementation on
top of httpx; tests substitute an in-memory fake.

Failures are raised as RemoteError subclasses so callers can tell a missing
record (NotFoundError) from a temporary outage (TransientError) and from a
request the service refused on its merits (RemoteRejection).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol

import httpx

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v2"

# Resource type -> collection path under the API prefix
ENDPOINTS: dict[str, str] = {
    "job_template": "job_templates",
    "credential": "credentials",
    "job": "jobs",
}

# Rate limiting and gateway errors are worth a retry; other 4xx are not
TRANSIENT_STATUS_CODES = frozenset({408, 429})

MAX_ERROR_DETAIL_LENGTH = 2000


class RemoteError(Exception):
    """Base class for failures reported by the remote service."""

    def __init__(self, message: str, *, status_code: int | None = None, detail: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class NotFoundError(RemoteError):
    """The requested record does not exist remotely."""


class TransientError(RemoteError):
    """Network failure or 5xx-class response; the same request may succeed later."""


class RemoteRejection(RemoteError):
    """The service refused the request (4xx business-rule failure)."""


class IdentifierError(ValueError):
    """An identifier could not be parsed as a remote numeric id."""


def parse_identifier(value: Any, what: str = "resource") -> int:
    """Parse a locally carried identifier into the remote numeric id.

    Identifiers travel as strings in declarations and state. Parsing is
    strict: surrounding whitespace, signs, decimals and booleans are rejected.

    Raises:
        IdentifierError: If the value is not a positive base-10 integer.
    """
    if isinstance(value, bool):
        raise IdentifierError(f"Invalid {what} id: {value!r}")
    if isinstance(value, int):
        if value <= 0:
            raise IdentifierError(f"Invalid {what} id: {value!r}")
        return value
    if not isinstance(value, str) or not value.isascii() or not value.isdigit():
        raise IdentifierError(f"Invalid {what} id: {value!r}")
    parsed = int(value)
    if parsed <= 0:
        raise IdentifierError(f"Invalid {what} id: {value!r}")
    return parsed


class RemoteClient(Protocol):
    """Capability object performing the actual remote calls.

    Implementations hold no cached state: every read is a round trip.
    ``delete`` must be idempotent (a missing record is not an error).
    """

    def create(self, resource_type: str, payload: dict[str, Any]) -> tuple[int, dict[str, Any]]:
        """Create a record, returning its id and the stored representation."""
        ...

    def read(self, resource_type: str, resource_id: int) -> dict[str, Any]:
        """Read a record. Raises NotFoundError when it does not exist."""
        ...

    def update(self, resource_type: str, resource_id: int, payload: dict[str, Any]) -> None:
        """Apply a partial update to a record."""
        ...

    def delete(self, resource_type: str, resource_id: int) -> None:
        """Delete a record. Succeeds when the record is already gone."""
        ...

    def launch(self, template_id: int, params: dict[str, Any]) -> int:
        """Launch a job from a job template, returning the job id."""
        ...

    def get_job_status(self, job_id: int) -> tuple[str, str]:
        """Return the raw status token and failure detail of a job."""
        ...


class AwxClient:
    """RemoteClient implementation backed by an httpx.Client.

    Usable as a context manager; the underlying connection pool is closed on
    exit.
    """

    def __init__(
        self,
        host: str,
        *,
        token: str | None = None,
        username: str | None = None,
        password: str | None = None,
        verify: bool = True,
        timeout_seconds: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            host: Base URL of the AWX instance, without the API prefix.
            token: OAuth2 token, sent as a bearer token.
            username: Basic auth user, used when no token is given.
            password: Basic auth password.
            verify: Verify TLS certificates.
            timeout_seconds: Per-request timeout.
            transport: Optional httpx transport (tests use httpx.MockTransport).
        """
        headers = {"Accept": "application/json"}
        auth: httpx.Auth | None = None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        elif username and password:
            auth = httpx.BasicAuth(username, password)

        self._client = httpx.Client(
            base_url=host.rstrip("/") + API_PREFIX,
            headers=headers,
            auth=auth,
            verify=verify,
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            transport=transport,
            follow_redirects=True,
        )

    @classmethod
    def from_config(cls, config: Config) -> AwxClient:
        """Build a client from a validated Config."""
        return cls(
            config.host,
            token=config.token,
            username=config.username,
            password=config.password,
            verify=not config.insecure,
            timeout_seconds=config.request_timeout_seconds,
        )

    def create(self, resource_type: str, payload: dict[str, Any]) -> tuple[int, dict[str, Any]]:
        body = self._request("POST", f"{_collection(resource_type)}/", json=payload)
        if body.get("id") is None:
            raise RemoteRejection(
                f"Create of {resource_type} returned no id",
                detail=str(body)[:MAX_ERROR_DETAIL_LENGTH],
            )
        return int(body["id"]), body

    def read(self, resource_type: str, resource_id: int) -> dict[str, Any]:
        return self._request("GET", f"{_collection(resource_type)}/{resource_id}/")

    def update(self, resource_type: str, resource_id: int, payload: dict[str, Any]) -> None:
        self._request("PATCH", f"{_collection(resource_type)}/{resource_id}/", json=payload)

    def delete(self, resource_type: str, resource_id: int) -> None:
        try:
            self._request("DELETE", f"{_collection(resource_type)}/{resource_id}/")
        except NotFoundError:
            logger.info(
                "Record already absent",
                extra={"resource_type": resource_type, "resource_id": resource_id},
            )

    def launch(self, template_id: int, params: dict[str, Any]) -> int:
        body = self._request("POST", f"job_templates/{template_id}/launch/", json=params)
        # AWX returns the job id as "job" and, for newer releases, also as "id"
        job_id = body.get("job", body.get("id"))
        if job_id is None:
            raise RemoteRejection(
                f"Launch of job template {template_id} returned no job id",
                detail=str(body)[:MAX_ERROR_DETAIL_LENGTH],
            )
        return int(job_id)

    def get_job_status(self, job_id: int) -> tuple[str, str]:
        body = self._request("GET", f"jobs/{job_id}/")
        detail = body.get("job_explanation") or body.get("result_traceback") or ""
        return str(body.get("status", "")), str(detail)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> AwxClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Send a request and translate failures into RemoteError subclasses."""
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientError(f"{method} {path} timed out", detail=str(e)) from e
        except httpx.TransportError as e:
            raise TransientError(f"{method} {path} failed: {e}", detail=str(e)) from e

        if response.is_success:
            if response.status_code == 204 or not response.content:
                return {}
            try:
                body = response.json()
            except ValueError as e:
                raise TransientError(
                    f"{method} {path} returned a non-JSON body",
                    status_code=response.status_code,
                ) from e
            return body if isinstance(body, dict) else {"results": body}

        detail = response.text[:MAX_ERROR_DETAIL_LENGTH]
        status = response.status_code
        message = f"{method} {path} returned {status}"
        logger.debug("Remote request failed", extra={"status_code": status, "path": path})

        if status == 404:
            raise NotFoundError(message, status_code=status, detail=detail)
        if status >= 500 or status in TRANSIENT_STATUS_CODES:
            raise TransientError(message, status_code=status, detail=detail)
        raise RemoteRejection(message, status_code=status, detail=detail)


def _collection(resource_type: str) -> str:
    try:
        return ENDPOINTS[resource_type]
    except KeyError:
        raise ValueError(f"Unsupported resource type: {resource_type}") from None
