"""Protection of secret values and connection settings.

SECURITY INVARIANTS:
1. Sensitive attribute values (credential inputs) never reach a log record
2. Credentials are never sent over plain HTTP without an explicit opt-in
3. Every remote mutation emits a structured audit event
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterable, Mapping
from typing import Any

from .config import Config

logger = logging.getLogger(__name__)

REDACTED = "********"

# Payload keys that carry secrets regardless of the resource type
ALWAYS_SENSITIVE_KEYS: frozenset[str] = frozenset(
    {"password", "token", "secret", "ssh_key_data", "ssh_key_unlock", "become_password"}
)

ALLOW_PLAINTEXT_ENV_VAR = "AWX_ALLOW_PLAINTEXT"


class InsecureTransportError(Exception):
    """Raised when credentials would be sent over an unencrypted connection."""

    pass


def redact_payload(
    payload: Mapping[str, Any],
    sensitive_keys: Iterable[str] = (),
) -> dict[str, Any]:
    """Return a copy of a payload that is safe to log.

    Nested mappings are redacted recursively. Structured fields travel as
    canonical JSON text, so string values holding a JSON object are decoded
    and redacted the same way.

    Args:
        payload: Attribute map or remote payload.
        sensitive_keys: Keys whose values must be masked entirely.
    """
    masked = set(sensitive_keys) | ALWAYS_SENSITIVE_KEYS
    redacted: dict[str, Any] = {}
    for key, value in payload.items():
        if key in masked and value is not None:
            redacted[key] = REDACTED
        elif isinstance(value, Mapping):
            redacted[key] = redact_payload(value, masked)
        elif isinstance(value, str):
            redacted[key] = _redact_json_text(value, masked)
        else:
            redacted[key] = value
    return redacted


def _redact_json_text(text: str, masked: set[str]) -> str:
    if not text.lstrip().startswith("{"):
        return text
    try:
        decoded = json.loads(text)
    except ValueError:
        return text
    if not isinstance(decoded, dict):
        return text
    return json.dumps(redact_payload(decoded, masked), sort_keys=True, ensure_ascii=False)


def check_transport_security(config: Config) -> None:
    """Refuse to send credentials in cleartext.

    Plain ``http://`` hosts are only accepted when AWX_ALLOW_PLAINTEXT is
    set. Disabled certificate verification is allowed but logged.

    Raises:
        InsecureTransportError: If the host is plain HTTP without opt-in.
    """
    if config.host.startswith("http://"):
        allowed = os.environ.get(ALLOW_PLAINTEXT_ENV_VAR, "").lower() in ("true", "1", "yes")
        if not allowed:
            logger.critical(
                "Refusing plaintext connection",
                extra={"security_event": "plaintext_blocked", "host": config.host},
            )
            raise InsecureTransportError(
                f"AWX_HOST {config.host} uses plain HTTP; credentials would be sent in "
                f"cleartext. Use https:// or set {ALLOW_PLAINTEXT_ENV_VAR}=true."
            )
        logger.warning(
            "Plaintext connection explicitly allowed",
            extra={"security_event": "plaintext_allowed", "host": config.host},
        )

    if config.insecure:
        logger.warning(
            "TLS certificate verification disabled",
            extra={"security_event": "tls_verify_disabled", "host": config.host},
        )


def log_audit_event(
    action: str,
    resource_type: str,
    resource_id: str | None = None,
    result: str | None = None,
    fields: Iterable[str] | None = None,
) -> None:
    """Log a remote mutation as a structured audit event.

    Only field names are recorded, never values.

    Args:
        action: create, update, delete or launch.
        resource_type: Remote resource type.
        resource_id: Remote id, when known.
        result: success, failure or not_found.
        fields: Names of the fields sent.
    """
    logger.info(
        f"Audit: {action} {resource_type}",
        extra={
            "audit": True,
            "action": action,
            "resource_type": resource_type,
            "resource_id": resource_id,
            "result": result,
            "fields": sorted(fields) if fields is not None else None,
        },
    )
