"""Local record of which declared resources exist remotely.

The state file maps each declaration name to its resource type, remote id
and last known attributes. It is the only place an id survives between
runs.

SECURITY: Last known attributes include sensitive values (credential
inputs), so the file is written with mode 0600.
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .models import ManagedResource

logger = logging.getLogger(__name__)

STATE_FILE_MODE = 0o600
STATE_VERSION = 1


class StateError(Exception):
    """Raised when the state file cannot be read or written."""

    pass


class StateEntry(BaseModel):
    """Persisted identity of one resource."""

    model_config = ConfigDict(extra="forbid")

    type: str
    id: str
    attributes: dict[str, Any] = Field(default_factory=dict)


class StateDocument(BaseModel):
    model_config = ConfigDict(extra="forbid")

    version: int = STATE_VERSION
    resources: dict[str, StateEntry] = Field(default_factory=dict)


class StateStore:
    """JSON-file backed state, loaded once and saved explicitly."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._entries: dict[str, StateEntry] = {}

    @property
    def path(self) -> Path:
        return self._path

    @property
    def names(self) -> list[str]:
        return list(self._entries)

    def load(self) -> StateStore:
        """Load the state file. A missing file is an empty state.

        Raises:
            StateError: If the file exists but is unreadable or malformed.
        """
        if not self._path.exists():
            logger.debug("No state file at %s, starting empty", self._path)
            self._entries = {}
            return self

        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except OSError as e:
            raise StateError(f"Failed to read state file {self._path}: {e}") from e
        except json.JSONDecodeError as e:
            raise StateError(f"Invalid JSON in state file {self._path}: {e}") from e

        try:
            document = StateDocument.model_validate(raw)
        except ValidationError as e:
            raise StateError(f"Malformed state file {self._path}: {e}") from e

        if document.version != STATE_VERSION:
            raise StateError(
                f"Unsupported state version {document.version} in {self._path}, "
                f"expected {STATE_VERSION}"
            )

        self._entries = dict(document.resources)
        logger.info("Loaded state for %d resources from %s", len(self._entries), self._path)
        return self

    def get(self, name: str) -> StateEntry | None:
        return self._entries.get(name)

    def restore(self, resource: ManagedResource) -> None:
        """Copy the stored id and attributes onto a resource.

        An entry recorded under a different resource type is ignored; the
        resource is then treated as not yet created.
        """
        entry = self._entries.get(resource.name)
        if entry is None:
            return
        if entry.type != resource.descriptor.kind:
            logger.warning(
                "State entry type mismatch, ignoring",
                extra={
                    "resource": resource.name,
                    "state_type": entry.type,
                    "declared_type": resource.descriptor.kind,
                },
            )
            return
        resource.id = entry.id
        resource.remote_attributes = dict(entry.attributes)

    def record(self, resource: ManagedResource) -> None:
        """Store a resource's identity, or drop it when the resource has no id."""
        if resource.id is None:
            self._entries.pop(resource.name, None)
            return
        self._entries[resource.name] = StateEntry(
            type=resource.descriptor.kind,
            id=resource.id,
            attributes=dict(resource.remote_attributes),
        )

    def remove(self, name: str) -> None:
        self._entries.pop(name, None)

    def save(self) -> None:
        """Write the state file atomically.

        Raises:
            StateError: If the file cannot be written.
        """
        document = StateDocument(resources=self._entries)
        content = json.dumps(document.model_dump(mode="json"), indent=2, sort_keys=True) + "\n"
        tmp = self._path.with_name(f".{self._path.name}.tmp.{uuid.uuid4().hex[:8]}")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(content, encoding="utf-8")
            os.chmod(tmp, STATE_FILE_MODE)
            os.replace(tmp, self._path)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            raise StateError(f"Failed to write state file {self._path}: {e}") from e
        logger.debug("Saved state for %d resources to %s", len(self._entries), self._path)
