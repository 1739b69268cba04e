"""Declaration file loading with validation.

SECURITY: File size is checked before reading and YAML is parsed with
safe_load only. Structural validation happens here; attribute values are
validated per resource type by the engine.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .config import MAX_DECLARATION_FILE_SIZE_BYTES
from .models import ManagedResource
from .resource_types import RESOURCE_TYPES, get_descriptor

logger = logging.getLogger(__name__)


class SpecLoadError(Exception):
    """Raised when declaration loading or validation fails."""

    pass


class Declaration(BaseModel):
    """One declared resource."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=128, pattern=r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")
    type: str
    attributes: dict[str, Any] = Field(default_factory=dict)

    @field_validator("type")
    @classmethod
    def _known_type(cls, v: str) -> str:
        if v not in RESOURCE_TYPES:
            raise ValueError(f"unknown resource type '{v}', expected one of {sorted(RESOURCE_TYPES)}")
        return v

    def to_resource(self) -> ManagedResource:
        """Build the managed resource this declaration describes."""
        return ManagedResource(
            name=self.name,
            descriptor=get_descriptor(self.type),
            desired_attributes=dict(self.attributes),
        )


class DeclarationFile(BaseModel):
    """Top-level content of a declaration file."""

    model_config = ConfigDict(extra="forbid")

    resources: list[Declaration] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_names(self) -> DeclarationFile:
        seen: set[str] = set()
        duplicates = []
        for declaration in self.resources:
            if declaration.name in seen:
                duplicates.append(declaration.name)
            seen.add(declaration.name)
        if duplicates:
            raise ValueError(f"duplicate resource names: {sorted(set(duplicates))}")
        return self


def load_declarations(path: Path) -> list[Declaration]:
    """Load and validate a declaration file.

    Both a flat ``resources:`` document and a Kubernetes-style wrapper with
    ``apiVersion`` and ``spec`` are accepted.

    Args:
        path: YAML file to load.

    Returns:
        Declarations in file order.

    Raises:
        SpecLoadError: If the file cannot be read or fails validation.
    """
    if not path.exists():
        raise SpecLoadError(f"Declaration file not found: {path}")

    # SECURITY: Check file size before reading to prevent DoS
    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise SpecLoadError(f"Failed to stat declaration file {path}: {e}") from e

    if file_size > MAX_DECLARATION_FILE_SIZE_BYTES:
        raise SpecLoadError(
            f"Declaration file exceeds maximum size of {MAX_DECLARATION_FILE_SIZE_BYTES} bytes: {path}"
        )

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecLoadError(f"Failed to read declaration file {path}: {e}") from e

    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Invalid YAML in {path}: {e}") from e

    if raw_data is None:
        raw_data = {}
    if not isinstance(raw_data, dict):
        raise SpecLoadError(f"Declaration file must contain a YAML mapping: {path}")

    if "apiVersion" in raw_data and "spec" in raw_data:
        data = raw_data.get("spec") or {}
        if not isinstance(data, dict):
            raise SpecLoadError(f"Spec section must be a mapping: {path}")
    else:
        data = raw_data

    try:
        declarations = DeclarationFile.model_validate(data)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            errors.append(f"  - {loc}: {error['msg']}")
        error_list = "\n".join(errors)
        raise SpecLoadError(f"Validation failed for {path}:\n{error_list}") from e

    logger.info("Loaded %d declarations from %s", len(declarations.resources), path)
    return declarations.resources
