"""Typed resource descriptions and job state.

These models provide:
1. An explicit per-field descriptor for every resource type
2. Validation at the boundary (all problems reported in one pass)
3. Clean translation between declared attributes and the AWX wire payload
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError, model_validator

from .canonical import canonicalize
from .client import IdentifierError, parse_identifier
from .diagnostics import Diagnostics, ErrorKind

# =============================================================================
# Field descriptors
# =============================================================================


class FieldType(str, Enum):
    """Value type of a declared attribute."""

    STRING = "string"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    INTEGER_SET = "integer_set"
    # Opaque JSON or YAML text, compared and sent in canonical form
    STRUCTURED = "structured"


class FieldMode(str, Enum):
    """Who owns a field's value."""

    REQUIRED = "required"
    OPTIONAL = "optional"
    # Set by the server only
    COMPUTED = "computed"
    # May be declared; otherwise the server default is kept
    OPTIONAL_COMPUTED = "optional_computed"


_ADAPTERS: dict[FieldType, TypeAdapter[Any]] = {
    FieldType.STRING: TypeAdapter(str),
    FieldType.INTEGER: TypeAdapter(int),
    FieldType.BOOLEAN: TypeAdapter(bool),
    FieldType.INTEGER_SET: TypeAdapter(list[int]),
    FieldType.STRUCTURED: TypeAdapter(str | dict[str, Any] | list[Any]),
}


class FieldSpec(BaseModel):
    """Descriptor of one attribute of a resource type."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    type: FieldType = FieldType.STRING
    mode: FieldMode = FieldMode.OPTIONAL
    sensitive: bool = False
    # Key used in the remote payload when it differs from the attribute name
    wire_name: str | None = None
    # String attribute holding a numeric remote id (e.g. "inventory_id")
    numeric_id: bool = False
    # A change cannot be applied in place; the record is replaced
    force_new: bool = False
    # Controls local behaviour only and is never transmitted
    local_only: bool = False
    choices: tuple[Any, ...] | None = None
    description: str = ""

    @property
    def remote_key(self) -> str:
        return self.wire_name or self.name

    @property
    def settable(self) -> bool:
        return self.mode is not FieldMode.COMPUTED

    @property
    def required(self) -> bool:
        return self.mode is FieldMode.REQUIRED

    def coerce(self, value: Any) -> Any:
        """Coerce a declared value to the field's local representation.

        Raises:
            ValidationError: If the value does not fit the field type.
            IdentifierError: If a numeric id field holds a non-numeric value.
        """
        if value is None:
            return None
        if self.numeric_id:
            # Ids are carried as strings locally but must parse strictly
            return str(parse_identifier(value, self.name))

        coerced = _ADAPTERS[self.type].validate_python(value)
        if self.type is FieldType.INTEGER_SET:
            return sorted(set(coerced))
        if self.type is FieldType.STRUCTURED:
            return canonicalize(coerced)
        return coerced

    def to_wire(self, value: Any) -> Any:
        """Translate a coerced local value into its payload form."""
        if value is None:
            return None
        if self.numeric_id:
            return parse_identifier(value, self.name)
        if self.type is FieldType.INTEGER_SET:
            return sorted(set(value))
        if self.type is FieldType.STRUCTURED:
            return canonicalize(value)
        return value

    def from_wire(self, value: Any) -> Any:
        """Translate a remote value into the local representation.

        Remote values are trusted shapes; anything that does not coerce is
        kept as-is so drift is still visible.
        """
        if value is None:
            return None
        if self.numeric_id:
            return str(value)
        if self.type is FieldType.STRUCTURED:
            return canonicalize(value)
        try:
            return self.coerce(value)
        except ValidationError:
            return value


class TypeDescriptor(BaseModel):
    """Descriptor of a resource type: its remote kind and ordered fields."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Declaration type name, e.g. "job_template_launch"
    kind: str
    # Remote collection the records live in, e.g. "job"
    resource_type: str
    fields: tuple[FieldSpec, ...]
    description: str = ""

    @model_validator(mode="after")
    def _unique_names(self) -> TypeDescriptor:
        seen: set[str] = set()
        for spec in self.fields:
            if spec.name in seen:
                raise ValueError(f"Duplicate field '{spec.name}' in {self.resource_type}")
            seen.add(spec.name)
        return self

    @property
    def names(self) -> list[str]:
        return [spec.name for spec in self.fields]

    @property
    def sensitive_names(self) -> frozenset[str]:
        return frozenset(spec.name for spec in self.fields if spec.sensitive)

    @property
    def force_new_names(self) -> tuple[str, ...]:
        return tuple(spec.name for spec in self.fields if spec.force_new)

    def get_field(self, name: str) -> FieldSpec:
        for spec in self.fields:
            if spec.name == name:
                return spec
        raise KeyError(f"{self.resource_type} has no field '{name}'")

    def validate_attributes(self, desired: Mapping[str, Any]) -> tuple[dict[str, Any], Diagnostics]:
        """Validate and coerce declared attributes.

        Unknown names, missing required fields, values for computed-only
        fields and type mismatches are all collected; the returned mapping
        only contains fields that validated.

        Returns:
            Tuple of (coerced attributes, diagnostics).
        """
        diagnostics = Diagnostics()
        known = set(self.names)

        for name in desired:
            if name not in known:
                diagnostics.error(
                    "Unsupported attribute",
                    f"{self.resource_type} has no attribute '{name}'",
                    kind=ErrorKind.VALIDATION,
                    attribute=name,
                )

        clean: dict[str, Any] = {}
        for spec in self.fields:
            value = desired.get(spec.name)
            if value is None:
                if spec.required:
                    diagnostics.error(
                        "Missing required attribute",
                        f"'{spec.name}' is required for {self.resource_type}",
                        kind=ErrorKind.VALIDATION,
                        attribute=spec.name,
                    )
                continue
            if not spec.settable:
                diagnostics.error(
                    "Attribute is computed",
                    f"'{spec.name}' is set by the server and cannot be declared",
                    kind=ErrorKind.VALIDATION,
                    attribute=spec.name,
                )
                continue
            try:
                coerced = spec.coerce(value)
            except IdentifierError as e:
                diagnostics.error(
                    "Invalid identifier", str(e), kind=ErrorKind.VALIDATION, attribute=spec.name
                )
            except ValidationError as e:
                message = "; ".join(err["msg"] for err in e.errors())
                diagnostics.error(
                    "Invalid attribute value",
                    f"'{spec.name}' expects {spec.type.value}: {message}",
                    kind=ErrorKind.VALIDATION,
                    attribute=spec.name,
                )
            else:
                if spec.choices is not None and coerced not in spec.choices:
                    diagnostics.error(
                        "Invalid attribute value",
                        f"'{spec.name}' must be one of {list(spec.choices)}: {coerced!r}",
                        kind=ErrorKind.VALIDATION,
                        attribute=spec.name,
                    )
                    continue
                clean[spec.name] = coerced

        return clean, diagnostics

    def build_payload(
        self,
        attributes: Mapping[str, Any],
        only: Iterable[str] | None = None,
    ) -> dict[str, Any]:
        """Build the remote payload from coerced attributes.

        Fields are emitted in declaration order. Unset values are omitted so
        the remote side keeps its defaults.

        Args:
            attributes: Validated attributes.
            only: Restrict the payload to these attribute names.
        """
        selected = None if only is None else set(only)
        payload: dict[str, Any] = {}
        for spec in self.fields:
            if selected is not None and spec.name not in selected:
                continue
            if not spec.settable or spec.local_only:
                continue
            value = attributes.get(spec.name)
            if value is None:
                continue
            payload[spec.remote_key] = spec.to_wire(value)
        return payload

    def attributes_from_remote(
        self,
        record: Mapping[str, Any],
        prior: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Map a remote record back to attribute names.

        The service masks sensitive values on read and never sees local-only
        ones, so those keep the last known local value from ``prior``.
        """
        prior = prior or {}
        attributes: dict[str, Any] = {}
        for spec in self.fields:
            if spec.sensitive or spec.local_only:
                attributes[spec.name] = prior.get(spec.name)
                continue
            attributes[spec.name] = spec.from_wire(record.get(spec.remote_key))
        return attributes


# =============================================================================
# Managed resources
# =============================================================================


@dataclass
class ManagedResource:
    """One declared instance of a resource type.

    ``id`` is set if and only if the instance corresponds to a record that is
    believed to exist remotely.
    """

    name: str
    descriptor: TypeDescriptor
    desired_attributes: dict[str, Any] = field(default_factory=dict)
    remote_attributes: dict[str, Any] = field(default_factory=dict)
    id: str | None = None

    @property
    def resource_type(self) -> str:
        return self.descriptor.resource_type

    @property
    def exists(self) -> bool:
        return self.id is not None

    def forget(self) -> None:
        """Drop the remote identity after a delete or a NotFound read."""
        self.id = None
        self.remote_attributes = {}


# =============================================================================
# Jobs
# =============================================================================


class JobStatus(str, Enum):
    """AWX job status tokens."""

    NEW = "new"
    PENDING = "pending"
    WAITING = "waiting"
    RUNNING = "running"
    SUCCESSFUL = "successful"
    CANCELED = "canceled"
    ERROR = "error"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @classmethod
    def parse(cls, token: str) -> JobStatus | None:
        """Parse a wire token, returning None for unrecognized values."""
        try:
            return cls(token.strip().lower())
        except (ValueError, AttributeError):
            return None


NON_TERMINAL_STATUSES = frozenset(
    {JobStatus.NEW, JobStatus.PENDING, JobStatus.WAITING, JobStatus.RUNNING}
)
TERMINAL_STATUSES = frozenset(
    {JobStatus.SUCCESSFUL, JobStatus.CANCELED, JobStatus.ERROR, JobStatus.FAILED}
)


@dataclass(frozen=True)
class Job:
    """An observed remote job. Never mutated locally."""

    id: str
    status: JobStatus | None
    raw_status: str = ""
    status_detail: str = ""
