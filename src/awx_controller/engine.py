"""Create/read/update/delete for one managed resource.

The engine turns a desired-attribute snapshot plus the last known remote
state into the smallest set of remote mutations:

- no id: create, then read back so server-side defaults are visible
- id but the record is gone: prune the id and create again
- id and drift: update only the changed fields
- id and a changed replace-only field: delete, then create

Remote failures never propagate as exceptions. Every public operation
returns its diagnostics next to its result; retrying a failed operation is
the caller's decision.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .change_tracker import FieldChangeSet, diff, force_new_fields
from .client import (
    IdentifierError,
    NotFoundError,
    RemoteClient,
    RemoteError,
    TransientError,
    parse_identifier,
)
from .diagnostics import Diagnostics, ErrorKind
from .models import ManagedResource, TypeDescriptor
from .security import log_audit_event, redact_payload

logger = logging.getLogger(__name__)


class PlanAction(str, Enum):
    """What reconciling a resource will do."""

    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    NOOP = "noop"
    DELETE = "delete"


@dataclass
class CreateResult:
    """Outcome of creating a record."""

    id: str | None
    remote_attributes: dict[str, Any] = field(default_factory=dict)
    diagnostics: Diagnostics = field(default_factory=Diagnostics)

    @property
    def success(self) -> bool:
        return self.id is not None and not self.diagnostics.has_errors


@dataclass
class ReadResult:
    """Outcome of reading a record.

    ``not_found`` is set when the record is absent; it is not an error and
    tells the caller to prune its id.
    """

    remote_attributes: dict[str, Any] | None
    not_found: bool = False
    diagnostics: Diagnostics = field(default_factory=Diagnostics)


@dataclass
class Plan:
    """Planned action for one resource, computed without remote mutation."""

    action: PlanAction
    change_set: FieldChangeSet = field(default_factory=FieldChangeSet)
    current: dict[str, Any] | None = None
    pruned: bool = False
    diagnostics: Diagnostics = field(default_factory=Diagnostics)


@dataclass
class ReconcileResult:
    """Outcome of reconciling one resource."""

    name: str
    action: PlanAction
    change_set: FieldChangeSet = field(default_factory=FieldChangeSet)
    resource_id: str | None = None
    pruned: bool = False
    diagnostics: Diagnostics = field(default_factory=Diagnostics)

    @property
    def success(self) -> bool:
        return not self.diagnostics.has_errors


def record_remote_failure(diagnostics: Diagnostics, summary: str, error: RemoteError) -> None:
    """Translate a RemoteError into a diagnostic with the matching kind."""
    if isinstance(error, NotFoundError):
        kind = ErrorKind.NOT_FOUND
    elif isinstance(error, TransientError):
        kind = ErrorKind.TRANSIENT
    else:
        kind = ErrorKind.REMOTE_REJECTION
    detail = error.detail or str(error)
    diagnostics.error(summary, detail, kind=kind)


class ReconciliationEngine:
    """Reconciles instances of one resource type against the remote service.

    The engine holds no state between calls besides its collaborators.
    Callers must serialize operations on the same id.
    """

    def __init__(self, client: RemoteClient, descriptor: TypeDescriptor) -> None:
        """Initialize the engine.

        Args:
            client: Remote capability used for every call.
            descriptor: Type descriptor of the resources handled.
        """
        self._client = client
        self._descriptor = descriptor

    @property
    def descriptor(self) -> TypeDescriptor:
        return self._descriptor

    @property
    def resource_type(self) -> str:
        return self._descriptor.resource_type

    # -------------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------------

    def create(self, desired: dict[str, Any]) -> CreateResult:
        """Create a record from desired attributes.

        On success the record is read back immediately so the returned
        attributes include server-assigned values.
        """
        attributes, diagnostics = self._descriptor.validate_attributes(desired)
        if diagnostics.has_errors:
            return CreateResult(None, diagnostics=diagnostics)

        payload = self._descriptor.build_payload(attributes)
        logger.info(
            "Creating %s",
            self.resource_type,
            extra={"payload": redact_payload(payload, self._sensitive_wire_keys())},
        )

        try:
            new_id, body = self._client.create(self.resource_type, payload)
        except RemoteError as e:
            record_remote_failure(diagnostics, f"Unable to create {self._descriptor.kind}", e)
            log_audit_event("create", self.resource_type, result="failure", fields=payload)
            return CreateResult(None, diagnostics=diagnostics)

        resource_id = str(new_id)
        log_audit_event("create", self.resource_type, resource_id, "success", fields=payload)

        read = self.read(resource_id, prior=attributes)
        diagnostics.extend(read.diagnostics)
        if read.not_found:
            diagnostics.error(
                f"Created {self._descriptor.kind} disappeared",
                f"{self.resource_type} {resource_id} was not found right after creation",
                kind=ErrorKind.NOT_FOUND,
            )
            return CreateResult(None, diagnostics=diagnostics)
        if read.remote_attributes is None:
            # The record exists; fall back to what the create call echoed
            remote = self._descriptor.attributes_from_remote(body, prior=attributes)
            return CreateResult(resource_id, remote, diagnostics)
        return CreateResult(resource_id, read.remote_attributes, diagnostics)

    def read(self, resource_id: str, prior: dict[str, Any] | None = None) -> ReadResult:
        """Read a record.

        Args:
            resource_id: Identifier as carried locally.
            prior: Last known attributes, used for values the service masks.
        """
        diagnostics = Diagnostics()
        try:
            numeric_id = parse_identifier(resource_id, self.resource_type)
        except IdentifierError as e:
            diagnostics.error("Invalid identifier", str(e), kind=ErrorKind.VALIDATION)
            return ReadResult(None, diagnostics=diagnostics)

        try:
            record = self._client.read(self.resource_type, numeric_id)
        except NotFoundError:
            logger.info(
                "Record not found",
                extra={"resource_type": self.resource_type, "resource_id": resource_id},
            )
            diagnostics.warning(
                f"{self._descriptor.kind} not found",
                f"{self.resource_type} {resource_id} no longer exists and will be recreated",
                kind=ErrorKind.NOT_FOUND,
            )
            return ReadResult(None, not_found=True, diagnostics=diagnostics)
        except RemoteError as e:
            record_remote_failure(diagnostics, f"Unable to read {self._descriptor.kind}", e)
            return ReadResult(None, diagnostics=diagnostics)

        return ReadResult(
            self._descriptor.attributes_from_remote(record, prior=prior),
            diagnostics=diagnostics,
        )

    def update(
        self,
        resource_id: str,
        change_set: FieldChangeSet,
        desired: dict[str, Any],
    ) -> Diagnostics:
        """Send the changed fields of a record.

        An empty change set issues no remote call. The record's existence is
        verified first; a missing record yields a NOT_FOUND error instead of
        a write.
        """
        if change_set.is_empty:
            logger.debug("No changes for %s %s", self.resource_type, resource_id)
            return Diagnostics()

        attributes, diagnostics = self._descriptor.validate_attributes(desired)
        if diagnostics.has_errors:
            return diagnostics

        current = self.read(resource_id)
        diagnostics.extend(current.diagnostics)
        if current.not_found:
            diagnostics.error(
                f"Unable to update {self._descriptor.kind}",
                f"{self.resource_type} {resource_id} does not exist",
                kind=ErrorKind.NOT_FOUND,
            )
            return diagnostics
        if current.diagnostics.has_errors:
            return diagnostics

        numeric_id = parse_identifier(resource_id, self.resource_type)
        payload = self._descriptor.build_payload(attributes, only=change_set)
        logger.info(
            "Updating %s %s",
            self.resource_type,
            resource_id,
            extra={
                "changed_fields": list(change_set),
                "payload": redact_payload(payload, self._sensitive_wire_keys()),
            },
        )

        try:
            self._client.update(self.resource_type, numeric_id, payload)
        except RemoteError as e:
            record_remote_failure(diagnostics, f"Unable to update {self._descriptor.kind}", e)
            log_audit_event("update", self.resource_type, resource_id, "failure", payload)
            return diagnostics

        log_audit_event("update", self.resource_type, resource_id, "success", payload)
        return diagnostics

    def delete(self, resource_id: str) -> Diagnostics:
        """Delete a record. A record that is already gone counts as deleted."""
        diagnostics = Diagnostics()
        try:
            numeric_id = parse_identifier(resource_id, self.resource_type)
        except IdentifierError as e:
            diagnostics.error("Invalid identifier", str(e), kind=ErrorKind.VALIDATION)
            return diagnostics

        try:
            self._client.delete(self.resource_type, numeric_id)
        except NotFoundError:
            logger.info(
                "Record already deleted",
                extra={"resource_type": self.resource_type, "resource_id": resource_id},
            )
            log_audit_event("delete", self.resource_type, resource_id, "not_found")
            return diagnostics
        except RemoteError as e:
            record_remote_failure(diagnostics, f"Unable to delete {self._descriptor.kind}", e)
            log_audit_event("delete", self.resource_type, resource_id, "failure")
            return diagnostics

        log_audit_event("delete", self.resource_type, resource_id, "success")
        return diagnostics

    # -------------------------------------------------------------------------
    # Resource-level orchestration
    # -------------------------------------------------------------------------

    def plan(self, resource: ManagedResource) -> Plan:
        """Decide what reconciling a resource requires, without mutating anything."""
        attributes, diagnostics = self._descriptor.validate_attributes(resource.desired_attributes)
        if diagnostics.has_errors:
            return Plan(PlanAction.NOOP, diagnostics=diagnostics)

        if resource.id is None:
            return Plan(PlanAction.CREATE, diagnostics=diagnostics)

        read = self.read(resource.id, prior=resource.remote_attributes)
        diagnostics.extend(read.diagnostics)
        if read.not_found:
            return Plan(PlanAction.CREATE, pruned=True, diagnostics=diagnostics)
        if read.remote_attributes is None:
            return Plan(PlanAction.NOOP, diagnostics=diagnostics)

        change_set = diff(read.remote_attributes, attributes, self._descriptor)
        if change_set.is_empty:
            action = PlanAction.NOOP
        elif change_set.has_any(*self._descriptor.force_new_names):
            action = PlanAction.REPLACE
        else:
            action = PlanAction.UPDATE
        return Plan(action, change_set, read.remote_attributes, diagnostics=diagnostics)

    def reconcile(self, resource: ManagedResource) -> ReconcileResult:
        """Bring one resource in line with its desired attributes.

        Updates ``resource.id`` and ``resource.remote_attributes`` in place.
        """
        plan = self.plan(resource)
        result = ReconcileResult(
            name=resource.name,
            action=plan.action,
            change_set=plan.change_set,
            resource_id=resource.id,
            pruned=plan.pruned,
            diagnostics=plan.diagnostics,
        )
        if plan.diagnostics.has_errors:
            return result

        match plan.action:
            case PlanAction.NOOP:
                if plan.current is not None:
                    resource.remote_attributes = plan.current

            case PlanAction.CREATE:
                if plan.pruned:
                    resource.forget()
                self._create_into(resource, result)

            case PlanAction.UPDATE:
                assert resource.id is not None
                diagnostics = self.update(resource.id, plan.change_set, resource.desired_attributes)
                result.diagnostics.extend(diagnostics)
                if diagnostics.has_kind(ErrorKind.NOT_FOUND):
                    resource.forget()
                elif not diagnostics.has_errors:
                    self._refresh(resource, result)

            case PlanAction.REPLACE:
                assert resource.id is not None
                logger.info(
                    "Replacing %s %s",
                    self.resource_type,
                    resource.id,
                    extra={"force_new_fields": force_new_fields(plan.change_set, self._descriptor)},
                )
                diagnostics = self.delete(resource.id)
                result.diagnostics.extend(diagnostics)
                if not diagnostics.has_errors:
                    resource.forget()
                    self._create_into(resource, result)

        result.resource_id = resource.id
        return result

    def destroy(self, resource: ManagedResource) -> Diagnostics:
        """Delete a resource's record and clear its local identity."""
        if resource.id is None:
            return Diagnostics()
        diagnostics = self.delete(resource.id)
        resource.forget()
        return diagnostics

    def _create_into(self, resource: ManagedResource, result: ReconcileResult) -> None:
        created = self.create(resource.desired_attributes)
        result.diagnostics.extend(created.diagnostics)
        if created.id is not None:
            resource.id = created.id
            resource.remote_attributes = created.remote_attributes

    def _refresh(self, resource: ManagedResource, result: ReconcileResult) -> None:
        assert resource.id is not None
        prior = {**resource.remote_attributes, **self._validated(resource)}
        read = self.read(resource.id, prior=prior)
        result.diagnostics.extend(read.diagnostics)
        if read.not_found:
            resource.forget()
        elif read.remote_attributes is not None:
            resource.remote_attributes = read.remote_attributes

    def _validated(self, resource: ManagedResource) -> dict[str, Any]:
        attributes, _ = self._descriptor.validate_attributes(resource.desired_attributes)
        return attributes

    def _sensitive_wire_keys(self) -> set[str]:
        return {
            self._descriptor.get_field(name).remote_key
            for name in self._descriptor.sensitive_names
        }
