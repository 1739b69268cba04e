"""Reconciliation of a whole declaration file against AWX.

Resources are reconciled one at a time in declaration order; each one is
independent of the others. State is saved after every resource so an
interrupted run never loses the id of a record it created.

Resources still in state but no longer declared are orphans: ``apply``
deletes them after the declared resources are handled.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field

from .client import RemoteClient
from .diagnostics import Diagnostics, ErrorKind
from .engine import Plan, PlanAction, ReconcileResult, ReconciliationEngine
from .launcher import JobLaunchResource
from .models import ManagedResource, TypeDescriptor
from .poller import JobPoller
from .resource_types import JOB_TEMPLATE_LAUNCH, get_descriptor
from .spec_loader import Declaration
from .state import StateStore

logger = logging.getLogger(__name__)


def engine_for(
    descriptor: TypeDescriptor,
    client: RemoteClient,
    poller: JobPoller | None = None,
) -> ReconciliationEngine:
    """Build the engine handling a resource type."""
    if descriptor.kind == JOB_TEMPLATE_LAUNCH.kind:
        return JobLaunchResource(client, poller)
    return ReconciliationEngine(client, descriptor)


@dataclass
class PlannedChange:
    """Planned action for one declared or orphaned resource."""

    name: str
    kind: str
    resource_id: str | None
    plan: Plan


@dataclass
class RunSummary:
    """Outcome of a plan, apply or destroy run."""

    results: list[ReconcileResult] = field(default_factory=list)
    # Set when a canceled wait stopped the run early
    interrupted: bool = False

    @property
    def diagnostics(self) -> Diagnostics:
        combined = Diagnostics()
        for result in self.results:
            combined.extend(result.diagnostics)
        return combined

    @property
    def success(self) -> bool:
        return all(result.success for result in self.results)

    def counts(self) -> dict[str, int]:
        return dict(Counter(result.action.value for result in self.results))


class Reconciler:
    """Drives the engines for every resource of a declaration file."""

    def __init__(
        self,
        client: RemoteClient,
        state: StateStore,
        poller: JobPoller | None = None,
    ) -> None:
        """Initialize the reconciler.

        Args:
            client: Remote capability shared by all engines.
            state: Loaded state store; saved after every change.
            poller: Poller used by launches that wait for completion.
        """
        self._client = client
        self._state = state
        self._poller = poller or JobPoller(client)
        self._engines: dict[str, ReconciliationEngine] = {}

    def plan(self, declarations: list[Declaration]) -> list[PlannedChange]:
        """Compute the planned action of every resource without changing anything."""
        changes: list[PlannedChange] = []
        for resource in self._resources(declarations):
            plan = self._engine(resource.descriptor).plan(resource)
            changes.append(
                PlannedChange(resource.name, resource.descriptor.kind, resource.id, plan)
            )
        for resource in self._orphans(declarations):
            changes.append(
                PlannedChange(
                    resource.name,
                    resource.descriptor.kind,
                    resource.id,
                    Plan(PlanAction.DELETE),
                )
            )
        return changes

    def apply(self, declarations: list[Declaration]) -> RunSummary:
        """Reconcile every declared resource, then delete orphans.

        A wait for a monitored launch that was canceled (SIGINT, SIGTERM)
        stops the run: no further resource is touched and orphans are kept.
        """
        summary = RunSummary()
        for resource in self._resources(declarations):
            engine = self._engine(resource.descriptor)
            result = engine.reconcile(resource)
            self._state.record(resource)
            self._state.save()
            self._log_result(result)
            summary.results.append(result)
            if result.diagnostics.has_kind(ErrorKind.POLL_CANCELED):
                summary.interrupted = True
                logger.warning("Apply interrupted", extra={"resource": resource.name})
                return summary

        for resource in self._orphans(declarations):
            summary.results.append(self._destroy(resource))

        logger.info("Apply complete", extra={"actions": summary.counts()})
        return summary

    def destroy(self, declarations: list[Declaration]) -> RunSummary:
        """Delete every declared and orphaned resource, last declared first."""
        summary = RunSummary()
        resources = self._resources(declarations) + self._orphans(declarations)
        for resource in reversed(resources):
            if resource.id is None:
                continue
            summary.results.append(self._destroy(resource))
        logger.info("Destroy complete", extra={"actions": summary.counts()})
        return summary

    def _destroy(self, resource: ManagedResource) -> ReconcileResult:
        resource_id = resource.id
        diagnostics = self._engine(resource.descriptor).destroy(resource)
        self._state.remove(resource.name)
        self._state.save()
        result = ReconcileResult(
            name=resource.name,
            action=PlanAction.DELETE,
            resource_id=resource_id,
            diagnostics=diagnostics,
        )
        self._log_result(result)
        return result

    def _resources(self, declarations: list[Declaration]) -> list[ManagedResource]:
        resources = []
        for declaration in declarations:
            resource = declaration.to_resource()
            self._state.restore(resource)
            resources.append(resource)
        return resources

    def _orphans(self, declarations: list[Declaration]) -> list[ManagedResource]:
        declared = {declaration.name for declaration in declarations}
        orphans = []
        for name in self._state.names:
            if name in declared:
                continue
            entry = self._state.get(name)
            assert entry is not None
            try:
                descriptor = get_descriptor(entry.type)
            except ValueError:
                logger.warning(
                    "Skipping state entry of unknown type",
                    extra={"resource": name, "state_type": entry.type},
                )
                continue
            orphans.append(
                ManagedResource(
                    name=name,
                    descriptor=descriptor,
                    remote_attributes=dict(entry.attributes),
                    id=entry.id,
                )
            )
        return orphans

    def _engine(self, descriptor: TypeDescriptor) -> ReconciliationEngine:
        engine = self._engines.get(descriptor.kind)
        if engine is None:
            engine = engine_for(descriptor, self._client, self._poller)
            self._engines[descriptor.kind] = engine
        return engine

    def _log_result(self, result: ReconcileResult) -> None:
        extra = {
            "resource": result.name,
            "action": result.action.value,
            "resource_id": result.resource_id,
            "changed_fields": list(result.change_set),
            "pruned": result.pruned,
        }
        if result.success:
            logger.info("Reconciled resource", extra=extra)
        else:
            extra["errors"] = [str(d) for d in result.diagnostics.errors]
            logger.error("Reconciliation failed", extra=extra)
