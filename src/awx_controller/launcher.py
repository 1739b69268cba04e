"""Launching jobs from job templates.

JobLauncher is the imperative entry point: check that the template exists,
then start a job with only the explicitly given overrides.

JobLaunchResource exposes a launch as a declared resource. Creating it
starts a job (and optionally waits for it), reading it reads the job
record, and deleting it only forgets the job locally because job history is
never removed from the service.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .client import IdentifierError, NotFoundError, RemoteClient, RemoteError, parse_identifier
from .diagnostics import Diagnostics, ErrorKind
from .engine import CreateResult, ReadResult, ReconciliationEngine, record_remote_failure
from .poller import JobPoller, PollResult
from .resource_types import JOB_TEMPLATE_LAUNCH
from .security import log_audit_event

logger = logging.getLogger(__name__)


@dataclass
class LaunchResult:
    """Outcome of a launch request. ``job_id`` is None when nothing was started."""

    job_id: str | None
    template_name: str = ""
    diagnostics: Diagnostics = field(default_factory=Diagnostics)

    @property
    def success(self) -> bool:
        return self.job_id is not None and not self.diagnostics.has_errors


class JobLauncher:
    """Starts jobs from job templates."""

    def __init__(self, client: RemoteClient) -> None:
        self._client = client

    def launch(self, template_id: str | int, override_params: Mapping[str, Any]) -> LaunchResult:
        """Launch a job template.

        The template is read first; when it does not exist no launch is
        attempted. Override keys with a None value are treated as unset and
        not transmitted.

        Args:
            template_id: Job template id.
            override_params: Launch-time overrides keyed by AWX field name.

        Returns:
            LaunchResult with the new job id on success.
        """
        diagnostics = Diagnostics()
        try:
            numeric_id = parse_identifier(template_id, "job template")
        except IdentifierError as e:
            diagnostics.error("Invalid identifier", str(e), kind=ErrorKind.VALIDATION)
            return LaunchResult(None, diagnostics=diagnostics)

        try:
            template = self._client.read("job_template", numeric_id)
        except NotFoundError:
            diagnostics.error(
                "Job template not found",
                f"job template {numeric_id} does not exist; nothing was launched",
                kind=ErrorKind.NOT_FOUND,
            )
            return LaunchResult(None, diagnostics=diagnostics)
        except RemoteError as e:
            record_remote_failure(diagnostics, "Unable to read job template", e)
            return LaunchResult(None, diagnostics=diagnostics)

        template_name = str(template.get("name", ""))
        params = {key: value for key, value in override_params.items() if value is not None}
        logger.info(
            "Launching job template",
            extra={
                "template_id": numeric_id,
                "template_name": template_name,
                "override_fields": sorted(params),
            },
        )

        try:
            job_id = self._client.launch(numeric_id, params)
        except RemoteError as e:
            record_remote_failure(
                diagnostics, f"Failed to launch job from job template {template_name!r}", e
            )
            log_audit_event("launch", "job_template", str(numeric_id), "failure", params)
            return LaunchResult(None, template_name, diagnostics)

        log_audit_event("launch", "job_template", str(numeric_id), "success", params)
        logger.info(
            "Job launched",
            extra={"template_id": numeric_id, "job_id": job_id},
        )
        return LaunchResult(str(job_id), template_name, diagnostics)


class JobLaunchResource(ReconciliationEngine):
    """Engine for ``job_template_launch`` declarations.

    Every declarable attribute replaces the launch when changed, so an
    in-place update never happens: a changed declaration launches a new job.
    """

    def __init__(self, client: RemoteClient, poller: JobPoller | None = None) -> None:
        super().__init__(client, JOB_TEMPLATE_LAUNCH)
        self._launcher = JobLauncher(client)
        self._poller = poller or JobPoller(client)

    def create(self, desired: dict[str, Any]) -> CreateResult:
        """Launch the job and, with ``monitor_for_completion``, wait for it.

        A job that was started keeps its id even when it later fails, so the
        record is tracked and a changed declaration replaces it.
        """
        attributes, diagnostics = self.descriptor.validate_attributes(desired)
        if diagnostics.has_errors:
            return CreateResult(None, diagnostics=diagnostics)

        launched = self._launcher.launch(
            attributes["job_template_id"], self.descriptor.build_payload(attributes)
        )
        diagnostics.extend(launched.diagnostics)
        if launched.job_id is None:
            return CreateResult(None, diagnostics=diagnostics)

        if attributes.get("monitor_for_completion"):
            polled = self.monitor(launched.job_id)
            diagnostics.extend(polled.diagnostics)

        read = self.read(launched.job_id, prior=attributes)
        diagnostics.extend(read.diagnostics)
        return CreateResult(launched.job_id, read.remote_attributes or dict(attributes), diagnostics)

    def monitor(self, job_id: str) -> PollResult:
        """Block until the job finishes or the poller gives up."""
        return self._poller.wait_blocking(job_id)

    def read(self, resource_id: str, prior: dict[str, Any] | None = None) -> ReadResult:
        """Read the job record.

        The job record does not echo launch overrides in their declared
        form, so declared attributes keep their last known local value and
        only server-side fields (name, status, failed) are refreshed.
        """
        result = super().read(resource_id, prior=prior)
        if result.remote_attributes is not None and prior is not None:
            for spec in self.descriptor.fields:
                if spec.settable:
                    result.remote_attributes[spec.name] = prior.get(spec.name)
        return result

    def delete(self, resource_id: str) -> Diagnostics:
        """Forget the job locally; the remote job record is kept."""
        logger.info(
            "Forgetting job, remote record retained",
            extra={"resource_type": self.resource_type, "resource_id": resource_id},
        )
        return Diagnostics()
