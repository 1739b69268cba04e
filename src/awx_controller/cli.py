"""awxctl: declarative management of AWX job templates, credentials and launches.

Usage:
    awxctl plan resources.yaml      # Show what apply would change
    awxctl apply resources.yaml     # Reconcile AWX with the declarations
    awxctl destroy resources.yaml   # Delete everything the state tracks
    awxctl launch 42 --limit web    # Launch a job template and wait
    awxctl wait 1234                # Wait for a running job

Connection settings come from the environment (AWX_HOST, AWX_TOKEN, ...).

Exit codes: 0 success, 1 errors reported, 2 configuration error.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import click

from .client import RemoteClient
from .config import Config, ConfigurationError, PollerSettings
from .diagnostics import Diagnostics, Severity
from .engine import PlanAction
from .launcher import JobLauncher
from .main import connect, setup_logging
from .poller import JobPoller, PollResult
from .reconciler import PlannedChange, Reconciler, RunSummary
from .resource_types import JOB_TEMPLATE_LAUNCH, JOB_TYPES, VERBOSITY_LEVELS
from .security import InsecureTransportError
from .spec_loader import Declaration, SpecLoadError, load_declarations
from .state import StateError, StateStore

EXIT_ERRORS = 1
EXIT_CONFIG_ERROR = 2

PLAN_SYMBOLS: dict[PlanAction, str] = {
    PlanAction.CREATE: "+",
    PlanAction.UPDATE: "~",
    PlanAction.REPLACE: "-/+",
    PlanAction.DELETE: "-",
    PlanAction.NOOP: "=",
}


# =============================================================================
# Helpers
# =============================================================================


class Session:
    """Lazily resolved configuration and client for one invocation.

    Tests pre-populate ``config`` and ``client`` through ``obj``.
    """

    def __init__(self, config: Config | None = None, client: RemoteClient | None = None) -> None:
        self._config = config
        self._client = client

    @property
    def config(self) -> Config:
        if self._config is None:
            try:
                self._config = Config.from_env()
            except ConfigurationError as e:
                click.secho(f"Configuration error: {e}", fg="red", err=True)
                sys.exit(EXIT_CONFIG_ERROR)
        return self._config

    @property
    def client(self) -> RemoteClient:
        if self._client is None:
            try:
                self._client = connect(self.config)
            except InsecureTransportError as e:
                click.secho(f"Configuration error: {e}", fg="red", err=True)
                sys.exit(EXIT_CONFIG_ERROR)
        return self._client

    def poller(self, settings: PollerSettings | None = None) -> JobPoller:
        return JobPoller(self.client, settings or self.config.poller_settings)

    def state(self, path: Path | None) -> StateStore:
        try:
            return StateStore(path or self.config.state_file).load()
        except StateError as e:
            raise click.ClickException(str(e)) from e


def echo_diagnostics(diagnostics: Diagnostics) -> None:
    """Print diagnostics to stderr, errors in red and warnings in yellow."""
    for diagnostic in diagnostics:
        color = "red" if diagnostic.severity is Severity.ERROR else "yellow"
        click.secho(str(diagnostic), fg=color, err=True)


def load(path: Path) -> list[Declaration]:
    try:
        return load_declarations(path)
    except SpecLoadError as e:
        raise click.ClickException(str(e)) from e


def finish(diagnostics: Diagnostics) -> None:
    echo_diagnostics(diagnostics)
    if diagnostics.has_errors:
        sys.exit(EXIT_ERRORS)


def describe_change(change: PlannedChange) -> str:
    plan = change.plan
    line = f"{PLAN_SYMBOLS[plan.action]} {change.name} ({change.kind})"
    if change.resource_id is not None:
        line += f" id={change.resource_id}"
    if plan.change_set:
        line += f" changed: {', '.join(plan.change_set)}"
    if plan.pruned:
        line += " [no longer exists remotely]"
    return line


def describe_summary(verb: str, summary: RunSummary) -> str:
    counts = summary.counts()
    parts = [f"{counts[action]} {action}" for action in sorted(counts)]
    return f"{verb}: {', '.join(parts) if parts else 'nothing to do'}"


def describe_poll(result: PollResult) -> str:
    status = result.status.value if result.status else "unknown"
    return (
        f"Job {result.job_id}: {result.outcome.value} (status {status}, "
        f"{result.status_reads} status reads, {result.elapsed_seconds:.1f}s)"
    )


state_option = click.option(
    "--state",
    "state_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="State file (default: $STATE_FILE or awx-state.json)",
)
declarations_argument = click.argument(
    "declarations",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)


# =============================================================================
# Main CLI
# =============================================================================


@click.group()
@click.version_option(version="0.1.0", prog_name="awxctl")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Log level",
)
@click.option("--log-json/--log-text", default=False, help="Emit JSON log lines")
@click.pass_context
def cli(ctx: click.Context, log_level: str, log_json: bool) -> None:
    """Declarative controller for AWX / Ansible Tower.

    \b
    Quick start:
      export AWX_HOST=https://awx.example.com AWX_TOKEN=...
      awxctl plan resources.yaml
      awxctl apply resources.yaml
    """
    setup_logging(log_level, json_output=log_json)
    obj = ctx.obj or {}
    ctx.obj = Session(obj.get("config"), obj.get("client"))


@cli.command()
@declarations_argument
@state_option
@click.pass_obj
def plan(session: Session, declarations: Path, state_path: Path | None) -> None:
    """Show the changes apply would make."""
    resources = load(declarations)
    reconciler = Reconciler(session.client, session.state(state_path))
    changes = reconciler.plan(resources)

    diagnostics = Diagnostics()
    counts: dict[str, int] = {}
    for change in changes:
        click.echo(describe_change(change))
        diagnostics.extend(change.plan.diagnostics)
        counts[change.plan.action.value] = counts.get(change.plan.action.value, 0) + 1

    parts = [f"{counts[action]} {action}" for action in sorted(counts)]
    click.echo(f"Plan: {', '.join(parts) if parts else 'nothing declared'}")
    finish(diagnostics)


@cli.command()
@declarations_argument
@state_option
@click.pass_obj
def apply(session: Session, declarations: Path, state_path: Path | None) -> None:
    """Reconcile AWX with the declarations."""
    resources = load(declarations)
    reconciler = Reconciler(session.client, session.state(state_path), session.poller())
    try:
        summary = reconciler.apply(resources)
    except StateError as e:
        raise click.ClickException(str(e)) from e

    for result in summary.results:
        mark = click.style("ok", fg="green") if result.success else click.style("error", fg="red")
        click.echo(f"{PLAN_SYMBOLS[result.action]} {result.name}: {result.action.value} {mark}")
    click.echo(describe_summary("Apply", summary))
    if summary.interrupted:
        click.secho("Apply interrupted; remaining resources were not reconciled", fg="yellow")
    finish(summary.diagnostics)


@cli.command()
@declarations_argument
@state_option
@click.option("--auto-approve", is_flag=True, help="Skip the confirmation prompt")
@click.pass_obj
def destroy(
    session: Session, declarations: Path, state_path: Path | None, auto_approve: bool
) -> None:
    """Delete every resource tracked in state."""
    resources = load(declarations)
    store = session.state(state_path)
    if not store.names:
        click.echo("Nothing to destroy")
        return
    if not auto_approve:
        click.confirm(f"Destroy {len(store.names)} resources?", abort=True)

    reconciler = Reconciler(session.client, store)
    try:
        summary = reconciler.destroy(resources)
    except StateError as e:
        raise click.ClickException(str(e)) from e

    for result in summary.results:
        click.echo(f"- {result.name} (id={result.resource_id})")
    click.echo(describe_summary("Destroy", summary))
    finish(summary.diagnostics)


@cli.command()
@click.argument("template_id")
@click.option("--job-type", type=click.Choice(JOB_TYPES), help="Job type override")
@click.option("--limit", help="Host pattern limit")
@click.option("--extra-vars", help="Extra variables as JSON or YAML")
@click.option("--job-tags", help="Tags to run")
@click.option("--skip-tags", help="Tags to skip")
@click.option("--verbosity", type=click.Choice([str(v) for v in VERBOSITY_LEVELS]))
@click.option("--forks", type=int, help="Parallel processes")
@click.option("--timeout", "job_timeout", type=int, help="Job timeout in seconds (AWX side)")
@click.option("--diff-mode/--no-diff-mode", default=None, help="Show changes")
@click.option("--credential", "credential_ids", type=int, multiple=True, help="Credential id")
@click.option("--execution-environment", "execution_environment_id", type=int)
@click.option("--wait/--no-wait", default=True, show_default=True, help="Wait for the job")
@click.pass_obj
def launch(
    session: Session,
    template_id: str,
    wait: bool,
    **overrides: Any,
) -> None:
    """Launch a job from a job template."""
    attributes: dict[str, Any] = {"job_template_id": template_id}
    if overrides.get("verbosity") is not None:
        overrides["verbosity"] = int(overrides["verbosity"])
    overrides["timeout"] = overrides.pop("job_timeout")
    overrides["credential_ids"] = list(overrides["credential_ids"]) or None
    attributes.update({k: v for k, v in overrides.items() if v is not None})

    validated, diagnostics = JOB_TEMPLATE_LAUNCH.validate_attributes(attributes)
    if diagnostics.has_errors:
        finish(diagnostics)

    launcher = JobLauncher(session.client)
    result = launcher.launch(
        validated["job_template_id"], JOB_TEMPLATE_LAUNCH.build_payload(validated)
    )
    diagnostics.extend(result.diagnostics)
    if result.job_id is None:
        finish(diagnostics)
        return

    click.echo(f"Launched job {result.job_id} from {result.template_name or template_id}")
    if wait:
        polled = session.poller().wait_blocking(result.job_id)
        click.echo(describe_poll(polled))
        diagnostics.extend(polled.diagnostics)
    finish(diagnostics)


@cli.command(name="wait")
@click.argument("job_id")
@click.option("--timeout", type=float, help="Seconds to wait (default: $JOB_TIMEOUT)")
@click.option("--poll-interval", type=float, help="Seconds between status reads")
@click.option("--initial-delay", type=float, default=0.0, show_default=True)
@click.pass_obj
def wait_job(
    session: Session,
    job_id: str,
    timeout: float | None,
    poll_interval: float | None,
    initial_delay: float,
) -> None:
    """Wait for a job to finish and report how it ended."""
    defaults = session.config.poller_settings
    try:
        settings = PollerSettings(
            poll_interval=poll_interval if poll_interval is not None else defaults.poll_interval,
            initial_delay=initial_delay,
            timeout=timeout if timeout is not None else defaults.timeout,
            retry_backoff=defaults.retry_backoff,
        )
    except ConfigurationError as e:
        raise click.BadParameter(str(e)) from e

    polled = session.poller(settings).wait_blocking(job_id)
    click.echo(describe_poll(polled))
    finish(polled.diagnostics)


def main() -> None:
    """Entry point for the awxctl console script."""
    cli()


if __name__ == "__main__":
    main()
