"""Structured problem reports collected across an operation.

Operations never stop at the first problem they find. Each one records
everything it observed into a Diagnostics collection and returns it next to
its primary result, so a single pass can report two invalid fields, or a
rejected update alongside a warning about an unknown job status.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum


class Severity(str, Enum):
    """How serious a diagnostic is."""

    ERROR = "error"
    WARNING = "warning"


class ErrorKind(str, Enum):
    """Classification of a failure, used to pick the recovery path.

    VALIDATION: malformed input, detected before any remote call.
    NOT_FOUND: the remote record is absent; callers prune their local id.
    TRANSIENT: network or 5xx-class failure; retried once, only while polling.
    REMOTE_REJECTION: 4xx business-rule failure; reported verbatim.
    TIMEOUT: the polling budget ran out; the job itself is unaffected.
    POLL_CANCELED: the caller stopped waiting.
    JOB_CANCELED / JOB_ERROR / JOB_FAILED: terminal job outcomes.
    """

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"
    REMOTE_REJECTION = "remote_rejection"
    TIMEOUT = "timeout"
    POLL_CANCELED = "poll_canceled"
    JOB_CANCELED = "job_canceled"
    JOB_ERROR = "job_error"
    JOB_FAILED = "job_failed"


@dataclass(frozen=True)
class Diagnostic:
    """A single problem report."""

    severity: Severity
    summary: str
    detail: str = ""
    kind: ErrorKind | None = None
    attribute: str | None = None

    def __str__(self) -> str:
        prefix = f"{self.severity.value}: {self.summary}"
        if self.attribute:
            prefix = f"{prefix} [{self.attribute}]"
        return f"{prefix}: {self.detail}" if self.detail else prefix


@dataclass
class Diagnostics:
    """Ordered accumulator of Diagnostic records."""

    items: list[Diagnostic] = field(default_factory=list)

    def add(self, diagnostic: Diagnostic) -> Diagnostic:
        self.items.append(diagnostic)
        return diagnostic

    def error(
        self,
        summary: str,
        detail: str = "",
        *,
        kind: ErrorKind | None = None,
        attribute: str | None = None,
    ) -> Diagnostic:
        """Record an error-severity diagnostic."""
        return self.add(Diagnostic(Severity.ERROR, summary, detail, kind, attribute))

    def warning(
        self,
        summary: str,
        detail: str = "",
        *,
        kind: ErrorKind | None = None,
        attribute: str | None = None,
    ) -> Diagnostic:
        """Record a warning-severity diagnostic."""
        return self.add(Diagnostic(Severity.WARNING, summary, detail, kind, attribute))

    def extend(self, other: Iterable[Diagnostic]) -> Diagnostics:
        """Append every diagnostic from another collection."""
        self.items.extend(other)
        return self

    @property
    def has_errors(self) -> bool:
        return any(d.severity is Severity.ERROR for d in self.items)

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self.items if d.severity is Severity.ERROR]

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self.items if d.severity is Severity.WARNING]

    def has_kind(self, kind: ErrorKind) -> bool:
        """Check whether any diagnostic carries the given kind."""
        return any(d.kind is kind for d in self.items)

    def kinds(self) -> list[ErrorKind]:
        return [d.kind for d in self.items if d.kind is not None]

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __bool__(self) -> bool:
        return bool(self.items)
