"""Wait for a launched job to reach a terminal status.

The poller is a cooperative loop with three suspension points: the initial
delay, the wait between status reads and the backoff before retrying a
failed read. The cancellation event is honoured at each of them; a status
read in progress is not interrupted.

Every way the wait can end has its own PollOutcome. A job that failed, a
job that was canceled remotely, a poll that ran out of time and a poll the
caller aborted are never reported as the same thing.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from .client import (
    IdentifierError,
    NotFoundError,
    RemoteClient,
    RemoteError,
    TransientError,
    parse_identifier,
)
from .config import PollerSettings
from .diagnostics import Diagnostics, ErrorKind
from .models import Job, JobStatus

logger = logging.getLogger(__name__)

# A failed status read is retried once; the second failure ends the wait
MAX_STATUS_READ_ATTEMPTS = 2


class PollOutcome(str, Enum):
    """How a wait for a job ended."""

    SUCCESS = "success"
    JOB_CANCELED = "job_canceled"
    JOB_ERROR = "job_error"
    JOB_FAILED = "job_failed"
    TIMEOUT = "timeout"
    POLL_CANCELED = "poll_canceled"
    TRANSIENT_ERROR = "transient_error"
    NOT_FOUND = "not_found"
    REMOTE_REJECTION = "remote_rejection"
    INVALID_JOB_ID = "invalid_job_id"


@dataclass
class PollResult:
    """Result of waiting for a job."""

    job_id: str
    outcome: PollOutcome
    status: JobStatus | None = None
    detail: str = ""
    status_reads: int = 0
    non_terminal_reads: int = 0
    elapsed_seconds: float = 0.0
    # Last observed job record
    job: Job | None = None
    diagnostics: Diagnostics = field(default_factory=Diagnostics)

    @property
    def success(self) -> bool:
        return self.outcome is PollOutcome.SUCCESS


class _WaitEnded(Exception):
    """Internal signal carrying the outcome that ends the wait."""

    def __init__(self, outcome: PollOutcome, summary: str = "", detail: str = "") -> None:
        super().__init__(summary)
        self.outcome = outcome
        self.summary = summary
        self.detail = detail


_OUTCOME_KINDS: dict[PollOutcome, ErrorKind] = {
    PollOutcome.JOB_CANCELED: ErrorKind.JOB_CANCELED,
    PollOutcome.JOB_ERROR: ErrorKind.JOB_ERROR,
    PollOutcome.JOB_FAILED: ErrorKind.JOB_FAILED,
    PollOutcome.TIMEOUT: ErrorKind.TIMEOUT,
    PollOutcome.POLL_CANCELED: ErrorKind.POLL_CANCELED,
    PollOutcome.TRANSIENT_ERROR: ErrorKind.TRANSIENT,
    PollOutcome.NOT_FOUND: ErrorKind.NOT_FOUND,
    PollOutcome.REMOTE_REJECTION: ErrorKind.REMOTE_REJECTION,
    PollOutcome.INVALID_JOB_ID: ErrorKind.VALIDATION,
}


def classify(status: JobStatus | None) -> PollOutcome | None:
    """Map a job status to the outcome it ends the wait with.

    Returns None for statuses that keep the wait going, including
    unrecognized ones.
    """
    match status:
        case JobStatus.SUCCESSFUL:
            return PollOutcome.SUCCESS
        case JobStatus.CANCELED:
            return PollOutcome.JOB_CANCELED
        case JobStatus.ERROR:
            return PollOutcome.JOB_ERROR
        case JobStatus.FAILED:
            return PollOutcome.JOB_FAILED
        case JobStatus.NEW | JobStatus.PENDING | JobStatus.WAITING | JobStatus.RUNNING | None:
            return None


class JobPoller:
    """Polls one job at a time until it finishes, times out or is canceled.

    A poller holds no state between waits, so one instance can serve any
    number of sequential or concurrent waits.
    """

    def __init__(
        self,
        client: RemoteClient,
        settings: PollerSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the poller.

        Args:
            client: Remote capability used for status reads.
            settings: Delays, interval, timeout and retry backoff.
            clock: Monotonic time source in seconds.
        """
        self._client = client
        self._settings = settings or PollerSettings()
        self._clock = clock

    @property
    def settings(self) -> PollerSettings:
        return self._settings

    async def wait(self, job_id: str, cancel: asyncio.Event | None = None) -> PollResult:
        """Wait for a job to reach a terminal status.

        Args:
            job_id: Identifier of the job as carried locally.
            cancel: Event that aborts the wait at the next suspension point.

        Returns:
            PollResult with the outcome and the status-read counters.
        """
        cancel = cancel or asyncio.Event()
        result = PollResult(job_id=job_id, outcome=PollOutcome.TIMEOUT)
        started = self._clock()
        deadline = started + self._settings.timeout

        try:
            numeric_id = parse_identifier(job_id, "job")
            logger.info(
                "Waiting for job",
                extra={
                    "job_id": job_id,
                    "initial_delay_seconds": self._settings.initial_delay,
                    "poll_interval_seconds": self._settings.poll_interval,
                    "timeout_seconds": self._settings.timeout,
                },
            )
            await self._pause(self._settings.initial_delay, cancel, deadline)
            await self._poll(numeric_id, cancel, deadline, result)
        except IdentifierError as e:
            self._finish(result, _WaitEnded(PollOutcome.INVALID_JOB_ID, "Invalid job id", str(e)))
        except _WaitEnded as ended:
            self._finish(result, ended)

        result.elapsed_seconds = self._clock() - started
        log = logger.info if result.success else logger.warning
        log(
            "Stopped waiting for job",
            extra={
                "job_id": job_id,
                "outcome": result.outcome.value,
                "status": result.status.value if result.status else None,
                "status_reads": result.status_reads,
                "elapsed_seconds": round(result.elapsed_seconds, 3),
            },
        )
        return result

    def wait_blocking(self, job_id: str) -> PollResult:
        """Run ``wait`` to completion from synchronous code.

        SIGINT and SIGTERM cancel the wait instead of interrupting a status
        read, so the result is still classified as POLL_CANCELED.
        """

        async def _wait() -> PollResult:
            cancel = asyncio.Event()
            loop = asyncio.get_running_loop()

            def signal_handler(sig: signal.Signals) -> None:
                logger.info("Received signal", extra={"signal": sig.name, "job_id": job_id})
                cancel.set()

            for sig in (signal.SIGTERM, signal.SIGINT):
                try:
                    loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))
                except (NotImplementedError, RuntimeError):
                    # Not the main thread, or a platform without loop signal support
                    pass
            return await self.wait(job_id, cancel)

        return asyncio.run(_wait())

    async def _poll(
        self,
        numeric_id: int,
        cancel: asyncio.Event,
        deadline: float,
        result: PollResult,
    ) -> None:
        unknown_tokens: set[str] = set()

        while True:
            if self._clock() >= deadline:
                status = result.status.value if result.status else "unknown"
                raise _WaitEnded(
                    PollOutcome.TIMEOUT,
                    "Timed out waiting for job",
                    f"job {result.job_id} was still {status} after "
                    f"{self._settings.timeout}s; the job itself was left untouched",
                )

            raw_status, detail = await self._read_status(numeric_id, cancel, deadline, result)
            status = JobStatus.parse(raw_status)
            result.status = status
            result.detail = detail
            result.job = Job(result.job_id, status, raw_status, detail)

            if status is None and raw_status not in unknown_tokens:
                unknown_tokens.add(raw_status)
                result.diagnostics.warning(
                    "Unrecognized job status",
                    f"job {result.job_id} reported status {raw_status!r}; still waiting",
                )

            outcome = classify(status)
            if outcome is PollOutcome.SUCCESS:
                raise _WaitEnded(outcome)
            if outcome is not None:
                raise _WaitEnded(outcome, _TERMINAL_SUMMARIES[outcome], detail)

            result.non_terminal_reads += 1
            logger.debug(
                "Job still running",
                extra={"job_id": result.job_id, "status": raw_status},
            )
            await self._pause(self._settings.poll_interval, cancel, deadline)

    async def _read_status(
        self,
        numeric_id: int,
        cancel: asyncio.Event,
        deadline: float,
        result: PollResult,
    ) -> tuple[str, str]:
        """Read the job status, retrying once after a transient failure."""
        loop = asyncio.get_running_loop()

        for attempt in range(1, MAX_STATUS_READ_ATTEMPTS + 1):
            result.status_reads += 1
            try:
                return await loop.run_in_executor(None, self._client.get_job_status, numeric_id)
            except TransientError as e:
                if attempt == MAX_STATUS_READ_ATTEMPTS:
                    raise _WaitEnded(
                        PollOutcome.TRANSIENT_ERROR,
                        "Unable to read job status",
                        e.detail or str(e),
                    ) from e
                logger.warning(
                    "Job status read failed, retrying",
                    extra={
                        "job_id": result.job_id,
                        "attempt": attempt,
                        "wait_seconds": self._settings.retry_backoff,
                        "error": str(e),
                    },
                )
                await self._pause(self._settings.retry_backoff, cancel, deadline)
            except NotFoundError as e:
                raise _WaitEnded(
                    PollOutcome.NOT_FOUND, "Job not found", e.detail or str(e)
                ) from e
            except RemoteError as e:
                raise _WaitEnded(
                    PollOutcome.REMOTE_REJECTION,
                    "Job status read rejected",
                    e.detail or str(e),
                ) from e

        raise AssertionError("status read loop exited without a result")

    async def _pause(self, seconds: float, cancel: asyncio.Event, deadline: float) -> None:
        """Suspend for up to ``seconds``, bounded by the deadline.

        Raises:
            _WaitEnded: With POLL_CANCELED if the cancel event is set.
        """
        remaining = max(0.0, deadline - self._clock())
        timeout = min(seconds, remaining)
        if not cancel.is_set():
            try:
                await asyncio.wait_for(cancel.wait(), timeout=timeout)
            except TimeoutError:
                return
        raise _WaitEnded(
            PollOutcome.POLL_CANCELED,
            "Wait for job canceled",
            "the job keeps running remotely",
        )

    def _finish(self, result: PollResult, ended: _WaitEnded) -> None:
        result.outcome = ended.outcome
        if ended.outcome is PollOutcome.SUCCESS:
            return
        if ended.detail:
            result.detail = ended.detail
        result.diagnostics.error(
            ended.summary,
            f"job {result.job_id}: {ended.detail}" if ended.detail else f"job {result.job_id}",
            kind=_OUTCOME_KINDS[ended.outcome],
        )


_TERMINAL_SUMMARIES: dict[PollOutcome, str] = {
    PollOutcome.JOB_CANCELED: "Job was canceled",
    PollOutcome.JOB_ERROR: "Job ended in error",
    PollOutcome.JOB_FAILED: "Job failed",
}
