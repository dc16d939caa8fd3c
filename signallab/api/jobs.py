"""In-memory background job queue for API-submitted backtests."""

from __future__ import annotations

import traceback
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from threading import Lock
from typing import Any, Literal

from signallab.core.utils.errors import SignalLabError
from signallab.core.utils.logging import get_logger

JobTask = Callable[[], dict[str, Any]]
JobType = Literal["backtest", "run"]
JobStatus = Literal["queued", "running", "succeeded", "failed"]
_LOGGER_NAME = "signallab.api.jobs"


@dataclass(frozen=True)
class JobRecord:
    """Snapshot of one background job."""

    job_id: str
    job_type: JobType
    status: JobStatus
    submitted_at: datetime
    request: dict[str, Any]
    started_at: datetime | None = None
    finished_at: datetime | None = None
    result: dict[str, Any] | None = None
    error_code: str | None = None
    error_message: str | None = None
    error_traceback: str | None = None

    @property
    def is_finished(self) -> bool:
        return self.status in ("succeeded", "failed")


class InMemoryJobQueue:
    """
    Thread-pool backed job queue.

    Records are immutable snapshots replaced under a lock on every state
    transition, so readers never observe a half-updated job.
    """

    def __init__(self, max_workers: int = 2) -> None:
        """
        Initialize queue state.

        Args:
            max_workers: Maximum background workers.
        """
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, int(max_workers)), thread_name_prefix="signallab-job"
        )
        self._lock = Lock()
        self._jobs: dict[str, JobRecord] = {}
        self._futures: dict[str, Future[None]] = {}
        self._counter = 0

    def submit(self, job_type: JobType, request: dict[str, Any], task: JobTask) -> JobRecord:
        """
        Queue ``task`` for background execution.

        Args:
            job_type: Job type label.
            request: Request payload snapshot.
            task: Work function returning a JSON-ready result payload.

        Returns:
            Snapshot of the queued job.
        """
        with self._lock:
            self._counter += 1
            record = JobRecord(
                job_id=f"job_{self._counter:06d}",
                job_type=job_type,
                status="queued",
                submitted_at=datetime.now(tz=UTC),
                request=dict(request),
            )
            self._jobs[record.job_id] = record
            self._futures[record.job_id] = self._executor.submit(
                self._run_job, record.job_id, task
            )
        return record

    def get(self, job_id: str) -> JobRecord | None:
        """Return the current snapshot of one job, or ``None``."""
        with self._lock:
            return self._jobs.get(job_id)

    def list(self, limit: int = 100) -> list[JobRecord]:
        """Return up to ``limit`` jobs, newest first."""
        with self._lock:
            ordered = sorted(
                self._jobs.values(),
                key=lambda record: (record.submitted_at, record.job_id),
                reverse=True,
            )
        return ordered[: max(1, int(limit))]

    def wait(self, job_id: str, timeout: float | None = None) -> JobRecord | None:
        """Block until a job finishes, then return its snapshot."""
        with self._lock:
            future = self._futures.get(job_id)
        if future is None:
            return None
        future.result(timeout=timeout)
        return self.get(job_id)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work and release worker threads."""
        self._executor.shutdown(wait=wait)

    def _update(self, job_id: str, **changes: Any) -> None:
        with self._lock:
            record = self._jobs.get(job_id)
            if record is not None:
                self._jobs[job_id] = replace(record, **changes)

    def _run_job(self, job_id: str, task: JobTask) -> None:
        """Execute one task and record its outcome."""
        self._update(job_id, status="running", started_at=datetime.now(tz=UTC))
        try:
            result = task()
        except Exception as exc:
            get_logger(_LOGGER_NAME).error("Job %s failed: %s", job_id, exc)
            error_code = exc.error_code if isinstance(exc, SignalLabError) else "internal_error"
            self._update(
                job_id,
                status="failed",
                finished_at=datetime.now(tz=UTC),
                error_code=error_code,
                error_message=str(exc),
                error_traceback="".join(
                    traceback.format_exception(type(exc), exc, exc.__traceback__)
                ),
            )
            return
        self._update(
            job_id,
            status="succeeded",
            finished_at=datetime.now(tz=UTC),
            result=dict(result),
        )
