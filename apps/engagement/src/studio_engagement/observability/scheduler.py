"""Observability store for engagement job scheduler runs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Dict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class JobRunSnapshot:
    """Serializable view of one scheduled job."""

    job_id: str
    task: str
    totals: Dict[str, int]
    total_runtime_seconds: float
    last_started_at: datetime | None
    last_success_at: datetime | None
    last_error_at: datetime | None
    last_error: str | None
    last_attempts: int
    last_summary: Dict[str, object] | None

    def as_dict(self) -> Dict[str, object]:
        return {
            "job_id": self.job_id,
            "task": self.task,
            "totals": dict(self.totals),
            "total_runtime_seconds": self.total_runtime_seconds,
            "last_started_at": _iso(self.last_started_at),
            "last_success_at": _iso(self.last_success_at),
            "last_error_at": _iso(self.last_error_at),
            "last_error": self.last_error,
            "last_attempts": self.last_attempts,
            "last_summary": self.last_summary,
        }


@dataclass
class SchedulerSnapshot:
    totals: Dict[str, int]
    jobs: Dict[str, JobRunSnapshot]

    def as_dict(self) -> Dict[str, object]:
        return {
            "totals": dict(self.totals),
            "jobs": {job_id: snapshot.as_dict() for job_id, snapshot in self.jobs.items()},
        }


@dataclass
class _JobRunState:
    job_id: str
    task: str
    runs: int = 0
    successes: int = 0
    failures: int = 0
    failed_attempts: int = 0
    retries: int = 0
    consecutive_failures: int = 0
    total_runtime_seconds: float = 0.0
    last_started_at: datetime | None = None
    last_success_at: datetime | None = None
    last_error_at: datetime | None = None
    last_error: str | None = None
    last_attempts: int = 0
    last_summary: Dict[str, object] | None = None

    def snapshot(self) -> JobRunSnapshot:
        return JobRunSnapshot(
            job_id=self.job_id,
            task=self.task,
            totals={
                "runs": self.runs,
                "success": self.successes,
                "run_failures": self.failures,
                "attempt_failures": self.failed_attempts,
                "retries": self.retries,
                "consecutive_failures": self.consecutive_failures,
            },
            total_runtime_seconds=self.total_runtime_seconds,
            last_started_at=self.last_started_at,
            last_success_at=self.last_success_at,
            last_error_at=self.last_error_at,
            last_error=self.last_error,
            last_attempts=self.last_attempts,
            last_summary=self.last_summary,
        )


class EngagementSchedulerObservabilityStore:
    """Tracks dispatches, retries and outcomes of engagement sweeps."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._jobs: Dict[str, _JobRunState] = {}

    def reset(self) -> None:
        with self._lock:
            self._jobs.clear()

    def _state(self, job_id: str, task: str) -> _JobRunState:
        state = self._jobs.get(job_id)
        if state is None:
            state = self._jobs[job_id] = _JobRunState(job_id=job_id, task=task)
        state.task = task
        return state

    def record_dispatch(self, job_id: str, task: str) -> None:
        with self._lock:
            state = self._state(job_id, task)
            state.runs += 1
            state.last_started_at = _utcnow()
            state.last_attempts = 0

    def record_attempt_failure(self, job_id: str, task: str, *, attempts: int, error: str) -> None:
        with self._lock:
            state = self._state(job_id, task)
            state.failed_attempts += 1
            state.last_attempts = attempts
            state.last_error = error
            state.last_error_at = _utcnow()

    def record_retry(self, job_id: str, task: str, *, attempts: int) -> None:
        with self._lock:
            state = self._state(job_id, task)
            state.retries += 1
            state.last_attempts = attempts

    def record_success(
        self,
        job_id: str,
        task: str,
        *,
        runtime_seconds: float,
        attempts: int,
        summary: Dict[str, object] | None = None,
    ) -> None:
        with self._lock:
            state = self._state(job_id, task)
            state.successes += 1
            state.consecutive_failures = 0
            state.total_runtime_seconds += runtime_seconds
            state.last_success_at = _utcnow()
            state.last_attempts = attempts
            state.last_summary = summary
            state.last_error = None
            state.last_error_at = None

    def record_run_failure(self, job_id: str, task: str, *, runtime_seconds: float, attempts: int, error: str) -> None:
        with self._lock:
            state = self._state(job_id, task)
            state.failures += 1
            state.consecutive_failures += 1
            state.total_runtime_seconds += runtime_seconds
            state.last_attempts = attempts
            state.last_error = error
            state.last_error_at = _utcnow()

    def snapshot(self) -> SchedulerSnapshot:
        with self._lock:
            jobs = {job_id: state.snapshot() for job_id, state in self._jobs.items()}
        totals = {
            key: sum(job.totals[key] for job in jobs.values())
            for key in ("runs", "success", "run_failures", "attempt_failures", "retries")
        }
        return SchedulerSnapshot(totals=totals, jobs=jobs)


_SCHEDULER_STORE = EngagementSchedulerObservabilityStore()


def get_scheduler_store() -> EngagementSchedulerObservabilityStore:
    return _SCHEDULER_STORE


__all__ = [
    "EngagementSchedulerObservabilityStore",
    "JobRunSnapshot",
    "SchedulerSnapshot",
    "get_scheduler_store",
]
