"""APScheduler runtime for engagement sweeps."""

from __future__ import annotations

import asyncio
import inspect
import time
from importlib import import_module
from pathlib import Path
from typing import Any, Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger
from zoneinfo import ZoneInfo

from studio_engagement.observability.scheduler import (
    EngagementSchedulerObservabilityStore,
    get_scheduler_store,
)

from .config import JobDefinition, ScheduleConfig, load_job_definitions

JobCallable = Callable[..., Awaitable[Any]]
SessionFactory = Callable[[], Awaitable[Any]] | Callable[[], Any]


class EngagementJobScheduler:
    """Register cron jobs from the schedule file and run them with retries."""

    def __init__(
        self,
        *,
        session_factory: SessionFactory,
        config_path: Path,
        observability: EngagementSchedulerObservabilityStore | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._config_path = config_path
        self._observability = observability or get_scheduler_store()
        self._config: ScheduleConfig | None = None
        self._scheduler: AsyncIOScheduler | None = None
        self._is_running = False

    @property
    def is_running(self) -> bool:
        return self._is_running

    def start(self) -> None:
        config = load_job_definitions(self._config_path)
        zone = ZoneInfo(config.timezone)
        aps = AsyncIOScheduler(timezone=zone)

        enabled = [job for job in config.jobs if job.enabled]
        for job in config.jobs:
            if not job.enabled:
                logger.info("Skipping disabled engagement job", job_id=job.id, task=job.task)
        for job in enabled:
            aps.add_job(
                self._wrap_callable(self._resolve_callable(job), job),
                trigger=CronTrigger.from_crontab(job.cron, timezone=zone),
                id=job.id,
                replace_existing=True,
            )
            logger.info("Registered engagement job", job_id=job.id, task=job.task, cron=job.cron)

        aps.start()
        self._config = config
        self._scheduler = aps
        self._is_running = True
        logger.info("Engagement job scheduler started", jobs=len(enabled), timezone=config.timezone)

    async def stop(self) -> None:
        if self._scheduler is None:
            return
        outcome = self._scheduler.shutdown(wait=False)
        if inspect.isawaitable(outcome):
            await outcome
        self._scheduler = None
        self._is_running = False
        logger.info("Engagement job scheduler stopped")

    def _resolve_callable(self, job: JobDefinition) -> JobCallable:
        module_path, _, name = job.task.rpartition(".")
        if not module_path:
            raise ValueError(f"Invalid task path: {job.task}")
        target = getattr(import_module(module_path), name, None)
        if target is None:
            raise AttributeError(f"Task {job.task} not found")
        if not inspect.iscoroutinefunction(target):
            raise TypeError(f"Task {job.task} must be an async function")
        return target

    def _wrap_callable(self, func: JobCallable, job: JobDefinition) -> Callable[[], Awaitable[Any]]:
        async def _runner() -> Any:
            return await self._execute(func, job)

        return _runner

    async def _execute(self, func: JobCallable, job: JobDefinition) -> Any:
        """Run ``func`` up to ``job.max_attempts`` times; returns ``None`` when every attempt fails."""

        self._observability.record_dispatch(job.id, job.task)
        began = time.perf_counter()
        attempt = 0
        while True:
            attempt += 1
            try:
                outcome = await func(session_factory=self._session_factory, **job.kwargs)
            except Exception as exc:
                reason = str(exc) or type(exc).__name__
                self._observability.record_attempt_failure(job.id, job.task, attempts=attempt, error=reason)
                if attempt < job.max_attempts:
                    await self._pause_before_retry(job, attempt)
                    continue

                self._observability.record_run_failure(
                    job.id,
                    job.task,
                    runtime_seconds=time.perf_counter() - began,
                    attempts=attempt,
                    error=reason,
                )
                logger.exception("Engagement job failed after retries", job_id=job.id, task=job.task, attempts=attempt)
                return None

            elapsed = time.perf_counter() - began
            self._observability.record_success(
                job.id,
                job.task,
                runtime_seconds=elapsed,
                attempts=attempt,
                summary=outcome if isinstance(outcome, dict) else None,
            )
            logger.info(
                "Engagement job completed",
                job_id=job.id,
                task=job.task,
                attempts=attempt,
                runtime_seconds=round(elapsed, 3),
            )
            return outcome

    async def _pause_before_retry(self, job: JobDefinition, attempt: int) -> None:
        delay = job.backoff_delay(attempt)
        self._observability.record_retry(job.id, job.task, attempts=attempt + 1)
        logger.warning(
            "Engagement job retrying",
            job_id=job.id,
            task=job.task,
            attempt=attempt + 1,
            delay_seconds=delay,
        )
        if delay > 0:
            await asyncio.sleep(delay)

    def health(self) -> dict[str, object]:
        snapshot = self._observability.snapshot()
        configured = self._config.jobs if self._config is not None else []
        entries: list[dict[str, object]] = []
        for job in configured:
            metrics = snapshot.jobs.get(job.id)
            entries.append(
                {
                    "id": job.id,
                    "task": job.task,
                    "cron": job.cron,
                    "enabled": job.enabled,
                    "max_attempts": job.max_attempts,
                    "metrics": metrics.as_dict() if metrics is not None else None,
                }
            )

        return {
            "running": self._is_running,
            "configured_jobs": len(configured),
            "totals": snapshot.totals,
            "jobs": entries,
        }


__all__ = ["EngagementJobScheduler"]
