"""Process bootstrap and the long-running scheduler service."""

from __future__ import annotations

import asyncio
from pathlib import Path

from loguru import logger

from studio_engagement.core.settings import settings
from studio_engagement.db.session import async_session, engine

from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .scheduling import EngagementJobScheduler

APP_VERSION = "0.1.0"


def session_factory():
    return async_session()


def bootstrap(level: str = "INFO") -> None:
    configure_logging(
        service_name=settings.service_name,
        environment=settings.environment,
        version=APP_VERSION,
        level=level,
    )
    configure_tracing(
        service_name=settings.service_name,
        service_version=APP_VERSION,
        environment=settings.environment,
    )


def resolve_schedule_path() -> Path:
    schedule_path = Path(settings.engagement_job_schedule_path)
    if not schedule_path.is_absolute():
        schedule_path = Path(__file__).resolve().parent.parent.parent / schedule_path
    return schedule_path


async def run_scheduler(stop_event: asyncio.Event | None = None) -> None:
    """Run cron-scheduled engagement jobs until ``stop_event`` is set."""

    stop_event = stop_event or asyncio.Event()
    if not settings.engagement_job_scheduler_enabled:
        logger.warning("Engagement job scheduler disabled; set ENGAGEMENT_JOB_SCHEDULER_ENABLED=true to run it")
        return

    scheduler = EngagementJobScheduler(session_factory=session_factory, config_path=resolve_schedule_path())
    scheduler.start()
    try:
        await stop_event.wait()
    finally:
        await scheduler.stop()
        await engine.dispose()


__all__ = ["APP_VERSION", "bootstrap", "resolve_schedule_path", "run_scheduler", "session_factory"]
