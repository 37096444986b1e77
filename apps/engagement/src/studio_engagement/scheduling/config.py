"""Schedule file loader for recurring engagement jobs."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tomllib


@dataclass(slots=True)
class JobDefinition:
    """One cron-scheduled job and its retry policy."""

    id: str
    task: str
    cron: str
    kwargs: dict[str, Any] = field(default_factory=dict)
    enabled: bool = True
    max_attempts: int = 1
    base_backoff_seconds: float = 5.0
    backoff_multiplier: float = 2.0
    max_backoff_seconds: float = 60.0
    jitter_seconds: float = 1.0

    def backoff_delay(self, attempt: int, *, rng: random.Random | None = None) -> float:
        """Delay before retrying after failed ``attempt`` (1-based)."""

        delay = self.base_backoff_seconds * (self.backoff_multiplier ** (attempt - 1))
        if self.max_backoff_seconds:
            delay = min(delay, self.max_backoff_seconds)
        if self.jitter_seconds:
            delay += (rng or random).uniform(0, self.jitter_seconds)
        return max(delay, 0.0)


@dataclass(slots=True)
class ScheduleConfig:
    timezone: str
    jobs: list[JobDefinition]


def load_job_definitions(config_path: Path) -> ScheduleConfig:
    """Parse a TOML schedule file; malformed job entries are skipped."""

    if not config_path.exists():
        raise FileNotFoundError(f"Schedule config not found: {config_path}")

    data = tomllib.loads(config_path.read_text(encoding="utf-8"))
    jobs: list[JobDefinition] = []
    for key, payload in (data.get("jobs") or {}).items():
        if not isinstance(payload, dict):
            continue
        task = payload.get("task")
        cron = payload.get("cron")
        if not isinstance(task, str) or not isinstance(cron, str):
            continue
        kwargs = payload.get("kwargs")
        jobs.append(
            JobDefinition(
                id=str(payload.get("id") or key),
                task=task,
                cron=cron,
                kwargs=kwargs if isinstance(kwargs, dict) else {},
                enabled=bool(payload.get("enabled", True)),
                max_attempts=max(int(payload.get("max_attempts", 1) or 1), 1),
                base_backoff_seconds=max(float(payload.get("base_backoff_seconds", 5.0) or 0), 0.0),
                backoff_multiplier=max(float(payload.get("backoff_multiplier", 2.0) or 1), 1.0),
                max_backoff_seconds=max(float(payload.get("max_backoff_seconds", 60.0) or 0), 0.0),
                jitter_seconds=max(float(payload.get("jitter_seconds", 1.0) or 0), 0.0),
            )
        )

    return ScheduleConfig(timezone=str(data.get("timezone", "UTC")), jobs=jobs)


__all__ = ["JobDefinition", "ScheduleConfig", "load_job_definitions"]
