"""Scheduling utilities for recurring engagement jobs."""

from .config import JobDefinition, load_job_definitions
from .runner import EngagementJobScheduler

__all__ = ["EngagementJobScheduler", "JobDefinition", "load_job_definitions"]
