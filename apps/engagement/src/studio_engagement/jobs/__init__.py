"""Recurring job entrypoints for engagement automation."""

__all__ = ["engagement"]
