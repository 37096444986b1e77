"""Pure badge-criterion predicates over a client's activity snapshot."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from functools import lru_cache
from typing import Iterable, assert_never
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from loguru import logger

from studio_engagement.domain.engagement import ClientActivitySnapshot
from studio_engagement.schemas.engagement import (
    ConsecutiveWeeksCriterion,
    CreditsPurchasedCriterion,
    Criterion,
    FirstSessionCriterion,
    MeasurementLoggedCriterion,
    MorningSessionsCriterion,
    SessionsCompletedCriterion,
    WeekendSessionsCriterion,
    WeightGoalCriterion,
)

_ONE_WEEK = timedelta(days=7)
_WEEKEND = frozenset({5, 6})


@lru_cache(maxsize=64)
def _resolve_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown tenant timezone, evaluating in UTC", timezone=name)
        return ZoneInfo("UTC")


def _localize(moment: datetime, zone: ZoneInfo) -> datetime:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(zone)


def _local_sessions(snapshot: ClientActivitySnapshot) -> list[datetime]:
    zone = _resolve_zone(snapshot.timezone)
    return [_localize(moment, zone) for moment in snapshot.completed_sessions]


def iso_week_start(day: date) -> date:
    """Monday of the ISO week containing ``day``."""

    return day - timedelta(days=day.weekday())


def current_week_streak(moments: Iterable[datetime]) -> int:
    """Length of the run of consecutive weeks ending at the most recent active week."""

    week_starts = sorted({iso_week_start(moment.date()) for moment in moments}, reverse=True)
    if not week_starts:
        return 0

    streak = 1
    for newer, older in zip(week_starts, week_starts[1:]):
        if newer - older != _ONE_WEEK:
            break
        streak += 1
    return streak


def evaluate_criterion(criterion: Criterion, snapshot: ClientActivitySnapshot) -> bool:
    """Return whether ``snapshot`` satisfies ``criterion``; missing data is ``False``."""

    match criterion:
        case SessionsCompletedCriterion(value=threshold) | FirstSessionCriterion(value=threshold):
            return len(snapshot.completed_sessions) >= threshold

        case MorningSessionsCriterion(value=threshold, before_hour=before_hour):
            mornings = sum(1 for local in _local_sessions(snapshot) if local.hour < before_hour)
            return mornings >= threshold

        case WeekendSessionsCriterion(value=threshold):
            weekends = sum(1 for local in _local_sessions(snapshot) if local.weekday() in _WEEKEND)
            return weekends >= threshold

        case WeightGoalCriterion():
            if snapshot.current_weight is None or snapshot.target_weight is None:
                return False
            return snapshot.current_weight <= snapshot.target_weight

        case MeasurementLoggedCriterion(value=threshold):
            return snapshot.measurement_count >= threshold

        case ConsecutiveWeeksCriterion(value=threshold):
            return current_week_streak(_local_sessions(snapshot)) >= threshold

        case CreditsPurchasedCriterion(value=threshold):
            return snapshot.paid_order_total >= threshold

        case _:
            assert_never(criterion)


__all__ = ["current_week_streak", "evaluate_criterion", "iso_week_start"]
