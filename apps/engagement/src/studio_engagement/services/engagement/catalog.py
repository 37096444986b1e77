"""Canonical badge catalog seeded for every tenant."""

from __future__ import annotations

from studio_engagement.domain.engagement import BadgeDefinition
from studio_engagement.schemas.engagement import (
    FirstSessionCriterion,
    MeasurementLoggedCriterion,
    MorningSessionsCriterion,
    SessionsCompletedCriterion,
    WeekendSessionsCriterion,
    WeightGoalCriterion,
    encode_criterion,
)

DEFAULT_BADGES: tuple[BadgeDefinition, ...] = (
    BadgeDefinition(
        name="První trénink",
        description="Dokončil/a svůj první trénink",
        icon="trophy",
        color="#F59E0B",
        category="milestone",
        criteria=encode_criterion(FirstSessionCriterion(value=1)),
    ),
    BadgeDefinition(
        name="Pravidelný",
        description="Dokončil/a 10 tréninků",
        icon="calendar-check",
        color="#10B981",
        category="consistency",
        criteria=encode_criterion(SessionsCompletedCriterion(value=10)),
    ),
    BadgeDefinition(
        name="Oddaný",
        description="Dokončil/a 50 tréninků",
        icon="flame",
        color="#EF4444",
        category="consistency",
        criteria=encode_criterion(SessionsCompletedCriterion(value=50)),
    ),
    BadgeDefinition(
        name="Centenarian",
        description="Dokončil/a 100 tréninků",
        icon="crown",
        color="#8B5CF6",
        category="milestone",
        criteria=encode_criterion(SessionsCompletedCriterion(value=100)),
    ),
    BadgeDefinition(
        name="Ranní ptáče",
        description="Dokončil/a 10 ranních tréninků (před 9:00)",
        icon="sunrise",
        color="#F97316",
        category="consistency",
        criteria=encode_criterion(MorningSessionsCriterion(value=10, before_hour=9)),
    ),
    BadgeDefinition(
        name="Víkendový válečník",
        description="Dokončil/a 5 víkendových tréninků",
        icon="swords",
        color="#3B82F6",
        category="consistency",
        criteria=encode_criterion(WeekendSessionsCriterion(value=5)),
    ),
    BadgeDefinition(
        name="Cílová váha",
        description="Dosáhl/a své cílové váhy",
        icon="target",
        color="#22C55E",
        category="progress",
        criteria=encode_criterion(WeightGoalCriterion(value=1)),
    ),
    BadgeDefinition(
        name="Sledovač pokroku",
        description="Zaznamenal/a 5 měření",
        icon="ruler",
        color="#06B6D4",
        category="progress",
        criteria=encode_criterion(MeasurementLoggedCriterion(value=5)),
    ),
)

__all__ = ["DEFAULT_BADGES"]
