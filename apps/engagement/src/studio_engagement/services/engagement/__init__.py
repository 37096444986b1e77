"""Engagement service exports."""

from .achievements import AchievementService, BadgeSweepResult, ClientBadgeAward  # noqa: F401
from .catalog import DEFAULT_BADGES  # noqa: F401
from .criteria import current_week_streak, evaluate_criterion, iso_week_start  # noqa: F401
from .memory import InMemoryEngagementStore  # noqa: F401
from .referrals import (  # noqa: F401
    QualificationEvent,
    ReferralRewardResult,
    ReferralService,
    ReferralStats,
)
from .rewards import RewardApplicator  # noqa: F401
from .store import EngagementStore, SqlAlchemyEngagementStore  # noqa: F401

__all__ = [
    "AchievementService",
    "BadgeSweepResult",
    "ClientBadgeAward",
    "DEFAULT_BADGES",
    "EngagementStore",
    "InMemoryEngagementStore",
    "QualificationEvent",
    "ReferralRewardResult",
    "ReferralService",
    "ReferralStats",
    "RewardApplicator",
    "SqlAlchemyEngagementStore",
    "current_week_streak",
    "evaluate_criterion",
    "iso_week_start",
]
