from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class EngagementSnapshot:
    badges: Dict[str, int]
    referrals: Dict[str, int]
    rewards: Dict[str, Dict[str, int]]

    def as_dict(self) -> Dict[str, object]:
        return {
            "badges": dict(self.badges),
            "referrals": dict(self.referrals),
            "rewards": {key: dict(value) for key, value in self.rewards.items()},
        }


class EngagementObservabilityStore:
    """Collect badge, referral and reward counters for dashboards and alerting."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._badges: Dict[str, int] = defaultdict(int)
        self._referrals: Dict[str, int] = defaultdict(int)
        self._reward_totals: Dict[str, int] = defaultdict(int)
        self._reward_units: Dict[str, int] = defaultdict(int)

    def record_badge_event(self, event: str, count: int = 1) -> None:
        with self._lock:
            self._badges[event] += count

    def record_referral_event(self, event: str) -> None:
        with self._lock:
            self._referrals[event] += 1

    def record_reward(self, reward_type: str, value: int) -> None:
        with self._lock:
            self._reward_totals[reward_type] += 1
            self._reward_units[reward_type] += value

    def snapshot(self) -> EngagementSnapshot:
        with self._lock:
            badges = dict(self._badges)
            referrals = dict(self._referrals)
            rewards = {
                "applied": dict(self._reward_totals),
                "units": dict(self._reward_units),
            }
        return EngagementSnapshot(badges=badges, referrals=referrals, rewards=rewards)

    def reset(self) -> None:
        with self._lock:
            self._badges.clear()
            self._referrals.clear()
            self._reward_totals.clear()
            self._reward_units.clear()


_STORE = EngagementObservabilityStore()


def get_engagement_store() -> EngagementObservabilityStore:
    return _STORE


__all__ = ["get_engagement_store", "EngagementObservabilityStore", "EngagementSnapshot"]
