"""Apply a single referral reward to a client."""

from __future__ import annotations

from typing import assert_never
from uuid import UUID

from loguru import logger

from studio_engagement.models.engagement import RewardType
from studio_engagement.observability.engagement import EngagementObservabilityStore, get_engagement_store
from studio_engagement.schemas.engagement import RewardSpec

from .store import EngagementStore


class RewardApplicator:
    """Grant one reward spec to one client.

    Not idempotent: calling twice grants twice. Callers guard with the
    per-side applied flags on the referral.
    """

    def __init__(
        self,
        store: EngagementStore,
        *,
        observability: EngagementObservabilityStore | None = None,
    ) -> None:
        self._store = store
        self._observability = observability or get_engagement_store()

    async def apply(self, client_id: UUID, reward: RewardSpec, *, referral_id: UUID | None = None) -> None:
        match reward.type:
            case RewardType.CREDITS:
                await self._store.increment_client_credits(client_id, reward.value)
                logger.info(
                    "Applied credit reward",
                    client_id=str(client_id),
                    credits=reward.value,
                    referral_id=str(referral_id) if referral_id else None,
                )
            case RewardType.DISCOUNT:
                discount = await self._store.create_discount(
                    client_id,
                    percent=reward.value,
                    description=reward.description,
                    referral_id=referral_id,
                )
                logger.info(
                    "Issued discount reward",
                    client_id=str(client_id),
                    discount_id=str(discount.id),
                    percent=reward.value,
                )
            case RewardType.CASH:
                logger.info(
                    "Cash reward pending manual payout",
                    client_id=str(client_id),
                    amount=reward.value,
                    referral_id=str(referral_id) if referral_id else None,
                )
            case _:
                assert_never(reward.type)

        self._observability.record_reward(reward.type.value, reward.value)


__all__ = ["RewardApplicator"]
