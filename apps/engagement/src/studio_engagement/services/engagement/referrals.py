"""Referral lifecycle: issue, sign up, qualify, reward, expire."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID, uuid4

from loguru import logger

from studio_engagement.core.settings import settings
from studio_engagement.domain.engagement import (
    ReferralRecord,
    ReferralSettingsRecord,
    ReferrerSummary,
)
from studio_engagement.models.engagement import QualificationCriteria, ReferralStatus, RewardType
from studio_engagement.observability.engagement import EngagementObservabilityStore, get_engagement_store
from studio_engagement.schemas.engagement import ReferralSettingsPatch, RewardSpec

from .rewards import RewardApplicator
from .store import EngagementStore

# Events that can qualify a referral share the tenant criteria vocabulary.
QualificationEvent = QualificationCriteria

_OPEN_STATUSES = (ReferralStatus.PENDING, ReferralStatus.SIGNED_UP)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


@dataclass(slots=True)
class ReferralRewardResult:
    success: bool
    referrer_reward: Optional[RewardSpec] = None
    referred_reward: Optional[RewardSpec] = None
    error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "referrer_reward": self.referrer_reward.description if self.referrer_reward else None,
            "referred_reward": self.referred_reward.description if self.referred_reward else None,
            "error": self.error,
        }


@dataclass(slots=True)
class ReferralStats:
    total: int
    pending: int
    signed_up: int
    qualified: int
    rewarded: int
    expired: int
    conversion_rate: float
    top_referrers: List[ReferrerSummary] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "pending": self.pending,
            "signed_up": self.signed_up,
            "qualified": self.qualified,
            "rewarded": self.rewarded,
            "expired": self.expired,
            "conversion_rate": self.conversion_rate,
            "top_referrers": [
                {
                    "client_id": str(summary.client_id),
                    "name": summary.name,
                    "email": summary.email,
                    "referral_count": summary.referral_count,
                }
                for summary in self.top_referrers
            ],
        }


class ReferralService:
    """Drive referral records through ``pending -> signed_up -> qualified -> rewarded``."""

    def __init__(
        self,
        store: EngagementStore,
        reward_applicator: RewardApplicator | None = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
        observability: EngagementObservabilityStore | None = None,
    ) -> None:
        self._store = store
        self._observability = observability or get_engagement_store()
        self._rewards = reward_applicator or RewardApplicator(store, observability=self._observability)
        self._clock = clock

    async def get_referral_settings(self, tenant_id: UUID) -> ReferralSettingsRecord:
        """Return the tenant's program settings, creating configured defaults on first use."""

        existing = await self._store.get_referral_settings(tenant_id)
        if existing is not None:
            return existing

        defaults = ReferralSettingsRecord(
            tenant_id=tenant_id,
            referrer_reward_type=RewardType(settings.referral_default_referrer_reward_type),
            referrer_reward_value=settings.referral_default_referrer_reward_value,
            referred_reward_type=RewardType(settings.referral_default_referred_reward_type),
            referred_reward_value=settings.referral_default_referred_reward_value,
            qualification_criteria=QualificationCriteria(settings.referral_default_qualification_criteria),
            send_referral_emails=settings.referral_default_send_emails,
        )
        created = await self._store.save_referral_settings(defaults)
        logger.info("Created default referral settings", tenant_id=str(tenant_id))
        return created

    async def update_referral_settings(
        self,
        tenant_id: UUID,
        patch: ReferralSettingsPatch,
    ) -> ReferralSettingsRecord:
        current = await self.get_referral_settings(tenant_id)
        changes = patch.model_dump(exclude_unset=True)
        for key, value in changes.items():
            setattr(current, key, value)
        updated = await self._store.save_referral_settings(current)
        logger.info("Updated referral settings", tenant_id=str(tenant_id), fields=sorted(changes))
        return updated

    async def create_referral(
        self,
        tenant_id: UUID,
        referrer_id: UUID,
        *,
        referred_email: str | None = None,
        referred_name: str | None = None,
    ) -> ReferralRecord:
        """Issue a pending referral with a fresh code for ``referrer_id``."""

        program = await self.get_referral_settings(tenant_id)
        if not program.is_active:
            raise ValueError("Referral program is not active")

        referrer = await self._store.get_client(referrer_id)
        if referrer is None or referrer.tenant_id != tenant_id:
            raise ValueError("Referrer not found")

        if program.max_referrals_per_client is not None:
            open_referrals = await self._store.list_referrals(
                tenant_id,
                statuses=_OPEN_STATUSES,
                referrer_id=referrer_id,
            )
            if len(open_referrals) >= program.max_referrals_per_client:
                raise ValueError("Referral limit reached for client")

        now = self._clock()
        expires_at = None
        if program.referral_code_expiry_days:
            expires_at = now + timedelta(days=program.referral_code_expiry_days)

        record = ReferralRecord(
            id=uuid4(),
            tenant_id=tenant_id,
            referrer_id=referrer_id,
            referral_code=await self._generate_unique_referral_code(),
            referred_email=referred_email,
            referred_name=referred_name,
            expires_at=expires_at,
        )
        created = await self._store.create_referral(record)
        self._observability.record_referral_event("created")
        logger.info(
            "Issued referral",
            referral_id=str(created.id),
            referrer_id=str(referrer_id),
            tenant_id=str(tenant_id),
            code=created.referral_code,
        )
        return created

    async def redeem_referral_code(self, code: str, referred_client_id: UUID) -> ReferralRecord | None:
        """Attach a newly signed-up client to the pending referral behind ``code``."""

        referral = await self._store.get_referral_by_code(code.strip().upper())
        if referral is None:
            logger.info("Referral code not found", code=code)
            return None
        if referral.status != ReferralStatus.PENDING:
            logger.info("Referral code no longer redeemable", code=code, status=referral.status.value)
            return None
        if referral.expires_at is not None and _as_utc(referral.expires_at) <= self._clock():
            await self._expire(referral)
            return None

        if not await self.mark_referral_signed_up(referral.id, referred_client_id):
            return None
        return await self._store.get_referral(referral.id)

    async def mark_referral_signed_up(self, referral_id: UUID, referred_client_id: UUID) -> bool:
        referral = await self._store.get_referral(referral_id)
        if referral is None:
            logger.warning("Referral not found for sign-up", referral_id=str(referral_id))
            return False
        if referral.status != ReferralStatus.PENDING:
            logger.info(
                "Ignoring sign-up for referral that is not pending",
                referral_id=str(referral_id),
                status=referral.status.value,
            )
            return False
        if referred_client_id == referral.referrer_id:
            logger.warning("Rejecting self-referral sign-up", referral_id=str(referral_id))
            return False
        referred = await self._store.get_client(referred_client_id)
        if referred is None or referred.tenant_id != referral.tenant_id:
            logger.warning(
                "Rejecting sign-up from client outside the referral tenant",
                referral_id=str(referral_id),
                referred_id=str(referred_client_id),
            )
            return False

        referral.referred_id = referred_client_id
        referral.signed_up_at = self._clock()
        referral.status = ReferralStatus.SIGNED_UP
        await self._store.save_referral(referral)
        self._observability.record_referral_event("signed_up")
        logger.info("Referral signed up", referral_id=str(referral_id), referred_id=str(referred_client_id))

        program = await self.get_referral_settings(referral.tenant_id)
        if program.qualification_criteria == QualificationCriteria.SIGNUP:
            await self.check_and_qualify_referral(referral_id, QualificationEvent.SIGNUP)
        return True

    async def check_and_qualify_referral(
        self,
        referral_id: UUID,
        event: QualificationCriteria | str,
    ) -> bool:
        """Qualify a signed-up referral when ``event`` matches the tenant criteria.

        Both reward specs are snapshotted here; later settings edits do not
        affect an already qualified referral.
        """

        try:
            event = QualificationCriteria(event)
        except ValueError:
            logger.warning("Unknown referral qualification event", referral_id=str(referral_id), event=str(event))
            return False
        referral = await self._store.get_referral(referral_id)
        if referral is None or referral.status != ReferralStatus.SIGNED_UP:
            return False

        program = await self.get_referral_settings(referral.tenant_id)
        if event != program.qualification_criteria:
            return False

        referral.referrer_reward = program.referrer_reward()
        referral.referred_reward = program.referred_reward()
        referral.status = ReferralStatus.QUALIFIED
        referral.qualified_at = self._clock()
        await self._store.save_referral(referral)
        self._observability.record_referral_event("qualified")
        logger.info("Referral qualified", referral_id=str(referral_id), event=event.value)
        return True

    async def apply_referral_rewards(self, referral_id: UUID) -> ReferralRewardResult:
        """Apply outstanding rewards of a qualified referral exactly once per side."""

        referral = await self._store.get_referral(referral_id)
        if referral is None:
            return ReferralRewardResult(success=False, error="Referral not found")
        if referral.status != ReferralStatus.QUALIFIED:
            logger.info(
                "Referral not eligible for rewards",
                referral_id=str(referral_id),
                status=referral.status.value,
            )
            return ReferralRewardResult(success=False, error="Referral not qualified")

        if not referral.referrer_reward_applied and referral.referrer_reward is not None:
            await self._rewards.apply(referral.referrer_id, referral.referrer_reward, referral_id=referral.id)
            referral.referrer_reward_applied = True
            await self._store.save_referral(referral)

        if (
            referral.referred_id is not None
            and not referral.referred_reward_applied
            and referral.referred_reward is not None
        ):
            await self._rewards.apply(referral.referred_id, referral.referred_reward, referral_id=referral.id)
            referral.referred_reward_applied = True
            await self._store.save_referral(referral)

        referral.status = ReferralStatus.REWARDED
        referral.rewarded_at = self._clock()
        await self._store.save_referral(referral)
        self._observability.record_referral_event("rewarded")
        logger.info(
            "Referral rewards applied",
            referral_id=str(referral_id),
            referrer_reward=referral.referrer_reward.description if referral.referrer_reward else None,
            referred_reward=referral.referred_reward.description if referral.referred_reward else None,
        )
        return ReferralRewardResult(
            success=True,
            referrer_reward=referral.referrer_reward,
            referred_reward=referral.referred_reward,
        )

    async def expire_stale_referrals(
        self,
        tenant_id: UUID,
        now: datetime | None = None,
        *,
        batch_size: int | None = None,
    ) -> int:
        """Move open referrals past ``expires_at`` to ``expired``; returns how many moved."""

        cutoff = _as_utc(now or self._clock())
        limit = batch_size or settings.referral_sweep_batch_size
        expired = 0
        offset = 0
        while True:
            batch = await self._store.list_referrals(
                tenant_id,
                statuses=_OPEN_STATUSES,
                offset=offset,
                limit=limit,
            )
            if not batch:
                break

            kept = 0
            for referral in batch:
                if referral.expires_at is not None and _as_utc(referral.expires_at) <= cutoff:
                    await self._expire(referral)
                    expired += 1
                else:
                    kept += 1

            if len(batch) < limit:
                break
            offset += kept

        if expired:
            logger.info("Expired stale referrals", tenant_id=str(tenant_id), expired=expired)
        return expired

    async def get_referral_stats(self, tenant_id: UUID) -> ReferralStats:
        counts = await self._store.count_referrals_by_status(tenant_id)
        total = counts.total
        qualified = counts.get(ReferralStatus.QUALIFIED)
        rewarded = counts.get(ReferralStatus.REWARDED)
        conversion_rate = ((qualified + rewarded) / total) * 100 if total > 0 else 0.0
        top = await self._store.top_referrers(tenant_id, limit=settings.referral_top_referrers_limit)
        return ReferralStats(
            total=total,
            pending=counts.get(ReferralStatus.PENDING),
            signed_up=counts.get(ReferralStatus.SIGNED_UP),
            qualified=qualified,
            rewarded=rewarded,
            expired=counts.get(ReferralStatus.EXPIRED),
            conversion_rate=conversion_rate,
            top_referrers=top,
        )

    async def get_client_referrals(self, client_id: UUID, tenant_id: UUID) -> list[ReferralRecord]:
        return await self._store.list_referrals(tenant_id, referrer_id=client_id)

    async def _expire(self, referral: ReferralRecord) -> None:
        referral.status = ReferralStatus.EXPIRED
        await self._store.save_referral(referral)
        self._observability.record_referral_event("expired")
        logger.info("Referral expired", referral_id=str(referral.id), code=referral.referral_code)

    async def _generate_unique_referral_code(self) -> str:
        length = settings.referral_code_length
        while True:
            code = uuid4().hex[:length].upper()
            if await self._store.get_referral_by_code(code) is None:
                return code


__all__ = [
    "QualificationEvent",
    "ReferralRewardResult",
    "ReferralService",
    "ReferralStats",
]
