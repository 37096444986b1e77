"""Storage-neutral records exchanged between engagement services and stores."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from studio_engagement.models.client import ClientStatus
from studio_engagement.models.engagement import (
    ClientDiscountStatus,
    QualificationCriteria,
    ReferralStatus,
    RewardType,
)
from studio_engagement.schemas.engagement import RewardSpec


@dataclass(frozen=True, slots=True)
class BadgeDefinition:
    """Catalog entry used to seed a tenant's badges."""

    name: str
    description: str
    icon: str
    color: str
    category: str
    criteria: dict[str, Any]


@dataclass(slots=True)
class BadgeRule:
    id: UUID
    tenant_id: UUID
    name: str
    criteria: dict[str, Any]
    is_active: bool = True
    description: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    category: Optional[str] = None


@dataclass(frozen=True, slots=True)
class BadgeGrant:
    client_id: UUID
    badge_id: UUID
    badge_name: str
    earned_at: datetime


@dataclass(slots=True)
class ClientRecord:
    id: UUID
    tenant_id: UUID
    name: str
    email: Optional[str] = None
    status: ClientStatus = ClientStatus.ACTIVE
    credits_remaining: int = 0
    notes: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ClientActivitySnapshot:
    """Everything the criterion evaluator may look at for one client."""

    client_id: UUID
    completed_sessions: tuple[datetime, ...] = ()
    measurement_count: int = 0
    paid_order_total: Decimal = Decimal("0")
    current_weight: Optional[Decimal] = None
    target_weight: Optional[Decimal] = None
    timezone: str = "UTC"


@dataclass(slots=True)
class ReferralRecord:
    id: UUID
    tenant_id: UUID
    referrer_id: UUID
    referral_code: str
    status: ReferralStatus = ReferralStatus.PENDING
    referred_id: Optional[UUID] = None
    referred_email: Optional[str] = None
    referred_name: Optional[str] = None
    signed_up_at: Optional[datetime] = None
    qualified_at: Optional[datetime] = None
    rewarded_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    referrer_reward: Optional[RewardSpec] = None
    referred_reward: Optional[RewardSpec] = None
    referrer_reward_applied: bool = False
    referred_reward_applied: bool = False
    created_at: Optional[datetime] = None


@dataclass(slots=True)
class ReferralSettingsRecord:
    tenant_id: UUID
    referrer_reward_type: RewardType
    referrer_reward_value: int
    referred_reward_type: RewardType
    referred_reward_value: int
    qualification_criteria: QualificationCriteria
    is_active: bool = True
    max_referrals_per_client: Optional[int] = None
    referral_code_expiry_days: Optional[int] = None
    send_referral_emails: bool = True

    def referrer_reward(self) -> RewardSpec:
        return RewardSpec.build(self.referrer_reward_type, self.referrer_reward_value)

    def referred_reward(self) -> RewardSpec:
        return RewardSpec.build(self.referred_reward_type, self.referred_reward_value)


@dataclass(frozen=True, slots=True)
class DiscountRecord:
    id: UUID
    client_id: UUID
    percent: int
    description: Optional[str]
    status: ClientDiscountStatus = ClientDiscountStatus.ACTIVE
    referral_id: Optional[UUID] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class ReferrerSummary:
    client_id: UUID
    name: Optional[str]
    email: Optional[str]
    referral_count: int


@dataclass(slots=True)
class ReferralStatusCounts:
    counts: dict[ReferralStatus, int] = field(default_factory=dict)

    def get(self, status: ReferralStatus) -> int:
        return int(self.counts.get(status, 0))

    @property
    def total(self) -> int:
        return sum(self.counts.values())
