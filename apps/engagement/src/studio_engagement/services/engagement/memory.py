"""In-memory ``EngagementStore`` for tests and local experiments."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Sequence
from uuid import UUID, uuid4

from studio_engagement.domain.engagement import (
    BadgeDefinition,
    BadgeGrant,
    BadgeRule,
    ClientActivitySnapshot,
    ClientRecord,
    DiscountRecord,
    ReferralRecord,
    ReferralSettingsRecord,
    ReferralStatusCounts,
    ReferrerSummary,
)
from studio_engagement.models.client import ClientStatus
from studio_engagement.models.engagement import ReferralStatus


@dataclass
class _TenantEntry:
    id: UUID
    timezone: Optional[str]
    is_active: bool


class InMemoryEngagementStore:
    """Dictionary-backed store; returns copies so callers cannot mutate state in place."""

    def __init__(self, *, default_timezone: str = "UTC") -> None:
        self._default_timezone = default_timezone
        self.tenants: Dict[UUID, _TenantEntry] = {}
        self.clients: Dict[UUID, ClientRecord] = {}
        self.activity: Dict[UUID, ClientActivitySnapshot] = {}
        self.badges: Dict[UUID, BadgeRule] = {}
        self.grants: Dict[tuple[UUID, UUID], BadgeGrant] = {}
        self.discounts: List[DiscountRecord] = []
        self.referral_settings: Dict[UUID, ReferralSettingsRecord] = {}
        self.referrals: Dict[UUID, ReferralRecord] = {}
        self._referral_order: Dict[UUID, int] = {}
        self.commits = 0
        self.rollbacks = 0

    # Fixture helpers

    def add_tenant(self, *, timezone_name: str | None = None, is_active: bool = True) -> UUID:
        tenant_id = uuid4()
        self.tenants[tenant_id] = _TenantEntry(id=tenant_id, timezone=timezone_name, is_active=is_active)
        return tenant_id

    def add_client(
        self,
        tenant_id: UUID,
        name: str,
        *,
        email: str | None = None,
        status: ClientStatus = ClientStatus.ACTIVE,
        credits_remaining: int = 0,
    ) -> ClientRecord:
        record = ClientRecord(
            id=uuid4(),
            tenant_id=tenant_id,
            name=name,
            email=email,
            status=status,
            credits_remaining=credits_remaining,
        )
        self.clients[record.id] = record
        self.activity[record.id] = ClientActivitySnapshot(client_id=record.id)
        return replace(record)

    def set_activity(
        self,
        client_id: UUID,
        *,
        completed_sessions: Sequence[datetime] = (),
        measurement_count: int = 0,
        paid_order_total: Decimal | int = Decimal("0"),
        current_weight: Decimal | int | None = None,
        target_weight: Decimal | int | None = None,
    ) -> None:
        self.activity[client_id] = ClientActivitySnapshot(
            client_id=client_id,
            completed_sessions=tuple(completed_sessions),
            measurement_count=measurement_count,
            paid_order_total=Decimal(paid_order_total),
            current_weight=Decimal(current_weight) if current_weight is not None else None,
            target_weight=Decimal(target_weight) if target_weight is not None else None,
        )

    # EngagementStore

    async def list_active_tenant_ids(self) -> list[UUID]:
        return [tenant.id for tenant in self.tenants.values() if tenant.is_active]

    async def list_active_badges(self, tenant_id: UUID) -> list[BadgeRule]:
        return [replace(rule) for rule in self.badges.values() if rule.tenant_id == tenant_id and rule.is_active]

    async def get_badge_by_name(self, tenant_id: UUID, name: str) -> BadgeRule | None:
        for rule in self.badges.values():
            if rule.tenant_id == tenant_id and rule.name == name:
                return replace(rule)
        return None

    async def create_badge(self, tenant_id: UUID, definition: BadgeDefinition) -> BadgeRule:
        if await self.get_badge_by_name(tenant_id, definition.name) is not None:
            raise ValueError(f"Badge {definition.name!r} already exists for tenant {tenant_id}")
        rule = BadgeRule(
            id=uuid4(),
            tenant_id=tenant_id,
            name=definition.name,
            criteria=dict(definition.criteria),
            description=definition.description,
            icon=definition.icon,
            color=definition.color,
            category=definition.category,
        )
        self.badges[rule.id] = rule
        return replace(rule)

    async def set_badge_active(self, badge_id: UUID, is_active: bool) -> BadgeRule | None:
        rule = self.badges.get(badge_id)
        if rule is None:
            return None
        rule.is_active = is_active
        return replace(rule)

    async def list_granted_badge_ids(self, client_id: UUID) -> set[UUID]:
        return {badge_id for owner, badge_id in self.grants if owner == client_id}

    async def create_grant(self, client_id: UUID, badge_id: UUID) -> bool:
        key = (client_id, badge_id)
        if key in self.grants:
            return False
        self.grants[key] = BadgeGrant(
            client_id=client_id,
            badge_id=badge_id,
            badge_name=self.badges[badge_id].name,
            earned_at=datetime.now(timezone.utc),
        )
        return True

    async def list_client_grants(self, client_id: UUID) -> list[BadgeGrant]:
        grants = [grant for (owner, _), grant in self.grants.items() if owner == client_id]
        return sorted(grants, key=lambda grant: grant.earned_at, reverse=True)

    async def get_client(self, client_id: UUID) -> ClientRecord | None:
        record = self.clients.get(client_id)
        return replace(record) if record else None

    async def list_active_clients(self, tenant_id: UUID, *, offset: int, limit: int) -> list[ClientRecord]:
        matches = [
            replace(record)
            for record in self.clients.values()
            if record.tenant_id == tenant_id and record.status == ClientStatus.ACTIVE
        ]
        return matches[offset : offset + limit]

    async def load_activity(self, client_id: UUID) -> ClientActivitySnapshot | None:
        client = self.clients.get(client_id)
        if client is None:
            return None
        snapshot = self.activity.get(client_id) or ClientActivitySnapshot(client_id=client_id)
        tenant = self.tenants.get(client.tenant_id)
        zone = (tenant.timezone if tenant else None) or self._default_timezone
        return replace(snapshot, timezone=zone)

    async def increment_client_credits(self, client_id: UUID, amount: int) -> None:
        record = self.clients.get(client_id)
        if record is None:
            raise ValueError(f"Client {client_id} not found for credit increment")
        record.credits_remaining += amount

    async def create_discount(
        self,
        client_id: UUID,
        *,
        percent: int,
        description: str | None,
        referral_id: UUID | None = None,
    ) -> DiscountRecord:
        discount = DiscountRecord(
            id=uuid4(),
            client_id=client_id,
            percent=percent,
            description=description,
            referral_id=referral_id,
            created_at=datetime.now(timezone.utc),
        )
        self.discounts.append(discount)
        return discount

    async def get_referral_settings(self, tenant_id: UUID) -> ReferralSettingsRecord | None:
        record = self.referral_settings.get(tenant_id)
        return replace(record) if record else None

    async def save_referral_settings(self, record: ReferralSettingsRecord) -> ReferralSettingsRecord:
        self.referral_settings[record.tenant_id] = replace(record)
        return replace(record)

    async def create_referral(self, record: ReferralRecord) -> ReferralRecord:
        if await self.get_referral_by_code(record.referral_code) is not None:
            raise ValueError(f"Referral code {record.referral_code!r} already issued")
        stored = replace(record, created_at=record.created_at or datetime.now(timezone.utc))
        self.referrals[stored.id] = stored
        self._referral_order[stored.id] = len(self._referral_order)
        return replace(stored)

    async def get_referral(self, referral_id: UUID) -> ReferralRecord | None:
        record = self.referrals.get(referral_id)
        return replace(record) if record else None

    async def get_referral_by_code(self, code: str) -> ReferralRecord | None:
        for record in self.referrals.values():
            if record.referral_code == code:
                return replace(record)
        return None

    async def save_referral(self, record: ReferralRecord) -> None:
        if record.id not in self.referrals:
            raise ValueError(f"Referral {record.id} not found")
        self.referrals[record.id] = replace(record)

    async def list_referrals(
        self,
        tenant_id: UUID,
        *,
        statuses: Sequence[ReferralStatus] | None = None,
        referrer_id: UUID | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[ReferralRecord]:
        matches = [
            record
            for record in self.referrals.values()
            if record.tenant_id == tenant_id
            and (not statuses or record.status in statuses)
            and (referrer_id is None or record.referrer_id == referrer_id)
        ]
        matches.sort(key=lambda record: self._referral_order[record.id], reverse=True)
        end = None if limit is None else offset + limit
        return [replace(record) for record in matches[offset:end]]

    async def count_referrals_by_status(self, tenant_id: UUID) -> ReferralStatusCounts:
        counts = Counter(record.status for record in self.referrals.values() if record.tenant_id == tenant_id)
        return ReferralStatusCounts(counts=dict(counts))

    async def top_referrers(self, tenant_id: UUID, *, limit: int) -> list[ReferrerSummary]:
        converted = {ReferralStatus.QUALIFIED, ReferralStatus.REWARDED}
        counts = Counter(
            record.referrer_id
            for record in self.referrals.values()
            if record.tenant_id == tenant_id and record.status in converted
        )
        summaries = []
        for client_id, count in counts.items():
            client = self.clients.get(client_id)
            summaries.append(
                ReferrerSummary(
                    client_id=client_id,
                    name=client.name if client else None,
                    email=client.email if client else None,
                    referral_count=count,
                )
            )
        summaries.sort(key=lambda summary: (-summary.referral_count, summary.name or ""))
        return summaries[:limit]

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1


__all__ = ["InMemoryEngagementStore"]
