"""Storage port for the engagement engine and its SQLAlchemy implementation."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional, Protocol, Sequence
from uuid import UUID, uuid4

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from studio_engagement.core.settings import settings
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
from studio_engagement.models.client import (
    Client,
    ClientMeasurement,
    ClientOrder,
    ClientStatus,
    OrderPaymentStatus,
    TrainingSession,
    TrainingSessionStatus,
)
from studio_engagement.models.engagement import (
    Badge,
    ClientBadge,
    ClientDiscount,
    ClientDiscountStatus,
    Referral,
    ReferralSettings,
    ReferralStatus,
)
from studio_engagement.models.tenant import Tenant
from studio_engagement.schemas.engagement import decode_reward, encode_reward


class EngagementStore(Protocol):
    """Persistence operations the engagement services depend on."""

    async def list_active_tenant_ids(self) -> list[UUID]:
        ...

    async def list_active_badges(self, tenant_id: UUID) -> list[BadgeRule]:
        ...

    async def get_badge_by_name(self, tenant_id: UUID, name: str) -> BadgeRule | None:
        ...

    async def create_badge(self, tenant_id: UUID, definition: BadgeDefinition) -> BadgeRule:
        ...

    async def set_badge_active(self, badge_id: UUID, is_active: bool) -> BadgeRule | None:
        ...

    async def list_granted_badge_ids(self, client_id: UUID) -> set[UUID]:
        ...

    async def create_grant(self, client_id: UUID, badge_id: UUID) -> bool:
        """Insert a grant; ``False`` when one already exists for the pair."""
        ...

    async def list_client_grants(self, client_id: UUID) -> list[BadgeGrant]:
        ...

    async def get_client(self, client_id: UUID) -> ClientRecord | None:
        ...

    async def list_active_clients(self, tenant_id: UUID, *, offset: int, limit: int) -> list[ClientRecord]:
        ...

    async def load_activity(self, client_id: UUID) -> ClientActivitySnapshot | None:
        ...

    async def increment_client_credits(self, client_id: UUID, amount: int) -> None:
        ...

    async def create_discount(
        self,
        client_id: UUID,
        *,
        percent: int,
        description: str | None,
        referral_id: UUID | None = None,
    ) -> DiscountRecord:
        ...

    async def get_referral_settings(self, tenant_id: UUID) -> ReferralSettingsRecord | None:
        ...

    async def save_referral_settings(self, record: ReferralSettingsRecord) -> ReferralSettingsRecord:
        ...

    async def create_referral(self, record: ReferralRecord) -> ReferralRecord:
        ...

    async def get_referral(self, referral_id: UUID) -> ReferralRecord | None:
        ...

    async def get_referral_by_code(self, code: str) -> ReferralRecord | None:
        ...

    async def save_referral(self, record: ReferralRecord) -> None:
        ...

    async def list_referrals(
        self,
        tenant_id: UUID,
        *,
        statuses: Sequence[ReferralStatus] | None = None,
        referrer_id: UUID | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[ReferralRecord]:
        ...

    async def count_referrals_by_status(self, tenant_id: UUID) -> ReferralStatusCounts:
        ...

    async def top_referrers(self, tenant_id: UUID, *, limit: int) -> list[ReferrerSummary]:
        ...

    async def commit(self) -> None:
        ...

    async def rollback(self) -> None:
        ...


def _to_badge_rule(row: Badge) -> BadgeRule:
    return BadgeRule(
        id=row.id,
        tenant_id=row.tenant_id,
        name=row.name,
        criteria=dict(row.criteria or {}),
        is_active=bool(row.is_active),
        description=row.description,
        icon=row.icon,
        color=row.color,
        category=row.category,
    )


def _to_client_record(row: Client) -> ClientRecord:
    return ClientRecord(
        id=row.id,
        tenant_id=row.tenant_id,
        name=row.name,
        email=row.email,
        status=row.status,
        credits_remaining=int(row.credits_remaining or 0),
        notes=row.notes,
    )


def _to_referral_record(row: Referral) -> ReferralRecord:
    return ReferralRecord(
        id=row.id,
        tenant_id=row.tenant_id,
        referrer_id=row.referrer_id,
        referral_code=row.referral_code,
        status=row.status,
        referred_id=row.referred_id,
        referred_email=row.referred_email,
        referred_name=row.referred_name,
        signed_up_at=row.signed_up_at,
        qualified_at=row.qualified_at,
        rewarded_at=row.rewarded_at,
        expires_at=row.expires_at,
        referrer_reward=decode_reward(row.referrer_reward),
        referred_reward=decode_reward(row.referred_reward),
        referrer_reward_applied=bool(row.referrer_reward_applied),
        referred_reward_applied=bool(row.referred_reward_applied),
        created_at=row.created_at,
    )


def _to_settings_record(row: ReferralSettings) -> ReferralSettingsRecord:
    return ReferralSettingsRecord(
        tenant_id=row.tenant_id,
        is_active=bool(row.is_active),
        referrer_reward_type=row.referrer_reward_type,
        referrer_reward_value=int(row.referrer_reward_value),
        referred_reward_type=row.referred_reward_type,
        referred_reward_value=int(row.referred_reward_value),
        qualification_criteria=row.qualification_criteria,
        max_referrals_per_client=row.max_referrals_per_client,
        referral_code_expiry_days=row.referral_code_expiry_days,
        send_referral_emails=bool(row.send_referral_emails),
    )


def _as_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return value if isinstance(value, Decimal) else Decimal(str(value))


class SqlAlchemyEngagementStore:
    """``EngagementStore`` backed by an ``AsyncSession``.

    Writes are flushed, not committed; callers own the transaction.
    """

    def __init__(self, db_session: AsyncSession, *, default_timezone: str | None = None) -> None:
        self._db = db_session
        self._default_timezone = default_timezone or settings.engagement_default_timezone

    async def list_active_tenant_ids(self) -> list[UUID]:
        stmt = select(Tenant.id).where(Tenant.is_active.is_(True)).order_by(Tenant.created_at.asc(), Tenant.id.asc())
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    async def list_active_badges(self, tenant_id: UUID) -> list[BadgeRule]:
        stmt = (
            select(Badge)
            .where(Badge.tenant_id == tenant_id, Badge.is_active.is_(True))
            .order_by(Badge.created_at.asc(), Badge.name.asc())
        )
        result = await self._db.execute(stmt)
        badges = [_to_badge_rule(row) for row in result.scalars().all()]
        logger.debug("Fetched active badges", tenant_id=str(tenant_id), count=len(badges))
        return badges

    async def get_badge_by_name(self, tenant_id: UUID, name: str) -> BadgeRule | None:
        stmt = select(Badge).where(Badge.tenant_id == tenant_id, Badge.name == name)
        result = await self._db.execute(stmt)
        row = result.scalar_one_or_none()
        return _to_badge_rule(row) if row else None

    async def create_badge(self, tenant_id: UUID, definition: BadgeDefinition) -> BadgeRule:
        row = Badge(
            tenant_id=tenant_id,
            name=definition.name,
            description=definition.description,
            icon=definition.icon,
            color=definition.color,
            category=definition.category,
            criteria=dict(definition.criteria),
            is_active=True,
        )
        self._db.add(row)
        await self._db.flush()
        return _to_badge_rule(row)

    async def set_badge_active(self, badge_id: UUID, is_active: bool) -> BadgeRule | None:
        row = await self._db.get(Badge, badge_id)
        if row is None:
            return None
        row.is_active = is_active
        await self._db.flush()
        return _to_badge_rule(row)

    async def list_granted_badge_ids(self, client_id: UUID) -> set[UUID]:
        stmt = select(ClientBadge.badge_id).where(ClientBadge.client_id == client_id)
        result = await self._db.execute(stmt)
        return set(result.scalars().all())

    async def create_grant(self, client_id: UUID, badge_id: UUID) -> bool:
        values = {"id": uuid4(), "client_id": client_id, "badge_id": badge_id, "notified": False}
        dialect = self._db.get_bind().dialect.name
        if dialect == "postgresql":
            stmt = pg_insert(ClientBadge).values(**values).on_conflict_do_nothing(
                index_elements=[ClientBadge.client_id, ClientBadge.badge_id]
            )
        elif dialect == "sqlite":
            stmt = sqlite_insert(ClientBadge).values(**values).on_conflict_do_nothing(
                index_elements=[ClientBadge.client_id, ClientBadge.badge_id]
            )
        else:
            existing = await self._db.execute(
                select(ClientBadge.id).where(ClientBadge.client_id == client_id, ClientBadge.badge_id == badge_id)
            )
            if existing.scalar_one_or_none() is not None:
                return False
            self._db.add(ClientBadge(**values))
            await self._db.flush()
            return True

        result = await self._db.execute(stmt)
        return (result.rowcount or 0) > 0

    async def list_client_grants(self, client_id: UUID) -> list[BadgeGrant]:
        stmt = (
            select(ClientBadge.badge_id, Badge.name, ClientBadge.earned_at)
            .join(Badge, Badge.id == ClientBadge.badge_id)
            .where(ClientBadge.client_id == client_id)
            .order_by(ClientBadge.earned_at.desc())
        )
        result = await self._db.execute(stmt)
        return [
            BadgeGrant(client_id=client_id, badge_id=badge_id, badge_name=name, earned_at=earned_at)
            for badge_id, name, earned_at in result.all()
        ]

    async def get_client(self, client_id: UUID) -> ClientRecord | None:
        row = await self._db.get(Client, client_id)
        return _to_client_record(row) if row else None

    async def list_active_clients(self, tenant_id: UUID, *, offset: int, limit: int) -> list[ClientRecord]:
        stmt = (
            select(Client)
            .where(Client.tenant_id == tenant_id, Client.status == ClientStatus.ACTIVE)
            .order_by(Client.created_at.asc(), Client.id.asc())
            .offset(offset)
            .limit(limit)
        )
        result = await self._db.execute(stmt)
        return [_to_client_record(row) for row in result.scalars().all()]

    async def load_activity(self, client_id: UUID) -> ClientActivitySnapshot | None:
        client_stmt = (
            select(Client.current_weight, Client.target_weight, Tenant.timezone)
            .join(Tenant, Tenant.id == Client.tenant_id)
            .where(Client.id == client_id)
        )
        client_row = (await self._db.execute(client_stmt)).one_or_none()
        if client_row is None:
            return None
        current_weight, target_weight, tenant_timezone = client_row

        sessions_stmt = (
            select(TrainingSession.scheduled_at)
            .where(
                TrainingSession.client_id == client_id,
                TrainingSession.status == TrainingSessionStatus.COMPLETED,
            )
            .order_by(TrainingSession.scheduled_at.desc())
        )
        completed = tuple((await self._db.execute(sessions_stmt)).scalars().all())

        measurements_stmt = select(func.count(ClientMeasurement.id)).where(ClientMeasurement.client_id == client_id)
        measurement_count = int((await self._db.execute(measurements_stmt)).scalar_one() or 0)

        orders_stmt = select(func.coalesce(func.sum(ClientOrder.total), 0)).where(
            ClientOrder.client_id == client_id,
            ClientOrder.payment_status == OrderPaymentStatus.PAID,
        )
        paid_total = _as_decimal((await self._db.execute(orders_stmt)).scalar_one()) or Decimal("0")

        return ClientActivitySnapshot(
            client_id=client_id,
            completed_sessions=completed,
            measurement_count=measurement_count,
            paid_order_total=paid_total,
            current_weight=_as_decimal(current_weight),
            target_weight=_as_decimal(target_weight),
            timezone=tenant_timezone or self._default_timezone,
        )

    async def increment_client_credits(self, client_id: UUID, amount: int) -> None:
        stmt = (
            update(Client)
            .where(Client.id == client_id)
            .values(credits_remaining=Client.credits_remaining + amount)
        )
        result = await self._db.execute(stmt)
        if not result.rowcount:
            raise ValueError(f"Client {client_id} not found for credit increment")

    async def create_discount(
        self,
        client_id: UUID,
        *,
        percent: int,
        description: str | None,
        referral_id: UUID | None = None,
    ) -> DiscountRecord:
        row = ClientDiscount(
            client_id=client_id,
            referral_id=referral_id,
            percent=percent,
            description=description,
            status=ClientDiscountStatus.ACTIVE,
        )
        self._db.add(row)
        await self._db.flush()
        await self._db.refresh(row)
        return DiscountRecord(
            id=row.id,
            client_id=row.client_id,
            percent=row.percent,
            description=row.description,
            status=row.status,
            referral_id=row.referral_id,
            created_at=row.created_at,
        )

    async def get_referral_settings(self, tenant_id: UUID) -> ReferralSettingsRecord | None:
        row = await self._settings_row(tenant_id)
        return _to_settings_record(row) if row else None

    async def save_referral_settings(self, record: ReferralSettingsRecord) -> ReferralSettingsRecord:
        row = await self._settings_row(record.tenant_id)
        if row is None:
            row = ReferralSettings(tenant_id=record.tenant_id)
            self._db.add(row)

        row.is_active = record.is_active
        row.referrer_reward_type = record.referrer_reward_type
        row.referrer_reward_value = record.referrer_reward_value
        row.referred_reward_type = record.referred_reward_type
        row.referred_reward_value = record.referred_reward_value
        row.qualification_criteria = record.qualification_criteria
        row.max_referrals_per_client = record.max_referrals_per_client
        row.referral_code_expiry_days = record.referral_code_expiry_days
        row.send_referral_emails = record.send_referral_emails
        await self._db.flush()
        return _to_settings_record(row)

    async def _settings_row(self, tenant_id: UUID) -> ReferralSettings | None:
        stmt = select(ReferralSettings).where(ReferralSettings.tenant_id == tenant_id)
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def create_referral(self, record: ReferralRecord) -> ReferralRecord:
        row = Referral(id=record.id, tenant_id=record.tenant_id, referrer_id=record.referrer_id)
        self._apply_referral_fields(row, record)
        self._db.add(row)
        await self._db.flush()
        await self._db.refresh(row)
        return _to_referral_record(row)

    async def get_referral(self, referral_id: UUID) -> ReferralRecord | None:
        row = await self._db.get(Referral, referral_id)
        return _to_referral_record(row) if row else None

    async def get_referral_by_code(self, code: str) -> ReferralRecord | None:
        stmt = select(Referral).where(Referral.referral_code == code)
        result = await self._db.execute(stmt)
        row = result.scalar_one_or_none()
        return _to_referral_record(row) if row else None

    async def save_referral(self, record: ReferralRecord) -> None:
        row = await self._db.get(Referral, record.id)
        if row is None:
            raise ValueError(f"Referral {record.id} not found")
        self._apply_referral_fields(row, record)
        await self._db.flush()

    @staticmethod
    def _apply_referral_fields(row: Referral, record: ReferralRecord) -> None:
        row.referral_code = record.referral_code
        row.status = record.status
        row.referred_id = record.referred_id
        row.referred_email = record.referred_email
        row.referred_name = record.referred_name
        row.signed_up_at = record.signed_up_at
        row.qualified_at = record.qualified_at
        row.rewarded_at = record.rewarded_at
        row.expires_at = record.expires_at
        row.referrer_reward = encode_reward(record.referrer_reward)
        row.referred_reward = encode_reward(record.referred_reward)
        row.referrer_reward_applied = record.referrer_reward_applied
        row.referred_reward_applied = record.referred_reward_applied

    async def list_referrals(
        self,
        tenant_id: UUID,
        *,
        statuses: Sequence[ReferralStatus] | None = None,
        referrer_id: UUID | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[ReferralRecord]:
        stmt = select(Referral).where(Referral.tenant_id == tenant_id)
        if statuses:
            stmt = stmt.where(Referral.status.in_(list(statuses)))
        if referrer_id is not None:
            stmt = stmt.where(Referral.referrer_id == referrer_id)
        stmt = stmt.order_by(Referral.created_at.desc(), Referral.id.asc()).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self._db.execute(stmt)
        return [_to_referral_record(row) for row in result.scalars().all()]

    async def count_referrals_by_status(self, tenant_id: UUID) -> ReferralStatusCounts:
        stmt = (
            select(Referral.status, func.count(Referral.id))
            .where(Referral.tenant_id == tenant_id)
            .group_by(Referral.status)
        )
        result = await self._db.execute(stmt)
        return ReferralStatusCounts(counts={status: int(count) for status, count in result.all()})

    async def top_referrers(self, tenant_id: UUID, *, limit: int) -> list[ReferrerSummary]:
        referral_count = func.count(Referral.id).label("referral_count")
        stmt = (
            select(Client.id, Client.name, Client.email, referral_count)
            .join(Referral, Referral.referrer_id == Client.id)
            .where(
                Referral.tenant_id == tenant_id,
                Referral.status.in_([ReferralStatus.QUALIFIED, ReferralStatus.REWARDED]),
            )
            .group_by(Client.id, Client.name, Client.email)
            .order_by(referral_count.desc(), Client.name.asc())
            .limit(limit)
        )
        result = await self._db.execute(stmt)
        return [
            ReferrerSummary(client_id=client_id, name=name, email=email, referral_count=int(count))
            for client_id, name, email, count in result.all()
        ]

    async def commit(self) -> None:
        await self._db.commit()

    async def rollback(self) -> None:
        await self._db.rollback()


__all__ = ["EngagementStore", "SqlAlchemyEngagementStore"]
