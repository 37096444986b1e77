from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from studio_engagement.__main__ import _build_parser
from studio_engagement.jobs.engagement import run_badge_sweep, run_referral_sweep, seed_tenant_badges
from studio_engagement.models import (
    Badge,
    Client,
    ClientBadge,
    Referral,
    ReferralStatus,
    Tenant,
    TrainingSession,
    TrainingSessionStatus,
)
from studio_engagement.schemas.engagement import RewardSpec, encode_reward
from studio_engagement.models.engagement import RewardType


async def _seed(session_factory):
    async with session_factory() as session:
        tenant = Tenant(slug="studio", name="Studio", timezone="Europe/Prague")
        dormant = Tenant(slug="closed", name="Closed", is_active=False)
        session.add_all([tenant, dormant])
        await session.flush()
        active = Client(tenant_id=tenant.id, name="Jana")
        idle = Client(tenant_id=tenant.id, name="Petr")
        session.add_all([active, idle])
        await session.flush()
        session.add(
            TrainingSession(
                tenant_id=tenant.id,
                client_id=active.id,
                scheduled_at=datetime(2026, 10, 14, 17, tzinfo=timezone.utc),
                status=TrainingSessionStatus.COMPLETED,
            )
        )
        await session.commit()
        return tenant.id, dormant.id, active.id, idle.id


@pytest.mark.asyncio
async def test_seed_and_badge_sweep(session_factory) -> None:
    tenant_id, dormant_id, active_id, _ = await _seed(session_factory)

    seeded = await seed_tenant_badges(session_factory=session_factory)
    assert seeded == {"tenants": 1, "created": 8}

    summary = await run_badge_sweep(session_factory=session_factory)
    assert summary == {"tenants": 1, "checked": 2, "awarded": 1, "failed": 0}

    again = await run_badge_sweep(session_factory=session_factory, tenant_id=str(tenant_id))
    assert again["awarded"] == 0

    async with session_factory() as session:
        grants = (await session.execute(select(ClientBadge))).scalars().all()
        assert [grant.client_id for grant in grants] == [active_id]
        dormant_badges = (await session.execute(select(Badge).where(Badge.tenant_id == dormant_id))).scalars().all()
        assert dormant_badges == []


@pytest.mark.asyncio
async def test_referral_sweep_expires_and_settles(session_factory) -> None:
    tenant_id, _, referrer_id, friend_id = await _seed(session_factory)
    now = datetime.now(timezone.utc)

    async with session_factory() as session:
        stale = Referral(
            tenant_id=tenant_id,
            referrer_id=referrer_id,
            referral_code="STALE001",
            status=ReferralStatus.PENDING,
            expires_at=now - timedelta(days=1),
        )
        live = Referral(
            tenant_id=tenant_id,
            referrer_id=referrer_id,
            referral_code="LIVE0001",
            status=ReferralStatus.PENDING,
            expires_at=now + timedelta(days=10),
        )
        qualified = Referral(
            tenant_id=tenant_id,
            referrer_id=referrer_id,
            referred_id=friend_id,
            referral_code="QUAL0001",
            status=ReferralStatus.QUALIFIED,
            referrer_reward=encode_reward(RewardSpec.build(RewardType.CREDITS, 2)),
            referred_reward=encode_reward(RewardSpec.build(RewardType.CASH, 100)),
        )
        session.add_all([stale, live, qualified])
        await session.commit()
        stale_id, live_id, qualified_id = stale.id, live.id, qualified.id

    without_rewards = await run_referral_sweep(session_factory=session_factory, tenant_id=tenant_id)
    assert without_rewards == {"tenants": 1, "expired": 1, "rewarded": 0, "reward_failures": 0}

    with_rewards = await run_referral_sweep(session_factory=session_factory, tenant_id=tenant_id, apply_rewards=True)
    assert with_rewards == {"tenants": 1, "expired": 0, "rewarded": 1, "reward_failures": 0}

    async with session_factory() as session:
        assert (await session.get(Referral, stale_id)).status == ReferralStatus.EXPIRED
        assert (await session.get(Referral, live_id)).status == ReferralStatus.PENDING
        assert (await session.get(Referral, qualified_id)).status == ReferralStatus.REWARDED
        assert (await session.get(Client, referrer_id)).credits_remaining == 2


def test_cli_parser_accepts_job_commands() -> None:
    parser = _build_parser()

    args = parser.parse_args(["sweep-referrals", "--tenant", "abc", "--apply-rewards"])
    assert args.command == "sweep-referrals"
    assert args.tenant == "abc"
    assert args.apply_rewards is True

    assert parser.parse_args([]).command is None
    assert parser.parse_args(["seed-badges"]).tenant is None
