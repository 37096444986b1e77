from datetime import datetime, timedelta, timezone

import pytest

from studio_engagement.models.engagement import (
    QualificationCriteria,
    ReferralStatus,
    RewardType,
)
from studio_engagement.schemas.engagement import ReferralSettingsPatch, RewardSpec
from studio_engagement.services.engagement import (
    QualificationEvent,
    ReferralService,
    RewardApplicator,
)

NOW = datetime(2026, 10, 17, 9, 0, tzinfo=timezone.utc)


def _service(store, **kwargs) -> ReferralService:
    return ReferralService(store, clock=lambda: NOW, **kwargs)


@pytest.fixture
def studio(memory_store):
    tenant_id = memory_store.add_tenant()
    referrer = memory_store.add_client(tenant_id, "Referrer", email="referrer@example.com")
    friend = memory_store.add_client(tenant_id, "Friend", email="friend@example.com")
    return tenant_id, referrer, friend


async def _qualified_referral(service, tenant_id, referrer, friend):
    referral = await service.create_referral(tenant_id, referrer.id, referred_email=friend.email)
    assert await service.mark_referral_signed_up(referral.id, friend.id) is True
    assert await service.check_and_qualify_referral(referral.id, QualificationEvent.FIRST_SESSION) is True
    return referral


@pytest.mark.asyncio
async def test_default_settings_are_created_once(memory_store, studio) -> None:
    tenant_id, _, _ = studio
    service = _service(memory_store)

    settings_record = await service.get_referral_settings(tenant_id)

    assert settings_record.referrer_reward_type == RewardType.CREDITS
    assert settings_record.referrer_reward_value == 1
    assert settings_record.referred_reward_type == RewardType.DISCOUNT
    assert settings_record.referred_reward_value == 10
    assert settings_record.qualification_criteria == QualificationCriteria.FIRST_SESSION
    assert list(memory_store.referral_settings) == [tenant_id]


@pytest.mark.asyncio
async def test_update_settings_only_touches_set_fields(memory_store, studio) -> None:
    tenant_id, _, _ = studio
    service = _service(memory_store)

    updated = await service.update_referral_settings(tenant_id, ReferralSettingsPatch(referrer_reward_value=3))

    assert updated.referrer_reward_value == 3
    assert updated.referred_reward_value == 10
    assert updated.qualification_criteria == QualificationCriteria.FIRST_SESSION


@pytest.mark.asyncio
async def test_referral_end_to_end(memory_store, studio) -> None:
    tenant_id, referrer, friend = studio
    service = _service(memory_store)

    referral = await service.create_referral(tenant_id, referrer.id, referred_email=friend.email)
    assert referral.status == ReferralStatus.PENDING
    assert len(referral.referral_code) == 8

    await service.mark_referral_signed_up(referral.id, friend.id)
    assert await service.check_and_qualify_referral(referral.id, QualificationEvent.FIRST_SESSION) is True

    qualified = await memory_store.get_referral(referral.id)
    assert qualified.status == ReferralStatus.QUALIFIED
    assert qualified.qualified_at == NOW
    assert qualified.referrer_reward.description == "1 kredit zdarma"
    assert qualified.referred_reward.description == "10% sleva na dalsi nakup"

    result = await service.apply_referral_rewards(referral.id)

    assert result.success is True
    assert result.as_dict()["referrer_reward"] == "1 kredit zdarma"
    rewarded = await memory_store.get_referral(referral.id)
    assert rewarded.status == ReferralStatus.REWARDED
    assert rewarded.rewarded_at == NOW
    assert rewarded.referrer_reward_applied is True
    assert rewarded.referred_reward_applied is True
    assert memory_store.clients[referrer.id].credits_remaining == 1
    assert len(memory_store.discounts) == 1
    discount = memory_store.discounts[0]
    assert discount.client_id == friend.id
    assert discount.percent == 10
    assert discount.referral_id == referral.id


@pytest.mark.asyncio
async def test_qualifying_pending_referral_is_rejected(memory_store, studio) -> None:
    tenant_id, referrer, _ = studio
    service = _service(memory_store)
    referral = await service.create_referral(tenant_id, referrer.id)

    assert await service.check_and_qualify_referral(referral.id, QualificationEvent.FIRST_SESSION) is False
    assert (await memory_store.get_referral(referral.id)).status == ReferralStatus.PENDING


@pytest.mark.asyncio
async def test_qualification_requires_matching_event(memory_store, studio) -> None:
    tenant_id, referrer, friend = studio
    service = _service(memory_store)
    referral = await service.create_referral(tenant_id, referrer.id)
    await service.mark_referral_signed_up(referral.id, friend.id)

    assert await service.check_and_qualify_referral(referral.id, "first_payment") is False
    assert (await memory_store.get_referral(referral.id)).status == ReferralStatus.SIGNED_UP


@pytest.mark.asyncio
async def test_sign_up_only_from_pending(memory_store, studio) -> None:
    tenant_id, referrer, friend = studio
    service = _service(memory_store)
    referral = await service.create_referral(tenant_id, referrer.id)

    assert await service.mark_referral_signed_up(referral.id, friend.id) is True
    assert await service.mark_referral_signed_up(referral.id, referrer.id) is False
    assert (await memory_store.get_referral(referral.id)).referred_id == friend.id


@pytest.mark.asyncio
async def test_signup_criteria_qualifies_immediately(memory_store, studio) -> None:
    tenant_id, referrer, friend = studio
    service = _service(memory_store)
    await service.update_referral_settings(
        tenant_id,
        ReferralSettingsPatch(qualification_criteria=QualificationCriteria.SIGNUP),
    )
    referral = await service.create_referral(tenant_id, referrer.id)

    await service.mark_referral_signed_up(referral.id, friend.id)

    assert (await memory_store.get_referral(referral.id)).status == ReferralStatus.QUALIFIED


@pytest.mark.asyncio
async def test_rewards_are_applied_once(memory_store, studio) -> None:
    tenant_id, referrer, friend = studio
    service = _service(memory_store)
    referral = await _qualified_referral(service, tenant_id, referrer, friend)

    first = await service.apply_referral_rewards(referral.id)
    second = await service.apply_referral_rewards(referral.id)

    assert first.success is True
    assert second.success is False
    assert second.error == "Referral not qualified"
    assert memory_store.clients[referrer.id].credits_remaining == 1
    assert len(memory_store.discounts) == 1


@pytest.mark.asyncio
async def test_settings_edit_after_qualification_keeps_snapshot(memory_store, studio) -> None:
    tenant_id, referrer, friend = studio
    service = _service(memory_store)
    referral = await _qualified_referral(service, tenant_id, referrer, friend)

    await service.update_referral_settings(tenant_id, ReferralSettingsPatch(referrer_reward_value=5))
    result = await service.apply_referral_rewards(referral.id)

    assert result.referrer_reward == RewardSpec.build(RewardType.CREDITS, 1)
    assert memory_store.clients[referrer.id].credits_remaining == 1


class _FailingSecondApply(RewardApplicator):
    def __init__(self, store) -> None:
        super().__init__(store)
        self.calls = 0

    async def apply(self, client_id, reward, *, referral_id=None) -> None:
        self.calls += 1
        if self.calls == 2:
            raise RuntimeError("discount table unavailable")
        await super().apply(client_id, reward, referral_id=referral_id)


@pytest.mark.asyncio
async def test_retry_after_partial_failure_resumes_with_missing_side(memory_store, studio) -> None:
    tenant_id, referrer, friend = studio
    failing = _service(memory_store, reward_applicator=_FailingSecondApply(memory_store))
    referral = await _qualified_referral(failing, tenant_id, referrer, friend)

    with pytest.raises(RuntimeError):
        await failing.apply_referral_rewards(referral.id)

    partial = await memory_store.get_referral(referral.id)
    assert partial.status == ReferralStatus.QUALIFIED
    assert partial.referrer_reward_applied is True
    assert partial.referred_reward_applied is False

    result = await _service(memory_store).apply_referral_rewards(referral.id)

    assert result.success is True
    assert memory_store.clients[referrer.id].credits_remaining == 1
    assert len(memory_store.discounts) == 1


@pytest.mark.asyncio
async def test_create_referral_preconditions(memory_store, studio) -> None:
    tenant_id, referrer, _ = studio
    service = _service(memory_store)
    stranger_tenant = memory_store.add_tenant()
    stranger = memory_store.add_client(stranger_tenant, "Stranger")

    with pytest.raises(ValueError, match="Referrer not found"):
        await service.create_referral(tenant_id, stranger.id)

    await service.update_referral_settings(tenant_id, ReferralSettingsPatch(max_referrals_per_client=1))
    await service.create_referral(tenant_id, referrer.id)
    with pytest.raises(ValueError, match="limit"):
        await service.create_referral(tenant_id, referrer.id)

    await service.update_referral_settings(tenant_id, ReferralSettingsPatch(is_active=False))
    with pytest.raises(ValueError, match="not active"):
        await service.create_referral(tenant_id, referrer.id)


@pytest.mark.asyncio
async def test_redeem_code_and_expiry(memory_store, studio) -> None:
    tenant_id, referrer, friend = studio
    service = _service(memory_store)
    await service.update_referral_settings(tenant_id, ReferralSettingsPatch(referral_code_expiry_days=7))

    fresh = await service.create_referral(tenant_id, referrer.id)
    stale = await service.create_referral(tenant_id, referrer.id)
    assert fresh.expires_at == NOW + timedelta(days=7)

    redeemed = await service.redeem_referral_code(fresh.referral_code.lower(), friend.id)
    assert redeemed is not None
    assert redeemed.status == ReferralStatus.SIGNED_UP
    assert await service.redeem_referral_code(fresh.referral_code, friend.id) is None

    expired = await service.expire_stale_referrals(tenant_id, now=NOW + timedelta(days=8))

    assert expired == 2
    assert (await memory_store.get_referral(stale.id)).status == ReferralStatus.EXPIRED
    assert (await memory_store.get_referral(fresh.id)).status == ReferralStatus.EXPIRED
    assert await service.redeem_referral_code(stale.referral_code, friend.id) is None


@pytest.mark.asyncio
async def test_expire_sweep_pages_past_live_referrals(memory_store, studio) -> None:
    tenant_id, referrer, _ = studio
    service = _service(memory_store)
    await service.update_referral_settings(tenant_id, ReferralSettingsPatch(referral_code_expiry_days=30))
    for _ in range(5):
        await service.create_referral(tenant_id, referrer.id)
    overdue = await service.create_referral(tenant_id, referrer.id)
    record = await memory_store.get_referral(overdue.id)
    record.expires_at = NOW - timedelta(days=1)
    await memory_store.save_referral(record)

    assert await service.expire_stale_referrals(tenant_id, now=NOW, batch_size=2) == 1
    statuses = [referral.status for referral in await service.get_client_referrals(referrer.id, tenant_id)]
    assert statuses.count(ReferralStatus.EXPIRED) == 1
    assert statuses.count(ReferralStatus.PENDING) == 5


@pytest.mark.asyncio
async def test_referral_stats(memory_store, studio) -> None:
    tenant_id, referrer, friend = studio
    service = _service(memory_store)
    other = memory_store.add_client(tenant_id, "Other referrer")

    rewarded = await _qualified_referral(service, tenant_id, referrer, friend)
    await service.apply_referral_rewards(rewarded.id)
    await _qualified_referral(service, tenant_id, referrer, friend)
    await service.create_referral(tenant_id, other.id)
    signed = await service.create_referral(tenant_id, other.id)
    await service.mark_referral_signed_up(signed.id, friend.id)

    stats = await service.get_referral_stats(tenant_id)

    assert stats.total == 4
    assert stats.pending == 1
    assert stats.signed_up == 1
    assert stats.qualified == 1
    assert stats.rewarded == 1
    assert stats.expired == 0
    assert stats.conversion_rate == 50.0
    assert [summary.client_id for summary in stats.top_referrers] == [referrer.id]
    assert stats.top_referrers[0].referral_count == 2
    assert stats.as_dict()["top_referrers"][0]["name"] == "Referrer"


@pytest.mark.asyncio
async def test_stats_for_empty_program(memory_store, studio) -> None:
    tenant_id, _, _ = studio
    stats = await _service(memory_store).get_referral_stats(tenant_id)
    assert stats.total == 0
    assert stats.conversion_rate == 0


@pytest.mark.asyncio
async def test_client_referrals_newest_first(memory_store, studio) -> None:
    tenant_id, referrer, friend = studio
    service = _service(memory_store)
    first = await service.create_referral(tenant_id, referrer.id)
    second = await service.create_referral(tenant_id, referrer.id)
    await service.create_referral(tenant_id, friend.id)

    referrals = await service.get_client_referrals(referrer.id, tenant_id)

    assert [referral.id for referral in referrals] == [second.id, first.id]


@pytest.mark.asyncio
async def test_rewards_skip_referred_side_when_client_is_gone(memory_store, studio) -> None:
    tenant_id, referrer, friend = studio
    service = _service(memory_store)
    referral = await _qualified_referral(service, tenant_id, referrer, friend)
    orphaned = await memory_store.get_referral(referral.id)
    orphaned.referred_id = None
    await memory_store.save_referral(orphaned)

    result = await service.apply_referral_rewards(referral.id)

    assert result.success is True
    stored = await memory_store.get_referral(referral.id)
    assert stored.status == ReferralStatus.REWARDED
    assert stored.referrer_reward_applied is True
    assert stored.referred_reward_applied is False
    assert memory_store.clients[referrer.id].credits_remaining == 1
    assert memory_store.discounts == []


@pytest.mark.asyncio
async def test_unknown_qualification_event_is_rejected(memory_store, studio) -> None:
    tenant_id, referrer, friend = studio
    service = _service(memory_store)
    referral = await service.create_referral(tenant_id, referrer.id)
    await service.mark_referral_signed_up(referral.id, friend.id)

    assert await service.check_and_qualify_referral(referral.id, "first_visit") is False
    assert (await memory_store.get_referral(referral.id)).status == ReferralStatus.SIGNED_UP


@pytest.mark.asyncio
async def test_sign_up_rejects_referrer_and_foreign_clients(memory_store, studio) -> None:
    tenant_id, referrer, friend = studio
    service = _service(memory_store)
    outsider = memory_store.add_client(memory_store.add_tenant(), "Outsider")
    referral = await service.create_referral(tenant_id, referrer.id)

    assert await service.mark_referral_signed_up(referral.id, referrer.id) is False
    assert await service.mark_referral_signed_up(referral.id, outsider.id) is False
    assert await service.redeem_referral_code(referral.referral_code, referrer.id) is None

    pending = await memory_store.get_referral(referral.id)
    assert pending.status == ReferralStatus.PENDING
    assert pending.referred_id is None

    assert await service.mark_referral_signed_up(referral.id, friend.id) is True


@pytest.mark.asyncio
async def test_null_patch_clears_only_optional_limits(memory_store, studio) -> None:
    tenant_id, referrer, _ = studio
    service = _service(memory_store)
    await service.update_referral_settings(
        tenant_id,
        ReferralSettingsPatch(max_referrals_per_client=1, referral_code_expiry_days=7),
    )

    updated = await service.update_referral_settings(
        tenant_id,
        ReferralSettingsPatch.model_validate({"max_referrals_per_client": None, "referral_code_expiry_days": None}),
    )

    assert updated.max_referrals_per_client is None
    assert updated.referral_code_expiry_days is None
    assert updated.is_active is True
    assert updated.referrer_reward_type == RewardType.CREDITS
    await service.create_referral(tenant_id, referrer.id)
    await service.create_referral(tenant_id, referrer.id)
