from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from studio_engagement.domain.engagement import BadgeDefinition
from studio_engagement.models.client import ClientStatus
from studio_engagement.observability.engagement import EngagementObservabilityStore
from studio_engagement.services.engagement import DEFAULT_BADGES, AchievementService


def _sessions(count: int) -> list[datetime]:
    start = datetime(2026, 10, 14, 10, tzinfo=timezone.utc)
    return [start - timedelta(days=index) for index in range(count)]


@pytest.mark.asyncio
async def test_seed_default_badges_is_idempotent(memory_store) -> None:
    tenant_id = memory_store.add_tenant()
    service = AchievementService(memory_store)

    assert await service.seed_default_badges(tenant_id) == len(DEFAULT_BADGES)
    assert await service.seed_default_badges(tenant_id) == 0

    names = {rule.name for rule in await memory_store.list_active_badges(tenant_id)}
    assert names == {definition.name for definition in DEFAULT_BADGES}


@pytest.mark.asyncio
async def test_check_and_award_badges_is_idempotent(memory_store) -> None:
    tenant_id = memory_store.add_tenant()
    client = memory_store.add_client(tenant_id, "Jana")
    memory_store.set_activity(
        client.id,
        completed_sessions=_sessions(10),
        measurement_count=5,
        current_weight=Decimal("64"),
        target_weight=Decimal("65"),
    )
    service = AchievementService(memory_store)
    await service.seed_default_badges(tenant_id)

    awarded = await service.check_and_award_badges(client.id, tenant_id)

    assert set(awarded) == {"První trénink", "Pravidelný", "Cílová váha", "Sledovač pokroku"}
    assert await service.check_and_award_badges(client.id, tenant_id) == []

    grants = await service.list_client_badges(client.id)
    assert sorted(grant.badge_name for grant in grants) == sorted(awarded)


@pytest.mark.asyncio
async def test_grants_never_exceed_active_rules(memory_store) -> None:
    tenant_id = memory_store.add_tenant()
    service = AchievementService(memory_store)
    await service.seed_default_badges(tenant_id)
    clients = [memory_store.add_client(tenant_id, f"Client {index}") for index in range(3)]
    for client in clients:
        memory_store.set_activity(
            client.id,
            completed_sessions=_sessions(120),
            measurement_count=10,
            current_weight=Decimal("60"),
            target_weight=Decimal("65"),
        )

    for _ in range(2):
        await service.check_all_client_badges(tenant_id)

    active_rules = await memory_store.list_active_badges(tenant_id)
    for client in clients:
        granted = await memory_store.list_granted_badge_ids(client.id)
        assert len(granted) <= len(active_rules)
        assert granted <= {rule.id for rule in active_rules}


@pytest.mark.asyncio
async def test_unknown_or_foreign_client_yields_nothing(memory_store) -> None:
    tenant_id = memory_store.add_tenant()
    other_tenant = memory_store.add_tenant()
    client = memory_store.add_client(other_tenant, "Elsewhere")
    memory_store.set_activity(client.id, completed_sessions=_sessions(1))
    service = AchievementService(memory_store)
    await service.seed_default_badges(tenant_id)

    assert await service.check_and_award_badges(client.id, tenant_id) == []
    assert await memory_store.list_granted_badge_ids(client.id) == set()


@pytest.mark.asyncio
async def test_unsupported_rule_is_skipped_and_counted(memory_store) -> None:
    tenant_id = memory_store.add_tenant()
    client = memory_store.add_client(tenant_id, "Petr")
    memory_store.set_activity(client.id, completed_sessions=_sessions(1))
    observability = EngagementObservabilityStore()
    service = AchievementService(memory_store, observability=observability)
    await service.seed_default_badges(tenant_id, catalog=DEFAULT_BADGES[:1])
    await memory_store.create_badge(
        tenant_id,
        BadgeDefinition(
            name="Mystery",
            description="Unknown rule",
            icon="help",
            color="#000000",
            category="misc",
            criteria={"type": "mystery", "value": 1},
        ),
    )

    awarded = await service.check_and_award_badges(client.id, tenant_id)

    assert awarded == ["První trénink"]
    assert observability.snapshot().badges["skipped_rules"] == 1


@pytest.mark.asyncio
async def test_deactivated_badge_is_not_evaluated(memory_store) -> None:
    tenant_id = memory_store.add_tenant()
    client = memory_store.add_client(tenant_id, "Eva")
    memory_store.set_activity(client.id, completed_sessions=_sessions(1))
    service = AchievementService(memory_store)
    await service.seed_default_badges(tenant_id, catalog=DEFAULT_BADGES[:1])
    rule = (await memory_store.list_active_badges(tenant_id))[0]

    toggled = await service.set_badge_active(rule.id, False)

    assert toggled is not None and toggled.is_active is False
    assert await service.check_and_award_badges(client.id, tenant_id) == []

    await service.set_badge_active(rule.id, True)
    assert await service.check_and_award_badges(client.id, tenant_id) == ["První trénink"]


@pytest.mark.asyncio
async def test_grant_if_earned_checks_existing_grant(memory_store) -> None:
    tenant_id = memory_store.add_tenant()
    client = memory_store.add_client(tenant_id, "Karel")
    memory_store.set_activity(client.id, completed_sessions=_sessions(1))
    service = AchievementService(memory_store)
    await service.seed_default_badges(tenant_id, catalog=DEFAULT_BADGES[:2])
    rules = {rule.name: rule for rule in await memory_store.list_active_badges(tenant_id)}

    assert await service.grant_if_earned(client.id, rules["První trénink"]) is True
    assert await service.grant_if_earned(client.id, rules["První trénink"]) is False
    assert await service.grant_if_earned(client.id, rules["Pravidelný"]) is False


@pytest.mark.asyncio
async def test_sweep_paginates_and_continues_past_failures(memory_store, monkeypatch) -> None:
    tenant_id = memory_store.add_tenant()
    service = AchievementService(memory_store, batch_size=2)
    await service.seed_default_badges(tenant_id, catalog=DEFAULT_BADGES[:1])
    clients = [memory_store.add_client(tenant_id, f"Client {index}") for index in range(5)]
    memory_store.add_client(tenant_id, "Archived", status=ClientStatus.ARCHIVED)
    for client in clients:
        memory_store.set_activity(client.id, completed_sessions=_sessions(1))
    broken = clients[2]

    original_load = memory_store.load_activity

    async def flaky_load(client_id):
        if client_id == broken.id:
            raise RuntimeError("activity query failed")
        return await original_load(client_id)

    monkeypatch.setattr(memory_store, "load_activity", flaky_load)

    result = await service.check_all_client_badges(tenant_id)

    assert result.checked == 5
    assert result.awarded == 4
    assert result.failed == 1
    assert memory_store.rollbacks == 1
    assert memory_store.commits == 4
    assert {detail.client_id for detail in result.details} == {client.id for client in clients} - {broken.id}
    assert result.as_dict()["failed"] == 1


@pytest.mark.asyncio
async def test_sweep_details_carry_client_names(memory_store) -> None:
    tenant_id = memory_store.add_tenant()
    service = AchievementService(memory_store)
    await service.seed_default_badges(tenant_id, catalog=DEFAULT_BADGES[:1])
    client = memory_store.add_client(tenant_id, "Jana Nováková")
    memory_store.set_activity(client.id, completed_sessions=_sessions(1))

    result = await service.check_all_client_badges(tenant_id)

    assert result.details[0].client_name == "Jana Nováková"
    assert result.as_dict()["details"] == [
        {"client_id": str(client.id), "client_name": "Jana Nováková", "badges": ["První trénink"]}
    ]
