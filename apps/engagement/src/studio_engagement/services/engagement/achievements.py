"""Badge rule evaluation and idempotent grant persistence."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from loguru import logger

from studio_engagement.core.settings import settings
from studio_engagement.domain.engagement import (
    BadgeDefinition,
    BadgeGrant,
    BadgeRule,
    ClientActivitySnapshot,
)
from studio_engagement.observability.engagement import EngagementObservabilityStore, get_engagement_store
from studio_engagement.schemas.engagement import Criterion, UnsupportedCriterionError, decode_criterion

from .catalog import DEFAULT_BADGES
from .criteria import evaluate_criterion
from .store import EngagementStore


@dataclass(frozen=True, slots=True)
class ClientBadgeAward:
    client_id: UUID
    client_name: str
    badge_names: tuple[str, ...]


@dataclass(slots=True)
class BadgeSweepResult:
    """Outcome of evaluating every active client of a tenant."""

    tenant_id: UUID
    checked: int = 0
    awarded: int = 0
    failed: int = 0
    details: List[ClientBadgeAward] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "tenant_id": str(self.tenant_id),
            "checked": self.checked,
            "awarded": self.awarded,
            "failed": self.failed,
            "details": [
                {
                    "client_id": str(detail.client_id),
                    "client_name": detail.client_name,
                    "badges": list(detail.badge_names),
                }
                for detail in self.details
            ],
        }


class AchievementService:
    """Evaluate tenant badge rules against client activity and record grants."""

    def __init__(
        self,
        store: EngagementStore,
        *,
        batch_size: int | None = None,
        observability: EngagementObservabilityStore | None = None,
    ) -> None:
        self._store = store
        self._batch_size = batch_size or settings.badge_sweep_batch_size
        self._observability = observability or get_engagement_store()

    async def grant_if_earned(
        self,
        client_id: UUID,
        rule: BadgeRule,
        snapshot: ClientActivitySnapshot | None = None,
    ) -> bool:
        """Grant ``rule`` to the client when earned; ``False`` when already held or not met."""

        if rule.id in await self._store.list_granted_badge_ids(client_id):
            return False

        criterion = self._decode_rule(rule)
        if criterion is None:
            return False

        if snapshot is None:
            snapshot = await self._store.load_activity(client_id)
            if snapshot is None:
                return False

        if not evaluate_criterion(criterion, snapshot):
            return False

        created = await self._store.create_grant(client_id, rule.id)
        if created:
            self._observability.record_badge_event("granted")
            logger.info("Badge granted", client_id=str(client_id), badge_id=str(rule.id), badge=rule.name)
        return created

    async def check_and_award_badges(self, client_id: UUID, tenant_id: UUID) -> list[str]:
        """Evaluate every ungranted active rule and return the names of new grants."""

        client = await self._store.get_client(client_id)
        if client is None or client.tenant_id != tenant_id:
            logger.warning(
                "Skipping badge check for unknown client",
                client_id=str(client_id),
                tenant_id=str(tenant_id),
            )
            return []

        rules = await self._store.list_active_badges(tenant_id)
        granted = await self._store.list_granted_badge_ids(client_id)
        pending = [rule for rule in rules if rule.id not in granted]
        if not pending:
            return []

        snapshot = await self._store.load_activity(client_id)
        if snapshot is None:
            return []

        awarded: list[str] = []
        for rule in pending:
            criterion = self._decode_rule(rule)
            if criterion is None:
                continue
            if not evaluate_criterion(criterion, snapshot):
                continue
            if await self._store.create_grant(client_id, rule.id):
                awarded.append(rule.name)

        if awarded:
            self._observability.record_badge_event("granted", len(awarded))
            logger.info(
                "Awarded badges",
                client_id=str(client_id),
                tenant_id=str(tenant_id),
                badges=awarded,
            )
        return awarded

    async def check_all_client_badges(self, tenant_id: UUID) -> BadgeSweepResult:
        """Sweep all active clients of a tenant, committing after each client."""

        result = BadgeSweepResult(tenant_id=tenant_id)
        offset = 0
        while True:
            clients = await self._store.list_active_clients(tenant_id, offset=offset, limit=self._batch_size)
            if not clients:
                break

            for client in clients:
                result.checked += 1
                try:
                    names = await self.check_and_award_badges(client.id, tenant_id)
                    await self._store.commit()
                except Exception:
                    await self._store.rollback()
                    result.failed += 1
                    self._observability.record_badge_event("client_failures")
                    logger.exception(
                        "Badge evaluation failed for client",
                        client_id=str(client.id),
                        tenant_id=str(tenant_id),
                    )
                    continue

                if names:
                    result.awarded += len(names)
                    result.details.append(
                        ClientBadgeAward(client_id=client.id, client_name=client.name, badge_names=tuple(names))
                    )

            if len(clients) < self._batch_size:
                break
            offset += self._batch_size

        self._observability.record_badge_event("sweeps")
        logger.bind(summary=result.as_dict()).info("Badge sweep finished for tenant")
        return result

    async def seed_default_badges(
        self,
        tenant_id: UUID,
        catalog: Iterable[BadgeDefinition] = DEFAULT_BADGES,
    ) -> int:
        """Create catalog badges missing for the tenant; returns how many were inserted."""

        created = 0
        for definition in catalog:
            if await self._store.get_badge_by_name(tenant_id, definition.name) is not None:
                continue
            await self._store.create_badge(tenant_id, definition)
            created += 1

        logger.info("Seeded default badges", tenant_id=str(tenant_id), created=created)
        return created

    async def set_badge_active(self, badge_id: UUID, is_active: bool) -> Optional[BadgeRule]:
        rule = await self._store.set_badge_active(badge_id, is_active)
        if rule is None:
            logger.warning("Badge not found for toggle", badge_id=str(badge_id))
            return None
        logger.info("Badge toggled", badge_id=str(badge_id), badge=rule.name, is_active=is_active)
        return rule

    async def list_client_badges(self, client_id: UUID) -> list[BadgeGrant]:
        return await self._store.list_client_grants(client_id)

    def _decode_rule(self, rule: BadgeRule) -> Criterion | None:
        try:
            return decode_criterion(rule.criteria)
        except UnsupportedCriterionError as exc:
            self._observability.record_badge_event("skipped_rules")
            logger.warning(
                "Skipping badge with unsupported criteria",
                badge_id=str(rule.id),
                badge=rule.name,
                error=str(exc),
            )
            return None


__all__ = ["AchievementService", "BadgeSweepResult", "ClientBadgeAward"]
