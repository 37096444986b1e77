"""Jobs that seed and sweep achievement badges."""

# meta: job: engagement-badge-sweep

from __future__ import annotations

from typing import Any, Dict
from uuid import UUID

from loguru import logger

from studio_engagement.observability.tracing import get_tracer
from studio_engagement.services.engagement import AchievementService, SqlAlchemyEngagementStore

from .common import SessionFactory, open_session, resolve_tenant_ids


async def run_badge_sweep(*, session_factory: SessionFactory, tenant_id: UUID | str | None = None) -> Dict[str, Any]:
    """Evaluate badge rules for every active client of one or all tenants."""

    session = await open_session(session_factory)
    with get_tracer().start_as_current_span("engagement.badge_sweep") as span:
        async with session as managed_session:
            store = SqlAlchemyEngagementStore(managed_session)
            service = AchievementService(store)
            tenant_ids = await resolve_tenant_ids(store, tenant_id)

            summary: Dict[str, Any] = {"tenants": len(tenant_ids), "checked": 0, "awarded": 0, "failed": 0}
            for current in tenant_ids:
                result = await service.check_all_client_badges(current)
                summary["checked"] += result.checked
                summary["awarded"] += result.awarded
                summary["failed"] += result.failed

            span.set_attribute("engagement.tenants", summary["tenants"])
            span.set_attribute("engagement.badges_awarded", summary["awarded"])
            logger.bind(summary=summary).info("Badge sweep completed")
            return summary


async def seed_tenant_badges(*, session_factory: SessionFactory, tenant_id: UUID | str | None = None) -> Dict[str, Any]:
    """Insert missing catalog badges for one or all tenants."""

    session = await open_session(session_factory)
    async with session as managed_session:
        store = SqlAlchemyEngagementStore(managed_session)
        service = AchievementService(store)
        tenant_ids = await resolve_tenant_ids(store, tenant_id, configured=())

        created = 0
        for current in tenant_ids:
            created += await service.seed_default_badges(current)
        await managed_session.commit()

        summary = {"tenants": len(tenant_ids), "created": created}
        logger.bind(summary=summary).info("Badge catalog seeding completed")
        return summary


__all__ = ["run_badge_sweep", "seed_tenant_badges"]
