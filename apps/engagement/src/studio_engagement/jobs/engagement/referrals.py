"""Jobs that expire stale referrals and settle qualified ones."""

# meta: job: engagement-referral-sweep

from __future__ import annotations

from typing import Any, Dict
from uuid import UUID

from loguru import logger

from studio_engagement.core.settings import settings
from studio_engagement.models.engagement import ReferralStatus
from studio_engagement.observability.tracing import get_tracer
from studio_engagement.services.engagement import ReferralService, SqlAlchemyEngagementStore

from .common import SessionFactory, open_session, resolve_tenant_ids


async def run_referral_sweep(
    *,
    session_factory: SessionFactory,
    tenant_id: UUID | str | None = None,
    apply_rewards: bool = False,
) -> Dict[str, Any]:
    """Expire overdue referrals and, when enabled, apply rewards of qualified ones."""

    session = await open_session(session_factory)
    with get_tracer().start_as_current_span("engagement.referral_sweep") as span:
        async with session as managed_session:
            store = SqlAlchemyEngagementStore(managed_session)
            service = ReferralService(store)
            tenant_ids = await resolve_tenant_ids(store, tenant_id)

            summary: Dict[str, Any] = {
                "tenants": len(tenant_ids),
                "expired": 0,
                "rewarded": 0,
                "reward_failures": 0,
            }
            for current in tenant_ids:
                summary["expired"] += await service.expire_stale_referrals(current)
                await managed_session.commit()

                if apply_rewards:
                    rewarded, failures = await _settle_qualified(store, service, current)
                    summary["rewarded"] += rewarded
                    summary["reward_failures"] += failures

            span.set_attribute("engagement.tenants", summary["tenants"])
            span.set_attribute("engagement.referrals_expired", summary["expired"])
            logger.bind(summary=summary).info("Referral sweep completed")
            return summary


async def _settle_qualified(
    store: SqlAlchemyEngagementStore,
    service: ReferralService,
    tenant_id: UUID,
) -> tuple[int, int]:
    batch_size = settings.referral_sweep_batch_size
    rewarded = 0
    failures = 0
    offset = 0
    while True:
        batch = await store.list_referrals(
            tenant_id,
            statuses=[ReferralStatus.QUALIFIED],
            offset=offset,
            limit=batch_size,
        )
        if not batch:
            break

        still_qualified = 0
        for referral in batch:
            try:
                result = await service.apply_referral_rewards(referral.id)
                await store.commit()
            except Exception:
                await store.rollback()
                failures += 1
                still_qualified += 1
                logger.exception(
                    "Referral reward settlement failed",
                    referral_id=str(referral.id),
                    tenant_id=str(tenant_id),
                )
                continue
            if result.success:
                rewarded += 1
            else:
                still_qualified += 1

        if len(batch) < batch_size:
            break
        offset += still_qualified

    return rewarded, failures


__all__ = ["run_referral_sweep"]
