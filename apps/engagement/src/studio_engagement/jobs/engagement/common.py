"""Session and tenant plumbing shared by engagement jobs."""

from __future__ import annotations

from typing import Awaitable, Callable, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from studio_engagement.core.settings import settings
from studio_engagement.services.engagement import EngagementStore

SessionFactory = Callable[[], AsyncSession] | Callable[[], Awaitable[AsyncSession]]


async def open_session(session_factory: SessionFactory) -> AsyncSession:
    maybe_session = session_factory()
    if isinstance(maybe_session, AsyncSession):
        return maybe_session
    return await maybe_session


async def resolve_tenant_ids(
    store: EngagementStore,
    tenant_id: UUID | str | None,
    configured: Sequence[str] | None = None,
) -> list[UUID]:
    """Explicit tenant first, then the configured sweep list, then every active tenant."""

    if tenant_id is not None:
        return [tenant_id if isinstance(tenant_id, UUID) else UUID(str(tenant_id))]
    configured = settings.engagement_sweep_tenants if configured is None else configured
    if configured:
        return [UUID(value) for value in configured]
    return await store.list_active_tenant_ids()


__all__ = ["SessionFactory", "open_session", "resolve_tenant_ids"]
