"""Seed a development studio with clients, activity and the default badge catalog."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
import os
from typing import TypedDict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from studio_engagement.core.settings import settings
from studio_engagement.models import (
    Client,
    ClientMeasurement,
    ClientOrder,
    OrderPaymentStatus,
    Tenant,
    TrainingSession,
    TrainingSessionStatus,
)
from studio_engagement.services.engagement import AchievementService, SqlAlchemyEngagementStore


class SeedClient(TypedDict):
    name: str
    email: str
    completed_sessions: int
    measurements: int
    paid_total: str


DEV_TENANT_SLUG = os.getenv("DEV_TENANT_SLUG", "demo-studio")

DEV_CLIENTS: list[SeedClient] = [
    {"name": "Jana Nováková", "email": "jana@studio.dev", "completed_sessions": 12, "measurements": 6, "paid_total": "4800"},
    {"name": "Petr Svoboda", "email": "petr@studio.dev", "completed_sessions": 1, "measurements": 0, "paid_total": "450"},
    {"name": "Eva Dvořáková", "email": "eva@studio.dev", "completed_sessions": 0, "measurements": 2, "paid_total": "0"},
]


async def seed_tenant(session: AsyncSession) -> Tenant:
    existing = await session.execute(select(Tenant).where(Tenant.slug == DEV_TENANT_SLUG))
    tenant = existing.scalar_one_or_none()
    if tenant:
        return tenant

    tenant = Tenant(slug=DEV_TENANT_SLUG, name="Demo Studio", timezone="Europe/Prague")
    session.add(tenant)
    await session.flush()

    now = datetime.now(timezone.utc)
    for seed in DEV_CLIENTS:
        client = Client(tenant_id=tenant.id, name=seed["name"], email=seed["email"], target_weight=Decimal("65"))
        session.add(client)
        await session.flush()

        for index in range(seed["completed_sessions"]):
            session.add(
                TrainingSession(
                    tenant_id=tenant.id,
                    client_id=client.id,
                    scheduled_at=now - timedelta(days=3 * index + 1),
                    status=TrainingSessionStatus.COMPLETED,
                )
            )
        for index in range(seed["measurements"]):
            session.add(
                ClientMeasurement(
                    client_id=client.id,
                    measured_at=now - timedelta(weeks=index),
                    weight=Decimal("70") - index,
                )
            )
        if Decimal(seed["paid_total"]) > 0:
            session.add(
                ClientOrder(
                    tenant_id=tenant.id,
                    client_id=client.id,
                    total=Decimal(seed["paid_total"]),
                    payment_status=OrderPaymentStatus.PAID,
                )
            )

    await session.flush()
    return tenant


async def main() -> None:
    engine = create_async_engine(settings.database_url, future=True)
    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        async with session_factory() as session:
            tenant = await seed_tenant(session)
            service = AchievementService(SqlAlchemyEngagementStore(session))
            created = await service.seed_default_badges(tenant.id)
            await session.commit()
            result = await service.check_all_client_badges(tenant.id)
        print(f"Development tenant {tenant.slug} ready: {created} badges seeded, {result.awarded} awarded")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
