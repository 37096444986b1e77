"""Async engine and session factory."""

from __future__ import annotations

from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from studio_engagement.core.settings import settings

engine = create_async_engine(settings.database_url, echo=settings.database_echo, future=True)

async_session = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def get_session() -> AsyncIterator[AsyncSession]:
    async with async_session() as session:
        yield session


__all__ = ["async_session", "engine", "get_session"]
