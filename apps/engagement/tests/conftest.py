import sys
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

from studio_engagement import models  # noqa: E402,F401
from studio_engagement.db.base import Base  # noqa: E402
from studio_engagement.observability.engagement import get_engagement_store  # noqa: E402
from studio_engagement.observability.scheduler import get_scheduler_store  # noqa: E402
from studio_engagement.services.engagement import InMemoryEngagementStore  # noqa: E402


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest.fixture
def memory_store() -> InMemoryEngagementStore:
    return InMemoryEngagementStore(default_timezone="UTC")


@pytest.fixture(autouse=True)
def _reset_observability():
    get_engagement_store().reset()
    get_scheduler_store().reset()
    yield
