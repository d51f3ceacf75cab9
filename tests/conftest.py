"""
Shared test configuration and fixtures.
"""

import os

# Settings are read once at import time; point them at throwaway backends first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("INDEXER_ENABLED", "false")
os.environ.setdefault("REDIS_URL", "redis://localhost:6399/15")

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from src.core.service.indexer.registrar import DynamicSourceRegistrar
from src.infra.models import Base
from src.infra.repository.entity_store import EntityStore
from tests.helpers import REGISTRY, FakeRedis, LogFactory


@pytest.fixture
async def session_factory():
    """Fresh in-memory database per test"""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    await engine.dispose()


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(session) -> EntityStore:
    return EntityStore(session)


@pytest.fixture
def registrar() -> DynamicSourceRegistrar:
    return DynamicSourceRegistrar(REGISTRY)


@pytest.fixture
def log_factory() -> LogFactory:
    return LogFactory()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()
