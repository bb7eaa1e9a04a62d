"""Pytest configuration and fixtures for advisor tests."""

from typing import AsyncGenerator, Callable

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import advisor.models  # noqa: F401
from advisor.core.database import Base
from advisor.schemas.resource import CloudProvider, Resource
from fakes import InMemoryMonitoringStore

# Use SQLite in-memory database for tests (faster and no setup needed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def engine():
    """Create async engine for tests with SQLite in-memory database."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,  # StaticPool for in-memory SQLite
        connect_args={"check_same_thread": False},  # Required for SQLite
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables after tests
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    async with session_factory() as session:
        yield session
        # Rollback to clean up any changes (but allows commits during test)
        await session.rollback()


@pytest.fixture
def make_resource() -> Callable[..., Resource]:
    """Factory for resources with sensible AWS defaults."""

    def _make(**overrides) -> Resource:
        values = {
            "provider": CloudProvider.AWS,
            "resource_id": "i-0abc123",
            "resource_type": "ec2_instance",
            "instance_type": "t2.micro",
            "region": "us-east-1",
        }
        values.update(overrides)
        return Resource(**values)

    return _make


@pytest.fixture
def monitoring_store() -> InMemoryMonitoringStore:
    return InMemoryMonitoringStore()
