"""
AuditPulse - Test Configuration

Pytest fixtures and configuration.
"""

import os
from typing import AsyncGenerator, Dict, Generator
from uuid import uuid4

# Settings are read at import time; these must exist before app is imported
os.environ.setdefault("DATABASE_URL_ASYNC", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-audit-engine")
os.environ.setdefault("AUDIT_AI_API_KEY", "test-gateway-key")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.database import Base, get_async_session, get_session_factory
from app.dependencies import get_intelligence_client
from app.models import Profile
from app.services.audit_intelligence_service import AuditIntelligenceClient
from app.services.audit_snapshot_service import SnapshotGatherer
from app.utils.security import create_access_token
from fixtures.gateway_mock import GATEWAY_BASE_URL, MockAuditGateway
from main import app


# ===========================================
# DATABASE
# ===========================================

@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """File-backed SQLite so concurrent snapshot sessions see committed rows."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'audit.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def gatherer(session_factory) -> SnapshotGatherer:
    return SnapshotGatherer(session_factory)


# ===========================================
# AUDIT INTELLIGENCE GATEWAY
# ===========================================

@pytest.fixture
def gateway() -> Generator[MockAuditGateway, None, None]:
    """Mock gateway, active for the whole test."""
    mock_gateway = MockAuditGateway()
    with mock_gateway.activate():
        yield mock_gateway


@pytest.fixture
def intelligence_client(gateway: MockAuditGateway) -> AuditIntelligenceClient:
    return AuditIntelligenceClient(
        api_key="test-gateway-key",
        base_url=GATEWAY_BASE_URL,
        model="test-model",
        timeout=5,
    )


# ===========================================
# CALLER
# ===========================================

@pytest.fixture
def organization_id():
    return uuid4()


@pytest_asyncio.fixture
async def test_profile(db_session: AsyncSession, organization_id) -> Profile:
    """Create a profile linked to the test organization."""
    profile = Profile(
        id=uuid4(),
        organization_id=organization_id,
        full_name="Test Auditor",
        email="auditor@example.com",
    )
    db_session.add(profile)
    await db_session.commit()
    return profile


@pytest.fixture
def auth_headers(test_profile: Profile) -> Dict[str, str]:
    token = create_access_token({"sub": str(test_profile.id)})
    return {"Authorization": f"Bearer {token}"}


# ===========================================
# HTTP CLIENT
# ===========================================

@pytest_asyncio.fixture(scope="function")
async def client(
    db_session: AsyncSession,
    session_factory: async_sessionmaker,
    intelligence_client: AuditIntelligenceClient,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database and gateway overrides."""

    async def override_get_session():
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_intelligence_client] = lambda: intelligence_client

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
