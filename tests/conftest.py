"""
Test configuration and fixtures for the login risk engine.
Provides per-test SQLite databases, engine services and an admin-authenticated client.
"""

import os
import sys
from pathlib import Path
from typing import AsyncGenerator, Optional
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Override environment variables for testing
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-jwt-tokens")
os.environ.setdefault("ALGORITHM", "HS256")
os.environ.setdefault("GEOIP_PROVIDER_URL", "")

from loginguard.database import build_engine, build_session_factory, init_db
from loginguard.main import create_application
from loginguard.schemas.geolocation import GeoLocation
from loginguard.schemas.login_attempt import RequestContext
from loginguard.services.geolocation import GeoLocationResolver
from loginguard.services.login_recorder import LoginAttemptRecorder
from loginguard.services.risk_scorer import RiskScorer
from loginguard.utils.security import TokenManager

CHROME_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.6099.109 Safari/537.36"
)
BOT_USER_AGENT = "python-requests/2.31.0"


class StubResolver:
    """Resolver double returning a fixed location"""

    def __init__(self, location: Optional[GeoLocation] = None):
        self.location = location or GeoLocation.unknown()
        self.calls = []

    async def resolve(self, ip):
        self.calls.append(ip)
        return self.location

    async def aclose(self):
        pass


# --- Data Factories ---


class TestDataFactory:
    """Factory for request contexts and locations used across tests."""

    @staticmethod
    def request_context(
        ip_address: str = "8.8.8.8", user_agent: str = CHROME_USER_AGENT
    ) -> RequestContext:
        return RequestContext(
            ip_address=ip_address,
            user_agent=user_agent,
            accept_language="en-US,en;q=0.9",
            accept_encoding="gzip, deflate, br",
        )

    @staticmethod
    def resolved_location(**overrides) -> GeoLocation:
        values = dict(
            country="US",
            region="NY",
            city="New York",
            latitude=40.71,
            longitude=-74.01,
            isp="Comcast Cable",
            is_vpn=False,
            confidence=0.95,
        )
        values.update(overrides)
        return GeoLocation(**values)

    @staticmethod
    def client_report(**component_overrides) -> dict:
        components = dict(
            screen_width=1920,
            screen_height=1080,
            viewport_width=1800,
            viewport_height=950,
            font_count=40,
            hardware_concurrency=8,
            device_memory=8,
            cookies_enabled=True,
        )
        components.update(component_overrides)
        return {"id": uuid4().hex * 2, "fallback": False, "components": components}


# --- Database Fixtures ---


@pytest.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Temp-file SQLite engine with the schema created."""
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'engine.sqlite3'}")
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def recorder_factory(session_factory):
    """Build a recorder around a stub resolver returning the given location."""

    def _build(location: Optional[GeoLocation] = None) -> LoginAttemptRecorder:
        return LoginAttemptRecorder(
            session_factory=session_factory,
            geo_resolver=StubResolver(location),
            risk_scorer=RiskScorer(),
        )

    return _build


# --- API Fixtures ---


@pytest.fixture
def client(tmp_path) -> TestClient:
    """
    Test client over a fresh application.

    The engine is created lazily inside the client's event loop; the
    lifespan builds the schema and the services.
    """
    app_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'api.sqlite3'}")
    app = create_application(
        engine=app_engine, geo_resolver=GeoLocationResolver(provider=None)
    )
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_headers() -> dict:
    token = TokenManager.create_admin_token("admin@example.com")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def non_admin_headers() -> dict:
    token = TokenManager.create_admin_token("analyst@example.com", role="analyst")
    return {"Authorization": f"Bearer {token}"}
