"""Test configuration and fixtures."""

import os

# Settings are read at import time; point them at throwaway values first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("BEARER_TOKEN_SECRET", "test-secret")

from datetime import datetime, timedelta  # noqa: E402

import jwt  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from cdc_workflow.core.config import settings  # noqa: E402
from cdc_workflow.core.database import Base  # noqa: E402
from cdc_workflow.core.dependencies import get_db  # noqa: E402
from cdc_workflow.core.rate_limit import InMemoryRateLimiter, get_rate_limiter  # noqa: E402
from cdc_workflow.models import *  # noqa: E402,F403 - Import all models
from cdc_workflow.models.booking import ProjectType  # noqa: E402
from cdc_workflow.schemas.booking import CreateBookingRequest  # noqa: E402
from cdc_workflow.services.booking_service import BookingService  # noqa: E402

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

AIR_AGENT = {"user_id": "agent-air-1", "email": "air1@cdctravel.example", "name": "Air Agent"}
CINT_AGENT = {"user_id": "agent-cint-1", "email": "cint1@cdctravel.example", "name": "Cint Agent"}


def make_token(user: dict, expires_in: timedelta = timedelta(hours=1)) -> str:
    """Sign a bearer token the service will accept."""
    payload = {
        "sub": user["user_id"],
        "email": user["email"],
        "name": user["name"],
        "exp": datetime.utcnow() + expires_in,
    }
    return jwt.encode(payload, settings.bearer_token_secret, algorithm=settings.jwt_algorithm)


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture(scope="function")
async def test_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def rate_limiter():
    """Generous limiter so only the rate limit tests ever hit the ceiling."""
    return InMemoryRateLimiter(limit=1000, period=60)


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session, rate_limiter):
    """Create the real application with the database and limiter swapped out."""
    from cdc_workflow.main import create_app

    app = create_app()

    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_rate_limiter] = lambda: rate_limiter

    yield app

    # Clean up
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def air_actor():
    return dict(AIR_AGENT)


@pytest.fixture
def cint_actor():
    return dict(CINT_AGENT)


@pytest.fixture
def auth_headers():
    """Bearer header for an AIR team agent."""
    return {"Authorization": f"Bearer {make_token(AIR_AGENT)}"}


@pytest.fixture
def cint_auth_headers():
    """Bearer header for a CINT team agent."""
    return {"Authorization": f"Bearer {make_token(CINT_AGENT)}"}


@pytest_asyncio.fixture
async def air_booking(test_session, air_actor):
    """A fresh AIR_ONLY booking at INQUIRY."""
    return await BookingService(test_session).create_booking(
        CreateBookingRequest(
            project_type=ProjectType.AIR_ONLY,
            customer_name="Hanbit Tours",
            details={"route": "ICN-NRT", "pax": 12},
        ),
        air_actor["user_id"],
    )


@pytest_asyncio.fixture
async def cint_booking(test_session, cint_actor):
    """A fresh CINT_PACKAGE booking at INQUIRY."""
    return await BookingService(test_session).create_booking(
        CreateBookingRequest(
            project_type=ProjectType.CINT_PACKAGE,
            customer_name="Seoul Alumni Association",
            details={"destination": "Da Nang", "nights": 4},
        ),
        cint_actor["user_id"],
    )


@pytest.fixture
def sample_collaboration_data():
    """Body of a valid AIR -> CINT collaboration request, camelCase as the frontend sends it."""
    return {
        "requestedToTeam": "CINT",
        "type": "LAND_QUOTE_REQUEST",
        "priority": "HIGH",
        "title": "Land quote for Tokyo group",
        "description": "Need hotel and coach pricing for 12 pax, 3 nights",
    }
