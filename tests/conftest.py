import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from app.main import app
from app.database import Base
from app.api.deps import create_access_token
from app.services.weekly_planning import PlanningSession
from app.store.registry import StoreRegistry

# Test database URL (SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"

# Short enough to keep re-subscribe tests fast
TEST_DEBOUNCE_SECONDS = 0.02


@pytest_asyncio.fixture
async def test_engine():
    """Create test database and tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def registry(session_maker):
    """Started store registry over the test database."""
    registry = StoreRegistry(session_maker, debounce_seconds=TEST_DEBOUNCE_SECONDS)
    await registry.start(timeout=5)
    yield registry
    await registry.stop()


@pytest_asyncio.fixture
async def client(registry: StoreRegistry):
    """Create test client bound to the test registry."""
    app.state.registry = registry
    app.state.planning_session = PlanningSession()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.state.registry = None
    app.state.planning_session = None


@pytest.fixture
def actor_token() -> str:
    return create_access_token({"sub": "planner-1", "email": "planner@example.com"})


@pytest_asyncio.fixture
async def authenticated_client(client: AsyncClient, actor_token: str):
    """Create authenticated test client."""
    client.headers["Authorization"] = f"Bearer {actor_token}"
    return client
