"""
Test infrastructure for the heritage entries API.

Strategy
--------
- SQLite in-memory via aiosqlite; StaticPool keeps every session on the
  single connection that owns the in-memory database.
- The app's get_db dependency is overridden so every request (including
  the auth dependency) uses the test session factory.
- Tables are created before each test and dropped after it.
- Redis is disabled by setting cache._redis = None; the CacheManager
  treats that as a permanent miss.
- Users are inserted directly; HTTP tests authenticate with tokens minted
  by ``heritage.auth.create_access_token``.
"""
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from heritage.auth import create_access_token
from heritage.cache import cache, discard_pending_purge, purge_after_commit
from heritage.database import Base, get_db
from heritage.main import app
from heritage.middleware import install_query_counter
from heritage.models import User
from heritage.schemas import Caller

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

install_query_counter(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            discard_pending_purge(session)
            await session.rollback()
            raise
        await purge_after_commit(session)


app.dependency_overrides[get_db] = override_get_db


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    cache._redis = None
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    async with async_session_test() as session:
        yield session


@pytest.fixture
def session_factory():
    """The test session factory, for tests that need more than one session at a time."""
    return async_session_test


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def _create_user(username: str, name: str, role: str = "user") -> Caller:
    async with async_session_test() as session:
        user = User(username=username, email=f"{username}@example.com", name=name, role=role)
        session.add(user)
        await session.commit()
        return Caller(id=user.id, name=user.name, role=user.role)


@pytest_asyncio.fixture
async def admin() -> Caller:
    return await _create_user("curator", "Curator", role="admin")


@pytest_asyncio.fixture
async def alice() -> Caller:
    return await _create_user("alice", "Alice")


@pytest_asyncio.fixture
async def bob() -> Caller:
    return await _create_user("bob", "Bob")


@pytest.fixture
def auth_headers():
    """Return a function building the Authorization header for a caller."""

    def _headers(caller: Caller) -> dict:
        return {"Authorization": f"Bearer {create_access_token(caller.id)}"}

    return _headers
