"""Pytest fixtures for testing."""
import os

# Must be set before any app imports that trigger Settings validation
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DEV_MODE"] = "false"
os.environ["REDIS_ENABLED"] = "false"

from collections.abc import AsyncGenerator, Callable  # noqa: E402
from pathlib import Path  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from models.base import Base  # noqa: E402
from models.user import User  # noqa: E402
from schemas.change_event import ChangeEvent  # noqa: E402
from services.exceptions import SubscriptionError  # noqa: E402


class RecordingChangeFeed:
    """Change feed stand-in that remembers what was published."""

    def __init__(self) -> None:
        self.events: list[ChangeEvent] = []

    @property
    def available(self) -> bool:
        return False

    async def publish(self, event: ChangeEvent) -> bool:
        self.events.append(event)
        return True

    async def subscribe(self, table: str = "bookmarks") -> None:
        raise SubscriptionError(f"No subscribers in tests ({table})")


@pytest.fixture
async def async_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine]:
    """
    Create an engine on a fresh SQLite file for each test.

    A file (rather than :memory:) lets concurrent sessions use separate
    connections while seeing the same data.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test database."""
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Session for arranging and inspecting test data. Commit to make data visible."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def test_user(db_session: AsyncSession) -> User:
    """Create a test user."""
    user = User(auth0_id="google-oauth2|test-user-123", email="test@example.com", name="Ada")
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
async def other_user(db_session: AsyncSession) -> User:
    """Create a second user for ownership tests."""
    user = User(auth0_id="google-oauth2|other-user-456", email="other@example.com")
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
def change_feed() -> RecordingChangeFeed:
    """Change feed that records published events."""
    return RecordingChangeFeed()


@pytest.fixture
def client_factory(
    session_factory: async_sessionmaker[AsyncSession],
    change_feed: RecordingChangeFeed,
) -> Callable[[User], AsyncClient]:
    """
    Factory fixture that creates test clients authenticated as a specific user.

    Usage:
        client = client_factory(test_user)
        response = await client.get("/bookmarks/")
    """
    from core.config import get_settings

    get_settings.cache_clear()

    from api.main import app
    from core.auth import get_current_user
    from db.session import get_async_session
    from services.change_feed import get_change_feed

    async def override_get_async_session() -> AsyncGenerator[AsyncSession]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_async_session] = override_get_async_session
    app.dependency_overrides[get_change_feed] = lambda: change_feed

    def create_client(user: User) -> AsyncClient:
        async def override_get_current_user() -> User:
            return user

        app.dependency_overrides[get_current_user] = override_get_current_user
        return AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        )

    yield create_client

    app.dependency_overrides.clear()


@pytest.fixture
async def client(
    client_factory: Callable[[User], AsyncClient],
    test_user: User,
) -> AsyncGenerator[AsyncClient]:
    """Create a test client authenticated as test_user."""
    async with client_factory(test_user) as test_client:
        yield test_client
