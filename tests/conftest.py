"""
Shared fixtures for the user API suite.

Each test gets its own in-memory SQLite schema. Service and repository tests
use it directly; HTTP tests get a `client` whose `get_db` dependency yields the
same session, so assertions can look at rows the endpoints wrote.
"""
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

from userapi.config import Settings
from userapi.core.dependencies import get_db
from userapi.db.base import Base
from userapi.db.session import create_session_factory
from userapi.main import create_app
from userapi.users.models import User  # noqa: F401
from userapi.users.repository import SqlAlchemyUserRepository
from userapi.users.service import UserService

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
# bcrypt's minimum cost; keeps the suite fast
TEST_BCRYPT_ROUNDS = 4


def make_settings(**overrides) -> Settings:
    values = {
        "database_url": TEST_DATABASE_URL,
        "bcrypt_rounds": TEST_BCRYPT_ROUNDS,
        "rate_limit_per_second": 0,
        "log_level": "warning",
        "_env_file": None,
    }
    values.update(overrides)
    return Settings(**values)


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db(engine):
    """One session per test, shared by the repository, service and HTTP client."""
    async with create_session_factory(engine)() as session:
        yield session


@pytest_asyncio.fixture
async def repository(db: AsyncSession) -> SqlAlchemyUserRepository:
    return SqlAlchemyUserRepository(db)


@pytest_asyncio.fixture
async def user_service(repository: SqlAlchemyUserRepository) -> UserService:
    return UserService(repository, bcrypt_rounds=TEST_BCRYPT_ROUNDS)


def _override_db(session: AsyncSession):
    async def _get_db():
        yield session

    return _get_db


@pytest_asyncio.fixture
async def client(db: AsyncSession):
    app = create_app(make_settings())
    app.dependency_overrides[get_db] = _override_db(db)
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://testserver",
        ) as client:
            yield client
    finally:
        app.dependency_overrides.clear()
