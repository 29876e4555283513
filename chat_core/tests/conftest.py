# chat_core/tests/conftest.py

import logging
import random
import string

import pytest
from fakeredis import aioredis
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from chat_core.api import dependencies
from chat_core.config import AppConfig
from chat_core.infrastructure import models, schemas
from chat_core.infrastructure.database import Base, create_database
from chat_core.infrastructure.security import SecurityService
from chat_core.infrastructure.unit_of_work import UnitOfWork
from chat_core.main import Application


def random_suffix(k: int = 8) -> str:
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=k))


@pytest.fixture(scope="function")
def app_config():
    """
    Provide a test configuration with a shared in-memory SQLite database.
    """
    return AppConfig(
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        REDIS_HOST="localhost",
        REDIS_PORT=6379,
        SECRET_KEY="test_secret_key",
        PROJECT_NAME="Test Chat Core",
        API_V1_STR="/api/v1",
        ALGORITHM="HS256",
        ACCESS_TOKEN_EXPIRE_MINUTES=5,
        EVENTS_API_URL=None,
    )


@pytest.fixture
def test_logger():
    logger = logging.getLogger("ChatCoreTest")
    logger.setLevel(logging.DEBUG)
    return logger


@pytest.fixture(scope="function")
async def mock_redis():
    """Provide a fake Redis client for testing."""
    redis = aioredis.FakeRedis(decode_responses=True)
    yield redis
    await redis.flushall()
    await redis.aclose()


@pytest.fixture(scope="function")
async def engine(app_config):
    """Create a SQLAlchemy engine for testing with shared in-memory SQLite."""
    engine = create_async_engine(
        app_config.DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,  # Reuse the same connection
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(engine):
    """Provide a SQLAlchemy session for testing."""
    session_factory = async_sessionmaker(
        bind=engine, class_=AsyncSession, expire_on_commit=False
    )
    session = session_factory()
    yield session
    await session.close()


@pytest.fixture(scope="function")
def uow(db_session):
    return UnitOfWork(db_session)


@pytest.fixture(scope="function")
def security_service(app_config):
    return SecurityService(app_config)


@pytest.fixture(scope="function")
def application(app_config, mock_redis, engine):
    application = Application(config=app_config)
    application.database = create_database(engine)
    application.redis_client.client = mock_redis
    return application


@pytest.fixture(scope="function")
async def app(application):
    """Create the FastAPI app with the test database."""
    return application.create_app()


@pytest.fixture(scope="function")
def override_get_db(db_session):
    """Override the get_session dependency to use the test session."""

    async def _override_get_db():
        yield db_session

    return _override_get_db


@pytest.fixture(scope="function")
async def app_with_db(app, override_get_db):
    """Override dependencies to use the test database session."""
    app.dependency_overrides[dependencies.get_session] = override_get_db
    yield app
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def client(app_with_db):
    """Provide an HTTP client with the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app_with_db), base_url="http://test"
    ) as ac:
        yield ac


@pytest.fixture(scope="function")
def user_factory(db_session):
    async def _create(prefix: str = "user") -> schemas.User:
        user = models.User(username=f"{prefix}_{random_suffix()}")
        db_session.add(user)
        await db_session.commit()
        # detached snapshot: a rollback inside a request must not expire it
        return schemas.User.model_validate(user)

    return _create


@pytest.fixture(scope="function")
async def test_user(user_factory):
    return await user_factory("alice")


@pytest.fixture(scope="function")
async def test_user2(user_factory):
    return await user_factory("bob")


@pytest.fixture(scope="function")
async def test_user3(user_factory):
    return await user_factory("carol")


@pytest.fixture(scope="function")
def token_for(security_service):
    def _token(user: schemas.User) -> str:
        token, _ = security_service.create_access_token({"sub": user.id})
        return token

    return _token


@pytest.fixture(scope="function")
def headers_for(token_for):
    def _headers(user: schemas.User) -> dict:
        return {"Authorization": f"Bearer {token_for(user)}"}

    return _headers


@pytest.fixture(scope="function")
def auth_header(headers_for, test_user):
    """Provide an authorization header for authenticated requests."""
    return headers_for(test_user)


@pytest.fixture(scope="function")
def auth_header2(headers_for, test_user2):
    return headers_for(test_user2)


@pytest.fixture(scope="function")
async def direct_chat(client, auth_header, test_user2):
    response = await client.post(
        "/api/v1/chats/direct", headers=auth_header, json={"otherUserId": test_user2.id}
    )
    assert response.status_code == 200, response.text
    return response.json()
