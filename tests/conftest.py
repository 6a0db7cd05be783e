import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio

# Load .env.test for local overrides (e.g. TEST_DATABASE_URL pointing at Postgres)
from dotenv import load_dotenv

env_test_path = os.path.join(os.path.dirname(__file__), "..", ".env.test")
if os.path.exists(env_test_path):
    load_dotenv(env_test_path, override=False)

# Settings require a DATABASE_URL; the app engine is never used by tests
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./market-dev.db")

from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from libs.common.config import get_settings
from libs.db.base import Base
from libs.db.config import build_engine
from services.market_service import models as _market_models  # noqa: F401
from tests.fakes import FakePaymentGateway, RecordingNotifier

get_settings.cache_clear()
settings = get_settings()


def _test_database_url(tmp_path) -> str:
    url = os.environ.get("TEST_DATABASE_URL")
    if not url:
        return f"sqlite+aiosqlite:///{tmp_path / 'market-test.db'}"
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


@pytest_asyncio.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """
    Engine on TEST_DATABASE_URL, or a throwaway SQLite file per test.
    """
    engine = build_engine(_test_database_url(tmp_path))

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except OperationalError:
        await engine.dispose()
        pytest.skip("Database not available for tests")

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a database session that rolls back after the test.
    We use join_transaction_mode="create_savepoint" to allow the session to be used
    as if it were a top-level session (supporting commit/rollback) while actually
    running inside a transaction that we rollback at the end.
    """
    connection = await test_engine.connect()
    transaction = await connection.begin()

    session_factory = async_sessionmaker(
        bind=connection,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
        join_transaction_mode="create_savepoint",
    )
    session = session_factory()

    try:
        yield session
    finally:
        await session.close()
        await transaction.rollback()
        await connection.close()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def payment_gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest_asyncio.fixture
async def client(
    db_session, notifier, payment_gateway
) -> AsyncGenerator[AsyncClient, None]:
    """
    Yield an AsyncClient with the app and overridden DB and collaborator dependencies.
    Authenticate requests with ``tests.factories.bearer(user)`` headers.
    """
    from libs.db.session import get_async_db
    from services.market_service.app.main import app
    from services.market_service.services.notifications import get_notifier
    from services.market_service.services.payments import get_payment_gateway

    app.dependency_overrides[get_async_db] = lambda: db_session
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_payment_gateway] = lambda: payment_gateway

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
