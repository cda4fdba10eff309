"""
Pytest configuration and fixtures for backend tests.

This module provides the core testing infrastructure including:
- Test database setup and teardown
- Session fixtures for database access
- Isolated storage and offline external services
- Test client for API integration tests

Database fixtures skip when Postgres is unreachable so the pure unit tests
still run on a bare checkout.
"""

import asyncio
from collections.abc import AsyncGenerator
import os
from pathlib import Path
from urllib.parse import urlparse

import asyncpg
import pytest
from alembic import command
from alembic.config import Config
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

# Settings require a signing key; set one before the app is imported
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from casewatch.core.config import settings
from casewatch.core.rate_limit import limiter
from casewatch.db.session import get_session
from casewatch.main import app

# Use a separate test database (replace only the database name at the end)
_base_url = settings.DATABASE_URL.rsplit("/", 1)[0]
TEST_DB_NAME = settings.DATABASE_URL.rsplit("/", 1)[1] + "_test"
TEST_DATABASE_URL = f"{_base_url}/{TEST_DB_NAME}"

BACKEND_DIR = Path(__file__).resolve().parent


async def _ensure_test_database() -> None:
    """Create the test database if it doesn't exist."""
    parsed = urlparse(settings.DATABASE_URL.replace("+asyncpg", ""))
    conn = await asyncpg.connect(
        user=parsed.username,
        password=parsed.password,
        host=parsed.hostname,
        port=parsed.port or 5432,
        database="postgres",
        timeout=5,
    )
    try:
        exists = await conn.fetchval("SELECT 1 FROM pg_database WHERE datname = $1", TEST_DB_NAME)
        if not exists:
            await conn.execute(f'CREATE DATABASE "{TEST_DB_NAME}"')
    finally:
        await conn.close()


def _run_test_migrations() -> None:
    """Ensure test database exists and run alembic upgrade head."""
    asyncio.run(_ensure_test_database())
    config = Config(str(BACKEND_DIR / "alembic.ini"))
    config.set_main_option("script_location", str(BACKEND_DIR / "alembic"))
    config.set_main_option("sqlalchemy.url", TEST_DATABASE_URL)
    config.attributes["configure_logger"] = False
    config.attributes["url_configured"] = True
    command.upgrade(config, "head")


@pytest.fixture(scope="session")
def database_available() -> bool:
    """Create and migrate the test database once per session."""
    try:
        _run_test_migrations()
    except (OSError, asyncpg.PostgresError, asyncio.TimeoutError) as exc:
        pytest.skip(f"Postgres unavailable for database tests: {exc}")
    return True


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point storage at a temp dir and keep OpenAI and the Ethereum RPC offline."""
    monkeypatch.setattr(settings, "STORAGE_DIR", str(tmp_path / "storage"))
    monkeypatch.setattr(settings, "OPENAI_API_KEY", None)
    monkeypatch.setattr(settings, "RPC_URL", None)
    monkeypatch.setattr(settings, "CONTRACT_ADDRESS", None)
    monkeypatch.setattr(settings, "ETH_SENDER_ADDRESS", None)
    for directory in (
        settings.documents_dir,
        settings.uploads_dir,
        settings.qr_codes_dir,
        settings.secure_entries_dir,
    ):
        directory.mkdir(parents=True, exist_ok=True)
    yield


@pytest.fixture(scope="function")
async def engine(database_available):
    """Create a test database engine."""
    test_engine = create_async_engine(TEST_DATABASE_URL, echo=False, future=True, pool_pre_ping=True)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture(scope="function")
async def session(engine) -> AsyncGenerator[AsyncSession, None]:
    """
    Create a fresh database session for each test.

    This fixture:
    - Provides a clean AsyncSession for the test
    - Truncates all tables after the test to ensure isolation
    """
    async_session = sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async with async_session() as test_session:
        yield test_session

        # Expire all objects to detach them from the session
        test_session.expire_all()

    # Use a new connection to avoid session conflicts
    async with engine.begin() as conn:
        table_names = ", ".join(table.name for table in reversed(SQLModel.metadata.sorted_tables))
        await conn.execute(text(f"TRUNCATE TABLE {table_names} RESTART IDENTITY CASCADE"))


@pytest.fixture
async def client(session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an async HTTP client for testing API endpoints.

    Usage:
        async def test_endpoint(client: AsyncClient):
            response = await client.get("/api/status")
            assert response.status_code == 200
    """

    async def override_get_session() -> AsyncGenerator[AsyncSession, None]:
        yield session

    app.dependency_overrides[get_session] = override_get_session

    # Disable rate limiting in tests
    limiter.enabled = False

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
async def anonymous_client() -> AsyncGenerator[AsyncClient, None]:
    """Client for routes that never touch the database."""
    limiter.enabled = False
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client
