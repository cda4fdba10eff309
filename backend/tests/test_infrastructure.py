"""
Smoke tests to verify test infrastructure is working correctly.

These tests validate that the test database, fixtures, and basic
testing setup are functioning properly.
"""

import pytest
from httpx import AsyncClient
from sqlmodel.ext.asyncio.session import AsyncSession

from casewatch.core.config import settings
from casewatch.testing.factories import create_user, get_auth_headers


@pytest.mark.unit
async def test_database_session(session: AsyncSession):
    """Test that database session fixture works."""
    assert session is not None
    assert isinstance(session, AsyncSession)


@pytest.mark.unit
async def test_create_user_factory(session: AsyncSession):
    """Test that user factory creates users correctly."""
    user = await create_user(
        session,
        email="factory-test@example.com",
        first_name="Factory",
    )

    assert user.id is not None
    assert user.email == "factory-test@example.com"
    assert user.first_name == "Factory"
    assert user.is_active is True
    assert user.password_hash is not None


@pytest.mark.unit
def test_storage_is_isolated(tmp_path):
    """Storage points at the per-test temp dir."""
    assert settings.documents_dir.is_relative_to(tmp_path)
    assert settings.documents_dir.is_dir()


@pytest.mark.integration
async def test_health_endpoint(anonymous_client: AsyncClient):
    """Test the health endpoint to verify the app is wired up."""
    response = await anonymous_client.get("/health")
    assert response.status_code == 200


@pytest.mark.integration
async def test_authenticated_request(client: AsyncClient, session: AsyncSession):
    """Test that authenticated requests work with auth headers."""
    user = await create_user(session, email="auth-test@example.com")

    response = await client.get("/api/auth/profile", headers=get_auth_headers(user))
    assert response.status_code == 200

    data = response.json()
    assert data["email"] == "auth-test@example.com"
    assert data["id"] == str(user.id)
