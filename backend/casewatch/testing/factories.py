"""
Test data factories for creating database models.

This module provides factory functions for creating test instances of database models
with sensible defaults. Each factory function can accept overrides for any field.
"""

from datetime import datetime, timezone
import secrets
from typing import Any

from sqlmodel.ext.asyncio.session import AsyncSession

from casewatch.core.config import settings
from casewatch.core.security import create_access_token, get_password_hash
from casewatch.models.case import Case, EscalationLevel, IssueCategory
from casewatch.models.document import Document, DocumentType
from casewatch.models.user import Tier, User, UserRole
from casewatch.services import storage
from casewatch.services.blockchain import hash_bytes

DEFAULT_PASSWORD = "TestPass123"
DEFAULT_DESCRIPTION = (
    "A local official has been demanding payments before approving routine permits "
    "for small businesses in the district."
)


async def create_user(
    session: AsyncSession,
    commit: bool = True,
    **overrides: Any,
) -> User:
    """
    Create a test user with sensible defaults.

    Args:
        session: Database session
        commit: Whether to commit the transaction (default True)
        **overrides: Override any default field values

    Returns:
        Created User instance

    Example:
        admin = await create_user(session, role=UserRole.admin)
        tier3 = await create_user(session, tier=Tier.tier_3)
    """
    password = overrides.pop("password", DEFAULT_PASSWORD)
    defaults = {
        "email": f"user-{secrets.token_hex(6)}@example.com",
        "password_hash": get_password_hash(password),
        "tier": Tier.tier_1,
        "role": UserRole.user,
        "first_name": "Test",
        "last_name": "User",
        "is_active": True,
        "email_verified": True,
    }

    user = User(**{**defaults, **overrides})
    session.add(user)

    if commit:
        await session.commit()
        await session.refresh(user)

    return user


async def create_case(
    session: AsyncSession,
    user: User | None = None,
    commit: bool = True,
    **overrides: Any,
) -> Case:
    """
    Create a test case, bypassing AI classification.

    Args:
        session: Database session
        user: Owner of the case; None for an anonymous submission
        commit: Whether to commit the transaction (default True)
        **overrides: Override any default field values

    Returns:
        Created Case instance
    """
    millis = int(datetime.now(timezone.utc).timestamp() * 1000)
    escalation_level = overrides.pop("escalation_level", EscalationLevel.basic)
    defaults = {
        "case_ref": f"999P-{millis}-{secrets.token_hex(2).upper()}",
        "user_id": user.id if user else None,
        "title": "Permit bribery",
        "client_name": "Jane Reporter",
        "description": DEFAULT_DESCRIPTION,
        "issue_category": IssueCategory.corruption_government,
        "escalation_level": escalation_level,
        "escalation_flag": escalation_level != EscalationLevel.basic,
        "ai_confidence": 0.8,
        "urgency_score": 5,
        "suggested_actions": ["Gather evidence"],
        "is_public_submission": user is None,
    }

    case = Case(**{**defaults, **overrides})
    session.add(case)

    if commit:
        await session.commit()
        await session.refresh(case)

    return case


async def create_document(
    session: AsyncSession,
    user: User | None = None,
    case: Case | None = None,
    content: bytes | None = None,
    commit: bool = True,
    **overrides: Any,
) -> Document:
    """
    Create a test document backed by a real file under the documents directory.

    Args:
        session: Database session
        user: Creator of the document
        case: Case the document belongs to
        content: File bytes; random bytes by default so hashes stay unique
        commit: Whether to commit the transaction (default True)
        **overrides: Override any default field values

    Returns:
        Created Document instance
    """
    data = content if content is not None else b"%PDF-1.4\n" + secrets.token_bytes(32)
    file_name = overrides.pop("file_name", f"test-{secrets.token_hex(4)}.pdf")
    stored = storage.write_bytes(settings.documents_dir / file_name, data)

    defaults = {
        "case_id": case.id if case else None,
        "created_by": user.id if user else None,
        "document_type": DocumentType.other,
        "file_name": file_name,
        "file_path": stored.relative_path,
        "file_size": stored.size,
        "mime_type": "application/pdf",
        "file_hash": hash_bytes(data),
    }

    document = Document(**{**defaults, **overrides})
    session.add(document)

    if commit:
        await session.commit()
        await session.refresh(document)

    return document


def get_auth_token(user: User) -> str:
    """
    Generate a JWT access token for a user.

    Args:
        user: User to generate token for

    Returns:
        JWT access token string
    """
    return create_access_token(str(user.id), {"email": user.email})


def get_auth_headers(user: User) -> dict[str, str]:
    """
    Get authorization headers for API requests.

    Args:
        user: User to authenticate as

    Returns:
        Dictionary with Authorization header

    Example:
        headers = get_auth_headers(test_user)
        response = await client.get("/api/auth/profile", headers=headers)
    """
    token = get_auth_token(user)
    return {"Authorization": f"Bearer {token}"}
