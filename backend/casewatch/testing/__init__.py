"""
Shared test utilities and factories.

Re-exports all factory functions for convenient imports:
    from casewatch.testing import create_user, create_case, get_auth_headers
"""

from casewatch.testing.factories import (
    create_case,
    create_document,
    create_user,
    get_auth_headers,
    get_auth_token,
)

__all__ = [
    "create_case",
    "create_document",
    "create_user",
    "get_auth_headers",
    "get_auth_token",
]
