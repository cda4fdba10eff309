"""Unit tests for password hashing and JWT helpers."""

import pytest
from jose import ExpiredSignatureError, JWTError, jwt

from casewatch.core.config import settings
from casewatch.core.security import (
    create_access_token,
    decode_access_token,
    get_password_hash,
    password_policy_error,
    verify_password,
)


def test_password_hash_roundtrip() -> None:
    hashed = get_password_hash("Secret123")
    assert hashed != "Secret123"
    assert verify_password("Secret123", hashed)
    assert not verify_password("secret123", hashed)


def test_verify_password_rejects_empty_hash() -> None:
    assert verify_password("Secret123", "") is False


@pytest.mark.parametrize(
    ("password", "fragment"),
    [
        ("Ab1", "at least 8"),
        ("alllowercase1", "uppercase"),
        ("ALLUPPERCASE1", "lowercase"),
        ("NoDigitsHere", "number"),
        ("Aa1" + "x" * 80, "72 bytes"),
    ],
)
def test_password_policy_errors(password: str, fragment: str) -> None:
    error = password_policy_error(password)
    assert error is not None
    assert fragment in error


def test_password_policy_accepts_strong_password() -> None:
    assert password_policy_error("Correct1Horse") is None


def test_access_token_roundtrip() -> None:
    token = create_access_token("user-123", {"email": "a@example.com"})
    payload = decode_access_token(token)
    assert payload.sub == "user-123"


def test_expired_token_raises() -> None:
    token = create_access_token("user-123", expires_minutes=-1)
    with pytest.raises(ExpiredSignatureError):
        decode_access_token(token)


def test_token_signed_with_other_key_raises() -> None:
    forged = jwt.encode({"sub": "user-123"}, "not-the-server-secret", algorithm=settings.ALGORITHM)
    with pytest.raises(JWTError):
        decode_access_token(forged)
