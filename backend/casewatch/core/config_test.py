"""Unit tests for settings parsing."""

import pytest
from pydantic import ValidationError

from casewatch.core.config import Settings


def test_secret_key_is_required(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SECRET_KEY", raising=False)

    with pytest.raises(ValidationError, match="SECRET_KEY"):
        Settings(_env_file=None)


def test_comma_separated_lists(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example")
    monkeypatch.setenv("ALLOWED_FILE_TYPES", ".PDF,png")

    configured = Settings(_env_file=None, SECRET_KEY="k")

    assert configured.CORS_ORIGINS == ["https://a.example", "https://b.example"]
    assert configured.ALLOWED_FILE_TYPES == ["pdf", "png"]
