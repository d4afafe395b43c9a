"""Tests for APISettings."""

from __future__ import annotations

from jobs_api.config import APISettings, PlatformEnv


def test_defaults(monkeypatch) -> None:
    monkeypatch.delenv("API_FUNCTION_API_KEY", raising=False)
    settings = APISettings(_env_file=None)

    assert settings.platform_env is PlatformEnv.DEV
    assert settings.function_api_key.get_secret_value() == ""
    assert settings.notifications_url == ""
    assert settings.notifications_timeout == 10.0
    assert settings.structured_logging is False


def test_env_overrides(monkeypatch) -> None:
    monkeypatch.setenv("API_FUNCTION_API_KEY", "from-env")
    monkeypatch.setenv("API_PLATFORM_ENV", "production")
    monkeypatch.setenv("API_NOTIFICATIONS_TIMEOUT", "2.5")

    settings = APISettings(_env_file=None)

    assert settings.function_api_key.get_secret_value() == "from-env"
    assert settings.platform_env is PlatformEnv.PRODUCTION
    assert settings.notifications_timeout == 2.5


def test_secrets_are_not_rendered() -> None:
    settings = APISettings(_env_file=None, function_api_key="top-secret")
    assert "top-secret" not in repr(settings)
