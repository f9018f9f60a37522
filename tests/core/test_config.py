from __future__ import annotations

import pytest

from app.core.config import AppEnv, Settings, load_settings

_ENV_NAMES = (
    "APP_ENV",
    "LOG_LEVEL",
    "LOG_JSON",
    "PORT",
    "AUTH_SECRET",
    "BASE_URL",
    "DATABASE_URL",
    "REDIS_URL",
    "GITHUB_CLIENT_ID",
    "GITHUB_CLIENT_SECRET",
    "RESEND_API_KEY",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


def test_defaults_run_in_memory_dev_mode() -> None:
    settings = load_settings()
    assert settings.app_env == "dev"
    assert settings.log_level == "info"
    assert settings.base_url == "http://localhost:3000"
    assert settings.database_url is None
    assert settings.redis_url is None
    assert settings.resend_api_key is None
    assert settings.github_enabled is False
    assert settings.auth_secret  # dev fallback


def test_prod_with_secret_and_backends(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "  PROD ")
    monkeypatch.setenv("LOG_LEVEL", "Warning")
    monkeypatch.setenv("AUTH_SECRET", "prod-secret")
    monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://lms@db/lms")
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/0")
    monkeypatch.setenv("BASE_URL", "https://lms.example.com/")

    settings = load_settings()

    assert settings.is_prod is True
    assert settings.log_level == "warning"
    assert settings.auth_secret == "prod-secret"
    assert settings.database_url == "postgresql+asyncpg://lms@db/lms"
    assert settings.redis_url == "redis://cache:6379/0"
    assert settings.base_url == "https://lms.example.com"


@pytest.mark.parametrize(
    ("env", "message"),
    [
        ({"APP_ENV": "staging"}, "APP_ENV must be dev|test|prod"),
        ({"LOG_LEVEL": "verbose"}, "LOG_LEVEL must be debug|info|warning|error"),
        ({"PORT": "eighty"}, "PORT must be an integer"),
        ({"LOG_JSON": "maybe"}, "LOG_JSON must be a boolean"),
        ({"APP_ENV": "prod"}, "AUTH_SECRET is required"),
    ],
)
def test_invalid_environment_is_rejected(
    monkeypatch: pytest.MonkeyPatch, env: dict[str, str], message: str
) -> None:
    for name, value in env.items():
        monkeypatch.setenv(name, value)
    with pytest.raises(ValueError, match=message):
        load_settings()


@pytest.mark.parametrize(("raw", "expected"), [("true", True), ("ON", True), ("0", False)])
def test_log_json_flag(monkeypatch: pytest.MonkeyPatch, raw: str, expected: bool) -> None:
    monkeypatch.setenv("LOG_JSON", raw)
    assert load_settings().log_json is expected


# ---- Settings properties ----


def _make_settings(app_env: AppEnv = "dev", **overrides) -> Settings:
    return Settings(  # type: ignore[arg-type]
        app_env=app_env,
        log_level="info",
        log_json=False,
        port=8000,
        database_url=None,
        redis_url=None,
        **overrides,
    )


def test_env_flags() -> None:
    assert _make_settings("test").is_test is True
    assert _make_settings("prod").is_dev is False


def test_github_enabled_needs_both_credentials() -> None:
    assert _make_settings(github_client_id="id").github_enabled is False
    assert (
        _make_settings(github_client_id="id", github_client_secret="s").github_enabled
        is True
    )


def test_settings_is_frozen() -> None:
    s = _make_settings()
    with pytest.raises(AttributeError):
        s.auth_secret = "other"  # type: ignore[misc]
