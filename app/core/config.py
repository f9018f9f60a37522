from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

_DEV_AUTH_SECRET = "dev-only-auth-secret-change-me"


def _getenv(name: str, default: str) -> str:
    # Centralize env access so it’s easy to extend later (type casting, required vars)
    return os.environ.get(name, default).strip()


def _getbool(name: str, default: bool) -> bool:
    raw = _getenv(name, "true" if default else "false").lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    base_url: str = "http://localhost:3000"
    auth_secret: str = _DEV_AUTH_SECRET
    github_client_id: str | None = None
    github_client_secret: str | None = None
    resend_api_key: str | None = None
    email_from: str = "MarshalLMS <noreply@marshallms.com>"

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"

    @property
    def github_enabled(self) -> bool:
        return bool(self.github_client_id and self.github_client_secret)


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    port_raw = _getenv("PORT", "8000")

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer (got {port_raw!r})") from None

    auth_secret = _getenv("AUTH_SECRET", "")
    if not auth_secret:
        if app_env_raw == "prod":
            raise ValueError("AUTH_SECRET is required when APP_ENV=prod")
        auth_secret = _DEV_AUTH_SECRET

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getbool("LOG_JSON", False),
        port=port,
        database_url=_getenv("DATABASE_URL", "") or None,
        redis_url=_getenv("REDIS_URL", "") or None,
        base_url=_getenv("BASE_URL", "http://localhost:3000").rstrip("/"),
        auth_secret=auth_secret,
        github_client_id=_getenv("GITHUB_CLIENT_ID", "") or None,
        github_client_secret=_getenv("GITHUB_CLIENT_SECRET", "") or None,
        resend_api_key=_getenv("RESEND_API_KEY", "") or None,
        email_from=_getenv("EMAIL_FROM", "MarshalLMS <noreply@marshallms.com>"),
    )


# Module-level singleton so imports are cheap
SETTINGS = load_settings()
