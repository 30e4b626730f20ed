"""Settings for the practice plan builder.

``APP_ENV`` (dev, staging, production, test) picks a profile of defaults; any
field can then be overridden through its environment variable.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import Any

DEFAULT_DATABASE_URL = "postgresql+psycopg2://localhost:5432/practiceplans"


@dataclass(frozen=True)
class Settings:
    database_url: str
    app_env: str = "dev"
    log_level: str = "INFO"
    jwt_secret_key: str = "jwt-change-me"
    jwt_expire_minutes: int = 480

    # New plans open on this window; breaks and ruler ticks use these lengths.
    default_start_time: str = "17:30"
    default_end_time: str = "19:00"
    break_default_minutes: int = 5
    marker_step_minutes: int = 15

    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:5173"])
    request_id_header_name: str = "X-Request-ID"
    rate_limit_enabled: bool = True
    rate_limit_storage_uri: str = "memory://"
    auth_token_rate_limit: str = "5/minute"

    def __post_init__(self) -> None:
        for name in ("default_start_time", "default_end_time"):
            try:
                datetime.strptime(getattr(self, name), "%H:%M")
            except ValueError as exc:
                raise ValueError(f"{name} must be HH:MM, got {getattr(self, name)!r}") from exc
        if self.break_default_minutes < 1:
            raise ValueError("break_default_minutes must be at least 1")
        if self.marker_step_minutes < 1:
            raise ValueError("marker_step_minutes must be at least 1")

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"


_ENV_PROFILES: dict[str, dict[str, Any]] = {
    "dev": {"log_level": "DEBUG", "jwt_expire_minutes": 1440},
    "staging": {"log_level": "INFO", "jwt_expire_minutes": 480},
    "production": {"log_level": "WARNING", "jwt_expire_minutes": 240},
    # Test runs never throttle logins.
    "test": {"log_level": "WARNING", "jwt_expire_minutes": 60, "rate_limit_enabled": False},
}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else default


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [part.strip() for part in raw.split(",") if part.strip()]


def get_database_url() -> str:
    """DATABASE_URL from the environment, then Streamlit secrets, then the local Postgres default."""
    env_url = os.getenv("DATABASE_URL")
    if env_url:
        return env_url
    try:
        import streamlit as st

        return st.secrets["DATABASE_URL"]
    except Exception:
        # No secrets file outside a Streamlit deployment.
        return DEFAULT_DATABASE_URL


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    app_env = os.getenv("APP_ENV", "dev")
    profile = _ENV_PROFILES.get(app_env, _ENV_PROFILES["dev"])
    base = Settings(database_url="")

    return Settings(
        database_url=get_database_url(),
        app_env=app_env,
        log_level=os.getenv("LOG_LEVEL", profile.get("log_level", base.log_level)),
        jwt_secret_key=os.getenv("JWT_SECRET_KEY", base.jwt_secret_key),
        jwt_expire_minutes=_env_int("JWT_EXPIRE_MINUTES", profile.get("jwt_expire_minutes", base.jwt_expire_minutes)),
        default_start_time=os.getenv("DEFAULT_START_TIME", base.default_start_time),
        default_end_time=os.getenv("DEFAULT_END_TIME", base.default_end_time),
        break_default_minutes=_env_int("BREAK_DEFAULT_MINUTES", base.break_default_minutes),
        marker_step_minutes=_env_int("MARKER_STEP_MINUTES", base.marker_step_minutes),
        cors_origins=_env_list("CORS_ORIGINS", base.cors_origins),
        request_id_header_name=os.getenv("REQUEST_ID_HEADER_NAME", base.request_id_header_name),
        rate_limit_enabled=_env_bool("RATE_LIMIT_ENABLED", profile.get("rate_limit_enabled", base.rate_limit_enabled)),
        rate_limit_storage_uri=os.getenv("RATE_LIMIT_STORAGE_URI", base.rate_limit_storage_uri),
        auth_token_rate_limit=os.getenv("AUTH_TOKEN_RATE_LIMIT", base.auth_token_rate_limit),
    )
