"""Environment-driven settings.

  APP_ENV                    dev | test | prod             (dev)
  LOG_LEVEL                  debug | info | warning | error (info)
  LOG_JSON                   1/true/yes for JSON Lines logs (false)
  PORT                       HTTP port                      (8000)
  DATABASE_URL               postgresql+asyncpg://...; unset = in-memory repos
  REDIS_URL                  redis://...; unset = in-memory cache and queue
  RECONCILE_CONCURRENCY      users reconciled at once per batch (8)
  ENROLLMENT_WRITE_ATTEMPTS  version-checked save attempts      (3)
  RECENT_ACTIVITY_LIMIT      entries in a progress view's recent list (5)
  PROGRESS_CACHE_TTL         seconds a cached progress view lives (300)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

_APP_ENVS = ("dev", "test", "prod")
_LOG_LEVELS = ("debug", "info", "warning", "error")


def _getenv(name: str, default: str) -> str:
    # All env reads go through here so values are stripped consistently
    return os.environ.get(name, default).strip()


def _getenv_choice(name: str, default: str, choices: tuple[str, ...]) -> str:
    value = _getenv(name, default).lower()
    if value not in choices:
        raise ValueError(f"{name} must be {'|'.join(choices)} (got {value!r})")
    return value


def _getenv_int(name: str, default: str, *, minimum: int | None = None) -> int:
    raw = _getenv(name, default)
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None
    if minimum is not None and value < minimum:
        raise ValueError(f"{name} must be >= {minimum} (got {value})")
    return value


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    # Max users one reconciliation or purge batch works on at once
    reconcile_concurrency: int = 8
    enrollment_write_attempts: int = 3
    recent_activity_limit: int = 5
    progress_cache_ttl: int = 300

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def load_settings() -> Settings:
    return Settings(  # type: ignore[arg-type]
        app_env=_getenv_choice("APP_ENV", "dev", _APP_ENVS),
        log_level=_getenv_choice("LOG_LEVEL", "info", _LOG_LEVELS),
        log_json=_getenv("LOG_JSON", "false").lower() in ("1", "true", "yes"),
        port=_getenv_int("PORT", "8000"),
        database_url=_getenv("DATABASE_URL", "") or None,
        redis_url=_getenv("REDIS_URL", "") or None,
        reconcile_concurrency=_getenv_int("RECONCILE_CONCURRENCY", "8", minimum=1),
        enrollment_write_attempts=_getenv_int(
            "ENROLLMENT_WRITE_ATTEMPTS", "3", minimum=1
        ),
        recent_activity_limit=_getenv_int("RECENT_ACTIVITY_LIMIT", "5", minimum=1),
        progress_cache_ttl=_getenv_int("PROGRESS_CACHE_TTL", "300", minimum=1),
    )


# Loaded once at import; tests call load_settings() directly
SETTINGS = load_settings()
