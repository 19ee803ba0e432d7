"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

CHECKPOINT_POLICIES = ("last_login", "simple")


@dataclass(frozen=True)
class Settings:
  """Typed settings for the inbox service."""

  environment: str
  allowed_origins: tuple[str, ...]
  debug: bool
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  summary_scheduler_enabled: bool
  default_summary_time: str
  summary_fallback_window_hours: int
  checkpoint_policy: str
  starting_soon_hours: int
  notification_list_limit: int


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    return ("http://localhost:3000",)

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("INBOX_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("INBOX_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  return value or None


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("INBOX_ENV", "development").lower()
  debug = _parse_bool(os.getenv("INBOX_DEBUG"))

  log_max_bytes = _positive_int("INBOX_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("INBOX_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("INBOX_LOG_BACKUP_COUNT must be zero or a positive integer.")

  # Allow opt-in logging of 4xx HTTPExceptions for diagnostics.
  log_http_4xx = _parse_bool(os.getenv("INBOX_LOG_HTTP_4XX"))

  default_summary_time = (os.getenv("INBOX_DEFAULT_SUMMARY_TIME") or "09:00").strip()
  hour, _, minute = default_summary_time.partition(":")
  if not (hour.isdigit() and minute.isdigit() and 0 <= int(hour) <= 23 and 0 <= int(minute) <= 59):
    raise ValueError("INBOX_DEFAULT_SUMMARY_TIME must use the HH:MM format.")

  checkpoint_policy = (os.getenv("INBOX_CHECKPOINT_POLICY") or "last_login").strip().lower()
  if checkpoint_policy not in CHECKPOINT_POLICIES:
    raise ValueError(f"INBOX_CHECKPOINT_POLICY must be one of: {', '.join(CHECKPOINT_POLICIES)}.")

  return Settings(
    environment=environment,
    allowed_origins=_parse_origins(os.getenv("INBOX_ALLOWED_ORIGINS")),
    debug=debug,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=log_http_4xx,
    pg_dsn=_optional_str(os.getenv("INBOX_PG_DSN")),
    summary_scheduler_enabled=_parse_bool(os.getenv("INBOX_SUMMARY_SCHEDULER_ENABLED")),
    default_summary_time=default_summary_time,
    summary_fallback_window_hours=_positive_int("INBOX_SUMMARY_FALLBACK_WINDOW_HOURS", "24"),
    checkpoint_policy=checkpoint_policy,
    starting_soon_hours=_positive_int("INBOX_STARTING_SOON_HOURS", "24"),
    notification_list_limit=_positive_int("INBOX_NOTIFICATION_LIST_LIMIT", "100"),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load only the settings the database layer needs."""

  return DatabaseSettings(debug=_parse_bool(os.getenv("INBOX_DEBUG")), pg_dsn=_optional_str(os.getenv("INBOX_PG_DSN")))
