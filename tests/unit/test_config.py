from __future__ import annotations

import pytest

from inbox.client.settings import ClientSettings
from inbox.config import get_settings


@pytest.fixture(autouse=True)
def _fresh_settings():
  get_settings.cache_clear()
  yield
  get_settings.cache_clear()


def test_defaults(monkeypatch):
  for name in ("INBOX_PG_DSN", "INBOX_CHECKPOINT_POLICY", "INBOX_DEFAULT_SUMMARY_TIME", "INBOX_SUMMARY_SCHEDULER_ENABLED"):
    monkeypatch.delenv(name, raising=False)

  settings = get_settings()

  assert settings.pg_dsn is None
  assert settings.checkpoint_policy == "last_login"
  assert settings.default_summary_time == "09:00"
  assert settings.summary_scheduler_enabled is False
  assert settings.summary_fallback_window_hours == 24


def test_env_overrides(monkeypatch):
  monkeypatch.setenv("INBOX_PG_DSN", " postgresql://inbox@db/inbox ")
  monkeypatch.setenv("INBOX_CHECKPOINT_POLICY", "SIMPLE")
  monkeypatch.setenv("INBOX_SUMMARY_SCHEDULER_ENABLED", "yes")
  monkeypatch.setenv("INBOX_ALLOWED_ORIGINS", "https://a.example, https://b.example")

  settings = get_settings()

  assert settings.pg_dsn == "postgresql://inbox@db/inbox"
  assert settings.checkpoint_policy == "simple"
  assert settings.summary_scheduler_enabled is True
  assert settings.allowed_origins == ("https://a.example", "https://b.example")


@pytest.mark.parametrize(
  ("name", "value"),
  [("INBOX_DEFAULT_SUMMARY_TIME", "9am"), ("INBOX_CHECKPOINT_POLICY", "forever"), ("INBOX_ALLOWED_ORIGINS", "*"), ("INBOX_STARTING_SOON_HOURS", "0")],
)
def test_invalid_values_are_rejected(monkeypatch, name, value):
  monkeypatch.setenv(name, value)
  with pytest.raises(ValueError):
    get_settings()


def test_client_settings_from_env(monkeypatch):
  monkeypatch.setenv("INBOX_CLIENT_BASE_URL", "https://inbox.example")
  monkeypatch.setenv("INBOX_CLIENT_SLOW_POLL_SECONDS", "60")
  monkeypatch.setenv("INBOX_CLIENT_MARK_SUPPRESSED_READ", "false")

  settings = ClientSettings.from_env()

  assert settings.slow_poll_seconds == 60
  assert settings.fast_poll_seconds == 1
  assert settings.mark_suppressed_read is False
  assert settings.stream_url == "wss://inbox.example/v1/notifications/stream"
