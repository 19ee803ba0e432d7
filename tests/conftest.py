"""Shared fixtures for the inbox test suite."""

from __future__ import annotations

import datetime

import pytest

from inbox.config import Settings
from inbox.notifications.activity_repo import InMemoryActivityRepository
from inbox.notifications.contracts import NotificationPreferences, UserProfile
from inbox.notifications.store import InMemoryNotificationStore
from inbox.notifications.summary import SummaryAggregator

NOW = datetime.datetime(2026, 3, 10, 9, 0, tzinfo=datetime.UTC)


@pytest.fixture
def anyio_backend():
  return "asyncio"


class FrozenClock:
  """Settable clock shared by the store and the aggregator."""

  def __init__(self, now: datetime.datetime = NOW) -> None:
    self.now = now

  def __call__(self) -> datetime.datetime:
    return self.now

  def advance(self, **kwargs: float) -> datetime.datetime:
    self.now = self.now + datetime.timedelta(**kwargs)
    return self.now


@pytest.fixture
def clock() -> FrozenClock:
  return FrozenClock()


@pytest.fixture
def store(clock) -> InMemoryNotificationStore:
  return InMemoryNotificationStore(clock=clock)


@pytest.fixture
def activity() -> InMemoryActivityRepository:
  repo = InMemoryActivityRepository()
  repo.add_profile(UserProfile(username="bob", preferences=NotificationPreferences(enabled=True, summarized=True)))
  return repo


@pytest.fixture
def aggregator(store, activity, clock) -> SummaryAggregator:
  return SummaryAggregator(store=store, activity=activity, profiles=activity, clock=clock)


@pytest.fixture
def make_settings():
  """Build a Settings value without touching the environment."""

  def _make(**overrides) -> Settings:
    values = {
      "environment": "test",
      "allowed_origins": ("http://localhost:3000",),
      "debug": False,
      "log_max_bytes": 1024,
      "log_backup_count": 2,
      "log_http_4xx": False,
      "pg_dsn": None,
      "summary_scheduler_enabled": False,
      "default_summary_time": "09:00",
      "summary_fallback_window_hours": 24,
      "checkpoint_policy": "last_login",
      "starting_soon_hours": 24,
      "notification_list_limit": 100,
    }
    values.update(overrides)
    return Settings(**values)

  return _make
