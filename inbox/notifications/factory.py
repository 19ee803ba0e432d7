"""Factory helpers wiring the notification components together."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from inbox.config import Settings
from inbox.notifications.activity_repo import InMemoryActivityRepository, SqlActivityRepository
from inbox.notifications.contracts import NotificationStore
from inbox.notifications.push_hub import PushHub
from inbox.notifications.scheduler import SummaryScheduler
from inbox.notifications.service import NotificationService
from inbox.notifications.store import InMemoryNotificationStore, SqlNotificationStore
from inbox.notifications.summary import SummaryAggregator

logger = logging.getLogger(__name__)


@dataclass
class NotificationRuntime:
  """Process-wide notification components, created once by the application lifespan."""

  hub: PushHub
  store: NotificationStore
  activity: SqlActivityRepository | InMemoryActivityRepository
  service: NotificationService
  aggregator: SummaryAggregator
  scheduler: SummaryScheduler


def build_notification_runtime(settings: Settings) -> NotificationRuntime:
  """Construct the notification components based on environment configuration."""
  # Persist to Postgres only when it is configured; otherwise keep everything in process.
  if settings.pg_dsn:
    store: NotificationStore = SqlNotificationStore()
    activity: SqlActivityRepository | InMemoryActivityRepository = SqlActivityRepository()
  else:
    logger.warning("INBOX_PG_DSN is not set; notifications are kept in memory only.")
    store = InMemoryNotificationStore()
    activity = InMemoryActivityRepository()

  hub = PushHub()
  service = NotificationService(store=store, push_channel=hub, list_limit=settings.notification_list_limit)
  aggregator = SummaryAggregator(
    store=store,
    activity=activity,
    profiles=activity,
    policy=settings.checkpoint_policy,
    fallback_window_hours=settings.summary_fallback_window_hours,
    starting_soon_hours=settings.starting_soon_hours,
  )
  scheduler = SummaryScheduler(aggregator=aggregator, profiles=activity, service=service, default_summary_time=settings.default_summary_time)
  return NotificationRuntime(hub=hub, store=store, activity=activity, service=service, aggregator=aggregator, scheduler=scheduler)
