"""Shared FastAPI dependencies resolving the process-wide notification components."""

from __future__ import annotations

from fastapi import HTTPException, status
from starlette.requests import HTTPConnection

from inbox.notifications.activity_repo import ProfileSource
from inbox.notifications.factory import NotificationRuntime
from inbox.notifications.push_hub import PushHub
from inbox.notifications.scheduler import SummaryScheduler
from inbox.notifications.service import NotificationService
from inbox.notifications.summary import SummaryAggregator


def get_runtime(connection: HTTPConnection) -> NotificationRuntime:
  runtime = getattr(connection.app.state, "notifications", None)
  if runtime is None:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Notification service is not ready")
  return runtime


def get_notification_service(connection: HTTPConnection) -> NotificationService:
  return get_runtime(connection).service


def get_summary_aggregator(connection: HTTPConnection) -> SummaryAggregator:
  return get_runtime(connection).aggregator


def get_summary_scheduler(connection: HTTPConnection) -> SummaryScheduler:
  return get_runtime(connection).scheduler


def get_profile_source(connection: HTTPConnection) -> ProfileSource:
  return get_runtime(connection).activity


def get_push_hub(connection: HTTPConnection) -> PushHub:
  return get_runtime(connection).hub
