"""Notification orchestration shared by the HTTP routes and event producers."""

from __future__ import annotations

import logging

from inbox.notifications.contracts import NewNotification, Notification, NotificationCategory, NotificationStore, PushChannel, StoreFailure

logger = logging.getLogger(__name__)


class NotificationService:
  """Wrap the store and the push channel, converting store errors into result values."""

  def __init__(self, *, store: NotificationStore, push_channel: PushChannel, list_limit: int = 100) -> None:
    self._store = store
    self._push_channel = push_channel
    self._list_limit = list_limit

  @property
  def store(self) -> NotificationStore:
    return self._store

  async def notify(self, *, recipient: str, category: NotificationCategory, title: str, message: str, related_id: str | None = None) -> Notification | StoreFailure:
    """Persist an ordinary notification and push it to the recipient's room."""
    new = NewNotification.ordinary(recipient=recipient, category=category, title=title, message=message, related_id=related_id)
    try:
      notification = await self._store.create(new)
    except Exception as exc:  # noqa: BLE001
      logger.error("Notification create failed recipient=%s category=%s: %s", recipient, category.value, exc, exc_info=True)
      return StoreFailure.from_exception(exc, action="creating notification")
    await self.publish(notification)
    return notification

  async def publish(self, notification: Notification) -> int:
    """Push a stored notification; failures are logged because polling recovers them."""
    try:
      return await self._push_channel.publish(notification.recipient, notification)
    except Exception as exc:  # noqa: BLE001
      logger.error("Notification push failed id=%s recipient=%s: %s", notification.id, notification.recipient, exc, exc_info=True)
      return 0

  async def list_notifications(self, username: str, *, unread_only: bool = False) -> list[Notification] | StoreFailure:
    try:
      return await self._store.list_for_recipient(username, unread_only=unread_only, limit=self._list_limit)
    except Exception as exc:  # noqa: BLE001
      logger.error("Notification list failed for %s: %s", username, exc, exc_info=True)
      return StoreFailure.from_exception(exc, action="fetching notifications")

  async def unread_count(self, username: str) -> int | StoreFailure:
    """Count unread ordinary notifications; digests are surfaced separately by clients."""
    try:
      return await self._store.count_unread(username)
    except Exception as exc:  # noqa: BLE001
      logger.error("Unread count failed for %s: %s", username, exc, exc_info=True)
      return StoreFailure.from_exception(exc, action="counting unread notifications")

  async def mark_read(self, notification_id: str, *, username: str) -> Notification | StoreFailure:
    try:
      return await self._store.mark_read(notification_id, username=username)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Mark read failed id=%s user=%s: %s", notification_id, username, exc)
      return StoreFailure.from_exception(exc, action="marking notification as read")

  async def mark_all_read(self, username: str) -> int | StoreFailure:
    try:
      return await self._store.mark_all_read(username)
    except Exception as exc:  # noqa: BLE001
      logger.error("Mark all read failed for %s: %s", username, exc, exc_info=True)
      return StoreFailure.from_exception(exc, action="marking all notifications as read")

  async def clear_all(self, username: str) -> int | StoreFailure:
    try:
      return await self._store.clear_all(username)
    except Exception as exc:  # noqa: BLE001
      logger.error("Clear all failed for %s: %s", username, exc, exc_info=True)
      return StoreFailure.from_exception(exc, action="clearing notifications")
