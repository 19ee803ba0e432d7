"""What the user is currently looking at, and what they must never be shown again."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from urllib.parse import parse_qs, urlsplit

from inbox.notifications.contracts import Notification, NotificationCategory

NOTIFICATIONS_PATH = "/notifications"


def _segment_after(parts: list[str], marker: str) -> str | None:
  try:
    index = parts.index(marker)
  except ValueError:
    return None
  if index + 1 < len(parts) and parts[index + 1]:
    return parts[index + 1]
  return None


@dataclass(frozen=True)
class ViewContext:
  """The chat, question or job fair currently on screen, derived from a location."""

  path: str = "/"
  chat_id: str | None = None
  question_id: str | None = None
  job_fair_id: str | None = None

  @classmethod
  def from_location(cls, location: str) -> ViewContext:
    """Parse ``/messaging/direct-message?chatId=C1``, ``/question/<qid>`` or ``/jobfairs/<fid>``."""
    parts = urlsplit(location or "/")
    path = parts.path or "/"
    segments = [segment for segment in path.split("/") if segment]
    chat_ids = parse_qs(parts.query).get("chatId") or []
    return cls(path=path, chat_id=chat_ids[0] if chat_ids and chat_ids[0] else None, question_id=_segment_after(segments, "question"), job_fair_id=_segment_after(segments, "jobfairs"))

  @property
  def is_notifications_page(self) -> bool:
    return self.path.rstrip("/") == NOTIFICATIONS_PATH

  def covers(self, notification: Notification) -> bool:
    """Return True when the notification is about the content currently on screen."""
    related_id = notification.related_id
    if notification.is_digest or not related_id:
      return False
    category = notification.category
    if category is NotificationCategory.DM:
      return self.chat_id is not None and related_id == self.chat_id
    if category is NotificationCategory.JOB_FAIR:
      return self.job_fair_id is not None and related_id == self.job_fair_id
    if category is NotificationCategory.COMMUNITY:
      return self.question_id is not None and related_id == self.question_id
    return False


class SuppressionSet:
  """Session-scoped ids hidden because they concerned content being viewed.

  Ids are only ever added; nothing un-hides a suppressed notification.
  """

  def __init__(self) -> None:
    self._ids: set[str] = set()

  def add(self, notification_id: str) -> bool:
    """Add an id; returns True when it was not already suppressed."""
    if notification_id in self._ids:
      return False
    self._ids.add(notification_id)
    return True

  def __contains__(self, notification_id: object) -> bool:
    return notification_id in self._ids

  def __len__(self) -> int:
    return len(self._ids)

  def __iter__(self) -> Iterator[str]:
    return iter(frozenset(self._ids))
