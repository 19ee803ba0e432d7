"""Contracts shared by the delivery controller, the summary aggregator and the store."""

from __future__ import annotations

import datetime
import enum
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any, Protocol

logger = logging.getLogger(__name__)

DIGEST_TITLE = "Daily Notification Summary"
DIGEST_PREFIX = "Summary:"
DEFAULT_SUMMARY_TIME = "09:00"


class NotificationCategory(str, enum.Enum):
  """Event categories an ordinary notification can belong to."""

  DM = "dm"
  JOB_FAIR = "jobFair"
  COMMUNITY = "community"


class NotificationKind(str, enum.Enum):
  """Storage tag separating single-event notifications from digests."""

  ORDINARY = "ordinary"
  DIGEST = "digest"


@dataclass(frozen=True)
class Ordinary:
  """A notification about exactly one event."""

  category: NotificationCategory
  related_id: str | None = None


@dataclass(frozen=True)
class Digest:
  """A notification summarizing every event in a time window."""

  window_start: datetime.datetime
  window_end: datetime.datetime


NotificationVariant = Ordinary | Digest


def looks_like_digest(title: str | None, message: str | None) -> bool:
  """Return True for rows that match the digest title and message prefix.

  Only used to classify legacy records and payloads that predate the kind tag.
  """
  return title == DIGEST_TITLE and (message or "").startswith(DIGEST_PREFIX)


def _parse_timestamp(raw: Any) -> datetime.datetime | None:
  if raw is None or raw == "":
    return None
  if isinstance(raw, datetime.datetime):
    value = raw
  else:
    value = datetime.datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
  if value.tzinfo is None:
    value = value.replace(tzinfo=datetime.UTC)
  return value


def _format_timestamp(value: datetime.datetime | None) -> str | None:
  return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class Notification:
  """A persisted notification addressed to one recipient."""

  id: str
  recipient: str
  title: str
  message: str
  variant: NotificationVariant
  created_at: datetime.datetime
  read: bool = False

  @property
  def is_digest(self) -> bool:
    return isinstance(self.variant, Digest)

  @property
  def kind(self) -> NotificationKind:
    return NotificationKind.DIGEST if self.is_digest else NotificationKind.ORDINARY

  @property
  def category(self) -> NotificationCategory:
    # Digests have always been stored under the dm category.
    if isinstance(self.variant, Ordinary):
      return self.variant.category
    return NotificationCategory.DM

  @property
  def related_id(self) -> str | None:
    if isinstance(self.variant, Ordinary):
      return self.variant.related_id
    return None

  def with_read(self, read: bool = True) -> Notification:
    """Return a copy with the read flag changed; every other field is immutable."""
    return replace(self, read=read)

  def to_payload(self) -> dict[str, Any]:
    """Serialize into the camelCase wire form used by the API and the push stream."""
    window_start = self.variant.window_start if isinstance(self.variant, Digest) else None
    window_end = self.variant.window_end if isinstance(self.variant, Digest) else None
    return {
      "id": self.id,
      "recipient": self.recipient,
      "kind": self.kind.value,
      "category": self.category.value,
      "title": self.title,
      "message": self.message,
      "relatedId": self.related_id,
      "read": self.read,
      "createdAt": _format_timestamp(self.created_at),
      "windowStart": _format_timestamp(window_start),
      "windowEnd": _format_timestamp(window_end),
    }

  @classmethod
  def from_payload(cls, payload: Mapping[str, Any]) -> Notification:
    """Parse the wire form; raises ValueError on malformed payloads."""
    try:
      created_at = _parse_timestamp(payload["createdAt"])
      title = str(payload["title"])
      message = str(payload["message"])
      kind = payload.get("kind")
      if kind is None:
        kind = NotificationKind.DIGEST.value if looks_like_digest(title, message) else NotificationKind.ORDINARY.value
      variant: NotificationVariant
      if NotificationKind(kind) is NotificationKind.DIGEST:
        window_end = _parse_timestamp(payload.get("windowEnd")) or created_at
        window_start = _parse_timestamp(payload.get("windowStart")) or window_end
        variant = Digest(window_start=window_start, window_end=window_end)
      else:
        related_id = payload.get("relatedId")
        variant = Ordinary(category=NotificationCategory(payload["category"]), related_id=str(related_id) if related_id else None)
      return cls(id=str(payload["id"]), recipient=str(payload["recipient"]), title=title, message=message, variant=variant, created_at=created_at, read=bool(payload.get("read", False)))
    except (KeyError, TypeError) as exc:
      raise ValueError(f"Malformed notification payload: {exc}") from exc


@dataclass(frozen=True)
class NewNotification:
  """Creation request handed to a notification store."""

  recipient: str
  title: str
  message: str
  variant: NotificationVariant
  read: bool = False

  @classmethod
  def ordinary(cls, *, recipient: str, category: NotificationCategory, title: str, message: str, related_id: str | None = None) -> NewNotification:
    return cls(recipient=recipient, title=title, message=message, variant=Ordinary(category=category, related_id=related_id))

  @classmethod
  def digest(cls, *, recipient: str, summary: str, window_start: datetime.datetime, window_end: datetime.datetime) -> NewNotification:
    message = summary if summary.startswith(DIGEST_PREFIX) else f"{DIGEST_PREFIX} {summary}"
    return cls(recipient=recipient, title=DIGEST_TITLE, message=message, variant=Digest(window_start=window_start, window_end=window_end))


def parse_summary_time(raw: str | None) -> tuple[int, int] | None:
  """Parse an HH:MM string, returning None for anything malformed."""
  if not raw or not isinstance(raw, str):
    return None
  parts = raw.strip().split(":")
  if len(parts) != 2 or not all(part.isdigit() for part in parts):
    return None
  hour, minute = int(parts[0]), int(parts[1])
  if not (0 <= hour <= 23 and 0 <= minute <= 59):
    return None
  return hour, minute


@dataclass(frozen=True)
class NotificationPreferences:
  """Per-user delivery policy stored on the profile record."""

  enabled: bool = True
  summarized: bool = False
  summary_time: str = DEFAULT_SUMMARY_TIME
  dm_enabled: bool = True
  job_fair_enabled: bool = True
  community_enabled: bool = True

  def category_enabled(self, category: NotificationCategory) -> bool:
    if category is NotificationCategory.DM:
      return self.dm_enabled
    if category is NotificationCategory.JOB_FAIR:
      return self.job_fair_enabled
    if category is NotificationCategory.COMMUNITY:
      return self.community_enabled
    return False

  @property
  def wants_digest(self) -> bool:
    return self.enabled and self.summarized

  @property
  def immediate(self) -> bool:
    return self.enabled and not self.summarized

  def to_mapping(self) -> dict[str, Any]:
    return {
      "enabled": self.enabled,
      "summarized": self.summarized,
      "summaryTime": self.summary_time,
      "dmEnabled": self.dm_enabled,
      "jobFairEnabled": self.job_fair_enabled,
      "communityEnabled": self.community_enabled,
    }

  @classmethod
  def from_mapping(cls, raw: Any) -> NotificationPreferences:
    """Build preferences from a stored mapping, falling back to defaults for bad values."""
    if not isinstance(raw, Mapping):
      if raw is not None:
        logger.warning("Ignoring malformed notification preferences of type %s", type(raw).__name__)
      return cls()

    defaults = cls()

    def _flag(key: str, default: bool) -> bool:
      value = raw.get(key)
      return value if isinstance(value, bool) else default

    summary_time = raw.get("summaryTime")
    if not isinstance(summary_time, str) or not summary_time.strip():
      summary_time = defaults.summary_time
    return cls(
      enabled=_flag("enabled", defaults.enabled),
      summarized=_flag("summarized", defaults.summarized),
      summary_time=summary_time.strip(),
      dm_enabled=_flag("dmEnabled", defaults.dm_enabled),
      job_fair_enabled=_flag("jobFairEnabled", defaults.job_fair_enabled),
      community_enabled=_flag("communityEnabled", defaults.community_enabled),
    )


@dataclass(frozen=True)
class NotificationFilter:
  """Predicate used by count queries; None fields match anything."""

  recipient: str | None = None
  category: NotificationCategory | None = None
  related_id: str | None = None
  kind: NotificationKind | None = None

  def matches(self, notification: Notification) -> bool:
    if self.recipient is not None and notification.recipient != self.recipient:
      return False
    if self.kind is not None and notification.kind is not self.kind:
      return False
    if self.category is not None and notification.category is not self.category:
      return False
    if self.related_id is not None and notification.related_id != self.related_id:
      return False
    return True


class NotificationError(Exception):
  """Base class for notification subsystem failures."""


class NotificationStoreError(NotificationError):
  """Raised when the notification store cannot complete an operation."""


class NotificationNotFoundError(NotificationStoreError):
  """Raised when a notification id does not exist."""


class NotificationForbiddenError(NotificationStoreError):
  """Raised when a user acts on a notification addressed to someone else."""


class FailureReason(str, enum.Enum):
  NOT_FOUND = "not_found"
  FORBIDDEN = "forbidden"
  UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class StoreFailure:
  """Structured result returned instead of raising across a component boundary."""

  reason: FailureReason
  message: str

  @classmethod
  def from_exception(cls, exc: Exception, *, action: str) -> StoreFailure:
    if isinstance(exc, NotificationNotFoundError):
      return cls(reason=FailureReason.NOT_FOUND, message=str(exc) or "Notification not found")
    if isinstance(exc, NotificationForbiddenError):
      return cls(reason=FailureReason.FORBIDDEN, message=str(exc) or "Notification belongs to another user")
    return cls(reason=FailureReason.UNAVAILABLE, message=f"Error {action}: {exc}")


class NotificationStore(Protocol):
  """Persistence contract; results are ordered newest first by created_at."""

  async def create(self, new: NewNotification) -> Notification: ...

  async def get(self, notification_id: str) -> Notification | None: ...

  async def list_for_recipient(self, username: str, *, unread_only: bool = False, limit: int = 100) -> list[Notification]: ...

  async def mark_read(self, notification_id: str, *, username: str) -> Notification: ...

  async def mark_all_read(self, username: str) -> int: ...

  async def clear_all(self, username: str) -> int: ...

  async def count_since(self, predicate: NotificationFilter, since: datetime.datetime, until: datetime.datetime | None = None) -> int: ...

  async def count_unread(self, username: str) -> int: ...

  async def latest_digest(self, username: str) -> Notification | None: ...


class PushChannel(Protocol):
  """Server side of the live channel: one addressable room per user."""

  async def publish(self, username: str, notification: Notification) -> int: ...


NotificationCallback = Callable[[Notification], Awaitable[None]]


class PushSubscriber(Protocol):
  """Client side of the live channel."""

  async def subscribe(self, username: str, on_notification: NotificationCallback) -> None: ...

  async def unsubscribe(self, username: str) -> None: ...


@dataclass(frozen=True)
class UserProfile:
  """Slice of the profile record the notification engine reads."""

  username: str
  preferences: NotificationPreferences = field(default_factory=NotificationPreferences)
  last_login: datetime.datetime | None = None
