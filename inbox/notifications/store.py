"""Notification store implementations backed by Postgres or process memory."""

from __future__ import annotations

import asyncio
import datetime
import logging
import uuid
from collections.abc import Callable

from inbox.core.database import get_session_factory
from inbox.notifications.contracts import (
  DIGEST_PREFIX,
  DIGEST_TITLE,
  Digest,
  NewNotification,
  Notification,
  NotificationCategory,
  NotificationFilter,
  NotificationForbiddenError,
  NotificationKind,
  NotificationNotFoundError,
  NotificationStoreError,
  NotificationVariant,
  Ordinary,
  looks_like_digest,
)
from inbox.schema.notifications import NotificationRecord
from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime.datetime]


def utcnow() -> datetime.datetime:
  return datetime.datetime.now(datetime.UTC)


def _creation_time(new: NewNotification, clock: Clock) -> datetime.datetime:
  # A digest is stamped with the end of its window so the next checkpoint lines up exactly.
  if isinstance(new.variant, Digest):
    return new.variant.window_end
  return clock()


def _parse_uuid(notification_id: str) -> uuid.UUID | None:
  try:
    return uuid.UUID(str(notification_id))
  except ValueError:
    return None


def _kind_clause(kind: NotificationKind):
  """SQL predicate for a kind that also classifies untagged legacy rows by content."""
  looks_digest = and_(NotificationRecord.title == DIGEST_TITLE, NotificationRecord.message.startswith(DIGEST_PREFIX))
  if kind is NotificationKind.DIGEST:
    return or_(NotificationRecord.kind == kind.value, and_(NotificationRecord.kind.is_(None), looks_digest))
  return or_(NotificationRecord.kind == kind.value, and_(NotificationRecord.kind.is_(None), NotificationRecord.title != DIGEST_TITLE), and_(NotificationRecord.kind.is_(None), ~NotificationRecord.message.startswith(DIGEST_PREFIX)))


def record_to_notification(record: NotificationRecord) -> Notification:
  """Convert an ORM row into the domain value, classifying untagged legacy rows by content."""
  kind = record.kind
  if kind is None:
    kind = NotificationKind.DIGEST.value if looks_like_digest(record.title, record.message) else NotificationKind.ORDINARY.value

  variant: NotificationVariant
  if kind == NotificationKind.DIGEST.value:
    window_end = record.window_end or record.created_at
    variant = Digest(window_start=record.window_start or window_end, window_end=window_end)
  else:
    variant = Ordinary(category=NotificationCategory(record.category), related_id=record.related_id)

  return Notification(id=str(record.id), recipient=record.recipient, title=record.title, message=record.message, variant=variant, created_at=record.created_at, read=bool(record.read))


class SqlNotificationStore:
  """Persist notifications to Postgres through the shared async session factory."""

  def __init__(self, *, clock: Clock = utcnow) -> None:
    self._clock = clock

  def _session_factory(self):  # type: ignore
    session_factory = get_session_factory()
    if session_factory is None:
      raise NotificationStoreError("Database connection is not configured (INBOX_PG_DSN is missing).")
    return session_factory

  async def create(self, new: NewNotification) -> Notification:
    """Insert a notification row and return the stored value."""
    try:
      async with self._session_factory()() as session:
        return await self._create_with_session(session=session, new=new)
    except SQLAlchemyError as exc:
      raise NotificationStoreError(f"Could not create notification for {new.recipient}") from exc

  async def _create_with_session(self, *, session: AsyncSession, new: NewNotification) -> Notification:
    variant = new.variant
    record = NotificationRecord(
      id=uuid.uuid4(),
      recipient=new.recipient,
      title=new.title,
      message=new.message,
      read=new.read,
      created_at=_creation_time(new, self._clock),
    )
    if isinstance(variant, Digest):
      record.kind = NotificationKind.DIGEST.value
      record.category = NotificationCategory.DM.value
      record.window_start = variant.window_start
      record.window_end = variant.window_end
    else:
      record.kind = NotificationKind.ORDINARY.value
      record.category = variant.category.value
      record.related_id = variant.related_id
    session.add(record)
    await session.commit()
    return record_to_notification(record)

  async def get(self, notification_id: str) -> Notification | None:
    record_id = _parse_uuid(notification_id)
    if record_id is None:
      return None
    try:
      async with self._session_factory()() as session:
        record = await session.get(NotificationRecord, record_id)
    except SQLAlchemyError as exc:
      raise NotificationStoreError(f"Could not load notification {notification_id}") from exc
    return record_to_notification(record) if record is not None else None

  async def list_for_recipient(self, username: str, *, unread_only: bool = False, limit: int = 100) -> list[Notification]:
    stmt = select(NotificationRecord).where(NotificationRecord.recipient == username)
    if unread_only:
      stmt = stmt.where(NotificationRecord.read.is_(False))
    stmt = stmt.order_by(NotificationRecord.created_at.desc()).limit(limit)
    try:
      async with self._session_factory()() as session:
        result = await session.execute(stmt)
        records = result.scalars().all()
    except SQLAlchemyError as exc:
      raise NotificationStoreError(f"Could not list notifications for {username}") from exc
    return [record_to_notification(record) for record in records]

  async def mark_read(self, notification_id: str, *, username: str) -> Notification:
    record_id = _parse_uuid(notification_id)
    if record_id is None:
      raise NotificationNotFoundError(f"Notification {notification_id} not found")
    try:
      async with self._session_factory()() as session:
        record = await session.get(NotificationRecord, record_id)
        if record is None:
          raise NotificationNotFoundError(f"Notification {notification_id} not found")
        if record.recipient != username:
          raise NotificationForbiddenError(f"Notification {notification_id} belongs to another user")
        record.read = True
        await session.commit()
        return record_to_notification(record)
    except SQLAlchemyError as exc:
      raise NotificationStoreError(f"Could not mark notification {notification_id} as read") from exc

  async def mark_all_read(self, username: str) -> int:
    stmt = update(NotificationRecord).where(NotificationRecord.recipient == username, NotificationRecord.read.is_(False)).values(read=True)
    try:
      async with self._session_factory()() as session:
        result = await session.execute(stmt)
        await session.commit()
    except SQLAlchemyError as exc:
      raise NotificationStoreError(f"Could not mark notifications read for {username}") from exc
    return int(result.rowcount or 0)

  async def clear_all(self, username: str) -> int:
    stmt = delete(NotificationRecord).where(NotificationRecord.recipient == username)
    try:
      async with self._session_factory()() as session:
        result = await session.execute(stmt)
        await session.commit()
    except SQLAlchemyError as exc:
      raise NotificationStoreError(f"Could not clear notifications for {username}") from exc
    return int(result.rowcount or 0)

  async def count_since(self, predicate: NotificationFilter, since: datetime.datetime, until: datetime.datetime | None = None) -> int:
    """Count notifications matching the filter with since < created_at <= until."""
    stmt = select(func.count()).select_from(NotificationRecord).where(NotificationRecord.created_at > since)
    if until is not None:
      stmt = stmt.where(NotificationRecord.created_at <= until)
    if predicate.recipient is not None:
      stmt = stmt.where(NotificationRecord.recipient == predicate.recipient)
    if predicate.category is not None:
      stmt = stmt.where(NotificationRecord.category == predicate.category.value)
    if predicate.related_id is not None:
      stmt = stmt.where(NotificationRecord.related_id == predicate.related_id)
    if predicate.kind is not None:
      stmt = stmt.where(_kind_clause(predicate.kind))
    try:
      async with self._session_factory()() as session:
        result = await session.execute(stmt)
    except SQLAlchemyError as exc:
      raise NotificationStoreError("Could not count notifications") from exc
    return int(result.scalar_one())

  async def count_unread(self, username: str) -> int:
    """Count unread ordinary notifications without the list limit."""
    stmt = select(func.count()).select_from(NotificationRecord).where(NotificationRecord.recipient == username, NotificationRecord.read.is_(False), _kind_clause(NotificationKind.ORDINARY))
    try:
      async with self._session_factory()() as session:
        result = await session.execute(stmt)
    except SQLAlchemyError as exc:
      raise NotificationStoreError(f"Could not count unread notifications for {username}") from exc
    return int(result.scalar_one())

  async def latest_digest(self, username: str) -> Notification | None:
    stmt = (
      select(NotificationRecord)
      .where(NotificationRecord.recipient == username, _kind_clause(NotificationKind.DIGEST))
      .order_by(NotificationRecord.created_at.desc())
      .limit(1)
    )
    try:
      async with self._session_factory()() as session:
        result = await session.execute(stmt)
        record = result.scalars().first()
    except SQLAlchemyError as exc:
      raise NotificationStoreError(f"Could not load latest digest for {username}") from exc
    return record_to_notification(record) if record is not None else None


class InMemoryNotificationStore:
  """Process-local store used when Postgres is not configured and in tests."""

  def __init__(self, *, clock: Clock = utcnow) -> None:
    self._clock = clock
    self._items: dict[str, Notification] = {}
    self._lock = asyncio.Lock()

  def _ordered(self) -> list[Notification]:
    return sorted(self._items.values(), key=lambda item: item.created_at, reverse=True)

  async def create(self, new: NewNotification) -> Notification:
    notification = Notification(id=str(uuid.uuid4()), recipient=new.recipient, title=new.title, message=new.message, variant=new.variant, created_at=_creation_time(new, self._clock), read=new.read)
    async with self._lock:
      self._items[notification.id] = notification
    return notification

  async def get(self, notification_id: str) -> Notification | None:
    return self._items.get(str(notification_id))

  async def list_for_recipient(self, username: str, *, unread_only: bool = False, limit: int = 100) -> list[Notification]:
    items = [item for item in self._ordered() if item.recipient == username and not (unread_only and item.read)]
    return items[:limit]

  async def mark_read(self, notification_id: str, *, username: str) -> Notification:
    async with self._lock:
      current = self._items.get(str(notification_id))
      if current is None:
        raise NotificationNotFoundError(f"Notification {notification_id} not found")
      if current.recipient != username:
        raise NotificationForbiddenError(f"Notification {notification_id} belongs to another user")
      updated = current.with_read()
      self._items[current.id] = updated
      return updated

  async def mark_all_read(self, username: str) -> int:
    changed = 0
    async with self._lock:
      for key, item in list(self._items.items()):
        if item.recipient == username and not item.read:
          self._items[key] = item.with_read()
          changed += 1
    return changed

  async def clear_all(self, username: str) -> int:
    async with self._lock:
      doomed = [key for key, item in self._items.items() if item.recipient == username]
      for key in doomed:
        del self._items[key]
    return len(doomed)

  async def count_since(self, predicate: NotificationFilter, since: datetime.datetime, until: datetime.datetime | None = None) -> int:
    return sum(1 for item in self._items.values() if item.created_at > since and (until is None or item.created_at <= until) and predicate.matches(item))

  async def count_unread(self, username: str) -> int:
    return sum(1 for item in self._items.values() if item.recipient == username and not item.read and not item.is_digest)

  async def latest_digest(self, username: str) -> Notification | None:
    for item in self._ordered():
      if item.recipient == username and item.is_digest:
        return item
    return None
