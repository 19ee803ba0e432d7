from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from inbox.notifications.contracts import (
  FailureReason,
  NewNotification,
  NotificationCategory,
  NotificationNotFoundError,
  NotificationStoreError,
  StoreFailure,
)
from inbox.notifications.service import NotificationService


@pytest.fixture
def push_channel():
  channel = MagicMock()
  channel.publish = AsyncMock(return_value=1)
  return channel


@pytest.fixture
def service(store, push_channel):
  return NotificationService(store=store, push_channel=push_channel)


@pytest.mark.anyio
async def test_notify_persists_then_pushes(service, store, push_channel):
  created = await service.notify(recipient="bob", category=NotificationCategory.COMMUNITY, title="New question", message="carol asked", related_id="q1")

  assert (await store.get(created.id)) == created
  push_channel.publish.assert_awaited_once_with("bob", created)


@pytest.mark.anyio
async def test_notify_returns_failure_when_store_fails(push_channel):
  broken = MagicMock()
  broken.create = AsyncMock(side_effect=NotificationStoreError("db down"))
  service = NotificationService(store=broken, push_channel=push_channel)

  result = await service.notify(recipient="bob", category=NotificationCategory.DM, title="t", message="m")

  assert isinstance(result, StoreFailure)
  assert result.reason is FailureReason.UNAVAILABLE
  push_channel.publish.assert_not_awaited()


@pytest.mark.anyio
async def test_push_failure_does_not_lose_the_notification(service, store, push_channel):
  push_channel.publish.side_effect = RuntimeError("socket closed")

  created = await service.notify(recipient="bob", category=NotificationCategory.DM, title="t", message="m")

  assert not isinstance(created, StoreFailure)
  assert len(await store.list_for_recipient("bob")) == 1


@pytest.mark.anyio
async def test_unread_count_excludes_digests(service, store, clock):
  await store.create(NewNotification.ordinary(recipient="bob", category=NotificationCategory.DM, title="t", message="m"))
  await store.create(NewNotification.digest(recipient="bob", summary="1 new DM message", window_start=clock.now, window_end=clock.now))

  assert await service.unread_count("bob") == 1


@pytest.mark.anyio
async def test_mark_read_maps_errors_to_failures(service, store):
  created = await store.create(NewNotification.ordinary(recipient="bob", category=NotificationCategory.DM, title="t", message="m"))

  forbidden = await service.mark_read(created.id, username="carol")
  missing = await service.mark_read("nope", username="bob")
  updated = await service.mark_read(created.id, username="bob")

  assert forbidden.reason is FailureReason.FORBIDDEN
  assert missing.reason is FailureReason.NOT_FOUND
  assert updated.read is True


@pytest.mark.anyio
async def test_bulk_operations_return_counts(service, store):
  for _ in range(3):
    await store.create(NewNotification.ordinary(recipient="bob", category=NotificationCategory.DM, title="t", message="m"))

  assert await service.mark_all_read("bob") == 3
  assert await service.clear_all("bob") == 3
  assert await service.list_notifications("bob") == []


@pytest.mark.anyio
async def test_unread_count_failure_is_reported(push_channel):
  broken = MagicMock()
  broken.count_unread = AsyncMock(side_effect=NotificationNotFoundError("gone"))
  service = NotificationService(store=broken, push_channel=push_channel)

  result = await service.unread_count("bob")

  assert isinstance(result, StoreFailure)
  assert result.reason is FailureReason.NOT_FOUND


@pytest.mark.anyio
async def test_unread_count_is_not_capped_by_list_limit(store, push_channel):
  service = NotificationService(store=store, push_channel=push_channel, list_limit=100)
  for index in range(150):
    await service.notify(recipient="bob", category=NotificationCategory.DM, title="New message", message=f"alice: {index}", related_id="C1")

  assert await service.unread_count("bob") == 150
  assert len(await service.list_notifications("bob")) == 100
