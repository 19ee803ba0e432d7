from __future__ import annotations

import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from inbox.notifications.contracts import Notification, NotificationCategory, Ordinary
from inbox.notifications.push_hub import PushHub


def _socket(*, fails: bool = False):
  websocket = MagicMock()
  websocket.send_json = AsyncMock(side_effect=RuntimeError("closed") if fails else None)
  websocket.close = AsyncMock()
  return websocket


def _notification() -> Notification:
  return Notification(
    id="n1",
    recipient="bob",
    title="New message",
    message="alice: hi",
    variant=Ordinary(category=NotificationCategory.DM, related_id="c1"),
    created_at=datetime.datetime(2026, 3, 10, 9, 0, tzinfo=datetime.UTC),
  )


@pytest.mark.anyio
async def test_publish_reaches_every_socket_in_room():
  hub = PushHub()
  first, second, other = _socket(), _socket(), _socket()
  await hub.join("bob", first)
  await hub.join("bob", second)
  await hub.join("carol", other)

  delivered = await hub.publish("bob", _notification())

  assert delivered == 2
  first.send_json.assert_awaited_once_with(_notification().to_payload())
  other.send_json.assert_not_awaited()


@pytest.mark.anyio
async def test_publish_to_empty_room_returns_zero():
  assert await PushHub().publish("bob", _notification()) == 0


@pytest.mark.anyio
async def test_failing_socket_is_dropped():
  hub = PushHub()
  healthy, broken = _socket(), _socket(fails=True)
  await hub.join("bob", healthy)
  await hub.join("bob", broken)

  assert await hub.publish("bob", _notification()) == 1
  assert hub.connection_count("bob") == 1


@pytest.mark.anyio
async def test_leave_and_close_all():
  hub = PushHub()
  websocket = _socket()
  await hub.join("bob", websocket)
  await hub.leave("bob", websocket)
  await hub.leave("nobody", websocket)
  assert hub.connection_count("bob") == 0

  await hub.join("bob", websocket)
  await hub.close_all()

  websocket.close.assert_awaited_once()
  assert hub.connection_count("bob") == 0
