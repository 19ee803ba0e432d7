"""In-process push rooms: each user has a set of live WebSocket connections."""

from __future__ import annotations

import asyncio
import logging

from inbox.notifications.contracts import Notification
from starlette.websockets import WebSocket

logger = logging.getLogger(__name__)


class PushHub:
  """Fan notifications out to every socket that joined a user's room.

  Delivery is best-effort; clients poll the store to catch anything a push misses.
  """

  def __init__(self) -> None:
    self._rooms: dict[str, set[WebSocket]] = {}
    self._lock = asyncio.Lock()

  async def join(self, username: str, websocket: WebSocket) -> None:
    async with self._lock:
      self._rooms.setdefault(username, set()).add(websocket)
    logger.debug("Socket joined push room for %s", username)

  async def leave(self, username: str, websocket: WebSocket) -> None:
    async with self._lock:
      room = self._rooms.get(username)
      if room is None:
        return
      room.discard(websocket)
      if not room:
        del self._rooms[username]

  def connection_count(self, username: str) -> int:
    return len(self._rooms.get(username, ()))

  async def publish(self, username: str, notification: Notification) -> int:
    """Send the notification to the user's room and return how many sockets received it."""
    async with self._lock:
      sockets = list(self._rooms.get(username, ()))
    if not sockets:
      return 0

    payload = notification.to_payload()
    delivered = 0
    for websocket in sockets:
      try:
        await websocket.send_json(payload)
        delivered += 1
      except Exception as exc:  # noqa: BLE001
        # Drop sockets that can no longer be written to.
        logger.warning("Dropping push socket for %s: %s", username, exc)
        await self.leave(username, websocket)
    return delivered

  async def close_all(self) -> None:
    async with self._lock:
      rooms = list(self._rooms.items())
      self._rooms.clear()
    for username, sockets in rooms:
      for websocket in sockets:
        try:
          await websocket.close()
        except Exception as exc:  # noqa: BLE001
          logger.debug("Ignoring close failure for %s: %s", username, exc)
