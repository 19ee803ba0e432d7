"""HTTP and WebSocket transports used by the delivery controller."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any, Protocol
from urllib.parse import quote

import httpx
import websockets
from websockets.exceptions import WebSocketException

from inbox.client.settings import ClientSettings
from inbox.notifications.contracts import (
  Notification,
  NotificationCallback,
  NotificationForbiddenError,
  NotificationNotFoundError,
  NotificationPreferences,
  NotificationStoreError,
)

logger = logging.getLogger(__name__)

USERNAME_HEADER = "X-Username"


class NotificationApi(Protocol):
  """Request/response operations the controller performs for its user."""

  async def list_notifications(self, *, unread_only: bool = False) -> list[Notification]: ...

  async def mark_read(self, notification_id: str) -> Notification: ...

  async def mark_all_read(self) -> int: ...

  async def clear_all(self) -> int: ...

  async def get_preferences(self) -> NotificationPreferences: ...


class HttpNotificationApi:
  """Talk to the notification routes over HTTP with httpx."""

  def __init__(self, *, username: str, settings: ClientSettings | None = None, client: httpx.AsyncClient | None = None) -> None:
    self._username = username
    self._settings = settings or ClientSettings()
    self._client = client or httpx.AsyncClient(base_url=self._settings.base_url, timeout=self._settings.request_timeout_seconds, trust_env=False)
    self._owns_client = client is None

  async def aclose(self) -> None:
    if self._owns_client:
      await self._client.aclose()

  async def __aenter__(self) -> HttpNotificationApi:
    return self

  async def __aexit__(self, *exc_info: object) -> None:
    await self.aclose()

  async def _request(self, method: str, path: str, *, params: dict[str, Any] | None = None, json_body: Any = None) -> Any:
    try:
      response = await self._client.request(method, path, params=params, json=json_body, headers={USERNAME_HEADER: self._username})
      response.raise_for_status()
    except httpx.HTTPStatusError as exc:
      detail = _error_detail(exc.response)
      if exc.response.status_code == 404:
        raise NotificationNotFoundError(detail) from exc
      if exc.response.status_code == 403:
        raise NotificationForbiddenError(detail) from exc
      logger.error("Notification API %s %s returned %s: %s", method, path, exc.response.status_code, detail)
      raise NotificationStoreError(detail) from exc
    except httpx.RequestError as exc:
      logger.error("Notification API %s %s failed: %s", method, path, exc)
      raise NotificationStoreError(f"Notification API unreachable: {exc}") from exc
    try:
      return response.json()
    except ValueError as exc:
      logger.error("Notification API %s %s returned a non-JSON body", method, path)
      raise NotificationStoreError("Malformed response from notification API") from exc

  async def list_notifications(self, *, unread_only: bool = False) -> list[Notification]:
    params = {"unreadOnly": "true"} if unread_only else None
    payload = await self._request("GET", "/v1/notifications/", params=params)
    if not isinstance(payload, list):
      raise NotificationStoreError("Malformed notification list from notification API")
    notifications: list[Notification] = []
    for item in payload:
      try:
        notifications.append(Notification.from_payload(item))
      except ValueError as exc:
        # One unknown row must not hide the rest of the inbox.
        item_id = item.get("id") if isinstance(item, dict) else None
        logger.warning("Skipping undecodable notification %s for %s: %s", item_id, self._username, exc)
    return notifications

  async def unread_count(self) -> int:
    payload = await self._request("GET", "/v1/notifications/count")
    try:
      return int(payload["count"])
    except (KeyError, TypeError, ValueError) as exc:
      raise NotificationStoreError("Malformed unread count from notification API") from exc

  async def mark_read(self, notification_id: str) -> Notification:
    payload = await self._request("PATCH", f"/v1/notifications/{quote(notification_id, safe='')}/read")
    try:
      return Notification.from_payload(payload)
    except ValueError as exc:
      raise NotificationStoreError(f"Malformed notification {notification_id} from notification API") from exc

  async def mark_all_read(self) -> int:
    payload = await self._request("PATCH", "/v1/notifications/read-all")
    return _count_field(payload, "updated")

  async def clear_all(self) -> int:
    payload = await self._request("DELETE", "/v1/notifications/clear-all")
    return _count_field(payload, "deleted")

  async def generate_summary(self) -> dict[str, Any]:
    return await self._request("POST", "/v1/notifications/generate-summary")

  async def summary_breakdown(self, notification_id: str) -> dict[str, Any]:
    return await self._request("GET", f"/v1/notifications/{quote(notification_id, safe='')}/summary-breakdown")

  async def get_preferences(self) -> NotificationPreferences:
    payload = await self._request("GET", "/v1/preferences/")
    return NotificationPreferences.from_mapping(payload)

  async def update_preferences(self, preferences: NotificationPreferences) -> NotificationPreferences:
    payload = await self._request("PUT", "/v1/preferences/", json_body=preferences.to_mapping())
    return NotificationPreferences.from_mapping(payload)


def _count_field(payload: Any, key: str) -> int:
  try:
    return int(payload.get(key, 0))
  except (AttributeError, TypeError, ValueError) as exc:
    raise NotificationStoreError(f"Malformed {key} count from notification API") from exc


def _error_detail(response: httpx.Response) -> str:
  try:
    body = response.json()
  except ValueError:
    return response.text or f"HTTP {response.status_code}"
  if isinstance(body, dict) and body.get("detail"):
    return str(body["detail"])
  return f"HTTP {response.status_code}"


class WebSocketPushSubscriber:
  """Join the user's push room over a WebSocket and forward decoded notifications.

  The connection is retried with capped exponential backoff until unsubscribed.
  """

  def __init__(self, *, settings: ClientSettings | None = None, connect: Callable[..., Any] | None = None) -> None:
    self._settings = settings or ClientSettings()
    self._connect = connect or websockets.connect
    self._tasks: dict[str, asyncio.Task[None]] = {}

  def _url(self, username: str) -> str:
    return f"{self._settings.stream_url}?username={quote(username, safe='')}"

  async def subscribe(self, username: str, on_notification: NotificationCallback) -> None:
    await self.unsubscribe(username)
    self._tasks[username] = asyncio.create_task(self._listen(username, on_notification))

  async def unsubscribe(self, username: str) -> None:
    task = self._tasks.pop(username, None)
    if task is None:
      return
    task.cancel()
    try:
      await task
    except asyncio.CancelledError:
      pass

  async def _listen(self, username: str, on_notification: NotificationCallback) -> None:
    attempt = 0
    url = self._url(username)
    while True:
      try:
        async with self._connect(url) as connection:
          logger.info("Connected to push stream for %s", username)
          attempt = 0
          async for frame in connection:
            await self._dispatch(frame, on_notification)
      except asyncio.CancelledError:
        raise
      except (WebSocketException, OSError) as exc:
        logger.warning("Push stream for %s disconnected: %s", username, exc)
      delay = min(self._settings.reconnect_initial_seconds * (2 ** min(attempt, 8)), self._settings.reconnect_max_seconds)
      attempt += 1
      await asyncio.sleep(delay)

  async def _dispatch(self, frame: str | bytes, on_notification: NotificationCallback) -> None:
    try:
      notification = Notification.from_payload(json.loads(frame))
    except ValueError as exc:
      # json.JSONDecodeError is a ValueError too.
      logger.warning("Ignoring malformed push frame: %s", exc)
      return
    try:
      await on_notification(notification)
    except Exception as exc:  # noqa: BLE001
      logger.error("Push callback failed for notification %s: %s", notification.id, exc, exc_info=True)
