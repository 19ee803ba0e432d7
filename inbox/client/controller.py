"""Client-side delivery controller reconciling fetch, push and poll into one inbox."""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from inbox.client.context import SuppressionSet, ViewContext
from inbox.client.settings import ClientSettings
from inbox.client.transport import NotificationApi
from inbox.notifications.contracts import Notification, NotificationError, NotificationPreferences, PushSubscriber

logger = logging.getLogger(__name__)

ChangeCallback = Callable[["DeliveryController"], None]
BannerCallback = Callable[[Notification | None], None]


class ControllerState(str, enum.Enum):
  IDLE = "idle"
  SYNCING = "syncing"
  LIVE = "live"


class DeliveryController:
  """Own one user session's notification list, unread count and pop-up banner.

  Three sources feed the list: the initial full fetch, the push stream and a poll
  fallback. Push is best-effort; the poll is what guarantees nothing is missed.
  Every arrival is deduplicated by id before it is admitted, and anything that
  concerns the content on screen is suppressed for the rest of the session.
  """

  def __init__(
    self,
    *,
    username: str,
    api: NotificationApi,
    subscriber: PushSubscriber,
    settings: ClientSettings | None = None,
    preferences: NotificationPreferences | None = None,
    location: str = "/",
    on_change: ChangeCallback | None = None,
    on_banner: BannerCallback | None = None,
  ) -> None:
    self.username = username
    self._api = api
    self._subscriber = subscriber
    self._settings = settings or ClientSettings()
    self._preferences = preferences
    self._context = ViewContext.from_location(location)
    self._on_change = on_change
    self._on_banner = on_banner

    self.state = ControllerState.IDLE
    self.error: str | None = None
    self.banner: Notification | None = None

    self._items: dict[str, Notification] = {}
    self._visible: list[Notification] = []
    self._visible_ids: set[str] = set()
    self._suppressed = SuppressionSet()
    self._pending_reads: set[str] = set()
    self._generation = 0
    self._poll_task: asyncio.Task[None] | None = None
    self._banner_handle: asyncio.TimerHandle | None = None
    self._background: set[asyncio.Task[Any]] = set()

  @property
  def notifications(self) -> list[Notification]:
    """Visible notifications, newest first."""
    return list(self._visible)

  @property
  def unread_count(self) -> int:
    """Unread visible notifications; digests are reported through has_unread_summary."""
    return sum(1 for item in self._visible if not item.read and not item.is_digest)

  @property
  def has_unread_summary(self) -> bool:
    return any(item.is_digest and not item.read for item in self._visible)

  @property
  def context(self) -> ViewContext:
    return self._context

  @property
  def suppressed(self) -> SuppressionSet:
    return self._suppressed

  @property
  def preferences(self) -> NotificationPreferences:
    return self._preferences or NotificationPreferences()

  def knows(self, notification_id: str) -> bool:
    return notification_id in self._items

  def should_show(self, notification: Notification) -> bool:
    """Decide visibility, suppressing notifications about the content on screen."""
    if notification.id in self._suppressed:
      return False
    # Digests are about a time window, not a piece of content.
    if notification.is_digest:
      return True
    if not notification.related_id:
      return True
    if self._context.covers(notification):
      if self._suppressed.add(notification.id) and self._settings.mark_suppressed_read and not notification.read:
        self._pending_reads.add(notification.id)
      return False
    return True

  async def start(self) -> None:
    """Fetch the inbox, then join the push room and start polling."""
    if self.state is not ControllerState.IDLE:
      return
    self._generation += 1
    generation = self._generation
    self.state = ControllerState.SYNCING
    self._changed()

    if self._preferences is None:
      try:
        self._preferences = await self._api.get_preferences()
      except NotificationError as exc:
        logger.warning("Could not load notification preferences for %s; using defaults: %s", self.username, exc)
        self._preferences = NotificationPreferences()

    await self.refresh()
    if generation != self._generation:
      return

    async def _on_push(notification: Notification) -> None:
      await self._receive(notification, generation=generation)

    try:
      await self._subscriber.subscribe(self.username, _on_push)
    except Exception as exc:  # noqa: BLE001
      # The poll still delivers everything, just later.
      logger.warning("Push subscription failed for %s: %s", self.username, exc)

    if generation != self._generation:
      return
    self.state = ControllerState.LIVE
    self._start_polling()
    self._changed()

  async def stop(self) -> None:
    """Tear the session down; no callback fires for it afterwards."""
    if self.state is ControllerState.IDLE:
      return
    self._generation += 1
    self.state = ControllerState.IDLE

    poll_task, self._poll_task = self._poll_task, None
    if poll_task is not None:
      poll_task.cancel()
    self._cancel_banner()
    self.banner = None
    background = list(self._background)
    for task in background:
      task.cancel()
    await asyncio.gather(*(t for t in [poll_task, *background] if t is not None), return_exceptions=True)
    self._background.clear()

    try:
      await self._subscriber.unsubscribe(self.username)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Push unsubscribe failed for %s: %s", self.username, exc)
    logger.debug("Delivery controller stopped for %s", self.username)

  async def refresh(self) -> bool:
    """Replace the local list with a full fetch; keeps the current list on failure."""
    generation = self._generation
    try:
      fetched = await self._api.list_notifications(unread_only=False)
    except NotificationError as exc:
      logger.warning("Notification fetch failed for %s: %s", self.username, exc)
      self.error = f"Failed to fetch notifications: {exc}"
      self._changed()
      return False
    if generation != self._generation:
      return False

    self._items = {item.id: item for item in fetched}
    self.error = None
    self._refilter()
    self._changed()
    await self._flush_suppressed_reads()
    return True

  async def handle_push(self, notification: Notification) -> None:
    """Admit a notification delivered by the push channel."""
    await self._receive(notification, generation=self._generation)

  async def _receive(self, notification: Notification, *, generation: int) -> None:
    if generation != self._generation or self.state is not ControllerState.LIVE:
      logger.debug("Dropping notification %s delivered to an inactive session", notification.id)
      return
    if notification.recipient != self.username:
      logger.warning("Ignoring notification %s addressed to %s", notification.id, notification.recipient)
      return
    if notification.id in self._items:
      return

    self._items[notification.id] = notification
    self._refilter()
    if notification.id in self._visible_ids:
      self._announce(notification)
    self._changed()
    await self._flush_suppressed_reads()

  async def poll_once(self) -> int:
    """Fetch unread notifications and merge the ones not seen yet; returns how many were new."""
    generation = self._generation
    try:
      fetched = await self._api.list_notifications(unread_only=True)
    except NotificationError as exc:
      logger.warning("Notification poll failed for %s: %s", self.username, exc)
      return 0
    if generation != self._generation:
      return 0

    arrivals = [item for item in fetched if item.id not in self._items]
    if not arrivals:
      return 0
    for item in arrivals:
      self._items[item.id] = item
    self._refilter()

    shown = [item for item in arrivals if item.id in self._visible_ids]
    if shown:
      self._announce(max(shown, key=lambda item: item.created_at))
    self._changed()
    await self._flush_suppressed_reads()
    return len(arrivals)

  def navigate(self, location: str) -> None:
    """Switch view context and re-filter the whole list; leaving a view never un-hides."""
    previous = self._context
    self._context = ViewContext.from_location(location)
    self._refilter()

    if self._context.is_notifications_page and not previous.is_notifications_page:
      digests = [item.id for item in self._visible if item.is_digest and not item.read]
      if digests:
        self._spawn(self._acknowledge(digests))
    if self._pending_reads:
      self._spawn(self._flush_suppressed_reads())
    self._changed()

  async def _acknowledge(self, notification_ids: list[str]) -> None:
    for notification_id in notification_ids:
      await self.mark_read(notification_id)

  async def mark_read(self, notification_id: str) -> bool:
    current = self._items.get(notification_id)
    if current is None:
      return False
    if current.read:
      return True
    self._items[notification_id] = current.with_read()
    self._refilter()
    self._changed()

    try:
      await self._api.mark_read(notification_id)
    except NotificationError as exc:
      logger.warning("Mark read failed for %s: %s", notification_id, exc)
      self._rollback({notification_id: current}, message=f"Failed to mark notification as read: {exc}")
      return False
    self.error = None
    return True

  async def mark_all_read(self) -> bool:
    previous = {key: item for key, item in self._items.items() if not item.read}
    if not previous:
      return True
    for key, item in previous.items():
      self._items[key] = item.with_read()
    self._refilter()
    self._changed()

    try:
      await self._api.mark_all_read()
    except NotificationError as exc:
      logger.warning("Mark all read failed for %s: %s", self.username, exc)
      self._rollback(previous, message=f"Failed to mark all notifications as read: {exc}")
      return False
    self.error = None
    return True

  async def clear_all(self) -> bool:
    previous = dict(self._items)
    self._items.clear()
    self._refilter()
    self._changed()

    try:
      await self._api.clear_all()
    except NotificationError as exc:
      logger.warning("Clear all failed for %s: %s", self.username, exc)
      self._rollback(previous, message=f"Failed to clear notifications: {exc}")
      return False
    self.error = None
    await self.refresh()
    return True

  def _rollback(self, previous: dict[str, Notification], *, message: str) -> None:
    # Restore only what the failed call touched so concurrent arrivals survive.
    for key, item in previous.items():
      self._items[key] = item
    self.error = message
    self._refilter()
    self._changed()

  async def update_preferences(self, preferences: NotificationPreferences) -> None:
    """Apply new preferences and retune the poll cadence."""
    self._preferences = preferences
    if self.state is ControllerState.LIVE:
      if self._poll_task is not None:
        self._poll_task.cancel()
        self._poll_task = None
      self._start_polling()
    self._changed()

  def poll_interval(self) -> float | None:
    """Seconds between polls for the current preferences, or None when polling is off."""
    preferences = self.preferences
    if not preferences.enabled:
      return None
    if preferences.summarized:
      return self._settings.slow_poll_seconds
    return self._settings.fast_poll_seconds

  def _start_polling(self) -> None:
    if self.poll_interval() is None:
      return
    self._poll_task = asyncio.create_task(self._poll_loop(self._generation))

  async def _poll_loop(self, generation: int) -> None:
    while generation == self._generation:
      interval = self.poll_interval()
      if interval is None:
        return
      await asyncio.sleep(interval)
      if generation != self._generation:
        return
      try:
        await self.poll_once()
      except Exception as exc:  # noqa: BLE001
        logger.error("Notification poll crashed for %s: %s", self.username, exc, exc_info=True)

  async def settle(self) -> None:
    """Wait for acknowledgement work scheduled by navigation."""
    while self._background:
      await asyncio.gather(*list(self._background), return_exceptions=True)

  def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
    try:
      loop = asyncio.get_running_loop()
    except RuntimeError:
      coro.close()
      logger.debug("No running event loop; deferring acknowledgement for %s", self.username)
      return
    task = loop.create_task(coro)
    self._background.add(task)
    task.add_done_callback(self._background.discard)

  async def _flush_suppressed_reads(self) -> None:
    """Best-effort mark-read of suppressed notifications so server state matches what was seen."""
    generation = self._generation
    while self._pending_reads:
      notification_id = self._pending_reads.pop()
      try:
        await self._api.mark_read(notification_id)
      except NotificationError as exc:
        logger.warning("Could not mark suppressed notification %s read: %s", notification_id, exc)
        continue
      if generation != self._generation:
        return
      current = self._items.get(notification_id)
      if current is not None and not current.read:
        self._items[notification_id] = current.with_read()

  def _refilter(self) -> None:
    ordered = sorted(self._items.values(), key=lambda item: item.created_at, reverse=True)
    self._visible = [item for item in ordered if self.should_show(item)]
    self._visible_ids = {item.id for item in self._visible}

  def _announce(self, notification: Notification) -> None:
    preferences = self.preferences
    if notification.is_digest:
      if not preferences.wants_digest:
        return
      duration = self._settings.digest_banner_seconds
    else:
      if not preferences.immediate or not preferences.category_enabled(notification.category):
        return
      duration = self._settings.banner_seconds

    self._cancel_banner()
    self.banner = notification
    loop = asyncio.get_running_loop()
    self._banner_handle = loop.call_later(duration, self._expire_banner, notification.id, self._generation)
    self._emit_banner(notification)

  def _expire_banner(self, notification_id: str, generation: int) -> None:
    if generation != self._generation or self.banner is None or self.banner.id != notification_id:
      return
    self.banner = None
    self._banner_handle = None
    self._emit_banner(None)

  def _cancel_banner(self) -> None:
    if self._banner_handle is not None:
      self._banner_handle.cancel()
      self._banner_handle = None

  def _emit_banner(self, notification: Notification | None) -> None:
    if self._on_banner is None:
      return
    try:
      self._on_banner(notification)
    except Exception as exc:  # noqa: BLE001
      logger.error("Banner callback failed: %s", exc, exc_info=True)

  def _changed(self) -> None:
    if self._on_change is None:
      return
    try:
      self._on_change(self)
    except Exception as exc:  # noqa: BLE001
      logger.error("Change callback failed: %s", exc, exc_info=True)
