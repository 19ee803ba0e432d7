"""Minute tick that produces one digest per user per day once their summary time has passed."""

from __future__ import annotations

import asyncio
import datetime
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from inbox.notifications.activity_repo import ProfileSource
from inbox.notifications.contracts import Digest, UserProfile, parse_summary_time
from inbox.notifications.service import NotificationService
from inbox.notifications.store import Clock, utcnow
from inbox.notifications.summary import SummaryAggregator, SummaryOutcome, SummaryResult

logger = logging.getLogger(__name__)

SUMMARY_JOB_ID = "notification_summary_tick"


class SummaryScheduler:
  """Run the summary aggregator for each digest subscriber once per day.

  A user is due once their summary time for today has passed, so a tick that
  was skipped or a restart still produces the day's digest. Summary times are
  compared against the scheduler clock, which is UTC unless a different clock is
  injected. Runs for one user are serialized in-process.
  """

  def __init__(self, *, aggregator: SummaryAggregator, profiles: ProfileSource, service: NotificationService, default_summary_time: str = "09:00", clock: Clock = utcnow, scheduler: AsyncIOScheduler | None = None) -> None:
    self._aggregator = aggregator
    self._profiles = profiles
    self._service = service
    self._default_time = parse_summary_time(default_summary_time) or (9, 0)
    self._clock = clock
    self._scheduler = scheduler or AsyncIOScheduler(timezone=datetime.UTC)
    self._locks: dict[str, asyncio.Lock] = {}
    # username -> ISO date of the last day the user was handled
    self._handled: dict[str, str] = {}

  def start(self) -> None:
    """Register the per-minute job and start the underlying scheduler."""
    self._scheduler.add_job(self.tick, "cron", minute="*", id=SUMMARY_JOB_ID, replace_existing=True, coalesce=True, max_instances=1)
    self._scheduler.start()
    logger.info("Summary scheduler started")

  def shutdown(self) -> None:
    if self._scheduler.running:
      self._scheduler.shutdown(wait=False)
      logger.info("Summary scheduler stopped")

  def _lock_for(self, username: str) -> asyncio.Lock:
    lock = self._locks.get(username)
    if lock is None:
      lock = asyncio.Lock()
      self._locks[username] = lock
    return lock

  def _summary_time(self, profile: UserProfile) -> tuple[int, int]:
    parsed = parse_summary_time(profile.preferences.summary_time)
    if parsed is None:
      logger.warning("Invalid summaryTime %r for %s; using default %02d:%02d", profile.preferences.summary_time, profile.username, *self._default_time)
      return self._default_time
    return parsed

  async def run_for_user(self, username: str, now: datetime.datetime | None = None) -> SummaryResult:
    """Run the aggregator under the user's lock and publish any digest it creates."""
    now = now or self._clock()
    async with self._lock_for(username):
      result = await self._aggregator.run(username, now=now)
    if result.outcome is SummaryOutcome.CREATED and result.notification is not None:
      await self._service.publish(result.notification)
    return result

  async def _already_summarized(self, username: str, slot: datetime.datetime) -> bool:
    try:
      latest = await self._service.store.latest_digest(username)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Could not load latest digest for %s: %s", username, exc)
      return False
    if latest is None:
      return False
    window_end = latest.variant.window_end if isinstance(latest.variant, Digest) else latest.created_at
    return window_end >= slot

  def _prune_handled(self, today: str) -> None:
    stale = [username for username, day in self._handled.items() if day != today]
    for username in stale:
      del self._handled[username]

  async def tick(self, now: datetime.datetime | None = None) -> dict[str, SummaryResult]:
    """Run every subscriber whose summary time has passed today and who was not handled yet.

    Returns the results of the runs it attempted keyed by username. A failed run
    is retried on the next tick.
    """
    now = now or self._clock()
    today = now.date().isoformat()
    self._prune_handled(today)
    try:
      subscribers = await self._profiles.list_digest_subscribers()
    except Exception as exc:  # noqa: BLE001
      logger.error("Summary tick could not list subscribers: %s", exc, exc_info=True)
      return {}

    results: dict[str, SummaryResult] = {}
    for profile in subscribers:
      username = profile.username
      if not profile.preferences.wants_digest or self._handled.get(username) == today:
        continue
      hour, minute = self._summary_time(profile)
      slot = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
      if now < slot:
        continue
      if await self._already_summarized(username, slot):
        # Produced before a restart.
        self._handled[username] = today
        continue
      try:
        result = await self.run_for_user(username, now=now)
      except Exception as exc:  # noqa: BLE001
        logger.error("Summary run crashed for %s: %s", username, exc, exc_info=True)
        continue
      if result.outcome is SummaryOutcome.FAILED:
        logger.error("Summary run failed for %s: %s", username, result.detail)
      else:
        self._handled[username] = today
      results[username] = result
    return results
