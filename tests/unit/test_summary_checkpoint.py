from __future__ import annotations

import datetime

from inbox.notifications.contracts import Digest, Notification, NotificationCategory, Ordinary
from inbox.notifications.summary import POLICY_LAST_LOGIN, POLICY_SIMPLE, compute_checkpoint

NOW = datetime.datetime(2026, 3, 10, 9, 0, tzinfo=datetime.UTC)
DAY = datetime.timedelta(hours=24)


def _digest(window_end: datetime.datetime) -> Notification:
  return Notification(
    id="d1",
    recipient="bob",
    title="Daily Notification Summary",
    message="Summary: 1 new DM message",
    variant=Digest(window_start=window_end - DAY, window_end=window_end),
    created_at=window_end,
  )


def test_previous_digest_window_end_is_the_checkpoint():
  previous = NOW - datetime.timedelta(hours=5)
  assert compute_checkpoint(now=NOW, latest_digest=_digest(previous)) == previous


def test_previous_digest_is_never_widened_by_last_login():
  previous = NOW - datetime.timedelta(hours=5)
  checkpoint = compute_checkpoint(now=NOW, latest_digest=_digest(previous), last_login=NOW - datetime.timedelta(days=7))
  assert checkpoint == previous


def test_without_digest_falls_back_to_fixed_window():
  assert compute_checkpoint(now=NOW, latest_digest=None) == NOW - DAY
  assert compute_checkpoint(now=NOW, latest_digest=None, fallback_window=datetime.timedelta(hours=6)) == NOW - datetime.timedelta(hours=6)


def test_recent_login_does_not_change_fallback():
  checkpoint = compute_checkpoint(now=NOW, latest_digest=None, last_login=NOW - datetime.timedelta(hours=2))
  assert checkpoint == NOW - DAY


def test_long_absence_widens_to_last_login():
  last_login = NOW - datetime.timedelta(days=4)
  assert compute_checkpoint(now=NOW, latest_digest=None, last_login=last_login, policy=POLICY_LAST_LOGIN) == last_login


def test_simple_policy_ignores_last_login():
  last_login = NOW - datetime.timedelta(days=4)
  assert compute_checkpoint(now=NOW, latest_digest=None, last_login=last_login, policy=POLICY_SIMPLE) == NOW - DAY


def test_non_digest_latest_uses_created_at():
  legacy = Notification(
    id="n1",
    recipient="bob",
    title="Hello",
    message="hi",
    variant=Ordinary(category=NotificationCategory.DM),
    created_at=NOW - datetime.timedelta(hours=3),
  )
  assert compute_checkpoint(now=NOW, latest_digest=legacy) == NOW - datetime.timedelta(hours=3)
