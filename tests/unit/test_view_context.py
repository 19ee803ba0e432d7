from __future__ import annotations

import datetime

import pytest

from inbox.client.context import SuppressionSet, ViewContext
from inbox.notifications.contracts import Digest, Notification, NotificationCategory, Ordinary

NOW = datetime.datetime(2026, 3, 10, 9, 0, tzinfo=datetime.UTC)


def _make(category: NotificationCategory, related_id: str | None) -> Notification:
  return Notification(id="n1", recipient="bob", title="t", message="m", variant=Ordinary(category=category, related_id=related_id), created_at=NOW)


@pytest.mark.parametrize(
  ("location", "chat_id", "question_id", "job_fair_id"),
  [
    ("/messaging/direct-message?chatId=C1", "C1", None, None),
    ("/community/rust/question/Q9", None, "Q9", None),
    ("/jobfairs/F3/booths", None, None, "F3"),
    ("/jobfairs", None, None, None),
    ("/messaging/direct-message?chatId=", None, None, None),
    ("", None, None, None),
  ],
)
def test_from_location(location, chat_id, question_id, job_fair_id):
  context = ViewContext.from_location(location)
  assert (context.chat_id, context.question_id, context.job_fair_id) == (chat_id, question_id, job_fair_id)


def test_covers_matches_category_to_view():
  chat_view = ViewContext.from_location("/messaging/direct-message?chatId=C1")

  assert chat_view.covers(_make(NotificationCategory.DM, "C1"))
  assert not chat_view.covers(_make(NotificationCategory.DM, "C2"))
  # A community notification with the same id is about different content.
  assert not chat_view.covers(_make(NotificationCategory.COMMUNITY, "C1"))
  assert not chat_view.covers(_make(NotificationCategory.DM, None))
  assert ViewContext.from_location("/question/Q1").covers(_make(NotificationCategory.COMMUNITY, "Q1"))
  assert ViewContext.from_location("/jobfairs/F1").covers(_make(NotificationCategory.JOB_FAIR, "F1"))


def test_digest_is_never_covered():
  digest = Notification(id="d1", recipient="bob", title="t", message="m", variant=Digest(window_start=NOW, window_end=NOW), created_at=NOW)
  assert not ViewContext.from_location("/messaging/direct-message?chatId=C1").covers(digest)


def test_notifications_page_detection():
  assert ViewContext.from_location("/notifications").is_notifications_page
  assert ViewContext.from_location("/notifications/").is_notifications_page
  assert not ViewContext.from_location("/notifications/settings").is_notifications_page


def test_suppression_set_only_grows():
  suppressed = SuppressionSet()

  assert suppressed.add("n1") is True
  assert suppressed.add("n1") is False
  assert "n1" in suppressed
  assert len(suppressed) == 1
  assert list(suppressed) == ["n1"]
