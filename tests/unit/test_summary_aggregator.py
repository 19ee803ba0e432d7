from __future__ import annotations

import datetime
from unittest.mock import AsyncMock

import pytest

from inbox.notifications.activity_repo import CommunityInfo, JobFairInfo, QuestionInfo
from inbox.notifications.contracts import DIGEST_TITLE, Digest, FailureReason, NewNotification, NotificationCategory, NotificationPreferences, StoreFailure, UserProfile
from inbox.notifications.summary import SummaryCounts, SummaryOutcome, compose_summary_message

_T = datetime.timedelta


def _question(qid: str, asked_by: str, asked_at: datetime.datetime) -> QuestionInfo:
  return QuestionInfo(id=qid, title=f"Question {qid}", asked_by=asked_by, asked_at=asked_at)


def _seed_alice_and_rust_fans(activity, now: datetime.datetime) -> None:
  activity.add_chat("c1", ["bob", "alice"])
  for minutes in (10, 20, 30):
    activity.add_message("c1", sender="alice", sent_at=now - _T(minutes=minutes))
  activity.add_message("c1", sender="bob", sent_at=now - _T(minutes=5))
  activity.add_community(CommunityInfo(id="rf", name="Rust Fans"), ["bob"])
  activity.add_question("rf", _question("q1", "carol", now - _T(hours=2)))
  activity.add_question("rf", _question("q2", "dave", now - _T(hours=3)))
  activity.add_question("rf", _question("q3", "bob", now - _T(hours=1)))


@pytest.mark.anyio
async def test_digest_scenario_message(aggregator, activity, store, clock):
  _seed_alice_and_rust_fans(activity, clock.now)

  result = await aggregator.run("bob")

  assert result.outcome is SummaryOutcome.CREATED
  digest = result.notification
  assert digest.message == "Summary: 3 new DM messages; 2 new questions in followed communities (Rust Fans: 2)"
  assert digest.title == DIGEST_TITLE
  assert digest.is_digest
  assert digest.variant == Digest(window_start=clock.now - _T(hours=24), window_end=clock.now)
  assert digest.created_at == clock.now
  assert len(await store.list_for_recipient("bob")) == 1


@pytest.mark.anyio
async def test_second_run_without_activity_is_a_noop(aggregator, activity, store, clock):
  _seed_alice_and_rust_fans(activity, clock.now)
  first = await aggregator.run("bob")
  assert first.outcome is SummaryOutcome.CREATED

  second = await aggregator.run("bob")
  clock.advance(hours=1)
  third = await aggregator.run("bob")

  assert second.outcome is SummaryOutcome.NOTHING_TO_SUMMARIZE
  assert third.outcome is SummaryOutcome.NOTHING_TO_SUMMARIZE
  assert len(await store.list_for_recipient("bob")) == 1


@pytest.mark.anyio
async def test_next_digest_counts_only_activity_after_previous_digest(aggregator, activity, clock):
  _seed_alice_and_rust_fans(activity, clock.now)
  await aggregator.run("bob")

  clock.advance(hours=24)
  activity.add_message("c1", sender="alice", sent_at=clock.now - _T(hours=1))
  result = await aggregator.run("bob")

  assert result.outcome is SummaryOutcome.CREATED
  assert result.notification.message == "Summary: 1 new DM message"
  assert result.notification.variant.window_start == clock.now - _T(hours=24)


@pytest.mark.anyio
async def test_window_excludes_checkpoint_minus_one_second(store, activity, aggregator, clock):
  checkpoint = clock.now - _T(hours=6)
  await store.create(NewNotification.digest(recipient="bob", summary="1 new DM message", window_start=checkpoint - _T(hours=24), window_end=checkpoint))
  activity.add_chat("c1", ["bob", "alice"])
  activity.add_message("c1", sender="alice", sent_at=checkpoint - _T(seconds=1))
  activity.add_message("c1", sender="alice", sent_at=checkpoint + _T(seconds=1))
  activity.add_community(CommunityInfo(id="rf", name="Rust Fans"), ["bob"])
  activity.add_question("rf", _question("old", "carol", checkpoint - _T(seconds=1)))
  activity.add_question("rf", _question("new", "carol", checkpoint + _T(seconds=1)))
  activity.add_job_fair(JobFairInfo(id="f1", title="Spring Fair", status="ended", end_time=checkpoint - _T(seconds=1)), ["bob"])
  activity.add_job_fair(JobFairInfo(id="f2", title="Summer Fair", status="ended", end_time=checkpoint + _T(seconds=1)), ["bob"])

  result = await aggregator.run("bob")

  assert result.outcome is SummaryOutcome.CREATED
  assert result.notification.message == "Summary: 1 new DM message; 1 job fair just ended; 1 new question in followed communities (Rust Fans: 1)"
  assert result.notification.variant.window_start == checkpoint


@pytest.mark.anyio
async def test_zero_activity_creates_no_record(aggregator, store):
  result = await aggregator.run("bob")

  assert result.outcome is SummaryOutcome.NOTHING_TO_SUMMARIZE
  assert result.notification is None
  assert await store.list_for_recipient("bob") == []


@pytest.mark.anyio
@pytest.mark.parametrize("preferences", [NotificationPreferences(enabled=True, summarized=False), NotificationPreferences(enabled=False, summarized=True)])
async def test_ineligible_users_get_nothing(aggregator, activity, store, clock, preferences):
  activity.add_profile(UserProfile(username="bob", preferences=preferences))
  _seed_alice_and_rust_fans(activity, clock.now)

  result = await aggregator.run("bob")

  assert result.outcome is SummaryOutcome.NOT_ELIGIBLE
  assert await store.list_for_recipient("bob") == []


@pytest.mark.anyio
async def test_unknown_user_is_not_eligible(aggregator):
  result = await aggregator.run("nobody")
  assert result.outcome is SummaryOutcome.NOT_ELIGIBLE


@pytest.mark.anyio
async def test_category_toggles_gate_counts(aggregator, activity, clock):
  activity.add_profile(UserProfile(username="bob", preferences=NotificationPreferences(enabled=True, summarized=True, dm_enabled=False)))
  _seed_alice_and_rust_fans(activity, clock.now)

  result = await aggregator.run("bob")

  assert result.notification.message == "Summary: 2 new questions in followed communities (Rust Fans: 2)"


@pytest.mark.anyio
async def test_job_fair_buckets_are_counted_independently(aggregator, activity, store, clock):
  now = clock.now
  activity.add_job_fair(JobFairInfo(id="f1", title="Live Fair", status="live", start_time=now - _T(hours=1)), ["bob"])
  activity.add_job_fair(JobFairInfo(id="f2", title="Soon Fair", status="upcoming", start_time=now + _T(hours=3)), ["bob"])
  activity.add_job_fair(JobFairInfo(id="f3", title="Later Fair", status="upcoming", start_time=now + _T(hours=30)), ["bob"])
  activity.add_job_fair(JobFairInfo(id="f4", title="Done Fair", status="ended", end_time=now - _T(hours=2)), ["bob"])
  activity.add_job_fair(JobFairInfo(id="f5", title="Other Fair", status="ended", end_time=now - _T(hours=2)), ["carol"])
  clock.now = now - _T(hours=2)
  await store.create(NewNotification.ordinary(recipient="bob", category=NotificationCategory.JOB_FAIR, title="Job fair live", message="Live Fair is live", related_id="f1"))
  await store.create(NewNotification.ordinary(recipient="bob", category=NotificationCategory.JOB_FAIR, title="Job fair ended", message="Done Fair ended", related_id="f4"))
  await store.create(NewNotification.ordinary(recipient="carol", category=NotificationCategory.JOB_FAIR, title="Job fair ended", message="Done Fair ended", related_id="f4"))
  clock.now = now

  result = await aggregator.run("bob")

  assert result.notification.message == "Summary: 2 job fair updates; 1 job fair starting soon; 1 job fair just ended"


@pytest.mark.anyio
async def test_starting_soon_is_not_repeated_on_rerun(aggregator, activity, clock):
  activity.add_job_fair(JobFairInfo(id="f2", title="Soon Fair", status="upcoming", start_time=clock.now + _T(hours=3)), ["bob"])

  first = await aggregator.run("bob")
  clock.advance(hours=1)
  second = await aggregator.run("bob")

  assert first.notification.message == "Summary: 1 job fair starting soon"
  assert second.outcome is SummaryOutcome.NOTHING_TO_SUMMARIZE


@pytest.mark.anyio
async def test_unnamed_community_falls_back_to_id(aggregator, activity, clock):
  activity.add_community(CommunityInfo(id="c-42", name=""), ["bob"])
  activity.add_question("c-42", _question("q1", "carol", clock.now - _T(hours=1)))

  result = await aggregator.run("bob")

  assert result.notification.message == "Summary: 1 new question in followed communities (Community c-42: 1)"


@pytest.mark.anyio
async def test_failure_mid_aggregation_creates_nothing(aggregator, activity, store, clock):
  _seed_alice_and_rust_fans(activity, clock.now)
  activity.list_communities = AsyncMock(side_effect=RuntimeError("database went away"))

  result = await aggregator.run("bob")

  assert result.outcome is SummaryOutcome.FAILED
  assert "database went away" in result.detail
  assert await store.list_for_recipient("bob") == []


@pytest.mark.anyio
async def test_last_login_widens_first_window_for_absent_user(aggregator, activity, clock):
  activity.add_profile(UserProfile(username="bob", preferences=NotificationPreferences(enabled=True, summarized=True), last_login=clock.now - _T(days=3)))
  activity.add_chat("c1", ["bob", "alice"])
  activity.add_message("c1", sender="alice", sent_at=clock.now - _T(days=2))

  result = await aggregator.run("bob")

  assert result.notification.message == "Summary: 1 new DM message"
  assert result.notification.variant.window_start == clock.now - _T(days=3)


def test_compose_summary_message_pluralization():
  singular = SummaryCounts(dm_messages=1, job_fair_updates=1, job_fairs_starting_soon=1, job_fairs_ended=1, community_questions={"Rust Fans": 1})
  plural = SummaryCounts(dm_messages=2, job_fair_updates=3, job_fairs_starting_soon=2, job_fairs_ended=4, community_questions={"Rust Fans": 2, "Go Club": 3})

  assert compose_summary_message(singular) == "Summary: 1 new DM message; 1 job fair update; 1 job fair starting soon; 1 job fair just ended; 1 new question in followed communities (Rust Fans: 1)"
  assert compose_summary_message(plural) == "Summary: 2 new DM messages; 3 job fair updates; 2 job fairs starting soon; 4 job fairs just ended; 5 new questions in followed communities (Rust Fans: 2, Go Club: 3)"
  assert compose_summary_message(SummaryCounts()) is None


@pytest.mark.anyio
async def test_breakdown_reproduces_digest_window(aggregator, activity, clock):
  _seed_alice_and_rust_fans(activity, clock.now)
  activity.add_chat("c2", ["bob", "erin"], deleted_by=("bob",))
  activity.add_message("c2", sender="erin", sent_at=clock.now - _T(hours=1))
  activity.add_job_fair(JobFairInfo(id="f1", title="Fresh Fair", status="upcoming", start_time=clock.now + _T(days=10), created_at=clock.now - _T(hours=1), updated_at=clock.now - _T(hours=1)), ["bob"])
  digest = (await aggregator.run("bob")).notification

  # Activity after the digest must not leak into its breakdown.
  clock.advance(hours=2)
  activity.add_message("c1", sender="alice", sent_at=clock.now - _T(minutes=1))

  breakdown = await aggregator.breakdown("bob", digest.id)

  chats = {chat.chat_id: chat for chat in breakdown.chats}
  assert chats["c1"].count == 3
  assert chats["c1"].other_user == "alice"
  assert chats["c2"].is_deleted is True
  assert [(c.community_name, c.count) for c in breakdown.communities] == [("Rust Fans", 2)]
  assert sorted(q.id for q in breakdown.communities[0].questions) == ["q1", "q2"]
  assert [fair.id for fair in breakdown.job_fairs] == ["f1"]
  payload = breakdown.to_payload()
  assert payload["dmMessages"]["c1"]["otherUser"] == "alice"
  assert payload["communityQuestions"]["rf"]["communityName"] == "Rust Fans"


@pytest.mark.anyio
async def test_breakdown_rejects_foreign_and_ordinary_ids(aggregator, activity, store, clock):
  _seed_alice_and_rust_fans(activity, clock.now)
  activity.add_profile(UserProfile(username="carol", preferences=NotificationPreferences(enabled=True, summarized=True)))
  digest = (await aggregator.run("bob")).notification
  ordinary = await store.create(NewNotification.ordinary(recipient="bob", category=NotificationCategory.DM, title="New message", message="alice: hi", related_id="c1"))

  for username, notification_id in (("carol", digest.id), ("bob", ordinary.id), ("bob", "missing")):
    result = await aggregator.breakdown(username, notification_id)
    assert isinstance(result, StoreFailure)
    assert result.reason is FailureReason.NOT_FOUND
