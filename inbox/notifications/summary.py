"""Digest generation: count what is new for a user since their last checkpoint."""

from __future__ import annotations

import datetime
import enum
import logging
from dataclasses import dataclass, field
from typing import Any

from inbox.notifications.activity_repo import ActivitySource, CommunityInfo, JobFairInfo, ProfileSource, QuestionInfo
from inbox.notifications.contracts import (
  DIGEST_PREFIX,
  Digest,
  FailureReason,
  NewNotification,
  Notification,
  NotificationCategory,
  NotificationFilter,
  NotificationKind,
  NotificationPreferences,
  NotificationStore,
  StoreFailure,
)
from inbox.notifications.store import Clock, utcnow

logger = logging.getLogger(__name__)

POLICY_LAST_LOGIN = "last_login"
POLICY_SIMPLE = "simple"
JOB_FAIR_UPCOMING = "upcoming"
JOB_FAIR_ENDED = "ended"

_DAY = datetime.timedelta(hours=24)


class SummaryOutcome(str, enum.Enum):
  CREATED = "created"
  NOT_ELIGIBLE = "not_eligible"
  NOTHING_TO_SUMMARIZE = "nothing_to_summarize"
  FAILED = "failed"


@dataclass(frozen=True)
class SummaryResult:
  """Outcome of one aggregation run; only CREATED carries a notification."""

  outcome: SummaryOutcome
  notification: Notification | None = None
  detail: str | None = None

  @property
  def created(self) -> bool:
    return self.outcome is SummaryOutcome.CREATED


@dataclass(frozen=True)
class SummaryCounts:
  dm_messages: int = 0
  job_fair_updates: int = 0
  job_fairs_starting_soon: int = 0
  job_fairs_ended: int = 0
  # Community display name -> question count, in traversal order.
  community_questions: dict[str, int] = field(default_factory=dict)

  @property
  def community_total(self) -> int:
    return sum(self.community_questions.values())

  @property
  def is_empty(self) -> bool:
    return not (self.dm_messages or self.job_fair_updates or self.job_fairs_starting_soon or self.job_fairs_ended or self.community_total)


def _plural(count: int, singular: str, plural: str | None = None) -> str:
  return singular if count == 1 else (plural or f"{singular}s")


def compose_summary_message(counts: SummaryCounts) -> str | None:
  """Render the digest message, or None when every count is zero."""
  parts: list[str] = []
  if counts.dm_messages > 0:
    parts.append(f"{counts.dm_messages} new DM {_plural(counts.dm_messages, 'message')}")
  if counts.job_fair_updates > 0:
    parts.append(f"{counts.job_fair_updates} job fair {_plural(counts.job_fair_updates, 'update')}")
  if counts.job_fairs_starting_soon > 0:
    parts.append(f"{counts.job_fairs_starting_soon} job {_plural(counts.job_fairs_starting_soon, 'fair')} starting soon")
  if counts.job_fairs_ended > 0:
    parts.append(f"{counts.job_fairs_ended} job {_plural(counts.job_fairs_ended, 'fair')} just ended")
  total = counts.community_total
  if total > 0:
    listing = ", ".join(f"{name}: {count}" for name, count in counts.community_questions.items() if count > 0)
    parts.append(f"{total} new {_plural(total, 'question')} in followed communities ({listing})")
  if not parts:
    return None
  return f"{DIGEST_PREFIX} {'; '.join(parts)}"


def compute_checkpoint(
  *,
  now: datetime.datetime,
  latest_digest: Notification | None,
  last_login: datetime.datetime | None = None,
  policy: str = POLICY_LAST_LOGIN,
  fallback_window: datetime.timedelta = _DAY,
) -> datetime.datetime:
  """Return the exclusive start of the counting window.

  The previous digest's window end is the checkpoint. Without one, the window
  falls back to a fixed span before ``now``; under the ``last_login`` policy a
  user who has been away longer than a day gets the window widened back to
  their last login instead. A prior digest is never widened, since the span it
  covered has already been reported.
  """
  if latest_digest is not None:
    if isinstance(latest_digest.variant, Digest):
      return latest_digest.variant.window_end
    return latest_digest.created_at

  start = now - fallback_window
  if policy == POLICY_LAST_LOGIN and last_login is not None and now - last_login > _DAY and last_login < start:
    return last_login
  return start


@dataclass(frozen=True)
class ChatBreakdown:
  chat_id: str
  other_user: str
  count: int
  is_deleted: bool = False


@dataclass(frozen=True)
class CommunityBreakdown:
  community_id: str
  community_name: str
  questions: list[QuestionInfo] = field(default_factory=list)

  @property
  def count(self) -> int:
    return len(self.questions)


@dataclass(frozen=True)
class SummaryBreakdown:
  """Structured detail behind one digest, reproduced from the digest's own window."""

  window_start: datetime.datetime
  window_end: datetime.datetime
  chats: list[ChatBreakdown] = field(default_factory=list)
  communities: list[CommunityBreakdown] = field(default_factory=list)
  job_fairs: list[JobFairInfo] = field(default_factory=list)

  def to_payload(self) -> dict[str, Any]:
    def _ts(value: datetime.datetime | None) -> str | None:
      return value.isoformat() if value is not None else None

    return {
      "windowStart": _ts(self.window_start),
      "windowEnd": _ts(self.window_end),
      "dmMessages": {chat.chat_id: {"chatId": chat.chat_id, "otherUser": chat.other_user, "count": chat.count, "isDeleted": chat.is_deleted} for chat in self.chats},
      "communityQuestions": {
        community.community_id: {
          "communityName": community.community_name,
          "count": community.count,
          "questions": [{"id": q.id, "title": q.title, "askedBy": q.asked_by, "askDateTime": _ts(q.asked_at)} for q in community.questions],
        }
        for community in self.communities
      },
      "jobFairs": [{"id": fair.id, "title": fair.title, "status": fair.status, "startTime": _ts(fair.start_time), "endTime": _ts(fair.end_time)} for fair in self.job_fairs],
    }


class SummaryAggregator:
  """Build digest notifications for users who opted into summarized delivery."""

  def __init__(
    self,
    *,
    store: NotificationStore,
    activity: ActivitySource,
    profiles: ProfileSource,
    policy: str = POLICY_LAST_LOGIN,
    fallback_window_hours: int = 24,
    starting_soon_hours: int = 24,
    clock: Clock = utcnow,
  ) -> None:
    self._store = store
    self._activity = activity
    self._profiles = profiles
    self._policy = policy
    self._fallback_window = datetime.timedelta(hours=fallback_window_hours)
    self._starting_soon = datetime.timedelta(hours=starting_soon_hours)
    self._clock = clock

  async def run(self, username: str, now: datetime.datetime | None = None) -> SummaryResult:
    """Create at most one digest for ``username`` covering (checkpoint, now]."""
    now = now or self._clock()
    try:
      profile = await self._profiles.get_profile(username)
      if profile is None or not profile.preferences.wants_digest:
        return SummaryResult(outcome=SummaryOutcome.NOT_ELIGIBLE, detail="User does not have summarized notifications enabled")

      latest = await self._store.latest_digest(username)
      checkpoint = compute_checkpoint(now=now, latest_digest=latest, last_login=profile.last_login, policy=self._policy, fallback_window=self._fallback_window)
      if checkpoint >= now:
        return SummaryResult(outcome=SummaryOutcome.NOTHING_TO_SUMMARIZE, detail="No new notifications to summarize")

      # Every count is gathered before anything is written so a failure never leaves a partial digest.
      counts = await self._count(username=username, preferences=profile.preferences, since=checkpoint, until=now)
      message = compose_summary_message(counts)
      if message is None:
        logger.debug("Nothing to summarize for %s since %s", username, checkpoint.isoformat())
        return SummaryResult(outcome=SummaryOutcome.NOTHING_TO_SUMMARIZE, detail="No new notifications to summarize")

      notification = await self._store.create(NewNotification.digest(recipient=username, summary=message, window_start=checkpoint, window_end=now))
    except Exception as exc:  # noqa: BLE001
      logger.error("Summary generation failed for %s: %s", username, exc, exc_info=True)
      return SummaryResult(outcome=SummaryOutcome.FAILED, detail=f"Error generating summary notification: {exc}")

    logger.info("Created summary notification %s for %s", notification.id, username)
    return SummaryResult(outcome=SummaryOutcome.CREATED, notification=notification)

  async def _count(self, *, username: str, preferences: NotificationPreferences, since: datetime.datetime, until: datetime.datetime) -> SummaryCounts:
    dm_messages = 0
    if preferences.dm_enabled:
      for chat in await self._activity.list_chats(username):
        if chat.other_user:
          dm_messages += await self._activity.count_messages(chat.chat_id, sender=chat.other_user, since=since, until=until)

    job_fair_updates = 0
    starting_soon = 0
    ended = 0
    if preferences.job_fair_enabled:
      for fair in await self._activity.list_job_fairs(username):
        predicate = NotificationFilter(recipient=username, category=NotificationCategory.JOB_FAIR, related_id=fair.id, kind=NotificationKind.ORDINARY)
        job_fair_updates += await self._store.count_since(predicate, since, until)
        if self._is_starting_soon(fair, since=since, now=until):
          starting_soon += 1
        if self._just_ended(fair, since=since, now=until):
          ended += 1

    community_questions: dict[str, int] = {}
    if preferences.community_enabled:
      for community in await self._activity.list_communities(username):
        questions = await self._activity.list_questions(community.id, exclude_author=username, since=since, until=until)
        if questions:
          name = community.display_name
          community_questions[name] = community_questions.get(name, 0) + len(questions)

    return SummaryCounts(dm_messages=dm_messages, job_fair_updates=job_fair_updates, job_fairs_starting_soon=starting_soon, job_fairs_ended=ended, community_questions=community_questions)

  def _is_starting_soon(self, fair: JobFairInfo, *, since: datetime.datetime, now: datetime.datetime) -> bool:
    if fair.status != JOB_FAIR_UPCOMING or fair.start_time is None:
      return False
    if not (now < fair.start_time <= now + self._starting_soon):
      return False
    # Only fairs that entered the horizon after the checkpoint, otherwise a rerun would report them again.
    return fair.start_time > since + self._starting_soon

  @staticmethod
  def _just_ended(fair: JobFairInfo, *, since: datetime.datetime, now: datetime.datetime) -> bool:
    return fair.status == JOB_FAIR_ENDED and fair.end_time is not None and since < fair.end_time <= now

  async def breakdown(self, username: str, digest_id: str) -> SummaryBreakdown | StoreFailure:
    """Return per-chat, per-community and job-fair detail for one of the user's digests."""
    try:
      digest = await self._store.get(digest_id)
      if digest is None or digest.recipient != username or not isinstance(digest.variant, Digest):
        return StoreFailure(reason=FailureReason.NOT_FOUND, message="Summary notification not found")

      profile = await self._profiles.get_profile(username)
      preferences = profile.preferences if profile is not None else NotificationPreferences()
      since = digest.variant.window_start
      until = digest.variant.window_end

      chats: list[ChatBreakdown] = []
      if preferences.dm_enabled:
        for chat in await self._activity.list_chats(username):
          if not chat.other_user:
            continue
          count = await self._activity.count_messages(chat.chat_id, sender=chat.other_user, since=since, until=until)
          if count > 0:
            chats.append(ChatBreakdown(chat_id=chat.chat_id, other_user=chat.other_user, count=count, is_deleted=chat.is_deleted))

      communities: list[CommunityBreakdown] = []
      if preferences.community_enabled:
        for community in await self._activity.list_communities(username):
          questions = await self._activity.list_questions(community.id, exclude_author=username, since=since, until=until)
          if questions:
            communities.append(self._community_breakdown(community, questions))

      fairs: list[JobFairInfo] = []
      if preferences.job_fair_enabled:
        for fair in await self._activity.list_job_fairs(username):
          touched = any(stamp is not None and since < stamp <= until for stamp in (fair.created_at, fair.updated_at))
          if touched or self._is_starting_soon(fair, since=since, now=until) or self._just_ended(fair, since=since, now=until):
            fairs.append(fair)
    except Exception as exc:  # noqa: BLE001
      logger.error("Summary breakdown failed for %s digest=%s: %s", username, digest_id, exc, exc_info=True)
      return StoreFailure(reason=FailureReason.UNAVAILABLE, message=f"Error getting summary breakdown: {exc}")

    return SummaryBreakdown(window_start=since, window_end=until, chats=chats, communities=communities, job_fairs=fairs)

  @staticmethod
  def _community_breakdown(community: CommunityInfo, questions: list[QuestionInfo]) -> CommunityBreakdown:
    return CommunityBreakdown(community_id=community.id, community_name=community.display_name, questions=list(questions))
