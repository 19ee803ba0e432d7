"""Read access to the forum content and profiles the summary aggregator traverses."""

from __future__ import annotations

import datetime
import logging
import uuid
from dataclasses import dataclass
from typing import Protocol

from inbox.core.database import get_session_factory
from inbox.notifications.contracts import NotificationPreferences, UserProfile
from inbox.schema.forum import ChatParticipant, Community, CommunityParticipant, JobFair, JobFairParticipant, Message, Question
from inbox.schema.forum import UserProfile as UserProfileRecord
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

logger = logging.getLogger(__name__)

DIRECT_MESSAGE_TYPE = "direct"


@dataclass(frozen=True)
class ChatInfo:
  """A conversation the user participates in, seen from that user's side."""

  chat_id: str
  other_user: str | None
  is_deleted: bool = False


@dataclass(frozen=True)
class JobFairInfo:
  id: str
  title: str
  status: str
  start_time: datetime.datetime | None = None
  end_time: datetime.datetime | None = None
  created_at: datetime.datetime | None = None
  updated_at: datetime.datetime | None = None


@dataclass(frozen=True)
class CommunityInfo:
  id: str
  name: str | None = None

  @property
  def display_name(self) -> str:
    return self.name or f"Community {self.id}"


@dataclass(frozen=True)
class QuestionInfo:
  id: str
  title: str
  asked_by: str
  asked_at: datetime.datetime


class ActivitySource(Protocol):
  """Forum content queries; time windows are (since, until] with until optional."""

  async def list_chats(self, username: str) -> list[ChatInfo]: ...

  async def count_messages(self, chat_id: str, *, sender: str, since: datetime.datetime, until: datetime.datetime | None = None) -> int: ...

  async def list_job_fairs(self, username: str) -> list[JobFairInfo]: ...

  async def list_communities(self, username: str) -> list[CommunityInfo]: ...

  async def list_questions(self, community_id: str, *, exclude_author: str, since: datetime.datetime, until: datetime.datetime | None = None) -> list[QuestionInfo]: ...


class ProfileSource(Protocol):
  async def get_profile(self, username: str) -> UserProfile | None: ...

  async def list_digest_subscribers(self) -> list[UserProfile]: ...

  async def update_preferences(self, username: str, preferences: NotificationPreferences) -> UserProfile | None: ...


def _uuid_or_none(raw: str) -> uuid.UUID | None:
  try:
    return uuid.UUID(str(raw))
  except ValueError:
    return None


def _profile_from_record(record: UserProfileRecord) -> UserProfile:
  return UserProfile(username=record.username, preferences=NotificationPreferences.from_mapping(record.notification_preferences), last_login=record.last_login)


class SqlActivityRepository:
  """Query forum tables and profiles in Postgres."""

  def _session_factory(self):  # type: ignore
    session_factory = get_session_factory()
    if session_factory is None:
      raise RuntimeError("Database connection is not configured (INBOX_PG_DSN is missing).")
    return session_factory

  async def list_chats(self, username: str) -> list[ChatInfo]:
    async with self._session_factory()() as session:
      return await self._list_chats_with_session(session=session, username=username)

  async def _list_chats_with_session(self, *, session: AsyncSession, username: str) -> list[ChatInfo]:
    mine = aliased(ChatParticipant)
    other = aliased(ChatParticipant)
    stmt = (
      select(mine.chat_id, mine.deleted_at, other.username)
      .outerjoin(other, (other.chat_id == mine.chat_id) & (other.username != mine.username))
      .where(mine.username == username)
      .order_by(mine.chat_id)
    )
    result = await session.execute(stmt)
    chats: dict[str, ChatInfo] = {}
    for chat_id, deleted_at, other_user in result.all():
      key = str(chat_id)
      # Group chats keep the first other participant, matching the two-party DM model.
      if key not in chats:
        chats[key] = ChatInfo(chat_id=key, other_user=other_user, is_deleted=deleted_at is not None)
    return list(chats.values())

  async def count_messages(self, chat_id: str, *, sender: str, since: datetime.datetime, until: datetime.datetime | None = None) -> int:
    chat_uuid = _uuid_or_none(chat_id)
    if chat_uuid is None:
      return 0
    stmt = select(func.count()).select_from(Message).where(Message.chat_id == chat_uuid, Message.msg_from == sender, Message.msg_type == DIRECT_MESSAGE_TYPE, Message.msg_date_time > since)
    if until is not None:
      stmt = stmt.where(Message.msg_date_time <= until)
    async with self._session_factory()() as session:
      result = await session.execute(stmt)
      return int(result.scalar_one())

  async def list_job_fairs(self, username: str) -> list[JobFairInfo]:
    stmt = select(JobFair).join(JobFairParticipant, JobFairParticipant.job_fair_id == JobFair.id).where(JobFairParticipant.username == username).order_by(JobFair.start_time)
    async with self._session_factory()() as session:
      result = await session.execute(stmt)
      fairs = result.scalars().all()
    return [
      JobFairInfo(id=str(fair.id), title=fair.title or "", status=fair.status, start_time=fair.start_time, end_time=fair.end_time, created_at=fair.created_at, updated_at=fair.updated_at)
      for fair in fairs
    ]

  async def list_communities(self, username: str) -> list[CommunityInfo]:
    stmt = select(Community).join(CommunityParticipant, CommunityParticipant.community_id == Community.id).where(CommunityParticipant.username == username).order_by(Community.name)
    async with self._session_factory()() as session:
      result = await session.execute(stmt)
      communities = result.scalars().all()
    return [CommunityInfo(id=str(community.id), name=community.name) for community in communities]

  async def list_questions(self, community_id: str, *, exclude_author: str, since: datetime.datetime, until: datetime.datetime | None = None) -> list[QuestionInfo]:
    community_uuid = _uuid_or_none(community_id)
    if community_uuid is None:
      return []
    stmt = select(Question).where(Question.community_id == community_uuid, Question.asked_by != exclude_author, Question.ask_date_time > since)
    if until is not None:
      stmt = stmt.where(Question.ask_date_time <= until)
    stmt = stmt.order_by(Question.ask_date_time)
    async with self._session_factory()() as session:
      result = await session.execute(stmt)
      questions = result.scalars().all()
    return [QuestionInfo(id=str(q.id), title=q.title or "", asked_by=q.asked_by or "", asked_at=q.ask_date_time) for q in questions]

  async def get_profile(self, username: str) -> UserProfile | None:
    stmt = select(UserProfileRecord).where(UserProfileRecord.username == username)
    async with self._session_factory()() as session:
      result = await session.execute(stmt)
      record = result.scalars().first()
    return _profile_from_record(record) if record is not None else None

  async def list_digest_subscribers(self) -> list[UserProfile]:
    # Preferences live in JSONB, so filter in Python to share the tolerant parser.
    stmt = select(UserProfileRecord).where(UserProfileRecord.notification_preferences.is_not(None))
    async with self._session_factory()() as session:
      result = await session.execute(stmt)
      records = result.scalars().all()
    profiles = [_profile_from_record(record) for record in records]
    return [profile for profile in profiles if profile.preferences.wants_digest]

  async def update_preferences(self, username: str, preferences: NotificationPreferences) -> UserProfile | None:
    async with self._session_factory()() as session:
      result = await session.execute(select(UserProfileRecord).where(UserProfileRecord.username == username))
      record = result.scalars().first()
      if record is None:
        return None
      record.notification_preferences = preferences.to_mapping()
      await session.commit()
      logger.info("Updated notification preferences for %s", username)
      return _profile_from_record(record)


@dataclass
class _StoredMessage:
  chat_id: str
  sender: str
  sent_at: datetime.datetime
  msg_type: str = DIRECT_MESSAGE_TYPE


@dataclass
class _StoredQuestion:
  community_id: str
  question: QuestionInfo


class InMemoryActivityRepository:
  """Process-local forum content used when Postgres is not configured and in tests."""

  def __init__(self) -> None:
    self._profiles: dict[str, UserProfile] = {}
    self._chats: dict[str, list[str]] = {}
    self._deleted: set[tuple[str, str]] = set()
    self._messages: list[_StoredMessage] = []
    self._job_fairs: dict[str, tuple[JobFairInfo, set[str]]] = {}
    self._communities: dict[str, tuple[CommunityInfo, set[str]]] = {}
    self._questions: list[_StoredQuestion] = []

  def add_profile(self, profile: UserProfile) -> None:
    self._profiles[profile.username] = profile

  def add_chat(self, chat_id: str, participants: list[str], *, deleted_by: tuple[str, ...] = ()) -> None:
    self._chats[chat_id] = list(participants)
    for username in deleted_by:
      self._deleted.add((chat_id, username))

  def add_message(self, chat_id: str, *, sender: str, sent_at: datetime.datetime, msg_type: str = DIRECT_MESSAGE_TYPE) -> None:
    self._messages.append(_StoredMessage(chat_id=chat_id, sender=sender, sent_at=sent_at, msg_type=msg_type))

  def add_job_fair(self, fair: JobFairInfo, participants: list[str]) -> None:
    self._job_fairs[fair.id] = (fair, set(participants))

  def add_community(self, community: CommunityInfo, participants: list[str]) -> None:
    self._communities[community.id] = (community, set(participants))

  def add_question(self, community_id: str, question: QuestionInfo) -> None:
    self._questions.append(_StoredQuestion(community_id=community_id, question=question))

  async def list_chats(self, username: str) -> list[ChatInfo]:
    chats = []
    for chat_id, participants in self._chats.items():
      if username not in participants:
        continue
      other = next((p for p in participants if p != username), None)
      chats.append(ChatInfo(chat_id=chat_id, other_user=other, is_deleted=(chat_id, username) in self._deleted))
    return chats

  async def count_messages(self, chat_id: str, *, sender: str, since: datetime.datetime, until: datetime.datetime | None = None) -> int:
    return sum(
      1
      for m in self._messages
      if m.chat_id == chat_id and m.sender == sender and m.msg_type == DIRECT_MESSAGE_TYPE and m.sent_at > since and (until is None or m.sent_at <= until)
    )

  async def list_job_fairs(self, username: str) -> list[JobFairInfo]:
    return [fair for fair, participants in self._job_fairs.values() if username in participants]

  async def list_communities(self, username: str) -> list[CommunityInfo]:
    return [community for community, participants in self._communities.values() if username in participants]

  async def list_questions(self, community_id: str, *, exclude_author: str, since: datetime.datetime, until: datetime.datetime | None = None) -> list[QuestionInfo]:
    return [
      item.question
      for item in self._questions
      if item.community_id == community_id and item.question.asked_by != exclude_author and item.question.asked_at > since and (until is None or item.question.asked_at <= until)
    ]

  async def get_profile(self, username: str) -> UserProfile | None:
    return self._profiles.get(username)

  async def list_digest_subscribers(self) -> list[UserProfile]:
    return [profile for profile in self._profiles.values() if profile.preferences.wants_digest]

  async def update_preferences(self, username: str, preferences: NotificationPreferences) -> UserProfile | None:
    current = self._profiles.get(username)
    if current is None:
      return None
    updated = UserProfile(username=username, preferences=preferences, last_login=current.last_login)
    self._profiles[username] = updated
    return updated
