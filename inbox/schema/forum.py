"""Read-side mappings of the forum tables the summary aggregator traverses.

The forum application owns these tables; the notification engine never writes
to them except for the notification preferences stored on the profile.
"""

from __future__ import annotations

import datetime
import uuid

from inbox.core.database import Base
from sqlalchemy import DateTime, ForeignKey, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column


class UserProfile(Base):
  __tablename__ = "users"

  id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
  username: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
  last_login: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  notification_preferences: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Chat(Base):
  __tablename__ = "chats"

  id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class ChatParticipant(Base):
  __tablename__ = "chat_participants"

  chat_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("chats.id", ondelete="CASCADE"), primary_key=True)
  username: Mapped[str] = mapped_column(String, primary_key=True, index=True)
  # Set when this participant soft-deletes the conversation on their side.
  deleted_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Message(Base):
  __tablename__ = "messages"

  id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
  chat_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("chats.id", ondelete="CASCADE"), index=True, nullable=False)
  msg_from: Mapped[str] = mapped_column(String, nullable=False)
  msg_type: Mapped[str] = mapped_column(String(16), nullable=False, default="direct", server_default="direct")
  msg: Mapped[str] = mapped_column(Text, nullable=False, default="")
  msg_date_time: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)


class JobFair(Base):
  __tablename__ = "job_fairs"

  id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
  title: Mapped[str] = mapped_column(String, nullable=False, default="")
  status: Mapped[str] = mapped_column(String(16), nullable=False, default="upcoming", server_default="upcoming")
  start_time: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  end_time: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class JobFairParticipant(Base):
  __tablename__ = "job_fair_participants"

  job_fair_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("job_fairs.id", ondelete="CASCADE"), primary_key=True)
  username: Mapped[str] = mapped_column(String, primary_key=True, index=True)


class Community(Base):
  __tablename__ = "communities"

  id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
  name: Mapped[str | None] = mapped_column(String, nullable=True)


class CommunityParticipant(Base):
  __tablename__ = "community_participants"

  community_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("communities.id", ondelete="CASCADE"), primary_key=True)
  username: Mapped[str] = mapped_column(String, primary_key=True, index=True)


class Question(Base):
  __tablename__ = "questions"

  id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
  community_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("communities.id", ondelete="SET NULL"), index=True, nullable=True)
  title: Mapped[str] = mapped_column(String, nullable=False, default="")
  asked_by: Mapped[str] = mapped_column(String, nullable=False)
  ask_date_time: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
