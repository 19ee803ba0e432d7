"""SQLAlchemy model for stored notifications."""

from __future__ import annotations

import datetime
import uuid

from inbox.core.database import Base
from sqlalchemy import Boolean, DateTime, Index, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column


class NotificationRecord(Base):
  """Persist notifications addressed to a single recipient."""

  __tablename__ = "notifications"
  __table_args__ = (Index("ix_notifications_recipient_created_at", "recipient", "created_at"),)

  id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
  recipient: Mapped[str] = mapped_column(String, nullable=False, index=True)
  # Nullable so rows written before the tag existed can still be classified by content.
  kind: Mapped[str | None] = mapped_column(String(16), nullable=True)
  category: Mapped[str] = mapped_column(String(32), nullable=False)
  title: Mapped[str] = mapped_column(String, nullable=False)
  message: Mapped[str] = mapped_column(Text, nullable=False)
  related_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
  window_start: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  window_end: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
