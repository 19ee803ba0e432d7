"""Create notification and forum read-model tables.

Forum tables are normally owned by the forum application; the guards leave
existing ones untouched so the engine can run against a shared database.

Revision ID: 3a7c1e9d2b40
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

from inbox.core.migration_guards import guarded_create_index, guarded_create_table, guarded_drop_index, guarded_drop_table

revision = "3a7c1e9d2b40"
down_revision = None
branch_labels = None
depends_on = None

_TZ = sa.DateTime(timezone=True)


def upgrade() -> None:
  """Upgrade schema."""
  guarded_create_table(
    "notifications",
    sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
    sa.Column("recipient", sa.String(), nullable=False),
    sa.Column("kind", sa.String(length=16), nullable=True),
    sa.Column("category", sa.String(length=32), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("message", sa.Text(), nullable=False),
    sa.Column("related_id", sa.String(), nullable=True),
    sa.Column("read", sa.Boolean(), server_default=sa.text("false"), nullable=False),
    sa.Column("window_start", _TZ, nullable=True),
    sa.Column("window_end", _TZ, nullable=True),
    sa.Column("created_at", _TZ, server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("id"),
  )
  guarded_create_index(op.f("ix_notifications_recipient"), "notifications", ["recipient"], unique=False)
  guarded_create_index(op.f("ix_notifications_related_id"), "notifications", ["related_id"], unique=False)
  guarded_create_index("ix_notifications_recipient_created_at", "notifications", ["recipient", "created_at"], unique=False)

  guarded_create_table(
    "users",
    sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
    sa.Column("username", sa.String(), nullable=False),
    sa.Column("last_login", _TZ, nullable=True),
    sa.Column("notification_preferences", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("created_at", _TZ, server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("id"),
  )
  guarded_create_index(op.f("ix_users_username"), "users", ["username"], unique=True)

  guarded_create_table("chats", sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False), sa.Column("created_at", _TZ, server_default=sa.text("now()"), nullable=False), sa.PrimaryKeyConstraint("id"))
  guarded_create_table(
    "chat_participants",
    sa.Column("chat_id", postgresql.UUID(as_uuid=True), nullable=False),
    sa.Column("username", sa.String(), nullable=False),
    sa.Column("deleted_at", _TZ, nullable=True),
    sa.ForeignKeyConstraint(["chat_id"], ["chats.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("chat_id", "username"),
  )
  guarded_create_index(op.f("ix_chat_participants_username"), "chat_participants", ["username"], unique=False)
  guarded_create_table(
    "messages",
    sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
    sa.Column("chat_id", postgresql.UUID(as_uuid=True), nullable=False),
    sa.Column("msg_from", sa.String(), nullable=False),
    sa.Column("msg_type", sa.String(length=16), server_default="direct", nullable=False),
    sa.Column("msg", sa.Text(), nullable=False),
    sa.Column("msg_date_time", _TZ, nullable=False),
    sa.ForeignKeyConstraint(["chat_id"], ["chats.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
  )
  guarded_create_index(op.f("ix_messages_chat_id"), "messages", ["chat_id"], unique=False)
  guarded_create_index(op.f("ix_messages_msg_date_time"), "messages", ["msg_date_time"], unique=False)

  guarded_create_table(
    "job_fairs",
    sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("status", sa.String(length=16), server_default="upcoming", nullable=False),
    sa.Column("start_time", _TZ, nullable=True),
    sa.Column("end_time", _TZ, nullable=True),
    sa.Column("created_at", _TZ, server_default=sa.text("now()"), nullable=False),
    sa.Column("updated_at", _TZ, server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("id"),
  )
  guarded_create_table(
    "job_fair_participants",
    sa.Column("job_fair_id", postgresql.UUID(as_uuid=True), nullable=False),
    sa.Column("username", sa.String(), nullable=False),
    sa.ForeignKeyConstraint(["job_fair_id"], ["job_fairs.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("job_fair_id", "username"),
  )
  guarded_create_index(op.f("ix_job_fair_participants_username"), "job_fair_participants", ["username"], unique=False)

  guarded_create_table("communities", sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False), sa.Column("name", sa.String(), nullable=True), sa.PrimaryKeyConstraint("id"))
  guarded_create_table(
    "community_participants",
    sa.Column("community_id", postgresql.UUID(as_uuid=True), nullable=False),
    sa.Column("username", sa.String(), nullable=False),
    sa.ForeignKeyConstraint(["community_id"], ["communities.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("community_id", "username"),
  )
  guarded_create_index(op.f("ix_community_participants_username"), "community_participants", ["username"], unique=False)
  guarded_create_table(
    "questions",
    sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
    sa.Column("community_id", postgresql.UUID(as_uuid=True), nullable=True),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("asked_by", sa.String(), nullable=False),
    sa.Column("ask_date_time", _TZ, nullable=False),
    sa.ForeignKeyConstraint(["community_id"], ["communities.id"], ondelete="SET NULL"),
    sa.PrimaryKeyConstraint("id"),
  )
  guarded_create_index(op.f("ix_questions_community_id"), "questions", ["community_id"], unique=False)
  guarded_create_index(op.f("ix_questions_ask_date_time"), "questions", ["ask_date_time"], unique=False)


def downgrade() -> None:
  """Downgrade schema; forum tables are left to their owner."""
  guarded_drop_index("ix_notifications_recipient_created_at", table_name="notifications")
  guarded_drop_index(op.f("ix_notifications_related_id"), table_name="notifications")
  guarded_drop_index(op.f("ix_notifications_recipient"), table_name="notifications")
  guarded_drop_table("notifications")
