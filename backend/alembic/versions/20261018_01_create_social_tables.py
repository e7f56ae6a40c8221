"""create social tables

Revision ID: 20261018_01
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_01"
down_revision = None
branch_labels = None
depends_on = None


NOTIFICATION_TYPE = sa.Enum(
    "like",
    "match",
    "message",
    "favorite",
    "wave",
    "system",
    "superlike",
    name="notification_type",
)


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("login", sa.String(length=64), nullable=False, unique=True),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=128), nullable=True),
        sa.Column("is_premium", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("subscription_price_id", sa.String(length=128), nullable=True),
        sa.Column("video_chat", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        mysql_charset="utf8mb4",
    )

    op.create_table(
        "likes",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("liker_id", sa.Integer(), nullable=False),
        sa.Column("liked_id", sa.Integer(), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["liker_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["liked_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("liker_id", "liked_id", name="uq_likes_pair"),
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_likes_liked", "likes", ["liked_id", "liker_id"])

    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("sender_id", sa.Integer(), nullable=False),
        sa.Column("recipient_id", sa.Integer(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["sender_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["recipient_id"], ["users.id"], ondelete="CASCADE"),
        mysql_charset="utf8mb4",
    )
    op.create_index("ix_messages_recipient_unread", "messages", ["recipient_id", "read"])
    op.create_index("ix_messages_thread", "messages", ["sender_id", "recipient_id", "created_at"])

    op.create_table(
        "message_deletions",
        sa.Column("message_id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), primary_key=True, nullable=False),
        _created_at("deleted_at"),
        sa.ForeignKeyConstraint(["message_id"], ["messages.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        mysql_charset="utf8mb4",
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("recipient_id", sa.Integer(), nullable=False),
        sa.Column("sender_id", sa.Integer(), nullable=True),
        sa.Column("type", NOTIFICATION_TYPE, nullable=False),
        sa.Column("message", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("extra", sa.JSON(), nullable=False),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        sa.ForeignKeyConstraint(["recipient_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["sender_id"], ["users.id"], ondelete="SET NULL"),
        mysql_charset="utf8mb4",
    )
    op.create_index(
        "ix_notifications_recipient_unread", "notifications", ["recipient_id", "read"]
    )

    op.create_table(
        "notification_deletions",
        sa.Column("notification_id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), primary_key=True, nullable=False),
        _created_at("deleted_at"),
        sa.ForeignKeyConstraint(["notification_id"], ["notifications.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        mysql_charset="utf8mb4",
    )


def downgrade() -> None:
    op.drop_table("notification_deletions")
    op.drop_index("ix_notifications_recipient_unread", table_name="notifications")
    op.drop_table("notifications")
    op.drop_table("message_deletions")
    op.drop_index("ix_messages_thread", table_name="messages")
    op.drop_index("ix_messages_recipient_unread", table_name="messages")
    op.drop_table("messages")
    op.drop_index("ix_likes_liked", table_name="likes")
    op.drop_table("likes")
    op.drop_table("users")

    NOTIFICATION_TYPE.drop(op.get_bind(), checkfirst=False)
