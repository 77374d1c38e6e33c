"""Initial chat schema: users, communities, members, messages, token blocklist

Revision ID: 5c2e9a7b41d3
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5c2e9a7b41d3"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps(*, with_updated: bool = True) -> list[sa.Column]:
    columns = [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=True,
            server_default=sa.func.now(),
        ),
    ]
    if with_updated:
        columns.append(
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=True),
                nullable=True,
                server_default=sa.func.now(),
            )
        )
    return columns


def upgrade() -> None:
    """Create the social-graph tables read by chat and the chat tables it writes."""
    op.create_table(
        "user",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(120), nullable=False, unique=True),
        sa.Column("avatarUrl", sa.String(255), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "community",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("image_url", sa.String(255), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "community_members",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column(
            "community_id",
            sa.BigInteger(),
            sa.ForeignKey("community.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.BigInteger(),
            sa.ForeignKey("user.id", ondelete="CASCADE"),
            nullable=False,
        ),
        *_timestamps(with_updated=False),
        sa.UniqueConstraint("community_id", "user_id", name="uq_community_members"),
    )

    op.create_table(
        "message",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "sender_id",
            sa.BigInteger(),
            sa.ForeignKey("user.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "receiver_id",
            sa.BigInteger(),
            sa.ForeignKey("user.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "community_id",
            sa.BigInteger(),
            sa.ForeignKey("community.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "(receiver_id IS NULL) <> (community_id IS NULL)",
            name="ck_message_single_target",
        ),
    )
    op.create_index(
        "ix_message_pair_time", "message", ["sender_id", "receiver_id", "created_at"]
    )
    op.create_index("ix_message_community_time", "message", ["community_id", "created_at"])
    op.create_index("ix_message_receiver_unread", "message", ["receiver_id", "is_read"])

    op.create_table(
        "token_blocklist",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("jti", sa.String(64), nullable=False, unique=True),
        *_timestamps(with_updated=False),
    )


def downgrade() -> None:
    """Drop every chat-schema table."""
    op.drop_table("token_blocklist")
    op.drop_index("ix_message_receiver_unread", table_name="message")
    op.drop_index("ix_message_community_time", table_name="message")
    op.drop_index("ix_message_pair_time", table_name="message")
    op.drop_table("message")
    op.drop_table("community_members")
    op.drop_table("community")
    op.drop_table("user")
