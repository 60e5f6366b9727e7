"""Initial market schema: users, memes, meme_tags, bids, votes

Revision ID: 3c5e7a9b1d20
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3c5e7a9b1d20"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps(*, updated: bool = True) -> list[sa.Column]:
    cols = [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    ]
    if updated:
        cols.append(
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=True),
                server_default=sa.func.now(),
            )
        )
    return cols


def upgrade() -> None:
    """Create the market tables."""
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(50), nullable=False, unique=True),
        sa.Column("credits", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("credits >= 0", name="ck_users_credits_non_negative"),
    )

    op.create_table(
        "memes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("image_url", sa.Text(), nullable=False),
        sa.Column("upvotes", sa.Integer(), nullable=False),
        sa.Column("downvotes", sa.Integer(), nullable=False),
        sa.Column("current_bid", sa.Integer(), nullable=False),
        sa.Column(
            "owner_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("caption", sa.Text(), nullable=True),
        sa.Column("vibe_analysis", sa.String(200), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("current_bid >= 0", name="ck_memes_current_bid_non_negative"),
        sa.CheckConstraint("upvotes >= 0", name="ck_memes_upvotes_non_negative"),
        sa.CheckConstraint("downvotes >= 0", name="ck_memes_downvotes_non_negative"),
    )
    op.create_index("ix_memes_created_at", "memes", ["created_at"])

    op.create_table(
        "meme_tags",
        sa.Column(
            "meme_id",
            sa.Integer(),
            sa.ForeignKey("memes.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("tag", sa.String(50), primary_key=True),
        sa.Column("position", sa.Integer(), nullable=False),
    )
    op.create_index("ix_meme_tags_tag", "meme_tags", ["tag"])

    op.create_table(
        "bids",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "meme_id",
            sa.Integer(),
            sa.ForeignKey("memes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("credits", sa.Integer(), nullable=False),
        *_timestamps(updated=False),
        sa.CheckConstraint("credits > 0", name="ck_bids_credits_positive"),
    )
    op.create_index("ix_bids_meme_credits", "bids", ["meme_id", "credits"])

    op.create_table(
        "votes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "meme_id",
            sa.Integer(),
            sa.ForeignKey("memes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("vote_type", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("meme_id", "user_id", name="uq_votes_meme_user"),
    )


def downgrade() -> None:
    """Drop the market tables."""
    op.drop_table("votes")
    op.drop_index("ix_bids_meme_credits", table_name="bids")
    op.drop_table("bids")
    op.drop_index("ix_meme_tags_tag", table_name="meme_tags")
    op.drop_table("meme_tags")
    op.drop_index("ix_memes_created_at", table_name="memes")
    op.drop_table("memes")
    op.drop_table("users")
