"""
mememarket.database.models — SQLAlchemy 2.0 Data Models
=========================================================

One canonical field set per entity.  Schema changes go through Alembic
migrations, never through runtime column probing.

Tables:
- users      — Selectable identities with a credit balance
- memes      — Uploaded memes with aggregate vote counters and current bid
- meme_tags  — Tag set per meme (composite PK)
- bids       — Immutable accepted bids
- votes      — Vote ledger, at most one row per (meme, user)
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Meme Market ORM models."""


# ---------------------------------------------------------------------------
# Users — mock-login identities with a credit balance
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    credits: Mapped[int] = mapped_column(Integer, nullable=False, default=1000)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    memes: Mapped[list[Meme]] = relationship(back_populates="owner")

    __table_args__ = (
        CheckConstraint("credits >= 0", name="ck_users_credits_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.username!r} credits={self.credits}>"


# ---------------------------------------------------------------------------
# Memes
# ---------------------------------------------------------------------------
class Meme(Base):
    __tablename__ = "memes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    image_url: Mapped[str] = mapped_column(Text, nullable=False)
    upvotes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    downvotes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_bid: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    owner_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    caption: Mapped[str | None] = mapped_column(Text, default=None)
    vibe_analysis: Mapped[str | None] = mapped_column(String(200), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    owner: Mapped[User | None] = relationship(back_populates="memes", lazy="joined")
    tag_rows: Mapped[list[MemeTag]] = relationship(
        back_populates="meme",
        cascade="all, delete-orphan",
        order_by="MemeTag.position",
        lazy="selectin",
    )
    bids: Mapped[list[Bid]] = relationship(
        back_populates="meme", cascade="all, delete-orphan"
    )
    votes: Mapped[list[Vote]] = relationship(
        back_populates="meme", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("current_bid >= 0", name="ck_memes_current_bid_non_negative"),
        CheckConstraint("upvotes >= 0", name="ck_memes_upvotes_non_negative"),
        CheckConstraint("downvotes >= 0", name="ck_memes_downvotes_non_negative"),
        Index("ix_memes_created_at", "created_at"),
    )

    @property
    def tags(self) -> list[str]:
        return [row.tag for row in self.tag_rows]

    @property
    def score(self) -> int:
        return self.upvotes - self.downvotes

    def __repr__(self) -> str:
        return f"<Meme id={self.id} title={self.title!r} bid={self.current_bid}>"


class MemeTag(Base):
    __tablename__ = "meme_tags"

    meme_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("memes.id", ondelete="CASCADE"), primary_key=True
    )
    tag: Mapped[str] = mapped_column(String(50), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    meme: Mapped[Meme] = relationship(back_populates="tag_rows")

    __table_args__ = (
        Index("ix_meme_tags_tag", "tag"),
    )

    def __repr__(self) -> str:
        return f"<MemeTag meme={self.meme_id} tag={self.tag!r}>"


# ---------------------------------------------------------------------------
# Bids — immutable once accepted
# ---------------------------------------------------------------------------
class Bid(Base):
    __tablename__ = "bids"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    meme_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("memes.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    credits: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    meme: Mapped[Meme] = relationship(back_populates="bids")
    user: Mapped[User] = relationship(lazy="joined")

    __table_args__ = (
        CheckConstraint("credits > 0", name="ck_bids_credits_positive"),
        Index("ix_bids_meme_credits", "meme_id", "credits"),
    )

    def __repr__(self) -> str:
        return f"<Bid id={self.id} meme={self.meme_id} user={self.user_id} credits={self.credits}>"


# ---------------------------------------------------------------------------
# Votes — ledger backing the meme counters
# ---------------------------------------------------------------------------
class Vote(Base):
    __tablename__ = "votes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    meme_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("memes.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    vote_type: Mapped[bool] = mapped_column(Boolean, nullable=False)  # True = upvote
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    meme: Mapped[Meme] = relationship(back_populates="votes")

    __table_args__ = (
        UniqueConstraint("meme_id", "user_id", name="uq_votes_meme_user"),
    )

    def __repr__(self) -> str:
        polarity = "up" if self.vote_type else "down"
        return f"<Vote meme={self.meme_id} user={self.user_id} {polarity}>"
