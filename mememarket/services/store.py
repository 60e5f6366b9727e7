"""
mememarket.services.store — Record Store
==========================================

CRUD accessor over users, memes (with tags), bids, and the vote ledger.

Each public method opens its own short-lived session, runs under the
bounded retry policy, and returns detached ORM objects that stay
readable after the session closes.  Multi-step mutations (bids, votes)
go through :meth:`RecordStore.transaction`, which hands a session to a
function and commits or rolls back as one unit.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any, Concatenate, ParamSpec, TypeVar

from sqlalchemy import Engine, or_, select
from sqlalchemy.orm import Session, selectinload

from mememarket.database.engine import RetryPolicy, call_with_retry
from mememarket.database.models import Bid, Meme, MemeTag, User
from mememarket.engine.errors import InvalidInput, MemeNotFound, UserNotFound

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

MAX_TAG_LENGTH = 50


def normalize_tags(tags: Iterable[str] | str | None) -> list[str]:
    """Trim, drop empties, de-duplicate (first occurrence wins).

    A bare string becomes a one-item list.
    """
    if tags is None:
        return []
    if isinstance(tags, str):
        tags = [tags]
    seen: dict[str, None] = {}
    for raw in tags:
        if not isinstance(raw, str):
            raise InvalidInput(f"Tags must be strings, got {raw!r}")
        tag = raw.strip()
        if not tag:
            continue
        if len(tag) > MAX_TAG_LENGTH:
            raise InvalidInput(f"Tag '{tag[:20]}…' exceeds {MAX_TAG_LENGTH} characters")
        seen.setdefault(tag, None)
    return list(seen)


def _set_tags(meme: Meme, tags: list[str]) -> None:
    # Reuse surviving rows so a kept tag is updated rather than deleted and re-inserted
    existing = {row.tag: row for row in meme.tag_rows}
    rows = []
    for i, tag in enumerate(tags):
        row = existing.get(tag) or MemeTag(tag=tag)
        row.position = i
        rows.append(row)
    meme.tag_rows = rows


def load_meme(session: Session, meme_id: int, *, fresh: bool = False) -> Meme | None:
    """Load a meme with owner and tags; *fresh* overwrites stale session state."""
    stmt = select(Meme).where(Meme.id == meme_id)
    if fresh:
        stmt = stmt.execution_options(populate_existing=True)
    return session.scalars(stmt).unique().one_or_none()


class RecordStore:
    """Storage accessor bound to one engine and retry policy."""

    def __init__(self, engine: Engine, retry: RetryPolicy | None = None) -> None:
        self.engine = engine
        self.retry = retry or RetryPolicy()

    # -------------------------------------------------------------------
    # Transaction runner
    # -------------------------------------------------------------------
    def transaction(
        self,
        func: Callable[Concatenate[Session, P], T],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Run ``func(session, *args, **kwargs)`` in one committed transaction.

        Any exception rolls everything back.  Transient storage failures
        retry the whole unit of work from scratch.
        """
        def _attempt() -> T:
            with Session(self.engine, expire_on_commit=False) as session:
                try:
                    result = func(session, *args, **kwargs)
                    session.commit()
                except Exception:
                    session.rollback()
                    raise
                session.expunge_all()
                return result

        return call_with_retry(self.retry, _attempt)

    def _read(self, func: Callable[[Session], T]) -> T:
        def _attempt() -> T:
            with Session(self.engine, expire_on_commit=False) as session:
                result = func(session)
                session.expunge_all()
                return result

        return call_with_retry(self.retry, _attempt)

    # -------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------
    def list_users(self) -> list[User]:
        return self._read(
            lambda s: list(s.scalars(select(User).order_by(User.id)).all())
        )

    def get_user(self, user_id: int) -> User:
        def _get(session: Session) -> User:
            user = session.get(User, user_id)
            if user is None:
                raise UserNotFound(user_id)
            return user

        return self._read(_get)

    def set_user_credits(self, user_id: int, credits: Any) -> User:
        """Credit-grant operation: set the balance to *credits*."""
        if isinstance(credits, bool) or not isinstance(credits, int) or credits < 0:
            raise InvalidInput(f"Credits must be a non-negative integer, got {credits!r}")

        def _update(session: Session) -> User:
            user = session.get(User, user_id)
            if user is None:
                raise UserNotFound(user_id)
            before = user.credits
            user.credits = credits
            session.flush()
            session.refresh(user)
            logger.info("Credits for user %d set %d → %d", user_id, before, credits)
            return user

        return self.transaction(_update)

    # -------------------------------------------------------------------
    # Memes
    # -------------------------------------------------------------------
    def list_memes(self) -> list[Meme]:
        """All memes, newest first."""
        return self._read(
            lambda s: list(
                s.scalars(select(Meme).order_by(Meme.created_at.desc(), Meme.id.desc()))
                .unique()
                .all()
            )
        )

    def get_meme(self, meme_id: int) -> Meme:
        def _get(session: Session) -> Meme:
            meme = session.get(Meme, meme_id)
            if meme is None:
                raise MemeNotFound(meme_id)
            return meme

        return self._read(_get)

    def memes_by_tag(self, tag: str) -> list[Meme]:
        tag = tag.strip()
        return self._read(
            lambda s: list(
                s.scalars(
                    select(Meme)
                    .join(MemeTag, MemeTag.meme_id == Meme.id)
                    .where(MemeTag.tag == tag)
                    .order_by(Meme.created_at.desc(), Meme.id.desc())
                )
                .unique()
                .all()
            )
        )

    def search_memes(self, query: str) -> list[Meme]:
        """Case-insensitive title substring match, or an exact tag match."""
        query = (query or "").strip()
        if not query:
            raise InvalidInput("Search query is required")

        tagged = select(MemeTag.meme_id).where(MemeTag.tag == query)
        return self._read(
            lambda s: list(
                s.scalars(
                    select(Meme)
                    .where(
                        or_(
                            Meme.title.icontains(query, autoescape=True),
                            Meme.id.in_(tagged),
                        )
                    )
                    .order_by(Meme.created_at.desc(), Meme.id.desc())
                )
                .unique()
                .all()
            )
        )

    def create_meme(
        self,
        *,
        title: str,
        image_url: str,
        tags: list[str],
        owner_id: int | None,
        caption: str | None,
        vibe_analysis: str | None,
    ) -> Meme:
        def _create(session: Session) -> Meme:
            if owner_id is not None and session.get(User, owner_id) is None:
                raise UserNotFound(owner_id)
            meme = Meme(
                title=title,
                image_url=image_url,
                owner_id=owner_id,
                upvotes=0,
                downvotes=0,
                current_bid=0,
                caption=caption,
                vibe_analysis=vibe_analysis,
            )
            _set_tags(meme, tags)
            session.add(meme)
            session.flush()
            return load_meme(session, meme.id, fresh=True)

        meme = self.transaction(_create)
        logger.info("Meme %d created: %r", meme.id, meme.title)
        return meme

    def update_meme(self, meme_id: int, **fields: Any) -> Meme:
        """Apply *fields* (title, image_url, tags, caption, vibe_analysis)."""
        def _update(session: Session) -> Meme:
            meme = session.get(Meme, meme_id)
            if meme is None:
                raise MemeNotFound(meme_id)
            for key, value in fields.items():
                if key == "tags":
                    _set_tags(meme, value)
                elif key in ("title", "image_url", "caption", "vibe_analysis"):
                    setattr(meme, key, value)
                else:
                    raise InvalidInput(f"Field '{key}' cannot be updated")
            session.flush()
            return load_meme(session, meme_id, fresh=True)

        return self.transaction(_update)

    def delete_meme(self, meme_id: int) -> None:
        def _delete(session: Session) -> None:
            meme = session.get(Meme, meme_id)
            if meme is None:
                raise MemeNotFound(meme_id)
            session.delete(meme)

        self.transaction(_delete)
        logger.info("Meme %d deleted", meme_id)

    # -------------------------------------------------------------------
    # Bids
    # -------------------------------------------------------------------
    def list_bids(self, meme_id: int) -> list[Bid]:
        """Bid history for a meme, highest first."""
        return self._read(
            lambda s: list(
                s.scalars(
                    select(Bid)
                    .options(selectinload(Bid.user))
                    .where(Bid.meme_id == meme_id)
                    .order_by(Bid.credits.desc(), Bid.id.desc())
                ).all()
            )
        )
