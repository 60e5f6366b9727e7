"""
mememarket.services.vote_service — Vote Ledger Transaction
============================================================

:func:`apply_vote` runs inside :meth:`RecordStore.transaction`.  It
mutates the ledger (create / delete / flip the voter's row) and then
recounts the meme's live votes in the same transaction, so the stored
``upvotes``/``downvotes`` always equal the ledger — they cannot drift.

The meme row is read ``FOR UPDATE`` so recounts for the same meme from
different processes serialize on it.  The ``(meme_id, user_id)`` unique
constraint backs the one-vote rule at the storage level; a concurrent
duplicate insert surfaces as :class:`ConflictingState`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mememarket.database.models import Meme, User, Vote
from mememarket.engine.errors import ConflictingState, MemeNotFound, UserNotFound
from mememarket.engine.voting import VoteAction, VoteTally, resolve_vote

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class VoteOutcome:
    """Result of one vote submission."""

    meme: Meme
    action: VoteAction
    is_upvote: bool
    tally: VoteTally

    @property
    def vote_type(self) -> str:
        return "upvote" if self.is_upvote else "downvote"


def count_votes(session: Session, meme_id: int) -> VoteTally:
    """Count live ledger rows per polarity for a meme."""
    rows = session.execute(
        select(Vote.vote_type, func.count().label("cnt"))
        .where(Vote.meme_id == meme_id)
        .group_by(Vote.vote_type)
    ).all()
    counts = {bool(row.vote_type): row.cnt for row in rows}
    return VoteTally(upvotes=counts.get(True, 0), downvotes=counts.get(False, 0))


def apply_vote(session: Session, meme_id: int, user_id: int, is_upvote: bool) -> VoteOutcome:
    """Toggle/switch/remove the user's vote and refresh the meme counters.

    Raises MemeNotFound, UserNotFound, or ConflictingState.
    """
    meme = session.get(Meme, meme_id, with_for_update=True)
    if meme is None:
        raise MemeNotFound(meme_id)
    if session.get(User, user_id) is None:
        raise UserNotFound(user_id)

    existing = session.scalar(
        select(Vote)
        .where(Vote.meme_id == meme_id, Vote.user_id == user_id)
        .with_for_update()
    )
    action = resolve_vote(existing.vote_type if existing else None, is_upvote)
    before = VoteTally(upvotes=meme.upvotes, downvotes=meme.downvotes)

    if action is VoteAction.CREATE:
        session.add(Vote(meme_id=meme_id, user_id=user_id, vote_type=is_upvote))
        try:
            session.flush()
        except IntegrityError as exc:
            raise ConflictingState(
                f"User {user_id} already has a vote on meme {meme_id}"
            ) from exc
    elif action is VoteAction.REMOVE:
        session.delete(existing)
        session.flush()
    else:
        existing.vote_type = is_upvote
        session.flush()

    tally = count_votes(session, meme_id)
    expected = before.apply(action, is_upvote)
    if tally != expected:
        logger.warning(
            "Vote counters for meme %d drifted from the ledger (expected %s, counted %s); corrected",
            meme_id, expected.to_dict(), tally.to_dict(),
        )

    meme.upvotes = tally.upvotes
    meme.downvotes = tally.downvotes
    session.flush()
    session.refresh(meme)

    logger.info(
        "Vote %s by user %d on meme %d → %d up / %d down",
        action.value, user_id, meme_id, tally.upvotes, tally.downvotes,
    )
    return VoteOutcome(meme=meme, action=action, is_upvote=is_upvote, tally=tally)
