"""
mememarket.services.bid_service — Bid Transaction
===================================================

:func:`apply_bid` runs inside :meth:`RecordStore.transaction`; the three
writes below commit together or not at all:

  1. INSERT the bid row
  2. UPDATE memes SET current_bid = amount WHERE current_bid < amount
  3. UPDATE users SET credits = credits - amount WHERE credits >= amount

Steps 2 and 3 are compare-and-swap updates.  If another bid on the same
meme (or another debit on the same user) committed after our reads, the
guard matches zero rows and the whole transaction is rolled back with
:class:`ConflictingState`, so credits are never double-debited and
``current_bid`` always equals the highest recorded bid.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from mememarket.database.models import Bid, Meme, User
from mememarket.engine.bidding import check_amount, validate_bid
from mememarket.engine.errors import ConflictingState, MemeNotFound, UserNotFound

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PlacedBid:
    """An accepted bid with the meme and bidder as committed."""

    bid: Bid
    meme: Meme
    bidder: User


def apply_bid(session: Session, meme_id: int, user_id: int, amount: object) -> PlacedBid:
    """Validate and apply a bid.

    Raises (in check order) InvalidAmount, UserNotFound, MemeNotFound,
    InsufficientCredits, BidTooLow; ConflictingState if a concurrent
    mutation won the race.
    """
    amount = check_amount(amount)

    user = session.get(User, user_id)
    if user is None:
        raise UserNotFound(user_id)

    meme = session.get(Meme, meme_id)
    if meme is None:
        raise MemeNotFound(meme_id)

    validate_bid(amount, credits=user.credits, current_bid=meme.current_bid)

    bid = Bid(meme_id=meme_id, user_id=user_id, credits=amount)
    session.add(bid)
    session.flush()

    raised = session.execute(
        update(Meme)
        .where(Meme.id == meme_id, Meme.current_bid < amount)
        .values(current_bid=amount, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    if raised.rowcount != 1:
        logger.info("Bid race lost on meme %d (amount %d)", meme_id, amount)
        raise ConflictingState(
            f"Meme {meme_id} received a higher bid while this one was processed"
        )

    debited = session.execute(
        update(User)
        .where(User.id == user_id, User.credits >= amount)
        .values(credits=User.credits - amount, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    if debited.rowcount != 1:
        logger.info("Debit race lost for user %d (amount %d)", user_id, amount)
        raise ConflictingState(
            f"Credits for user {user_id} changed while this bid was processed"
        )

    # Re-read so the returned bid carries committed values (created_at, bidder balance)
    bid = session.scalars(
        select(Bid)
        .where(Bid.id == bid.id)
        .execution_options(populate_existing=True)
    ).one()
    session.refresh(user)
    session.refresh(meme)

    logger.info(
        "Bid %d accepted: meme %d ← %d credits from user %d (balance %d)",
        bid.id, meme_id, amount, user_id, user.credits,
    )
    return PlacedBid(bid=bid, meme=meme, bidder=user)
