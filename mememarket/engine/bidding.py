"""
mememarket.engine.bidding — Bid Precondition Checks
=====================================================

Pure validation, no DB I/O.  The bid transaction in
:mod:`mememarket.services.bid_service` calls these in a fixed order so
every rejection carries its specific reason:

    1. amount is a positive integer      → InvalidAmount
    2. user exists                       → UserNotFound
    3. meme exists                       → MemeNotFound
    4. user.credits >= amount            → InsufficientCredits
    5. amount > meme.current_bid         → BidTooLow

Steps 2–3 need the store, so they live in the service.
"""

from __future__ import annotations

from mememarket.engine.errors import BidTooLow, InsufficientCredits, InvalidAmount


def check_amount(amount: object) -> int:
    """Return *amount* if it is a positive integer, else raise InvalidAmount.

    Booleans are rejected even though ``bool`` subclasses ``int``.
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(f"Bid amount must be a positive integer, got {amount!r}")
    if amount <= 0:
        raise InvalidAmount(f"Bid amount must be greater than 0, got {amount}")
    return amount


def check_affordable(amount: int, credits: int) -> None:
    if credits < amount:
        raise InsufficientCredits(available=credits, requested=amount)


def check_outbids(amount: int, current_bid: int | None) -> None:
    """The new amount must strictly exceed the stored bid (absent = 0)."""
    current = current_bid or 0
    if amount <= current:
        raise BidTooLow(amount=amount, current_bid=current)


def validate_bid(amount: int, *, credits: int, current_bid: int | None) -> None:
    """Run checks 4 and 5 against already-loaded user and meme values."""
    check_affordable(amount, credits)
    check_outbids(amount, current_bid)
