"""
mememarket.engine.errors — Marketplace Error Taxonomy
=======================================================

Every failure a caller can act on is a :class:`MarketError` subclass with
a stable ``code`` (rendered in API error bodies) and the HTTP status the
API maps it to.
"""

from __future__ import annotations

__all__ = [
    "BidTooLow",
    "ConflictingState",
    "InsufficientCredits",
    "InvalidAmount",
    "InvalidInput",
    "MarketError",
    "MemeNotFound",
    "NotFound",
    "UpstreamUnavailable",
    "UserNotFound",
]


class MarketError(Exception):
    """Base class for all reportable marketplace failures."""

    code = "market_error"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"error": self.code, "message": self.message}


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------
class InvalidInput(MarketError):
    code = "invalid_input"
    status_code = 400


class InvalidAmount(InvalidInput):
    code = "invalid_amount"


# ---------------------------------------------------------------------------
# Missing records
# ---------------------------------------------------------------------------
class NotFound(MarketError):
    code = "not_found"
    status_code = 404


class UserNotFound(NotFound):
    code = "user_not_found"

    def __init__(self, user_id: int) -> None:
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


class MemeNotFound(NotFound):
    code = "meme_not_found"

    def __init__(self, meme_id: int) -> None:
        super().__init__(f"Meme {meme_id} not found")
        self.meme_id = meme_id


# ---------------------------------------------------------------------------
# Domain rule violations
# ---------------------------------------------------------------------------
class InsufficientCredits(MarketError):
    code = "insufficient_credits"
    status_code = 400

    def __init__(self, available: int, requested: int) -> None:
        super().__init__(
            f"Insufficient credits: {requested} requested, {available} available"
        )
        self.available = available
        self.requested = requested


class BidTooLow(MarketError):
    code = "bid_too_low"
    status_code = 400

    def __init__(self, amount: int, current_bid: int) -> None:
        super().__init__(
            f"Bid must be higher than current bid ({amount} <= {current_bid})"
        )
        self.amount = amount
        self.current_bid = current_bid


class ConflictingState(MarketError):
    """A concurrent mutation won the race; the caller may retry."""

    code = "conflicting_state"
    status_code = 409


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------
class UpstreamUnavailable(MarketError):
    code = "upstream_unavailable"
    status_code = 503
