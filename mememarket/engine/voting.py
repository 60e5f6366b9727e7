"""
mememarket.engine.voting — Vote Transitions
=============================================

Pure transition logic for the one-vote-per-user-per-meme ledger:

    existing vote   submitted     action
    -------------   ---------     ------
    none            up/down       CREATE   (+1 on the submitted counter)
    same polarity   same          REMOVE   (-1 on that counter)
    opposite        other         FLIP     (-1 old counter, +1 new counter)
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

__all__ = ["VoteAction", "VoteTally", "resolve_vote"]


class VoteAction(enum.StrEnum):
    CREATE = "create"
    REMOVE = "remove"
    FLIP = "flip"


def resolve_vote(existing: bool | None, is_upvote: bool) -> VoteAction:
    """Decide what a vote submission does given the voter's current vote.

    *existing* is the stored polarity (True = upvote) or None if the user
    has not voted on this meme.
    """
    if existing is None:
        return VoteAction.CREATE
    if existing == is_upvote:
        return VoteAction.REMOVE
    return VoteAction.FLIP


@dataclass(frozen=True, slots=True)
class VoteTally:
    """Aggregate counts for one meme."""

    upvotes: int = 0
    downvotes: int = 0

    @property
    def score(self) -> int:
        return self.upvotes - self.downvotes

    def apply(self, action: VoteAction, is_upvote: bool) -> VoteTally:
        """Return the tally after *action* for a submission of *is_upvote*.

        For FLIP, *is_upvote* is the new polarity.
        """
        up, down = self.upvotes, self.downvotes
        if action is VoteAction.CREATE:
            up, down = (up + 1, down) if is_upvote else (up, down + 1)
        elif action is VoteAction.REMOVE:
            up, down = (up - 1, down) if is_upvote else (up, down - 1)
        else:
            up, down = (up + 1, down - 1) if is_upvote else (up - 1, down + 1)
        return VoteTally(upvotes=up, downvotes=down)

    def to_dict(self) -> dict[str, int]:
        return {"upvotes": self.upvotes, "downvotes": self.downvotes}
