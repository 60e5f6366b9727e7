"""
tests/test_voting.py — Vote Transition & Vote Ledger Tests
============================================================
The pure create/remove/flip table, tally arithmetic, and the ledger
transaction that keeps meme counters equal to the live vote rows.
"""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest
from sqlalchemy import event, func, select
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import Session

from conftest import make_meme, make_user, run_async
from mememarket.database.models import Meme, Vote
from mememarket.engine.errors import ConflictingState, MemeNotFound, UserNotFound
from mememarket.engine.voting import VoteAction, VoteTally, resolve_vote
from mememarket.services.vote_service import apply_vote, count_votes


# ===========================================================================
# Pure transitions
# ===========================================================================
class TestResolveVote:
    @pytest.mark.parametrize(
        ("existing", "submitted", "expected"),
        [
            (None, True, VoteAction.CREATE),
            (None, False, VoteAction.CREATE),
            (True, True, VoteAction.REMOVE),
            (False, False, VoteAction.REMOVE),
            (True, False, VoteAction.FLIP),
            (False, True, VoteAction.FLIP),
        ],
    )
    def test_transition_table(self, existing, submitted, expected):
        assert resolve_vote(existing, submitted) is expected


class TestVoteTally:
    def test_same_polarity_twice_is_identity(self):
        start = VoteTally(upvotes=3, downvotes=2)
        after = start.apply(VoteAction.CREATE, True).apply(VoteAction.REMOVE, True)
        assert after == start

    def test_flip_moves_exactly_one_count(self):
        start = VoteTally(upvotes=4, downvotes=1)
        flipped = start.apply(VoteAction.FLIP, False)
        assert flipped == VoteTally(upvotes=3, downvotes=2)
        assert flipped.upvotes + flipped.downvotes == 5

    def test_score(self):
        assert VoteTally(upvotes=2, downvotes=5).score == -3


# ===========================================================================
# Ledger transaction
# ===========================================================================
class TestApplyVote:
    def test_up_up_down_up_scenario(self, store, users, meme_id):
        """X up → (1,0); up → (0,0); down → (0,1); up → (1,0)."""
        x = users["alice"]
        expected = [
            (True, VoteAction.CREATE, (1, 0)),
            (True, VoteAction.REMOVE, (0, 0)),
            (False, VoteAction.CREATE, (0, 1)),
            (True, VoteAction.FLIP, (1, 0)),
        ]
        for is_upvote, action, (up, down) in expected:
            outcome = store.transaction(apply_vote, meme_id, x, is_upvote)
            assert outcome.action is action
            assert (outcome.meme.upvotes, outcome.meme.downvotes) == (up, down)
            assert (outcome.tally.upvotes, outcome.tally.downvotes) == (up, down)

    def test_one_ledger_row_per_user(self, store, db_engine, users, meme_id):
        for is_upvote in (True, False, False, True, True):
            store.transaction(apply_vote, meme_id, users["bob"], is_upvote)
        with Session(db_engine) as s:
            rows = s.scalar(
                select(func.count()).select_from(Vote).where(Vote.user_id == users["bob"])
            )
        assert rows <= 1

    def test_counters_equal_ledger_across_users(self, store, db_engine, users, meme_id):
        carol = make_user(db_engine, "carol")
        store.transaction(apply_vote, meme_id, users["alice"], True)
        store.transaction(apply_vote, meme_id, users["bob"], True)
        store.transaction(apply_vote, meme_id, carol, False)
        store.transaction(apply_vote, meme_id, users["bob"], False)

        with Session(db_engine) as s:
            tally = count_votes(s, meme_id)
            meme = s.get(Meme, meme_id)
            assert (meme.upvotes, meme.downvotes) == (tally.upvotes, tally.downvotes) == (1, 2)

    def test_drifted_counters_are_corrected(self, store, db_engine, users):
        drifted = make_meme(db_engine, "Drifted", upvotes=40, downvotes=7)
        outcome = store.transaction(apply_vote, drifted, users["alice"], True)
        assert (outcome.meme.upvotes, outcome.meme.downvotes) == (1, 0)

    def test_vote_type_label(self, store, users, meme_id):
        assert store.transaction(apply_vote, meme_id, users["alice"], True).vote_type == "upvote"
        assert store.transaction(apply_vote, meme_id, users["bob"], False).vote_type == "downvote"

    def test_meme_checked_before_user(self, store, users, meme_id):
        with pytest.raises(MemeNotFound):
            store.transaction(apply_vote, 9999, 9999, True)
        with pytest.raises(UserNotFound):
            store.transaction(apply_vote, meme_id, 9999, True)

    def test_meme_row_is_locked_for_the_recount(self, db_engine, users, meme_id):
        statements: list[str] = []
        with Session(db_engine) as session:

            @event.listens_for(session, "do_orm_execute")
            def _capture(state):
                if state.is_select:
                    statements.append(str(state.statement.compile(dialect=postgresql.dialect())))

            apply_vote(session, meme_id, users["alice"], True)
            session.rollback()

        assert any("FROM memes" in s and "FOR UPDATE" in s for s in statements)


# ===========================================================================
# Conflicts
# ===========================================================================
def _ledger(engine, meme_id: int) -> list[tuple[int, bool]]:
    with Session(engine) as s:
        return [
            (v.user_id, v.vote_type)
            for v in s.scalars(select(Vote).where(Vote.meme_id == meme_id).order_by(Vote.id))
        ]


class TestVoteConflicts:
    def test_duplicate_insert_raises_conflict_and_rolls_back(self, store, db_engine, users, meme_id):
        store.transaction(apply_vote, meme_id, users["alice"], True)

        # A second writer's row lands between our read and our insert
        with patch(
            "mememarket.services.vote_service.resolve_vote", return_value=VoteAction.CREATE
        ):
            with pytest.raises(ConflictingState):
                store.transaction(apply_vote, meme_id, users["alice"], False)

        assert _ledger(db_engine, meme_id) == [(users["alice"], True)]
        with Session(db_engine) as s:
            meme = s.get(Meme, meme_id)
            assert (meme.upvotes, meme.downvotes) == (1, 0)

    def test_concurrent_votes_by_one_user_keep_one_row(self, market, db_engine, users, meme_id):
        async def scenario():
            return await asyncio.gather(
                market.cast_vote(meme_id, users["bob"], True),
                market.cast_vote(meme_id, users["bob"], False),
            )

        outcomes = run_async(scenario())

        assert sorted(o.action.value for o in outcomes) == ["create", "flip"]
        ledger = _ledger(db_engine, meme_id)
        assert len(ledger) == 1
        with Session(db_engine) as s:
            tally = count_votes(s, meme_id)
            meme = s.get(Meme, meme_id)
        assert (meme.upvotes, meme.downvotes) == (tally.upvotes, tally.downvotes)
        assert tally.upvotes + tally.downvotes == 1
