"""
mememarket.services.market_service — Async Market Orchestration
=================================================================

Glue between the HTTP/WebSocket surface and the synchronous storage
layer.  For every mutation:

  1. serialize against other mutations on the same meme (asyncio.Lock)
  2. run the storage transaction on a worker thread (:func:`run_db`)
  3. invalidate the leaderboard cache
  4. publish realtime events

Events are only published after the transaction has committed, so a
client never hears about a bid that was rolled back.  A client dropping
its connection does not cancel an in-flight mutation: the route awaits
this service, not the socket.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from mememarket.constants import (
    EVENT_BID_PLACED,
    EVENT_LEADERBOARD_UPDATE,
    EVENT_VOTE_UPDATE,
    LEADERBOARD_TOPIC,
    meme_topic,
)
from mememarket.database.engine import run_db
from mememarket.database.models import Meme, User
from mememarket.engine.broadcast import Broadcaster
from mememarket.engine.errors import InvalidInput
from mememarket.engine.leaderboard import LeaderboardCache
from mememarket.services.bid_service import PlacedBid, apply_bid
from mememarket.services.caption_service import CaptionService, GeneratedCopy
from mememarket.services.serializers import bid_dict
from mememarket.services.store import RecordStore, normalize_tags
from mememarket.services.vote_service import VoteOutcome, apply_vote

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 200


def _require_text(value: Any, field: str, max_length: int | None = None) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(f"'{field}' is required")
    value = value.strip()
    if max_length is not None and len(value) > max_length:
        raise InvalidInput(f"'{field}' must be at most {max_length} characters")
    return value


class KeyedLock:
    """One ``asyncio.Lock`` per key, kept only while it is held or awaited."""

    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = {}
        self._users: dict[int, int] = {}

    @asynccontextmanager
    async def hold(self, key: int) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class MarketService:
    """Bids, votes and catalogue mutations with realtime fan-out."""

    def __init__(
        self,
        store: RecordStore,
        broadcaster: Broadcaster,
        leaderboard: LeaderboardCache,
        captions: CaptionService,
    ) -> None:
        self.store = store
        self.broadcaster = broadcaster
        self.leaderboard = leaderboard
        self.captions = captions
        self._meme_locks = KeyedLock()

    # -------------------------------------------------------------------
    # Bids
    # -------------------------------------------------------------------
    async def place_bid(self, meme_id: int, user_id: int, amount: object) -> PlacedBid:
        """Validate, commit and broadcast a bid."""
        async with self._meme_locks.hold(meme_id):
            placed = await run_db(self.store.transaction, apply_bid, meme_id, user_id, amount)

        self.leaderboard.invalidate()
        self.broadcaster.publish(
            meme_topic(meme_id),
            EVENT_BID_PLACED,
            {
                **bid_dict(placed.bid),
                "meme_title": placed.meme.title,
                "current_bid": placed.meme.current_bid,
            },
        )
        self._leaderboard_changed("bid", meme_id)
        return placed

    # -------------------------------------------------------------------
    # Votes
    # -------------------------------------------------------------------
    async def cast_vote(self, meme_id: int, user_id: int, is_upvote: bool) -> VoteOutcome:
        """Create, remove, or flip the user's vote and broadcast new totals."""
        if not isinstance(is_upvote, bool):
            raise InvalidInput("'voteType' must be a boolean")

        async with self._meme_locks.hold(meme_id):
            outcome = await run_db(
                self.store.transaction, apply_vote, meme_id, user_id, is_upvote
            )

        self.leaderboard.invalidate()
        self.broadcaster.publish(
            meme_topic(meme_id),
            EVENT_VOTE_UPDATE,
            {
                "meme_id": meme_id,
                "upvotes": outcome.tally.upvotes,
                "downvotes": outcome.tally.downvotes,
                "vote_type": outcome.vote_type,
                "action": outcome.action.value,
            },
        )
        self._leaderboard_changed("vote", meme_id)
        return outcome

    # -------------------------------------------------------------------
    # Catalogue
    # -------------------------------------------------------------------
    async def create_meme(
        self,
        *,
        title: Any,
        image_url: Any,
        tags: Any = None,
        owner_id: int | None = None,
    ) -> Meme:
        title = _require_text(title, "title", MAX_TITLE_LENGTH)
        image_url = _require_text(image_url, "image_url")
        tags = normalize_tags(tags)

        copy = await self.captions.generate(title, tags)
        meme = await run_db(
            self.store.create_meme,
            title=title,
            image_url=image_url,
            tags=tags,
            owner_id=owner_id,
            caption=copy.caption,
            vibe_analysis=copy.vibe_analysis,
        )
        self.leaderboard.invalidate()
        self._leaderboard_changed("create", meme.id)
        return meme

    async def update_meme(self, meme_id: int, **changes: Any) -> Meme:
        """Apply title / image_url / tags changes; regenerate copy when needed."""
        fields: dict[str, Any] = {}
        if changes.get("title") is not None:
            fields["title"] = _require_text(changes["title"], "title", MAX_TITLE_LENGTH)
        if changes.get("image_url") is not None:
            fields["image_url"] = _require_text(changes["image_url"], "image_url")
        if changes.get("tags") is not None:
            fields["tags"] = normalize_tags(changes["tags"])
        if not fields:
            raise InvalidInput("At least one of title, image_url, or tags is required")

        async with self._meme_locks.hold(meme_id):
            current = await run_db(self.store.get_meme, meme_id)
            if "title" in fields or "tags" in fields:
                copy = await self.captions.generate(
                    fields.get("title", current.title),
                    fields.get("tags", current.tags),
                )
                fields["caption"] = copy.caption
                fields["vibe_analysis"] = copy.vibe_analysis
            meme = await run_db(self.store.update_meme, meme_id, **fields)

        self.leaderboard.invalidate()
        self._leaderboard_changed("update", meme_id)
        return meme

    async def delete_meme(self, meme_id: int) -> None:
        async with self._meme_locks.hold(meme_id):
            await run_db(self.store.delete_meme, meme_id)

        self.leaderboard.invalidate()
        self._leaderboard_changed("delete", meme_id)

    async def regenerate_caption(self, meme_id: int) -> tuple[Meme, GeneratedCopy]:
        """Ask the generator again for this meme, bypassing its cache."""
        async with self._meme_locks.hold(meme_id):
            current = await run_db(self.store.get_meme, meme_id)
            copy = await self.captions.generate(current.title, current.tags, fresh=True)
            meme = await run_db(
                self.store.update_meme,
                meme_id,
                caption=copy.caption,
                vibe_analysis=copy.vibe_analysis,
            )
        logger.info("Caption regenerated for meme %d", meme_id)
        return meme, copy

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    async def top_memes(self, limit: int | None = None) -> list[Meme]:
        return await run_db(self.leaderboard.get_top_memes, limit)

    async def get_meme(self, meme_id: int) -> Meme:
        return await run_db(self.store.get_meme, meme_id)

    # -------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------
    async def set_user_credits(self, user_id: int, credits: Any) -> User:
        return await run_db(self.store.set_user_credits, user_id, credits)

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------
    def _leaderboard_changed(self, reason: str, meme_id: int) -> None:
        self.broadcaster.publish(
            LEADERBOARD_TOPIC,
            EVENT_LEADERBOARD_UPDATE,
            {"reason": reason, "meme_id": meme_id},
        )
