"""
mememarket.engine.leaderboard — Ranking & Short-TTL Leaderboard Cache
=======================================================================

Memes are ranked by net score (upvotes − downvotes) descending, then
current bid descending, then id ascending so the order is deterministic.

:class:`LeaderboardCache` keeps the *full* ranked list and truncates on
read, so ``limit=5`` and ``limit=50`` share one entry.  Entries expire
after a short TTL, and every accepted bid/vote calls :meth:`invalidate`
so subscribers re-fetching after a ``leaderboard_update`` event see the
new order immediately.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable, Sequence
from typing import Protocol, TypeVar

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60.0


class Rankable(Protocol):
    id: int
    upvotes: int
    downvotes: int
    current_bid: int


M = TypeVar("M", bound=Rankable)


def rank_key(meme: Rankable) -> tuple[int, int, int]:
    """Sort key: score desc, current bid desc, id asc."""
    return (-(meme.upvotes - meme.downvotes), -(meme.current_bid or 0), meme.id)


def rank_memes(memes: Iterable[M]) -> list[M]:
    return sorted(memes, key=rank_key)


class LeaderboardCache:
    """Thread-safe cache of the ranked meme list.

    Usage::

        cache = LeaderboardCache(store.list_memes, ttl=60)
        top = cache.get_top_memes(10)   # loads + ranks on miss
        cache.invalidate()              # after a bid or vote
    """

    def __init__(
        self,
        loader: Callable[[], Sequence[Rankable]],
        *,
        ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._loader = loader
        self._ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()

        self._ranked: list[Rankable] | None = None
        self._expires_at: float = 0.0
        # Bumped on every invalidate so a reload that raced with one is discarded
        self._generation: int = 0

    def get_top_memes(self, limit: int | None = None) -> list[Rankable]:
        """Return the top *limit* memes (all of them when *limit* is None)."""
        with self._lock:
            if self._ranked is not None and self._clock() < self._expires_at:
                ranked = self._ranked
                return list(ranked if limit is None else ranked[:limit])
            generation = self._generation

        ranked = rank_memes(self._loader())

        with self._lock:
            if generation == self._generation:
                self._ranked = ranked
                self._expires_at = self._clock() + self._ttl
            else:
                logger.debug("Leaderboard invalidated during reload; not caching")

        return list(ranked if limit is None else ranked[:limit])

    def invalidate(self) -> None:
        """Drop the cached ranking; the next read recomputes it."""
        with self._lock:
            self._ranked = None
            self._expires_at = 0.0
            self._generation += 1
        logger.debug("Leaderboard cache invalidated")
