"""
mememarket.database.engine — Database Connection, Retry & Async Bridge
========================================================================

SQLAlchemy + psycopg2 is **synchronous**; the API runs on an ``asyncio``
event loop.  Mutations are shipped to a worker thread with
:func:`run_db` so the loop (and every open WebSocket) stays responsive.

Every storage call is bounded: the pool gives up after
``storage_timeout_seconds`` and PostgreSQL statements carry a matching
``statement_timeout``.  Transient failures are retried by
:func:`call_with_retry` with exponential backoff + jitter before being
surfaced as :class:`~mememarket.engine.errors.UpstreamUnavailable`.

Usage::

    from mememarket.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine(cfg)     # reads DATABASE_URL from .env
    init_db(engine, cfg)               # CREATE TABLE IF NOT EXISTS …

    bid = await run_db(store.transaction, apply_bid, meme_id, user_id, 50)
"""

from __future__ import annotations

import asyncio
import logging
import os
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from mememarket.config import MarketConfig
from mememarket.database.models import Base
from mememarket.engine.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

# Failures worth retrying: dropped connections, lock timeouts, pool exhaustion
TRANSIENT_ERRORS: tuple[type[Exception], ...] = (OperationalError, PoolTimeoutError)


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(cfg: MarketConfig | None = None, url: str | None = None) -> Engine:
    """Build a SQLAlchemy :class:`Engine` from ``DATABASE_URL``.

    PostgreSQL connections get a bounded pool and a server-side
    ``statement_timeout`` so no storage call can hang forever.

    Raises
    ------
    RuntimeError
        If neither *url* nor ``DATABASE_URL`` is set.
    """
    cfg = cfg or MarketConfig()
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            echo=False,
            connect_args={"check_same_thread": False, "timeout": cfg.storage_timeout_seconds},
        )
    else:
        timeout_ms = int(cfg.storage_timeout_seconds * 1000)
        engine = create_engine(
            url,
            echo=False,        # Set True for SQL debugging
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,   # Reconnect stale connections automatically
            pool_timeout=cfg.storage_timeout_seconds,
            pool_recycle=3600,
            connect_args={"options": f"-c statement_timeout={timeout_ms}"},
        )
    logger.info("Database engine created → %s", engine.url.render_as_string(hide_password=True))
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine, cfg: MarketConfig | None = None) -> None:
    """Create all tables and, if enabled, seed the demo users.

    .. note::

        In production the schema is managed by Alembic (``alembic upgrade
        head``).  ``create_all`` is retained for dev/test environments.
    """
    cfg = cfg or MarketConfig()
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")

    if cfg.seed_demo_users:
        from mememarket.database.seed import seed_demo_users

        seed_demo_users(engine, starting_credits=cfg.starting_credits)


# ---------------------------------------------------------------------------
# Bounded retry
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Exponential backoff with jitter for transient storage failures."""

    max_attempts: int = 3
    base_backoff: float = 0.2
    max_backoff: float = 2.0

    @classmethod
    def from_config(cls, cfg: MarketConfig) -> RetryPolicy:
        return cls(
            max_attempts=max(1, cfg.storage_max_attempts),
            base_backoff=cfg.storage_backoff_seconds,
            max_backoff=cfg.storage_max_backoff_seconds,
        )

    def delay(self, attempt: int) -> float:
        """Seconds to wait after failed *attempt* (1-based)."""
        backoff = min(self.base_backoff * (2 ** (attempt - 1)), self.max_backoff)
        return backoff + random.uniform(0, backoff * 0.5)


def call_with_retry(
    policy: RetryPolicy,
    func: Callable[P, T],
    *args: P.args,
    **kwargs: P.kwargs,
) -> T:
    """Call *func*, retrying transient storage errors per *policy*.

    Domain errors propagate immediately.  When every attempt fails the
    last transient error is chained onto :class:`UpstreamUnavailable`.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return func(*args, **kwargs)
        except TRANSIENT_ERRORS as exc:
            if attempt >= policy.max_attempts:
                logger.error(
                    "Record store unavailable after %d attempts: %s",
                    attempt, exc,
                )
                raise UpstreamUnavailable("Record store is unavailable") from exc
            wait = policy.delay(attempt)
            logger.warning(
                "Transient storage error (attempt %d/%d), retrying in %.2fs: %s",
                attempt, policy.max_attempts, wait, exc,
            )
            time.sleep(wait)


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a **synchronous** database function on a background thread.

    Every store call made from async code goes through this wrapper::

        result = await run_db(store.get_meme, meme_id)

    Under the hood it calls :func:`asyncio.to_thread`, so the event loop
    keeps serving WebSocket traffic while the query runs.
    """
    return await asyncio.to_thread(func, *args, **kwargs)
