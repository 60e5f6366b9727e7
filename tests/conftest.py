"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from mememarket.config import MarketConfig
from mememarket.database.engine import RetryPolicy
from mememarket.database.models import Base, Meme, MemeTag, User
from mememarket.engine.broadcast import Broadcaster
from mememarket.engine.leaderboard import LeaderboardCache
from mememarket.services.caption_service import GeneratedCopy
from mememarket.services.market_service import MarketService
from mememarket.services.store import RecordStore

TEST_CONFIG = MarketConfig(seed_demo_users=False, storage_max_attempts=1)


# Helper to run async code without pytest-asyncio
def run_async(coro):
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------
@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Meme Market tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used by ``run_db``).
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def store(db_engine: Engine) -> RecordStore:
    return RecordStore(db_engine, RetryPolicy(max_attempts=1))


def make_user(engine: Engine, username: str, credits: int = 1000) -> int:
    with Session(engine) as session:
        user = User(username=username, credits=credits)
        session.add(user)
        session.commit()
        return user.id


def make_meme(
    engine: Engine,
    title: str = "Doge in the Matrix",
    *,
    tags: tuple[str, ...] = (),
    owner_id: int | None = None,
    upvotes: int = 0,
    downvotes: int = 0,
    current_bid: int = 0,
) -> int:
    with Session(engine) as session:
        meme = Meme(
            title=title,
            image_url=f"https://img.example/{title.replace(' ', '_')}.png",
            owner_id=owner_id,
            upvotes=upvotes,
            downvotes=downvotes,
            current_bid=current_bid,
        )
        meme.tag_rows = [MemeTag(tag=t, position=i) for i, t in enumerate(tags)]
        session.add(meme)
        session.commit()
        return meme.id


def credits_of(engine: Engine, user_id: int) -> int:
    with Session(engine) as session:
        return session.get(User, user_id).credits


@pytest.fixture
def users(db_engine: Engine) -> dict[str, int]:
    """Two bidders with the default 1000 credits."""
    return {
        "alice": make_user(db_engine, "alice"),
        "bob": make_user(db_engine, "bob"),
    }


@pytest.fixture
def meme_id(db_engine: Engine, users: dict[str, int]) -> int:
    return make_meme(db_engine, tags=("doge", "matrix"), owner_id=users["alice"])


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------
class FakeCaptions:
    """Stands in for CaptionService; records every request."""

    api_key = "test-key"

    def __init__(self) -> None:
        self.calls: list[tuple[str, list[str], bool]] = []

    async def generate(self, title, tags, *, fresh=False):
        self.calls.append((title, list(tags), fresh))
        n = len(self.calls)
        return GeneratedCopy(caption=f"Caption #{n} for {title}", vibe_analysis=f"Vibe #{n}")


@pytest.fixture
def captions() -> FakeCaptions:
    return FakeCaptions()


@pytest.fixture
def market(store: RecordStore, captions: FakeCaptions) -> MarketService:
    return MarketService(
        store,
        Broadcaster(),
        LeaderboardCache(store.list_memes, ttl=60),
        captions,
    )


@pytest.fixture
def client(db_engine: Engine, captions: FakeCaptions):
    """FastAPI TestClient bound to the in-memory engine (lifespan running)."""
    from fastapi.testclient import TestClient

    from mememarket.api.main import create_app

    app = create_app(cfg=TEST_CONFIG, engine=db_engine, captions=captions)
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c
