"""
Meme Market — Real-Time Meme Bidding & Voting Backend
========================================================
Users upload memes, bid credits on them, vote, and watch a live
leaderboard.  Every accepted bid or vote is pushed to connected clients
over a WebSocket topic registry.

Package layout::

    mememarket/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Topic names, event names, fallback copy
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine, retry helper, async bridge
    │   ├── models.py      # users, memes, meme_tags, bids, votes
    │   └── seed.py        # Demo users for the mock login
    ├── engine/
    │   ├── errors.py      # MarketError taxonomy
    │   ├── bidding.py     # Bid precondition checks
    │   ├── voting.py      # Vote transition + tally arithmetic
    │   ├── leaderboard.py # Ranking + TTL cache with push invalidation
    │   └── broadcast.py   # Topic pub/sub with ordered per-client delivery
    ├── services/
    │   ├── store.py           # Record store (CRUD + transactional runner)
    │   ├── bid_service.py     # Bid transaction (compare-and-swap)
    │   ├── vote_service.py    # Vote ledger transaction
    │   ├── caption_service.py # Gemini caption/vibe client + fallback
    │   ├── serializers.py     # ORM → JSON projections
    │   └── market_service.py  # Async orchestration + broadcasting
    └── api/
        ├── main.py        # FastAPI app factory
        ├── deps.py        # app.state accessors
        └── routes/        # memes, bids, votes, users, realtime
"""

__version__ = "0.1.0"
