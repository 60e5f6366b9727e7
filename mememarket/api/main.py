"""
mememarket.api.main — FastAPI application entry point
========================================================

Run with::

    uvicorn mememarket.api.main:app --reload --port 5000

or ``python -m mememarket.api``.

Process-scoped collaborators (record store, broadcaster, leaderboard
cache, caption client, market service) are built in the lifespan and
hung on ``app.state``; routes reach them through :mod:`mememarket.api.deps`.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import Engine

load_dotenv()

from mememarket.api.routes.bids import router as bids_router  # noqa: E402
from mememarket.api.routes.memes import router as memes_router  # noqa: E402
from mememarket.api.routes.realtime import router as realtime_router  # noqa: E402
from mememarket.api.routes.users import router as users_router  # noqa: E402
from mememarket.api.routes.votes import router as votes_router  # noqa: E402
from mememarket.config import MarketConfig, load_config  # noqa: E402
from mememarket.database.engine import RetryPolicy, create_db_engine, init_db  # noqa: E402
from mememarket.engine.broadcast import Broadcaster  # noqa: E402
from mememarket.engine.errors import MarketError  # noqa: E402
from mememarket.engine.leaderboard import LeaderboardCache  # noqa: E402
from mememarket.services.caption_service import CaptionService  # noqa: E402
from mememarket.services.market_service import MarketService  # noqa: E402
from mememarket.services.store import RecordStore  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


def create_app(
    cfg: MarketConfig | None = None,
    engine: Engine | None = None,
    captions: CaptionService | None = None,
) -> FastAPI:
    """Build the API.  Tests pass their own engine and caption client."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        config = cfg or load_config()
        db = engine or create_db_engine(config)
        init_db(db, config)

        store = RecordStore(db, RetryPolicy.from_config(config))
        broadcaster = Broadcaster(max_pending=config.realtime_max_pending)
        leaderboard = LeaderboardCache(store.list_memes, ttl=config.leaderboard_ttl_seconds)
        caption_service = captions or CaptionService.from_config(
            config, os.getenv("GEMINI_API_KEY")
        )
        if not caption_service.api_key:
            logger.warning("GEMINI_API_KEY is not set; captions will use fallback copy")

        app.state.config = config
        app.state.store = store
        app.state.broadcaster = broadcaster
        app.state.leaderboard = leaderboard
        app.state.market = MarketService(store, broadcaster, leaderboard, caption_service)

        logger.info("%s API started — engine ready (%s)", config.app_name, db.url.get_backend_name())
        yield
        logger.info("%s API shutting down", config.app_name)
        await broadcaster.close()
        if engine is None:
            db.dispose()

    app = FastAPI(
        title="Meme Market API",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(MarketError)
    async def market_error_handler(request: Request, exc: MarketError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    app.include_router(memes_router, prefix="/api")
    app.include_router(bids_router, prefix="/api")
    app.include_router(votes_router, prefix="/api")
    app.include_router(users_router, prefix="/api")
    app.include_router(realtime_router, prefix="/api")

    @app.get("/api/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()
