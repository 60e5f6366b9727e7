"""
mememarket.api.routes.memes — Meme catalogue & leaderboard endpoints
======================================================================
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from mememarket.api.deps import get_config, get_market, get_store
from mememarket.config import MarketConfig
from mememarket.database.engine import run_db
from mememarket.services.market_service import MarketService
from mememarket.services.serializers import meme_dict
from mememarket.services.store import RecordStore

router = APIRouter(prefix="/memes", tags=["memes"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class MemeCreate(BaseModel):
    title: Any = None
    image: Any = None
    image_url: Any = None
    tags: list[str] | str | None = None
    owner_id: int | None = None


class MemeUpdate(BaseModel):
    title: Any = None
    image: Any = None
    image_url: Any = None
    tags: list[str] | str | None = None


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
@router.get("")
async def list_memes(store: RecordStore = Depends(get_store)):
    """All memes, newest first."""
    memes = await run_db(store.list_memes)
    return [meme_dict(m) for m in memes]


@router.get("/top")
async def top_memes(
    limit: int | None = Query(default=None, ge=1, le=100),
    market: MarketService = Depends(get_market),
    cfg: MarketConfig = Depends(get_config),
):
    """Leaderboard: score desc, then current bid desc."""
    memes = await market.top_memes(limit or cfg.leaderboard_default_limit)
    return [meme_dict(m, rank=i) for i, m in enumerate(memes, start=1)]


@router.get("/tag/{tag}")
async def memes_by_tag(tag: str, store: RecordStore = Depends(get_store)):
    memes = await run_db(store.memes_by_tag, tag)
    return [meme_dict(m) for m in memes]


@router.get("/search")
async def search_memes(
    query: str | None = Query(default=None),
    store: RecordStore = Depends(get_store),
):
    """Title substring (case-insensitive) or exact tag match."""
    memes = await run_db(store.search_memes, query)
    return [meme_dict(m) for m in memes]


@router.get("/{meme_id}")
async def get_meme(meme_id: int, market: MarketService = Depends(get_market)):
    return meme_dict(await market.get_meme(meme_id))


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------
@router.post("", status_code=201)
async def create_meme(body: MemeCreate, market: MarketService = Depends(get_market)):
    meme = await market.create_meme(
        title=body.title,
        image_url=body.image_url if body.image_url is not None else body.image,
        tags=body.tags,
        owner_id=body.owner_id,
    )
    return meme_dict(meme)


@router.put("/{meme_id}")
async def update_meme(
    meme_id: int,
    body: MemeUpdate,
    market: MarketService = Depends(get_market),
):
    meme = await market.update_meme(
        meme_id,
        title=body.title,
        image_url=body.image_url if body.image_url is not None else body.image,
        tags=body.tags,
    )
    return meme_dict(meme)


@router.delete("/{meme_id}")
async def delete_meme(meme_id: int, market: MarketService = Depends(get_market)):
    await market.delete_meme(meme_id)
    return {"success": True}


@router.post("/{meme_id}/caption")
async def regenerate_caption(meme_id: int, market: MarketService = Depends(get_market)):
    """Fresh AI caption and vibe for an existing meme."""
    meme, copy = await market.regenerate_caption(meme_id)
    return {
        "meme": meme_dict(meme),
        "caption": copy.caption,
        "vibe_analysis": copy.vibe_analysis,
        "message": "Caption regenerated",
    }
