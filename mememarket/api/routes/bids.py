"""
mememarket.api.routes.bids — Bid history & bid placement
==========================================================
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from mememarket.api.deps import get_market, get_store
from mememarket.constants import EVENT_BID_PLACED
from mememarket.database.engine import run_db
from mememarket.services.market_service import MarketService
from mememarket.services.serializers import bid_dict
from mememarket.services.store import RecordStore

router = APIRouter(prefix="/bids", tags=["bids"])


class BidCreate(BaseModel):
    meme_id: int
    user_id: int
    credits: Any = None  # amount; checked by the bid engine, not pydantic


@router.get("/meme/{meme_id}")
async def list_bids(meme_id: int, store: RecordStore = Depends(get_store)):
    """Bid history for a meme, highest first."""
    await run_db(store.get_meme, meme_id)
    bids = await run_db(store.list_bids, meme_id)
    return [bid_dict(b) for b in bids]


@router.post("", status_code=201)
async def place_bid(body: BidCreate, market: MarketService = Depends(get_market)):
    placed = await market.place_bid(body.meme_id, body.user_id, body.credits)
    return {
        **bid_dict(placed.bid),
        "meme_title": placed.meme.title,
        "current_bid": placed.meme.current_bid,
        "user_credits": placed.bidder.credits,
        "websocket_event": EVENT_BID_PLACED,
    }
