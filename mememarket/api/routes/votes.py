"""
mememarket.api.routes.votes — Up/down voting
==============================================
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from mememarket.api.deps import get_market
from mememarket.services.market_service import MarketService
from mememarket.services.serializers import meme_dict

router = APIRouter(prefix="/votes", tags=["votes"])


class VoteCast(BaseModel):
    userId: int
    voteType: Any = None  # True = upvote; must be a real boolean


@router.post("/{meme_id}")
async def cast_vote(
    meme_id: int,
    body: VoteCast,
    market: MarketService = Depends(get_market),
):
    """Same polarity again removes the vote; the opposite one flips it."""
    outcome = await market.cast_vote(meme_id, body.userId, body.voteType)
    return {
        **meme_dict(outcome.meme),
        "vote_type": outcome.vote_type,
        "action": outcome.action.value,
    }
