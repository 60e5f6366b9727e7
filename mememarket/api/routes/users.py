"""
mememarket.api.routes.users — Mock login identities & credit grants
=====================================================================
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from mememarket.api.deps import get_market, get_store
from mememarket.database.engine import run_db
from mememarket.services.market_service import MarketService
from mememarket.services.serializers import user_dict
from mememarket.services.store import RecordStore

router = APIRouter(prefix="/users", tags=["users"])


class CreditsUpdate(BaseModel):
    credits: Any = None


@router.get("")
async def list_users(store: RecordStore = Depends(get_store)):
    """Selectable identities for the mock login."""
    users = await run_db(store.list_users)
    return [user_dict(u) for u in users]


@router.get("/{user_id}")
async def get_user(user_id: int, store: RecordStore = Depends(get_store)):
    return user_dict(await run_db(store.get_user, user_id))


@router.patch("/{user_id}/credits")
async def set_credits(
    user_id: int,
    body: CreditsUpdate,
    market: MarketService = Depends(get_market),
):
    return user_dict(await market.set_user_credits(user_id, body.credits))
