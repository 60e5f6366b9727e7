"""
mememarket.api.deps — FastAPI dependency injection
=====================================================

Everything lives on ``app.state`` (set up in the lifespan), so each
test app gets its own store, broadcaster and caches.
"""

from __future__ import annotations

from fastapi import Request

from mememarket.config import MarketConfig
from mememarket.services.market_service import MarketService
from mememarket.services.store import RecordStore


def get_config(request: Request) -> MarketConfig:
    return request.app.state.config


def get_store(request: Request) -> RecordStore:
    return request.app.state.store


def get_market(request: Request) -> MarketService:
    return request.app.state.market
