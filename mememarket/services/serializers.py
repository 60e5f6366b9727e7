"""
mememarket.services.serializers — JSON projections of ORM rows
================================================================

Shared by the HTTP routes and the realtime payloads so a client sees the
same shape whether it fetched a record or was pushed one.
"""

from __future__ import annotations

from datetime import datetime

from mememarket.database.models import Bid, Meme, User


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def owner_dict(user: User | None) -> dict | None:
    if user is None:
        return None
    return {"id": user.id, "username": user.username}


def user_dict(u: User) -> dict:
    return {
        "id": u.id,
        "username": u.username,
        "credits": u.credits,
        "created_at": _iso(u.created_at),
    }


def meme_dict(m: Meme, *, rank: int | None = None) -> dict:
    data = {
        "id": m.id,
        "title": m.title,
        "image_url": m.image_url,
        "tags": m.tags,
        "upvotes": m.upvotes,
        "downvotes": m.downvotes,
        "score": m.score,
        "current_bid": m.current_bid,
        "owner_id": m.owner_id,
        "owner": owner_dict(m.owner),
        "caption": m.caption,
        "vibe_analysis": m.vibe_analysis,
        "created_at": _iso(m.created_at),
        "updated_at": _iso(m.updated_at),
    }
    if rank is not None:
        data["rank"] = rank
    return data


def bid_dict(b: Bid) -> dict:
    return {
        "id": b.id,
        "meme_id": b.meme_id,
        "user_id": b.user_id,
        "credits": b.credits,
        "user": owner_dict(b.user),
        "created_at": _iso(b.created_at),
    }
