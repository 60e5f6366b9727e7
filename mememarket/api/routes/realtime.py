"""
mememarket.api.routes.realtime — WebSocket endpoint for live updates
======================================================================

Client → server (JSON text frames)::

    {"action": "join_meme_room", "meme_id": 7}
    {"action": "leave_meme_room", "meme_id": 7}
    {"action": "join_leaderboard"}
    {"action": "leave_leaderboard"}
    {"action": "ping"}

Server → client: ``{"event", "topic", "data"}`` for published events,
plus ``joined`` / ``left`` / ``pong`` acks and ``error`` replies to
malformed frames.  Acks go through the same per-client queue as events,
so a client sees its ``joined`` before the first event of that topic.
A client that falls too far behind is closed with code 1013.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from mememarket.constants import LEADERBOARD_TOPIC, meme_topic
from mememarket.engine.broadcast import Broadcaster, Subscriber

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

# "Try again later": the server dropped this client; reconnect and re-fetch
DROPPED_CLOSE_CODE = 1013


def _error(message: str) -> dict[str, Any]:
    return {"event": "error", "message": message}


def _meme_id(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    return None


def handle_message(broadcaster: Broadcaster, sub: Subscriber, raw: str) -> dict[str, Any]:
    """Apply one client frame and return the reply to queue for it."""
    try:
        msg = json.loads(raw)
    except json.JSONDecodeError:
        return _error("Message is not valid JSON")
    if not isinstance(msg, dict):
        return _error("Message must be a JSON object")

    action = msg.get("action")
    if action == "ping":
        return {"event": "pong"}

    if action in ("join_meme_room", "leave_meme_room"):
        meme_id = _meme_id(msg.get("meme_id"))
        if meme_id is None:
            return _error("'meme_id' must be an integer")
        topic = meme_topic(meme_id)
    elif action in ("join_leaderboard", "leave_leaderboard"):
        topic = LEADERBOARD_TOPIC
    else:
        return _error(f"Unknown action: {action!r}")

    if action.startswith("join"):
        broadcaster.join(sub, topic)
        return {"event": "joined", "topic": topic}
    broadcaster.leave(sub, topic)
    return {"event": "left", "topic": topic}


@router.websocket("/ws")
async def realtime(websocket: WebSocket):
    broadcaster: Broadcaster = websocket.app.state.broadcaster

    await websocket.accept()
    sub = broadcaster.connect(
        websocket.send_json,
        on_drop=lambda: websocket.close(code=DROPPED_CLOSE_CODE),
    )
    logger.info("Realtime client %d connected", sub.id)
    try:
        while not sub.closed:
            raw = await websocket.receive_text()
            broadcaster.send(sub, handle_message(broadcaster, sub, raw))
    except WebSocketDisconnect:
        logger.debug("Realtime client %d went away", sub.id)
    finally:
        broadcaster.disconnect(sub)
        logger.info("Realtime client %d disconnected", sub.id)
