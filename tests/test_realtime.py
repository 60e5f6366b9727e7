"""
tests/test_realtime.py — WebSocket Protocol Tests
===================================================
Join/leave acks, malformed frames, and events pushed by HTTP mutations
to clients subscribed over ``/api/ws``.
"""

from __future__ import annotations

from dataclasses import replace

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from conftest import TEST_CONFIG
from mememarket.api.main import create_app
from mememarket.api.routes.realtime import DROPPED_CLOSE_CODE, handle_message
from mememarket.engine.broadcast import Broadcaster, Subscriber


class TestHandleMessage:
    """Frame parsing without a socket (subscriber is never started)."""

    def _sub(self, b: Broadcaster) -> Subscriber:
        sub = Subscriber(1, send=None, max_pending=8)
        b._subscribers[sub.id] = sub
        return sub

    def test_join_and_leave_meme_room(self):
        b = Broadcaster()
        sub = self._sub(b)

        reply = handle_message(b, sub, '{"action": "join_meme_room", "meme_id": 4}')
        assert reply == {"event": "joined", "topic": "meme_4"}
        assert b.subscriber_count("meme_4") == 1

        reply = handle_message(b, sub, '{"action": "leave_meme_room", "meme_id": "4"}')
        assert reply == {"event": "left", "topic": "meme_4"}
        assert b.subscriber_count("meme_4") == 0

    def test_leaderboard_and_ping(self):
        b = Broadcaster()
        sub = self._sub(b)
        assert handle_message(b, sub, '{"action": "join_leaderboard"}')["topic"] == "leaderboard"
        assert handle_message(b, sub, '{"action": "ping"}') == {"event": "pong"}

    def test_malformed_frames(self):
        b = Broadcaster()
        sub = self._sub(b)
        for raw in ("not json", "[1, 2]", '{"action": "dance"}',
                    '{"action": "join_meme_room"}', '{"action": "join_meme_room", "meme_id": true}'):
            reply = handle_message(b, sub, raw)
            assert reply["event"] == "error"
            assert reply["message"]
        assert b.topics() == []


class TestWebSocket:
    def test_ping_pong(self, client):
        with client.websocket_connect("/api/ws") as ws:
            ws.send_json({"action": "ping"})
            assert ws.receive_json() == {"event": "pong"}

    def test_bid_reaches_meme_room(self, client, users, meme_id):
        with client.websocket_connect("/api/ws") as ws:
            ws.send_json({"action": "join_meme_room", "meme_id": meme_id})
            assert ws.receive_json() == {"event": "joined", "topic": f"meme_{meme_id}"}

            resp = client.post(
                "/api/bids",
                json={"meme_id": meme_id, "user_id": users["bob"], "credits": 30},
            )
            assert resp.status_code == 201

            event = ws.receive_json()
            assert event["event"] == "bid_placed"
            assert event["topic"] == f"meme_{meme_id}"
            assert event["data"]["credits"] == 30
            assert event["data"]["user"]["username"] == "bob"

    def test_vote_reaches_leaderboard_subscribers(self, client, users, meme_id):
        with client.websocket_connect("/api/ws") as ws:
            ws.send_json({"action": "join_leaderboard"})
            assert ws.receive_json()["event"] == "joined"

            client.post(f"/api/votes/{meme_id}", json={"userId": users["alice"], "voteType": False})

            event = ws.receive_json()
            assert event == {
                "event": "leaderboard_update",
                "topic": "leaderboard",
                "data": {"reason": "vote", "meme_id": meme_id},
            }

    def test_events_follow_publish_order(self, client, users, meme_id):
        with client.websocket_connect("/api/ws") as ws:
            ws.send_json({"action": "join_meme_room", "meme_id": meme_id})
            ws.receive_json()

            for amount in (10, 20, 30):
                client.post(
                    "/api/bids",
                    json={"meme_id": meme_id, "user_id": users["alice"], "credits": amount},
                )
            amounts = [ws.receive_json()["data"]["credits"] for _ in range(3)]
            assert amounts == [10, 20, 30]

    def test_error_reply_keeps_connection_open(self, client):
        with client.websocket_connect("/api/ws") as ws:
            ws.send_text("{oops")
            assert ws.receive_json()["event"] == "error"
            ws.send_json({"action": "ping"})
            assert ws.receive_json() == {"event": "pong"}


class TestDroppedClient:
    def test_backlogged_listener_is_closed(self, db_engine, captions, users, meme_id):
        app = create_app(
            cfg=replace(TEST_CONFIG, realtime_max_pending=1),
            engine=db_engine,
            captions=captions,
        )
        with TestClient(app, raise_server_exceptions=False) as client:
            with client.websocket_connect("/api/ws") as ws:
                ws.send_json({"action": "join_meme_room", "meme_id": meme_id})
                assert ws.receive_json()["event"] == "joined"
                ws.send_json({"action": "join_leaderboard"})
                assert ws.receive_json()["event"] == "joined"

                # bid_placed and leaderboard_update are queued back to back
                resp = client.post(
                    "/api/bids",
                    json={"meme_id": meme_id, "user_id": users["bob"], "credits": 30},
                )
                assert resp.status_code == 201

                with pytest.raises(WebSocketDisconnect) as exc:
                    for _ in range(5):
                        ws.receive_json()
                assert exc.value.code == DROPPED_CLOSE_CODE == 1013
                assert app.state.broadcaster.subscriber_count() == 0
