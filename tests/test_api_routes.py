"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================
Drives the HTTP surface through ``TestClient`` against an in-memory
SQLite engine:

- response shapes for memes, bids, votes and users
- domain errors rendered as ``{"error", "message"}`` with their status
- the leaderboard endpoint honouring fresh bids and votes
"""

from __future__ import annotations

import pytest

from conftest import credits_of, make_meme


# ===========================================================================
# Health
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


# ===========================================================================
# Memes
# ===========================================================================
class TestMemeRoutes:
    def test_list_memes(self, client, meme_id):
        resp = client.get("/api/memes")
        assert resp.status_code == 200
        body = resp.json()
        assert [m["id"] for m in body] == [meme_id]
        assert body[0]["tags"] == ["doge", "matrix"]
        assert body[0]["owner"]["username"] == "alice"
        assert body[0]["score"] == 0

    def test_get_meme_and_404(self, client, meme_id):
        assert client.get(f"/api/memes/{meme_id}").json()["title"] == "Doge in the Matrix"

        resp = client.get("/api/memes/999")
        assert resp.status_code == 404
        assert resp.json()["error"] == "meme_not_found"

    def test_create_meme_accepts_image_alias(self, client, users):
        resp = client.post(
            "/api/memes",
            json={
                "title": "Stonks",
                "image": "https://img.example/stonks.png",
                "tags": ["finance", " finance ", ""],
                "owner_id": users["bob"],
            },
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["image_url"] == "https://img.example/stonks.png"
        assert body["tags"] == ["finance"]
        assert body["caption"].startswith("Caption #1")
        assert body["current_bid"] == 0

    def test_create_meme_missing_title(self, client):
        resp = client.post("/api/memes", json={"image_url": "https://x"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_input"

    def test_create_meme_unknown_owner(self, client):
        resp = client.post(
            "/api/memes", json={"title": "t", "image_url": "https://x", "owner_id": 4242}
        )
        assert resp.status_code == 404

    def test_update_and_delete(self, client, meme_id):
        resp = client.put(f"/api/memes/{meme_id}", json={"tags": ["neo"]})
        assert resp.status_code == 200
        assert resp.json()["tags"] == ["neo"]

        assert client.put(f"/api/memes/{meme_id}", json={}).status_code == 400

        resp = client.delete(f"/api/memes/{meme_id}")
        assert resp.json() == {"success": True}
        assert client.delete(f"/api/memes/{meme_id}").status_code == 404

    def test_by_tag_and_search(self, client, db_engine, meme_id):
        make_meme(db_engine, "Cat Vibes", tags=("cat",))

        assert [m["id"] for m in client.get("/api/memes/tag/doge").json()] == [meme_id]
        found = client.get("/api/memes/search", params={"query": "MATRIX"}).json()
        assert [m["id"] for m in found] == [meme_id]

    @pytest.mark.parametrize("params", [{}, {"query": "  "}])
    def test_search_requires_query(self, client, params):
        resp = client.get("/api/memes/search", params=params)
        assert resp.status_code == 400

    def test_regenerate_caption(self, client, captions, meme_id):
        resp = client.post(f"/api/memes/{meme_id}/caption")
        assert resp.status_code == 200
        body = resp.json()
        assert body["meme"]["caption"] == body["caption"]
        assert captions.calls[-1][2] is True


# ===========================================================================
# Leaderboard
# ===========================================================================
class TestLeaderboardRoute:
    def test_ranked_with_positions(self, client, db_engine):
        low = make_meme(db_engine, "Low", upvotes=1)
        high = make_meme(db_engine, "High", upvotes=5)

        body = client.get("/api/memes/top").json()
        assert [(m["id"], m["rank"]) for m in body] == [(high, 1), (low, 2)]

    def test_limit_bounds(self, client):
        assert client.get("/api/memes/top", params={"limit": 0}).status_code == 422
        assert client.get("/api/memes/top", params={"limit": 101}).status_code == 422

    def test_fresh_after_vote(self, client, db_engine, users):
        first = make_meme(db_engine, "First", upvotes=1)
        second = make_meme(db_engine, "Second")
        assert client.get("/api/memes/top").json()[0]["id"] == first

        client.post(f"/api/votes/{second}", json={"userId": users["alice"], "voteType": True})
        client.post(f"/api/votes/{second}", json={"userId": users["bob"], "voteType": True})
        assert client.get("/api/memes/top").json()[0]["id"] == second


# ===========================================================================
# Bids
# ===========================================================================
class TestBidRoutes:
    def test_place_bid(self, client, db_engine, users, meme_id):
        resp = client.post(
            "/api/bids", json={"meme_id": meme_id, "user_id": users["alice"], "credits": 50}
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["credits"] == 50
        assert body["meme_title"] == "Doge in the Matrix"
        assert body["user_credits"] == 950
        assert body["websocket_event"] == "bid_placed"
        assert credits_of(db_engine, users["alice"]) == 950

    def test_outbid_scenario_over_http(self, client, users, meme_id):
        def bid(who, amount):
            return client.post(
                "/api/bids", json={"meme_id": meme_id, "user_id": users[who], "credits": amount}
            )

        assert bid("alice", 50).status_code == 201
        low = bid("bob", 50)
        assert low.status_code == 400
        assert low.json()["error"] == "bid_too_low"
        assert bid("bob", 75).status_code == 201

        history = client.get(f"/api/bids/meme/{meme_id}").json()
        assert [(b["credits"], b["user"]["username"]) for b in history] == [
            (75, "bob"), (50, "alice"),
        ]
        assert client.get(f"/api/memes/{meme_id}").json()["current_bid"] == 75

    @pytest.mark.parametrize(
        ("payload", "status", "code"),
        [
            ({"credits": 0}, 400, "invalid_amount"),
            ({"credits": "fifty"}, 400, "invalid_amount"),
            ({"credits": True}, 400, "invalid_amount"),
            ({"credits": 5000}, 400, "insufficient_credits"),
            ({"user_id": 999, "credits": 5}, 404, "user_not_found"),
            ({"meme_id": 999, "credits": 5}, 404, "meme_not_found"),
        ],
    )
    def test_bid_errors(self, client, users, meme_id, payload, status, code):
        body = {"meme_id": meme_id, "user_id": users["alice"], **payload}
        resp = client.post("/api/bids", json=body)
        assert resp.status_code == status
        assert resp.json()["error"] == code
        assert resp.json()["message"]

    def test_bid_history_for_missing_meme(self, client):
        assert client.get("/api/bids/meme/999").status_code == 404


# ===========================================================================
# Votes
# ===========================================================================
class TestVoteRoutes:
    def test_vote_toggle_and_flip(self, client, users, meme_id):
        def vote(up):
            return client.post(
                f"/api/votes/{meme_id}", json={"userId": users["alice"], "voteType": up}
            ).json()

        first = vote(True)
        assert (first["upvotes"], first["downvotes"], first["action"]) == (1, 0, "create")
        assert first["vote_type"] == "upvote"
        assert (vote(True)["upvotes"], vote(False)["downvotes"]) == (0, 1)
        flipped = vote(True)
        assert (flipped["upvotes"], flipped["downvotes"], flipped["action"]) == (1, 0, "flip")

    def test_vote_requires_boolean(self, client, users, meme_id):
        resp = client.post(
            f"/api/votes/{meme_id}", json={"userId": users["alice"], "voteType": "up"}
        )
        assert resp.status_code == 400

    def test_vote_on_missing_meme(self, client, users):
        resp = client.post("/api/votes/999", json={"userId": users["alice"], "voteType": True})
        assert resp.status_code == 404
        assert resp.json()["error"] == "meme_not_found"


# ===========================================================================
# Users
# ===========================================================================
class TestUserRoutes:
    def test_list_and_get(self, client, users):
        names = [u["username"] for u in client.get("/api/users").json()]
        assert names == ["alice", "bob"]
        assert client.get(f"/api/users/{users['bob']}").json()["credits"] == 1000
        assert client.get("/api/users/999").status_code == 404

    def test_set_credits(self, client, users):
        resp = client.patch(f"/api/users/{users['bob']}/credits", json={"credits": 42})
        assert resp.status_code == 200
        assert resp.json()["credits"] == 42

        bad = client.patch(f"/api/users/{users['bob']}/credits", json={"credits": -5})
        assert bad.status_code == 400
