"""
mememarket.constants — Shared names and canned copy
=====================================================

Realtime topic/event names are part of the client wire contract, so they
live here rather than next to the broadcaster.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Realtime topics
# ---------------------------------------------------------------------------
LEADERBOARD_TOPIC = "leaderboard"
MEME_TOPIC_PREFIX = "meme_"


def meme_topic(meme_id: int) -> str:
    """Topic name for a single meme's room."""
    return f"{MEME_TOPIC_PREFIX}{meme_id}"


# ---------------------------------------------------------------------------
# Realtime events (server → client)
# ---------------------------------------------------------------------------
EVENT_BID_PLACED = "bid_placed"
EVENT_VOTE_UPDATE = "vote_update"
EVENT_LEADERBOARD_UPDATE = "leaderboard_update"

# ---------------------------------------------------------------------------
# Fallback copy for when the text-generation service is unavailable
# ---------------------------------------------------------------------------
FALLBACK_CAPTIONS: tuple[str, ...] = (
    "YOLO to the moon!",
    "When the matrix glitches just right",
    "HODL the vibes!",
    "The cyberpunk we deserve",
    "Error 404: Reality not found",
    "Hack the planet, one meme at a time",
    "Neural network overload",
    "Glitching through the metaverse",
)

FALLBACK_VIBES: tuple[str, ...] = (
    "Neon Crypto Chaos",
    "Digital Wasteland Energy",
    "Terminal Hacker Aesthetic",
    "Glitch Matrix Syndrome",
    "Cyberpunk Nostalgia",
    "Night City Dreams",
    "Virtual Reality Meltdown",
    "Blockchain Fever Dream",
)

# Usernames offered by the mock login on an empty database
DEMO_USERNAMES: tuple[str, ...] = (
    "neon_ninja",
    "glitch_queen",
    "cyber_samurai",
    "data_ghost",
    "synth_runner",
)
