"""
mememarket.services.caption_service — AI Caption & Vibe Generation
====================================================================

Thin async client for the Gemini ``generateContent`` REST endpoint.

* Captions and vibe descriptions are requested concurrently.
* Successful responses are cached per ``(kind, title, tags)`` for
  ``cache_ttl`` seconds; ``fresh=True`` skips the cache read and
  overwrites the entry.  Expired entries are swept on every write and
  the oldest entry is evicted once ``max_entries`` is reached.
* Any failure (no key, HTTP error, timeout, empty text) is logged and
  replaced by a random canned line.  Canned lines are never cached, so
  the next request tries the service again.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass

import httpx

from mememarket.config import MarketConfig
from mememarket.constants import FALLBACK_CAPTIONS, FALLBACK_VIBES
from mememarket.engine.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

GEMINI_API = "https://generativelanguage.googleapis.com/v1beta"

CAPTION = "caption"
VIBE = "vibe"

_PROMPTS = {
    CAPTION: (
        'Generate a funny, short (max 10 words) cyberpunk-themed caption for a '
        'meme with the title "{title}" and tags: {tags}. Make it witty and '
        "internet culture relevant."
    ),
    VIBE: (
        'Based on a meme with title "{title}" and tags: {tags}, generate a short '
        '2-3 word cyberpunk-themed vibe description (like "Neon Crypto Chaos" or '
        '"Digital Wasteland Energy"). Be creative and capture the essence of '
        "internet meme culture with a cyberpunk twist."
    ),
}

_FALLBACKS = {CAPTION: FALLBACK_CAPTIONS, VIBE: FALLBACK_VIBES}


@dataclass(frozen=True, slots=True)
class GeneratedCopy:
    caption: str
    vibe_analysis: str


class CaptionService:
    """Caption/vibe generator with a TTL response cache and canned fallback."""

    def __init__(
        self,
        api_key: str | None,
        *,
        model: str = "gemini-1.5-flash",
        timeout: float = 8.0,
        cache_ttl: float = 3600.0,
        max_entries: int = 1024,
        base_url: str = GEMINI_API,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.cache_ttl = cache_ttl
        self.max_entries = max(1, max_entries)
        self.base_url = base_url.rstrip("/")
        self._transport = transport
        self._clock = clock
        self._cache: dict[tuple[str, str, tuple[str, ...]], tuple[float, str]] = {}

    @classmethod
    def from_config(
        cls,
        cfg: MarketConfig,
        api_key: str | None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> CaptionService:
        return cls(
            api_key,
            model=cfg.textgen_model,
            timeout=cfg.textgen_timeout_seconds,
            cache_ttl=cfg.textgen_cache_ttl_seconds,
            transport=transport,
        )

    # -------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------
    async def generate(
        self, title: str, tags: list[str], *, fresh: bool = False
    ) -> GeneratedCopy:
        """Caption and vibe for a meme, from cache, the service, or fallback."""
        transport = self._transport or httpx.AsyncHTTPTransport(retries=1)
        async with httpx.AsyncClient(timeout=self.timeout, transport=transport) as client:
            caption, vibe = await asyncio.gather(
                self._text(client, CAPTION, title, tags, fresh),
                self._text(client, VIBE, title, tags, fresh),
            )
        return GeneratedCopy(caption=caption, vibe_analysis=vibe)

    # -------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------
    async def _text(
        self,
        client: httpx.AsyncClient,
        kind: str,
        title: str,
        tags: list[str],
        fresh: bool,
    ) -> str:
        key = (kind, title, tuple(tags))
        if not fresh:
            hit = self._cache.get(key)
            if hit is not None:
                expires_at, text = hit
                if self._clock() < expires_at:
                    return text
                self._cache.pop(key, None)

        prompt = _PROMPTS[kind].format(title=title, tags=", ".join(tags))
        try:
            text = await self._complete(client, prompt)
        except UpstreamUnavailable as exc:
            logger.warning("Falling back to canned %s for %r: %s", kind, title, exc)
            return random.choice(_FALLBACKS[kind])

        self._remember(key, text)
        return text

    def _remember(self, key: tuple[str, str, tuple[str, ...]], text: str) -> None:
        now = self._clock()
        for stale in [k for k, (expires_at, _) in self._cache.items() if expires_at <= now]:
            del self._cache[stale]
        self._cache.pop(key, None)
        while len(self._cache) >= self.max_entries:
            # insertion order: oldest write first
            del self._cache[next(iter(self._cache))]
        self._cache[key] = (now + self.cache_ttl, text)

    async def _complete(self, client: httpx.AsyncClient, prompt: str) -> str:
        if not self.api_key:
            raise UpstreamUnavailable("No GEMINI_API_KEY configured")

        url = f"{self.base_url}/models/{self.model}:generateContent"
        try:
            resp = await client.post(
                url,
                params={"key": self.api_key},
                json={"contents": [{"parts": [{"text": prompt}]}]},
            )
        except httpx.HTTPError as exc:
            raise UpstreamUnavailable(f"Text generation request failed: {exc!r}") from exc

        if resp.status_code != 200:
            raise UpstreamUnavailable(f"Text generation returned HTTP {resp.status_code}")

        try:
            text = resp.json()["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise UpstreamUnavailable("Malformed text generation response") from exc

        text = text.strip() if isinstance(text, str) else ""
        if not text:
            raise UpstreamUnavailable("Text generation returned an empty response")
        return text
