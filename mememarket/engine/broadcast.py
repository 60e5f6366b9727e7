"""
mememarket.engine.broadcast — Topic Pub/Sub for Realtime Clients
==================================================================

A topic registry mapping topic name → set of connected subscribers;
:meth:`Broadcaster.publish` iterates that set.

Delivery contract:

* **At-most-once, fire-and-forget.**  No persistence or replay.  A client
  that joins after an event was published never sees it and must
  re-fetch state.
* **Per-topic publish order.**  Each subscriber owns a FIFO queue drained
  by exactly one writer task, and ``publish`` enqueues synchronously, so
  every subscriber observes a topic's events in publish order.  Nothing
  is promised across topics.
* **Drops close the connection.**  A failed send or an overflowing queue
  removes the subscriber, discards whatever was still pending and runs
  its ``on_drop`` callback (the WebSocket route closes the socket with
  code 1013), so the client knows to reconnect and re-fetch state.  A
  client-initiated disconnect just forgets the subscriber.

All methods must be called from the event loop thread.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

SendFunc = Callable[[dict[str, Any]], Awaitable[None]]
DropFunc = Callable[[], Awaitable[None]]

DEFAULT_MAX_PENDING = 256


class Subscriber:
    """One connected client: its joined topics and outbound queue."""

    def __init__(
        self,
        subscriber_id: int,
        send: SendFunc,
        max_pending: int,
        on_drop: DropFunc | None = None,
    ) -> None:
        self.id = subscriber_id
        self.topics: set[str] = set()
        self._send = send
        self._on_drop = on_drop
        self._drop_task: asyncio.Task | None = None
        self._queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=max_pending)
        self._task: asyncio.Task | None = None
        self.closed = False

    def offer(self, message: dict[str, Any]) -> bool:
        """Enqueue *message*; False if the subscriber is closed or backed up."""
        if self.closed:
            return False
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            return False
        return True

    def start(self, on_failure: Callable[[Subscriber], None]) -> None:
        async def _pump() -> None:
            while True:
                message = await self._queue.get()
                try:
                    await self._send(message)
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    logger.debug("Send to subscriber %d failed: %s", self.id, exc)
                    on_failure(self)
                    return

        self._task = asyncio.get_running_loop().create_task(
            _pump(), name=f"realtime-subscriber-{self.id}"
        )

    def close(self, *, dropped: bool = False) -> None:
        self.closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        if dropped and self._on_drop is not None and self._drop_task is None:
            self._drop_task = asyncio.get_running_loop().create_task(
                self._notify_drop(), name=f"realtime-drop-{self.id}"
            )

    async def _notify_drop(self) -> None:
        try:
            await self._on_drop()
        except Exception as exc:
            logger.debug("Closing dropped subscriber %d failed: %s", self.id, exc)

    def __repr__(self) -> str:
        return f"<Subscriber id={self.id} topics={sorted(self.topics)}>"


class Broadcaster:
    """Single-process fan-out of events to topic subscribers.

    Usage::

        sub = broadcaster.connect(websocket.send_json)
        broadcaster.join(sub, "leaderboard")
        broadcaster.publish("leaderboard", "leaderboard_update", {...})
        broadcaster.disconnect(sub)
    """

    def __init__(self, max_pending: int = DEFAULT_MAX_PENDING) -> None:
        self._max_pending = max_pending
        self._topics: dict[str, set[Subscriber]] = {}
        self._subscribers: dict[int, Subscriber] = {}
        self._ids = itertools.count(1)

    # -------------------------------------------------------------------
    # Connection lifecycle
    # -------------------------------------------------------------------
    def connect(self, send: SendFunc, on_drop: DropFunc | None = None) -> Subscriber:
        """Register a client.  It receives nothing until it joins a topic.

        *on_drop* is awaited once if the server drops the subscriber
        (failed send or backlog), never when the client disconnects.
        """
        sub = Subscriber(next(self._ids), send, self._max_pending, on_drop)
        self._subscribers[sub.id] = sub
        sub.start(self._drop_failed)
        logger.debug("Subscriber %d connected", sub.id)
        return sub

    def disconnect(self, sub: Subscriber, *, dropped: bool = False) -> None:
        """Forget *sub* and drop its pending deliveries.  Idempotent."""
        if self._subscribers.pop(sub.id, None) is None:
            return
        for topic in list(sub.topics):
            self._discard(topic, sub)
        sub.topics.clear()
        sub.close(dropped=dropped)
        logger.debug("Subscriber %d disconnected", sub.id)

    async def close(self) -> None:
        """Disconnect everyone (app shutdown)."""
        for sub in list(self._subscribers.values()):
            self.disconnect(sub)
        await asyncio.sleep(0)

    # -------------------------------------------------------------------
    # Topic membership
    # -------------------------------------------------------------------
    def join(self, sub: Subscriber, topic: str) -> None:
        if sub.id not in self._subscribers:
            return
        self._topics.setdefault(topic, set()).add(sub)
        sub.topics.add(topic)

    def leave(self, sub: Subscriber, topic: str) -> None:
        self._discard(topic, sub)
        sub.topics.discard(topic)

    def _discard(self, topic: str, sub: Subscriber) -> None:
        members = self._topics.get(topic)
        if members is None:
            return
        members.discard(sub)
        if not members:
            del self._topics[topic]

    # -------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------
    def send(self, sub: Subscriber, message: dict[str, Any]) -> bool:
        """Queue a direct message (acks, errors) behind *sub*'s pending events."""
        if sub.offer(message):
            return True
        self._drop_backlogged(sub)
        return False

    def publish(self, topic: str, event: str, data: dict[str, Any] | None = None) -> int:
        """Enqueue *event* for every current subscriber of *topic*.

        Returns the number of subscribers the event was queued for.
        """
        members = self._topics.get(topic)
        if not members:
            return 0

        message = {"event": event, "topic": topic, "data": data or {}}
        delivered = 0
        for sub in list(members):
            if sub.offer(message):
                delivered += 1
            else:
                self._drop_backlogged(sub)
        logger.debug("Published %s to %s (%d subscribers)", event, topic, delivered)
        return delivered

    def _drop_backlogged(self, sub: Subscriber) -> None:
        if not sub.closed:
            logger.warning(
                "Subscriber %d exceeded %d pending events; disconnecting",
                sub.id, self._max_pending,
            )
        self.disconnect(sub, dropped=True)

    def _drop_failed(self, sub: Subscriber) -> None:
        self.disconnect(sub, dropped=True)

    # -------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------
    def subscriber_count(self, topic: str | None = None) -> int:
        if topic is None:
            return len(self._subscribers)
        return len(self._topics.get(topic, ()))

    def topics(self) -> list[str]:
        return sorted(self._topics)
