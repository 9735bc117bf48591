from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Any

from starlette.websockets import WebSocket

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocationUpdated:
    bike: dict[str, Any]
    coordinate: tuple[float, float]

    def to_message(self) -> dict[str, Any]:
        return {
            "type": "location.updated",
            "data": {
                "bike": self.bike,
                "coordinate": {"longitude": self.coordinate[0], "latitude": self.coordinate[1]},
            },
        }


class Subscription:
    def __init__(self, loop: asyncio.AbstractEventLoop, maxsize: int) -> None:
        self._loop = loop
        self._queue: asyncio.Queue[LocationUpdated] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def offer(self, event: LocationUpdated) -> None:
        # Must run on the subscriber's loop.
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1

    def deliver(self, event: LocationUpdated) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self.offer(event)
        elif not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self.offer, event)

    async def get(self) -> LocationUpdated:
        return await self._queue.get()

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> LocationUpdated:
        return await self.get()


class LocationBroadcaster:
    """Fans location events out to every live viewer, at most once each.

    Viewers that subscribe after a publish miss that event; they are
    expected to fetch a fresh snapshot on connect.
    """

    def __init__(self, *, queue_size: int = 100) -> None:
        self._subscriptions: set[Subscription] = set()
        self._lock = threading.Lock()
        self._queue_size = queue_size

    def subscribe(self) -> Subscription:
        subscription = Subscription(asyncio.get_running_loop(), self._queue_size)
        with self._lock:
            self._subscriptions.add(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscriptions.discard(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def publish(self, event: LocationUpdated) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            subscription.deliver(event)


async def forward_events(websocket: WebSocket, subscription: Subscription) -> None:
    async for event in subscription:
        try:
            await websocket.send_json(event.to_message())
        except Exception:  # noqa: BLE001
            logger.debug("Viewer went away while sending", exc_info=True)
            return
