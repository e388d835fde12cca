from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)

STOCK_UPDATES_TOPIC = "/topic/stock-updates"


class Subscription:
    def __init__(self, topic: str, max_queue_size: int) -> None:
        self.topic = topic
        self.queue: asyncio.Queue[dict] = asyncio.Queue(maxsize=max_queue_size)
        self.dropped = 0


class PriceBroadcaster:
    """Fire-and-forget fan-out of price events to websocket subscribers.

    `publish` may be called from any thread. Messages are handed to the bound
    event loop with `call_soon_threadsafe`; a subscriber whose queue is full
    loses the message instead of slowing the publisher down.
    """

    def __init__(self, max_queue_size: int = 100) -> None:
        self.max_queue_size = max_queue_size
        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._subscriptions: list[Subscription] = []
        self._metrics = {
            "published": 0,
            "delivered": 0,
            "dropped": 0,
        }

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        with self._lock:
            self._loop = loop

    def unbind_loop(self) -> None:
        with self._lock:
            self._loop = None

    def subscribe(self, topic: str = STOCK_UPDATES_TOPIC) -> Subscription:
        sub = Subscription(topic, self.max_queue_size)
        with self._lock:
            self._subscriptions.append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

    @staticmethod
    def _render(payload: Any) -> Any:
        if isinstance(payload, BaseModel):
            return payload.model_dump(mode="json")
        return payload

    def _deliver(self, sub: Subscription, message: dict) -> None:
        try:
            sub.queue.put_nowait(message)
        except asyncio.QueueFull:
            sub.dropped += 1
            with self._lock:
                self._metrics["dropped"] += 1
            logger.warning("[WS][drop] topic=%s queue_size=%s", sub.topic, sub.queue.qsize())
            return
        with self._lock:
            self._metrics["delivered"] += 1

    def publish(self, topic: str, payload: Any) -> int:
        try:
            message = {"topic": topic, "payload": self._render(payload)}
        except Exception as exc:
            logger.error("[WS][publish_error] topic=%s error=%s", topic, exc)
            return 0

        with self._lock:
            self._metrics["published"] += 1
            loop = self._loop
            targets = [s for s in self._subscriptions if s.topic == topic]

        if loop is None or loop.is_closed():
            return 0

        scheduled = 0
        for sub in targets:
            try:
                loop.call_soon_threadsafe(self._deliver, sub, message)
                scheduled += 1
            except RuntimeError as exc:
                # loop closed between the check and the call
                logger.debug("[WS][publish_skip] topic=%s reason=%s", topic, exc)
                break
        return scheduled

    def metrics(self) -> dict:
        with self._lock:
            return {
                "subscribers": len(self._subscriptions),
                **self._metrics,
            }
