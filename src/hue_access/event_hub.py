from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable

LIGHT_ON = "light.on"
LIGHT_OFF = "light.off"
PHYSICAL_ON = "device.physical_on"
SCENE_ACTIVATED = "scene.activated"


@dataclass(frozen=True)
class LightEvent:
    cursor: int
    ts: str
    kind: str
    rid: str
    source: str

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Subscription:
    queue: "asyncio.Queue[LightEvent]"
    unsubscribe: Callable[[], Awaitable[None]]


class EventHub:
    """Fans semantic light/scene events out to queue subscribers and keeps a short history."""

    def __init__(self, *, max_queue_size: int = 200, history: int = 100) -> None:
        self._cursor = 0
        self._history: deque[LightEvent] = deque(maxlen=max(1, history))
        self._subscribers: set[asyncio.Queue[LightEvent]] = set()
        self._max_queue_size = max_queue_size
        self._lock = asyncio.Lock()

    async def subscribe(self) -> Subscription:
        queue: asyncio.Queue[LightEvent] = asyncio.Queue(maxsize=self._max_queue_size)
        async with self._lock:
            self._subscribers.add(queue)

        async def _unsubscribe() -> None:
            async with self._lock:
                self._subscribers.discard(queue)

        return Subscription(queue=queue, unsubscribe=_unsubscribe)

    async def publish(self, *, kind: str, rid: str, source: str) -> LightEvent:
        async with self._lock:
            self._cursor += 1
            event = LightEvent(
                cursor=self._cursor,
                ts=time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
                kind=kind,
                rid=rid,
                source=source,
            )
            self._history.append(event)
            subscribers = list(self._subscribers)

        for queue in subscribers:
            # A slow subscriber loses its oldest event instead of stalling the push stream.
            if queue.full():
                try:
                    queue.get_nowait()
                except asyncio.QueueEmpty:
                    pass
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                pass
        return event

    def recent(self, limit: int | None = None) -> list[LightEvent]:
        events = list(self._history)
        if limit is not None:
            events = events[-limit:] if limit > 0 else []
        return events
