from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable

from hue_access.api import LightApi
from hue_access.event_hub import LIGHT_OFF, LIGHT_ON, PHYSICAL_ON, SCENE_ACTIVATED, EventHub
from hue_access.override import ManualOverrideTracker

logger = logging.getLogger(__name__)

Callback = Callable[[], Awaitable[None]]


class LightEventListener:
    """Turns light transitions into override-tracker updates and scheduler wake-ups."""

    def __init__(
        self,
        *,
        tracker: ManualOverrideTracker,
        affected_ids_by_device: Callable[[str], Awaitable[list[str]]],
        hub: EventHub | None = None,
        source: str = "bridge",
    ) -> None:
        self._tracker = tracker
        self._affected_ids_by_device = affected_ids_by_device
        self._hub = hub
        self._source = source
        self._waiting: dict[str, list[Callback]] = {}

    async def _publish(self, kind: str, rid: str) -> None:
        if self._hub is not None:
            await self._hub.publish(kind=kind, rid=rid, source=self._source)

    async def on_light_off(self, rid: str) -> None:
        self._tracker.on_light_off(rid)
        await self._publish(LIGHT_OFF, rid)

    async def on_light_on(self, rid: str) -> None:
        self._tracker.on_light_turned_on(rid)
        await self._publish(LIGHT_ON, rid)
        waiting = self._waiting.pop(rid, None)
        if waiting:
            logger.debug("Received on-event for %s, rescheduling %d waiting state(s)", rid, len(waiting))
            for callback in waiting:
                await callback()

    async def on_physical_on(self, device_id: str) -> None:
        await self._publish(PHYSICAL_ON, device_id)
        for rid in await self._affected_ids_by_device(device_id):
            await self.on_light_on(rid)

    async def on_physical_off(self, device_id: str) -> None:
        for rid in await self._affected_ids_by_device(device_id):
            await self.on_light_off(rid)

    def run_when_turned_on(self, rid: str, callback: Callback) -> None:
        self._waiting.setdefault(rid, []).append(callback)


class SceneEventListener:
    """Tracks lights and groups that were recently changed by a scene recall."""

    def __init__(
        self,
        *,
        api: LightApi,
        light_events: LightEventListener,
        ignore_window_seconds: float = 5.0,
        matches_synced_scene_name: Callable[[str | None], bool] = lambda name: False,
        clock: Callable[[], float] = time.monotonic,
        hub: EventHub | None = None,
        source: str = "bridge",
    ) -> None:
        self._api = api
        self._light_events = light_events
        self._window = ignore_window_seconds
        self._matches_synced_scene_name = matches_synced_scene_name
        self._clock = clock
        self._hub = hub
        self._source = source
        self._affected_until: dict[str, float] = {}

    async def on_scene_activated(self, scene_id: str) -> None:
        if self._hub is not None:
            await self._hub.publish(kind=SCENE_ACTIVATED, rid=scene_id, source=self._source)
        scene_name = await self._api.get_scene_name(scene_id)
        affected = list(await self._api.get_affected_ids_by_scene(scene_id))
        for rid in list(affected):
            for group_id in await self._api.get_assigned_groups(rid):
                if group_id not in affected:
                    affected.append(group_id)

        if self._matches_synced_scene_name(scene_name):
            logger.info("Synced scene %s activated, re-engaging scheduler", scene_name)
            for rid in affected:
                await self._light_events.on_light_on(rid)
            return

        expires = self._clock() + self._window
        for rid in affected:
            self._affected_until[rid] = expires

    def was_recently_affected_by_scene(self, rid: str) -> bool:
        expires = self._affected_until.get(rid)
        if expires is None:
            return False
        if self._clock() >= expires:
            del self._affected_until[rid]
            return False
        return True
