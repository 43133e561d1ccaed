from __future__ import annotations

import asyncio
import logging
from typing import Any

from hue_access.bridge.api import EVENT_STREAM_PATH, BridgeApi
from hue_access.errors import ApiFailure, AuthenticationFailure
from hue_access.listeners import LightEventListener, SceneEventListener

logger = logging.getLogger(__name__)

_ACTIVE_SCENE_STATES = {"static", "dynamic_palette"}


def _text_status(item: dict[str, Any]) -> str | None:
    status = item.get("status")
    return status if isinstance(status, str) else None


def is_light_or_group(item: dict[str, Any]) -> bool:
    rtype = item.get("type")
    id_v1 = item.get("id_v1")
    if rtype in ("light", "grouped_light"):
        return True
    return isinstance(id_v1, str) and id_v1.startswith("/lights/")


def is_physical(item: dict[str, Any]) -> bool:
    return item.get("type") == "zigbee_connectivity"


def is_off_event(item: dict[str, Any]) -> bool:
    on = item.get("on")
    if isinstance(on, dict) and on.get("on") is False:
        return True
    return is_physical(item) and _text_status(item) in ("connectivity_issue", "disconnected")


def is_on_event(item: dict[str, Any]) -> bool:
    on = item.get("on")
    if isinstance(on, dict) and on.get("on") is True:
        return True
    return is_physical(item) and _text_status(item) == "connected"


def is_scene_activated(item: dict[str, Any]) -> bool:
    if item.get("type") != "scene":
        return False
    status = item.get("status")
    if not isinstance(status, dict):
        return False
    return status.get("active") in _ACTIVE_SCENE_STATES or status.get("last_recall") is not None


class BridgeEventHandler:
    """Applies CLIP v2 push events to the bridge caches and raises light/scene callbacks."""

    def __init__(
        self,
        *,
        api: BridgeApi,
        light_events: LightEventListener,
        scene_events: SceneEventListener | None = None,
    ) -> None:
        self._api = api
        self._light_events = light_events
        self._scene_events = scene_events

    async def handle_message(self, message: Any) -> None:
        containers = message if isinstance(message, list) else [message]
        for container in containers:
            if not isinstance(container, dict):
                logger.warning("Skipping malformed event container: %.200r", container)
                continue
            data = container.get("data")
            if not isinstance(data, list):
                continue
            for item in data:
                if not isinstance(item, dict):
                    continue
                try:
                    await self._handle_item(container.get("type"), item)
                except AuthenticationFailure:
                    raise
                except ApiFailure as exc:
                    logger.warning("Failed to handle %s event %s: %s", item.get("type"), item.get("id"), exc)

    async def _handle_item(self, container_type: Any, item: dict[str, Any]) -> None:
        rtype = item.get("type")
        rid = item.get("id")
        if not isinstance(rtype, str) or not isinstance(rid, str):
            return

        # The cache is updated before callbacks run so they read the new state.
        if container_type in ("delete", "add"):
            self._api.on_modification(rtype, rid, None)
        else:
            self._api.on_modification(rtype, rid, item)

        if is_light_or_group(item) or is_physical(item):
            owner = item.get("owner")
            device_id = owner.get("rid") if isinstance(owner, dict) else None
            if is_off_event(item):
                if not is_physical(item):
                    await self._light_events.on_light_off(rid)
                elif isinstance(device_id, str):
                    await self._light_events.on_physical_off(device_id)
            elif is_on_event(item):
                if not is_physical(item):
                    await self._light_events.on_light_on(rid)
                elif isinstance(device_id, str):
                    await self._light_events.on_physical_on(device_id)
        elif self._scene_events is not None and is_scene_activated(item):
            await self._scene_events.on_scene_activated(rid)


async def event_stream_loop(
    *,
    api: BridgeApi,
    handler: BridgeEventHandler,
    max_backoff: float = 30.0,
) -> None:
    """Consume the bridge event stream forever, reconnecting with exponential backoff.

    Reconnecting drops every cache since events may have been missed meanwhile.
    Authentication failures end the loop.
    """
    backoff = 1.0
    while True:
        try:
            async for message in api.client.stream_sse_json(EVENT_STREAM_PATH):
                backoff = 1.0
                await handler.handle_message(message)
            logger.info("Bridge event stream closed, reconnecting in %.0fs", backoff)
        except AuthenticationFailure:
            logger.error("Bridge rejected the application key, stopping event stream")
            raise
        except ApiFailure as exc:
            logger.warning("Bridge event stream failed: %s; retrying in %.0fs", exc, backoff)
        api.clear_caches()
        await asyncio.sleep(backoff)
        backoff = min(backoff * 2, max_backoff)
