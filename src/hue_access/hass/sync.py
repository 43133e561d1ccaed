from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable

import websockets
from pydantic import ValidationError
from websockets.exceptions import WebSocketException

from hue_access.errors import ApiFailure, AuthenticationFailure
from hue_access.hass.api import HassApi, HassAvailability
from hue_access.hass.entities import State, is_supported_entity
from hue_access.listeners import LightEventListener, SceneEventListener

logger = logging.getLogger(__name__)

SUBSCRIBED_EVENTS = ("state_changed", "homeassistant_started")


def websocket_url(origin: str) -> str:
    origin = origin.rstrip("/")
    if origin.startswith("https://"):
        origin = "wss://" + origin[len("https://") :]
    elif origin.startswith("http://"):
        origin = "ws://" + origin[len("http://") :]
    return f"{origin}/api/websocket"


def _parse_state(raw: Any) -> State | None:
    if raw is None:
        return None
    return State.model_validate(raw)


class HassEventHandler:
    """Derives light transitions from Home Assistant's before/after state snapshots."""

    def __init__(
        self,
        *,
        light_events: LightEventListener,
        scene_events: SceneEventListener | None = None,
        availability: HassAvailability | None = None,
    ) -> None:
        self._light_events = light_events
        self._scene_events = scene_events
        self._availability = availability

    async def handle_message(self, message: Any) -> None:
        if not isinstance(message, dict):
            return
        if message.get("type") == "auth_invalid":
            raise AuthenticationFailure(message.get("message") or "Home Assistant rejected the access token")
        if message.get("type") != "event":
            return
        event = message.get("event")
        if not isinstance(event, dict):
            return
        event_type = event.get("event_type")
        if event_type == "homeassistant_started":
            if self._availability is not None:
                self._availability.on_started()
            return
        if event_type != "state_changed":
            return
        data = event.get("data")
        if not isinstance(data, dict) or not isinstance(data.get("entity_id"), str):
            return
        try:
            old_state = _parse_state(data.get("old_state"))
            new_state = _parse_state(data.get("new_state"))
        except ValidationError as exc:
            logger.warning("Ignoring malformed state_changed event for %s: %s", data["entity_id"], exc.errors()[:1])
            return
        try:
            await self._on_state_changed(data["entity_id"], old_state, new_state)
        except AuthenticationFailure:
            raise
        except ApiFailure as exc:
            logger.warning("Failed to handle state change of %s: %s", data["entity_id"], exc)

    async def _on_state_changed(self, entity_id: str, old: State | None, new: State | None) -> None:
        if old is None or new is None:
            return
        if old.is_off and new.is_on:
            if is_supported_entity(entity_id):
                await self._light_events.on_light_on(entity_id)
        elif old.is_unavailable and new.is_on:
            if is_supported_entity(entity_id):
                await self._light_events.on_physical_on(entity_id)
        elif old.is_on and (new.is_off or new.is_unavailable):
            await self._light_events.on_light_off(entity_id)
        elif new.is_scene and not new.is_unavailable and not new.is_unknown and old.state != new.state:
            if self._scene_events is not None:
                await self._scene_events.on_scene_activated(entity_id)


async def authenticate(websocket: Any, access_token: str) -> None:
    greeting = json.loads(await websocket.recv())
    if greeting.get("type") != "auth_required":
        raise ApiFailure(f"Unexpected greeting from Home Assistant: {greeting.get('type')}")
    await websocket.send(json.dumps({"type": "auth", "access_token": access_token}))
    result = json.loads(await websocket.recv())
    if result.get("type") == "auth_invalid":
        raise AuthenticationFailure(result.get("message") or "Home Assistant rejected the access token")
    if result.get("type") != "auth_ok":
        raise ApiFailure(f"Unexpected authentication result: {result.get('type')}")


async def event_stream_loop(
    *,
    origin: str,
    access_token: str,
    handler: HassEventHandler,
    api: HassApi | None = None,
    max_backoff: float = 30.0,
    connect: Callable[[str], Any] = websockets.connect,
) -> None:
    """Follow Home Assistant's websocket event feed, reconnecting with backoff."""
    url = websocket_url(origin)
    backoff = 1.0
    while True:
        try:
            async with connect(url) as websocket:
                await authenticate(websocket, access_token)
                for message_id, event_type in enumerate(SUBSCRIBED_EVENTS, start=1):
                    await websocket.send(
                        json.dumps({"id": message_id, "type": "subscribe_events", "event_type": event_type})
                    )
                logger.info("Subscribed to Home Assistant events")
                backoff = 1.0
                async for raw in websocket:
                    try:
                        message = json.loads(raw)
                    except ValueError:
                        logger.warning("Skipping unparseable Home Assistant message: %.200s", raw)
                        continue
                    await handler.handle_message(message)
            logger.info("Home Assistant event stream closed, reconnecting in %.0fs", backoff)
        except AuthenticationFailure:
            logger.error("Home Assistant rejected the access token, stopping event stream")
            raise
        except (ApiFailure, WebSocketException, OSError, ValueError) as exc:
            logger.warning("Home Assistant event stream failed: %s; retrying in %.0fs", exc, backoff)
        if api is not None:
            api.clear_caches()
        await asyncio.sleep(backoff)
        backoff = min(backoff * 2, max_backoff)
