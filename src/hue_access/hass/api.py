from __future__ import annotations

import logging
import re
from typing import Any, Awaitable, Callable, Sequence

import httpx
from pydantic import ValidationError

from hue_access.api import LightApi
from hue_access.errors import (
    AmbiguousName,
    ApiFailure,
    ConnectionFailure,
    EmptyGroup,
    GroupNotFound,
    LightNotFound,
    UnsupportedResourceType,
    WriteResult,
)
from hue_access.hass.entities import State, SupportedEntityType, is_supported_entity
from hue_access.http_client import ResourceClient, check_error_envelope
from hue_access.models import (
    Capability,
    ColorMode,
    Identifier,
    LightCapabilities,
    LightState,
    PutCall,
)
from hue_access.rate_limit import RateLimiter
from hue_access.scale import hass_to_hue_brightness, hue_to_hass_brightness
from hue_access.store import ResourceStore

logger = logging.getLogger(__name__)

GROUP_WRITE_PERMITS = 10

_COLOR_MODES = {"color_temp": ColorMode.CT, "xy": ColorMode.XY, "hs": ColorMode.HS}


class HassAvailability:
    """Tracks whether Home Assistant finished starting up."""

    def __init__(self) -> None:
        self.fully_started = False
        self._initial_check_done = False

    def on_started(self) -> None:
        self.fully_started = True

    async def perform_initial_check(self, check: Callable[[], Awaitable[bool]]) -> None:
        if self._initial_check_done:
            return
        self._initial_check_done = True
        if await check():
            logger.info("Home Assistant already available")
            self.fully_started = True


def _assert_supported(entity_id: str) -> SupportedEntityType:
    entity_type = SupportedEntityType.from_entity_id(entity_id)
    if entity_type is None:
        raise UnsupportedResourceType(f"Entity with id '{entity_id}' is not supported")
    return entity_type


def state_capabilities(state: State) -> LightCapabilities:
    attributes = state.attributes
    capabilities = {Capability.ON_OFF}
    modes = attributes.supported_color_modes or []
    if "color_temp" in modes:
        capabilities.update((Capability.COLOR_TEMPERATURE, Capability.BRIGHTNESS))
    if "xy" in modes or "hs" in modes:
        capabilities.update((Capability.COLOR, Capability.BRIGHTNESS))
    if "brightness" in modes:
        capabilities.add(Capability.BRIGHTNESS)
    effects = tuple(
        effect.lower() for effect in attributes.effect_list or [] if effect.lower() not in ("none", "unknown")
    )
    return LightCapabilities(
        ct_min=attributes.min_mireds,
        ct_max=attributes.max_mireds,
        capabilities=frozenset(capabilities),
        effects=effects,
    )


def state_to_light_state(state: State) -> LightState:
    attributes = state.attributes
    xy = attributes.xy_color
    return LightState(
        id=state.entity_id,
        on=state.is_on,
        unavailable=state.is_unavailable,
        brightness=hass_to_hue_brightness(attributes.brightness) if attributes.brightness is not None else None,
        color_temperature=attributes.color_temp,
        x=xy[0] if xy and len(xy) == 2 else None,
        y=xy[1] if xy and len(xy) == 2 else None,
        effect=attributes.effect.lower() if attributes.effect else None,
        color_mode=_COLOR_MODES.get(attributes.color_mode or "", ColorMode.NONE),
        capabilities=state_capabilities(state),
    )


def build_service_call(call: PutCall) -> dict[str, Any]:
    """Body for ``light.turn_on``/``turn_off``; unset fields are left out."""
    body: dict[str, Any] = {"entity_id": call.id}
    if call.transition_time is not None:
        body["transition"] = call.transition_time / 10
    if call.on is False:
        return body
    if call.bri is not None:
        body["brightness"] = hue_to_hass_brightness(call.bri)
    if call.ct is not None:
        body["color_temp"] = call.ct
    if call.hue is not None and call.sat is not None:
        body["hs_color"] = [int(call.hue / 65535.0 * 360.0), int(call.sat / 254.0 * 100.0)]
    elif call.x is not None and call.y is not None:
        body["xy_color"] = [call.x, call.y]
    if call.effect is not None:
        body["effect"] = call.effect
    return body


def scene_sync_id(scene_name: str, group_id: str) -> str:
    """Object id of a scene created through ``scene.create``."""
    return re.sub(r"\W", "_", f"{scene_name}_{group_id}".lower())


def build_scene_entity_state(call: PutCall) -> dict[str, Any]:
    state = build_service_call(call.with_changes(on=None))
    del state["entity_id"]
    state["state"] = "off" if call.on is False else "on"
    return state


class HassApi(LightApi):
    """Home Assistant REST backend; entity ids double as legacy ids."""

    def __init__(
        self,
        *,
        origin: str,
        access_token: str,
        rate_limiter: RateLimiter,
        availability: HassAvailability | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.client = ResourceClient(
            base_url=f"{origin.rstrip('/')}/api",
            headers={"Authorization": f"Bearer {access_token}"},
            transport=transport,
        )
        self.availability = availability or HassAvailability()
        self._rate_limiter = rate_limiter
        self.states: ResourceStore[State] = ResourceStore(
            rtype="state",
            model=State,
            loader=self._fetch_states,
            id_of=lambda state: state.entity_id,
            name_of=lambda state: state.attributes.friendly_name,
        )

    async def _fetch_states(self) -> Any:
        logger.debug("Fetching all Home Assistant states")
        body = await self.client.get_json("/states")
        if body is not None and not isinstance(body, list):
            raise ApiFailure("Failed to parse states response", body=body)
        return body

    async def close(self) -> None:
        await self.client.close()

    async def assert_connection(self) -> None:
        async def has_states() -> bool:
            try:
                return bool(await self.states.get_or_load())
            except ApiFailure:
                return False

        await self.availability.perform_initial_check(has_states)
        if not self.availability.fully_started:
            raise ConnectionFailure("Home Assistant not fully started yet")

    async def _state(self, entity_id: str) -> State:
        state = await self.states.get(entity_id)
        if state is None:
            raise LightNotFound(f"Entity with id '{entity_id}' not found!")
        return state

    async def _states_by_name(self, name: str) -> list[State]:
        states = await self.states.get_or_load()
        ids = await self.states.ids_for_name(name)
        if not ids:
            raise LightNotFound(f"Entity with name '{name}' was not found!")
        return [states[entity_id] for entity_id in ids]

    async def _state_by_name(self, name: str) -> State:
        matches = await self._states_by_name(name)
        if len(matches) > 1:
            raise AmbiguousName(
                f"There are {len(matches)} entities with the name '{name}'. Please use a unique id instead.",
                candidates=[state.entity_id for state in matches],
            )
        return matches[0]

    async def get_light_identifier(self, legacy_id: str) -> Identifier:
        _assert_supported(legacy_id)
        state = await self._state(legacy_id)
        return Identifier(id=legacy_id, name=state.attributes.friendly_name)

    async def get_group_identifier(self, legacy_id: str) -> Identifier:
        return await self.get_light_identifier(legacy_id)

    async def get_light_identifier_by_name(self, name: str) -> Identifier:
        state = await self._state_by_name(name)
        return Identifier(id=state.entity_id, name=name)

    async def get_group_identifier_by_name(self, name: str) -> Identifier:
        state = await self._state_by_name(name)
        if not state.is_group:
            raise GroupNotFound(f"No group with name '{name}' found")
        return Identifier(id=state.entity_id, name=name)

    async def get_light_state(self, light_id: str) -> LightState:
        _assert_supported(light_id)
        body = await self.client.get_json(f"/states/{light_id}")
        try:
            state = State.model_validate(body)
        except ValidationError as exc:
            raise ApiFailure(f"Failed to parse state response for id {light_id}", body=body) from exc
        return state_to_light_state(state)

    async def get_group_states(self, group_id: str) -> list[LightState]:
        light_ids = await self.get_group_lights(group_id)
        states = await self.states.get_or_load()
        return [
            state_to_light_state(states[light_id])
            for light_id in light_ids
            if light_id in states and is_supported_entity(light_id)
        ]

    async def is_group_off(self, group_id: str) -> bool:
        return await self.is_light_off(group_id)

    async def _non_group_entity_id(self, name: str) -> str:
        for state in await self._states_by_name(name):
            if not state.is_group:
                return state.entity_id
        raise LightNotFound(f"Non-group entity with name '{name}' was not found!")

    async def get_group_lights(self, group_id: str) -> list[str]:
        _assert_supported(group_id)
        state = await self._state(group_id)
        if not state.is_group:
            raise GroupNotFound(f"No group with id '{group_id}' found")
        if state.is_hass_group:
            light_ids = list(state.attributes.entity_id or [])
        else:
            light_ids = [await self._non_group_entity_id(name) for name in state.attributes.lights or []]
        if not light_ids:
            raise EmptyGroup(f"Group with id '{group_id}' does not contain any lights!")
        return light_ids

    async def get_group_name(self, group_id: str) -> str | None:
        return (await self._state(group_id)).attributes.friendly_name

    async def get_scene_name(self, scene_id: str) -> str | None:
        scene = await self.states.get(scene_id)
        return scene.attributes.friendly_name if scene else None

    async def get_affected_ids_by_scene(self, scene_id: str) -> list[str]:
        scene = await self.states.get(scene_id)
        if scene is None:
            return []
        affected = list(scene.attributes.entity_id or [])
        group_name = scene.attributes.group_name
        if group_name is not None:
            # Scenes imported from a Hue bridge only name their room or zone.
            try:
                group_id = (await self.get_group_identifier_by_name(group_name)).id
                affected.append(group_id)
                affected.extend(await self.get_group_lights(group_id))
            except ApiFailure as exc:
                logger.debug("Could not resolve group '%s' of scene %s: %s", group_name, scene_id, exc)
        return affected

    async def get_affected_ids_by_device(self, device_id: str) -> list[str]:
        return await self.get_assigned_groups(device_id) + [device_id]

    async def get_assigned_groups(self, light_id: str) -> list[str]:
        light_name = (await self.get_light_identifier(light_id)).name
        assigned = []
        for state in (await self.states.get_or_load()).values():
            if state.is_hass_group:
                if light_id in (state.attributes.entity_id or []):
                    assigned.append(state.entity_id)
            elif state.is_hue_group and light_name in (state.attributes.lights or []):
                assigned.append(state.entity_id)
        return assigned

    async def get_light_capabilities(self, light_id: str) -> LightCapabilities:
        _assert_supported(light_id)
        return state_capabilities(await self._state(light_id))

    async def get_group_capabilities(self, group_id: str) -> LightCapabilities:
        return await self.get_light_capabilities(group_id)

    async def put_state(self, call: PutCall) -> WriteResult:
        entity_type = _assert_supported(call.id)
        if call.is_empty():
            return WriteResult.APPLIED
        await self._rate_limiter.acquire(GROUP_WRITE_PERMITS if call.group else 1)
        service = "turn_off" if call.on is False else "turn_on"
        response = await self.client.post_json(
            f"/services/{entity_type.value}/{service}", json_body=build_service_call(call)
        )
        return check_error_envelope(response)

    async def create_or_update_scene(self, group_id: str, scene_name: str, calls: Sequence[PutCall]) -> str:
        scene_id = scene_sync_id(scene_name, group_id)
        body = {
            "scene_id": scene_id,
            "entities": {call.id: build_scene_entity_state(call) for call in calls},
        }
        await self._rate_limiter.acquire(1)
        response = await self.client.post_json("/services/scene/create", json_body=body)
        check_error_envelope(response)
        return f"scene.{scene_id}"

    def on_modification(self, rtype: str | None, rid: str | None, content: Any) -> None:
        if rid is None:
            return
        if content is None:
            self.states.remove(rid)
            return
        try:
            state = content if isinstance(content, State) else State.model_validate(content)
        except ValidationError:
            logger.warning("Ignoring unparseable state for %s", rid)
            return
        self.states.replace(rid, state)

    def clear_caches(self) -> None:
        self.states.invalidate()
