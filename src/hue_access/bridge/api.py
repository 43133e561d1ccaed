from __future__ import annotations

import asyncio
import logging
from typing import Any, Sequence

import httpx

from hue_access.api import LightApi
from hue_access.bridge.resources import (
    Device,
    Group,
    GroupedLight,
    Light,
    ResourceReference,
    Scene,
    ZigbeeConnectivity,
)
from hue_access.color.converter import convert_color_mode
from hue_access.color.gamut import clamp_to_gamut
from hue_access.errors import (
    AmbiguousName,
    ApiFailure,
    EmptyGroup,
    GroupNotFound,
    LightNotFound,
    WriteResult,
)
from hue_access.http_client import ResourceClient, check_error_envelope
from hue_access.models import (
    Capability,
    ColorMode,
    Gamut,
    Identifier,
    LightCapabilities,
    LightState,
    PutCall,
    widen_capabilities,
)
from hue_access.rate_limit import RateLimiter
from hue_access.scale import brightness_to_dimming, dimming_to_brightness
from hue_access.store import ResourceStore

logger = logging.getLogger(__name__)

RESOURCE_PATH = "/clip/v2/resource"
EVENT_STREAM_PATH = "/eventstream/clip/v2"

DEFAULT_TRANSITION_TIME = 4
GROUP_WRITE_PERMITS = 10


def _gamut_of(light: Light) -> Gamut | None:
    color = light.color
    if color is None or color.gamut is None:
        return None
    g = color.gamut
    return ((g.red.x, g.red.y), (g.green.x, g.green.y), (g.blue.x, g.blue.y))


def light_capabilities(light: Light) -> LightCapabilities:
    capabilities = {Capability.ON_OFF}
    gamut_type = None
    gamut = None
    ct_min = ct_max = None
    effects: tuple[str, ...] = ()
    if light.color is not None:
        capabilities.add(Capability.COLOR)
        gamut_type = light.color.gamut_type
        gamut = _gamut_of(light)
    if light.color_temperature is not None:
        capabilities.add(Capability.COLOR_TEMPERATURE)
        schema = light.color_temperature.mirek_schema
        if schema is not None:
            ct_min, ct_max = schema.mirek_minimum, schema.mirek_maximum
    if light.dimming is not None:
        capabilities.add(Capability.BRIGHTNESS)
    if light.effects_v2 is not None and light.effects_v2.status is not None:
        effects = tuple(e for e in light.effects_v2.status.effect_values if e != "no_effect")
    return LightCapabilities(
        gamut_type=gamut_type,
        color_gamut=gamut,
        ct_min=ct_min,
        ct_max=ct_max,
        capabilities=frozenset(capabilities),
        effects=effects,
    )


def light_state(light: Light, *, unavailable: bool) -> LightState:
    brightness = None
    if light.dimming is not None and light.dimming.brightness is not None:
        brightness = dimming_to_brightness(light.dimming.brightness)

    ct = None
    if light.color_temperature is not None and light.color_temperature.mirek_valid:
        ct = light.color_temperature.mirek

    x = y = None
    if light.color is not None and light.color.xy is not None:
        x, y = light.color.xy.x, light.color.xy.y

    effect = None
    if light.effects_v2 is not None and light.effects_v2.status is not None:
        active = light.effects_v2.status.effect
        if active and active != "no_effect":
            effect = active

    if ct is not None:
        color_mode = ColorMode.CT
    elif light.color is not None:
        color_mode = ColorMode.XY
    else:
        color_mode = ColorMode.NONE

    return LightState(
        id=light.id,
        on=bool(light.on and light.on.on),
        unavailable=unavailable,
        brightness=brightness,
        color_temperature=ct,
        x=x,
        y=y,
        effect=effect,
        color_mode=color_mode,
        capabilities=light_capabilities(light),
    )


def build_action(call: PutCall, gamut: Gamut | None) -> dict[str, Any]:
    """CLIP v2 request body for a light or grouped_light update."""
    action: dict[str, Any] = {}
    if call.on is not None:
        action["on"] = {"on": call.on}
    if call.transition_time is not None and call.transition_time != DEFAULT_TRANSITION_TIME:
        action["dynamics"] = {"duration": call.transition_time * 100}
    if call.on is False:
        return action
    mode = call.color_mode
    if mode is ColorMode.CT:
        action["color_temperature"] = {"mirek": call.ct}
    elif mode is ColorMode.XY:
        x, y = clamp_to_gamut((call.x, call.y), gamut)  # type: ignore[arg-type]
        action["color"] = {"xy": {"x": x, "y": y}}
    if call.bri is not None:
        action["dimming"] = {"brightness": brightness_to_dimming(call.bri)}
    if call.effect is not None:
        effect = "no_effect" if call.effect == "none" else call.effect
        action["effects_v2"] = {"action": {"effect": effect}}
        action.pop("color_temperature", None)
        action.pop("color", None)
    return action


def scene_action(call: PutCall, gamut: Gamut | None) -> dict[str, Any]:
    """Scene actions always carry ``on``; a recalled scene turns its lights on by default."""
    action = build_action(call, gamut)
    action.setdefault("on", {"on": True})
    return action


def _created_id(response: Any) -> str | None:
    data = response.get("data") if isinstance(response, dict) else None
    if isinstance(data, list) and data and isinstance(data[0], dict):
        rid = data[0].get("rid")
        if isinstance(rid, str):
            return rid
    return None


def adapt_to_capabilities(call: PutCall, capabilities: LightCapabilities) -> PutCall:
    gamut = capabilities.color_gamut
    if call.color_mode is ColorMode.HS:
        target = ColorMode.CT if capabilities.is_ct_supported and not capabilities.is_color_supported else ColorMode.XY
        call = convert_color_mode(call, gamut, ColorMode.HS, target)
    if call.color_mode is ColorMode.XY and capabilities.is_ct_supported and not capabilities.is_color_supported:
        call = convert_color_mode(call, gamut, ColorMode.XY, ColorMode.CT)
    if call.color_mode is ColorMode.CT and capabilities.is_color_supported and not capabilities.is_ct_supported:
        call = convert_color_mode(call, gamut, ColorMode.CT, ColorMode.XY)

    if not capabilities.is_brightness_supported:
        call = call.with_changes(bri=None)
    if not capabilities.is_ct_supported:
        call = call.with_changes(ct=None)
    if not capabilities.is_color_supported:
        call = call.with_changes(x=None, y=None)
    if call.ct is not None:
        call = call.with_changes(ct=capabilities.clamp_ct(call.ct))
    return call


def _assert_no_scheme(host: str) -> None:
    if "://" in host:
        raise ValueError(f"Bridge host '{host}' must not contain a scheme")


def _legacy(kind: str, legacy_id: str) -> str:
    return legacy_id if legacy_id.startswith("/") else f"/{kind}/{legacy_id}"


class BridgeApi(LightApi):
    """CLIP v2 backend with one push-synchronised store per resource type."""

    def __init__(
        self,
        *,
        host: str,
        application_key: str,
        rate_limiter: RateLimiter,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        _assert_no_scheme(host)
        self.client = ResourceClient(
            base_url=f"https://{host}",
            headers={"hue-application-key": application_key},
            verify=False,
            transport=transport,
        )
        self._rate_limiter = rate_limiter
        self._scene_lock = asyncio.Lock()
        self.lights: ResourceStore[Light] = self._store("light", Light)
        self.grouped_lights: ResourceStore[GroupedLight] = self._store("grouped_light", GroupedLight)
        self.scenes: ResourceStore[Scene] = self._store("scene", Scene)
        self.devices: ResourceStore[Device] = self._store("device", Device)
        self.rooms: ResourceStore[Group] = self._store("room", Group)
        self.zones: ResourceStore[Group] = self._store("zone", Group)
        self.connectivity: ResourceStore[ZigbeeConnectivity] = self._store(
            "zigbee_connectivity", ZigbeeConnectivity
        )
        self._stores: dict[str, ResourceStore[Any]] = {
            store.rtype: store
            for store in (
                self.lights,
                self.grouped_lights,
                self.scenes,
                self.devices,
                self.rooms,
                self.zones,
                self.connectivity,
            )
        }

    def _store(self, rtype: str, model: type[Any]) -> ResourceStore[Any]:
        async def loader() -> Any:
            logger.debug("Fetching all %s resources", rtype)
            return await self.client.get_json(f"{RESOURCE_PATH}/{rtype}")

        return ResourceStore(rtype=rtype, model=model, loader=loader)

    async def close(self) -> None:
        await self.client.close()

    async def assert_connection(self) -> None:
        await self.lights.get_or_load()

    async def _groups(self) -> dict[str, Group]:
        rooms = await self.rooms.get_or_load()
        zones = await self.zones.get_or_load()
        return {**rooms, **zones}

    async def get_light_identifier(self, legacy_id: str) -> Identifier:
        wanted = _legacy("lights", legacy_id)
        for light in (await self.lights.get_or_load()).values():
            if light.id_v1 == wanted:
                return Identifier(id=light.id, name=light.name)
        raise LightNotFound(f"Could not find light with id '{legacy_id}'")

    async def get_group_identifier(self, legacy_id: str) -> Identifier:
        wanted = _legacy("groups", legacy_id)
        for group in (await self._groups()).values():
            if group.id_v1 == wanted:
                return Identifier(id=self._grouped_light_id(group), name=group.name)
        raise GroupNotFound(f"Could not find group with id '{legacy_id}'")

    async def get_light_identifier_by_name(self, name: str) -> Identifier:
        ids = await self.lights.ids_for_name(name)
        if not ids:
            raise LightNotFound(f"Light with name '{name}' was not found!")
        if len(ids) > 1:
            raise AmbiguousName(f"Light name '{name}' is not unique", candidates=ids)
        return Identifier(id=ids[0], name=name)

    async def get_group_identifier_by_name(self, name: str) -> Identifier:
        ids = await self.rooms.ids_for_name(name) + await self.zones.ids_for_name(name)
        if not ids:
            raise GroupNotFound(f"Group with name '{name}' was not found!")
        groups = await self._groups()
        grouped_light_ids = [self._grouped_light_id(groups[gid]) for gid in ids]
        if len(grouped_light_ids) > 1:
            raise AmbiguousName(f"Group name '{name}' is not unique", candidates=grouped_light_ids)
        return Identifier(id=grouped_light_ids[0], name=name)

    @staticmethod
    def _grouped_light_id(group: Group) -> str:
        for service in group.services:
            if service.rtype == "grouped_light":
                return service.rid
        raise GroupNotFound(f"No grouped_light found for '{group.id}'")

    async def _light(self, light_id: str) -> Light:
        light = await self.lights.get(light_id)
        if light is None:
            raise LightNotFound(f"Light with id '{light_id}' was not found!")
        return light

    async def _grouped_light(self, grouped_light_id: str) -> GroupedLight:
        grouped = await self.grouped_lights.get(grouped_light_id)
        if grouped is None:
            raise GroupNotFound(f"GroupedLight with id '{grouped_light_id}' was not found!")
        return grouped

    async def _group_for_reference(self, reference: ResourceReference | None) -> Group:
        if reference is None:
            raise GroupNotFound("Resource has no owning group")
        store = self.rooms if reference.rtype == "room" else self.zones
        group = await store.get(reference.rid)
        if group is None:
            kind = "Room" if reference.rtype == "room" else "Zone"
            raise GroupNotFound(f"{kind} with id '{reference.rid}' was not found!")
        return group

    async def _group(self, grouped_light_id: str) -> Group:
        grouped = await self._grouped_light(grouped_light_id)
        return await self._group_for_reference(grouped.owner)

    async def _is_unavailable(self, light: Light) -> bool:
        if light.owner is None:
            return False
        device = await self.devices.get(light.owner.rid)
        if device is None:
            return False
        for service in device.services:
            if service.rtype == "zigbee_connectivity":
                sensor = await self.connectivity.get(service.rid)
                return sensor is not None and sensor.status in ("connectivity_issue", "disconnected")
        return False

    async def get_light_state(self, light_id: str) -> LightState:
        light = await self._light(light_id)
        return light_state(light, unavailable=await self._is_unavailable(light))

    async def get_group_states(self, group_id: str) -> list[LightState]:
        lights = await self.lights.get_or_load()
        states = []
        for light_id in await self.get_group_lights(group_id):
            light = lights.get(light_id)
            if light is not None:
                states.append(light_state(light, unavailable=await self._is_unavailable(light)))
        return states

    async def is_group_off(self, group_id: str) -> bool:
        grouped = await self._grouped_light(group_id)
        return not (grouped.on and grouped.on.on)

    async def _contained_light_ids(self, group: Group) -> list[str]:
        light_ids: list[str] = []
        for child in group.children:
            if child.rtype == "light":
                light_ids.append(child.rid)
            elif child.rtype == "device":
                device = await self.devices.get(child.rid)
                if device is not None:
                    light_ids.extend(s.rid for s in device.services if s.rtype == "light")
        return light_ids

    async def get_group_lights(self, group_id: str) -> list[str]:
        group = await self._group(group_id)
        light_ids = await self._contained_light_ids(group)
        if not light_ids:
            raise EmptyGroup(f"Group with id '{group_id}' has no lights to control!")
        return light_ids

    async def get_group_name(self, group_id: str) -> str | None:
        return (await self._group(group_id)).name

    async def get_scene_name(self, scene_id: str) -> str | None:
        scene = await self.scenes.get(scene_id)
        return scene.name if scene else None

    async def get_affected_ids_by_scene(self, scene_id: str) -> list[str]:
        scene = await self.scenes.get(scene_id)
        if scene is None:
            return []
        affected = [
            action.target.rid
            for action in scene.actions
            if isinstance(action.action.get("on"), dict) and action.action["on"].get("on") is True
        ]
        group = await self._group_for_reference(scene.group)
        affected.append(self._grouped_light_id(group))
        return affected

    async def get_affected_ids_by_device(self, device_id: str) -> list[str]:
        device = await self.devices.get(device_id)
        if device is None:
            return []
        light_ids = [s.rid for s in device.services if s.rtype == "light"]
        group_ids: list[str] = []
        for light_id in light_ids:
            group_ids.extend(await self.get_assigned_groups(light_id))
        return light_ids + group_ids

    async def get_assigned_groups(self, light_id: str) -> list[str]:
        assigned = []
        for group in (await self._groups()).values():
            if light_id in await self._contained_light_ids(group):
                assigned.append(self._grouped_light_id(group))
        return assigned

    async def get_light_capabilities(self, light_id: str) -> LightCapabilities:
        return light_capabilities(await self._light(light_id))

    async def get_group_capabilities(self, group_id: str) -> LightCapabilities:
        members = [await self.get_light_capabilities(light_id) for light_id in await self.get_group_lights(group_id)]
        return widen_capabilities(members)

    async def put_state(self, call: PutCall) -> WriteResult:
        if call.is_empty():
            return WriteResult.APPLIED
        if call.group:
            capabilities = await self.get_group_capabilities(call.id)
            path = f"{RESOURCE_PATH}/grouped_light/{call.id}"
            permits = GROUP_WRITE_PERMITS
        else:
            capabilities = await self.get_light_capabilities(call.id)
            path = f"{RESOURCE_PATH}/light/{call.id}"
            permits = 1
        call = adapt_to_capabilities(call, capabilities)
        body = build_action(call, capabilities.color_gamut)
        await self._rate_limiter.acquire(permits)
        response = await self.client.put_json(path, json_body=body)
        return check_error_envelope(response)

    async def _scene_actions(self, group: Group, calls: Sequence[PutCall]) -> list[dict[str, Any]]:
        light_ids = await self._contained_light_ids(group)
        if not light_ids:
            raise EmptyGroup(f"Group with id '{group.id}' has no lights for a scene!")
        by_id = {call.id: call for call in calls}
        actions = []
        for light_id in light_ids:
            capabilities = await self.get_light_capabilities(light_id)
            call = adapt_to_capabilities(by_id.get(light_id) or PutCall(id=light_id, on=False), capabilities)
            actions.append(
                {
                    "target": {"rid": light_id, "rtype": "light"},
                    "action": scene_action(call, capabilities.color_gamut),
                }
            )
        return actions

    async def _find_scene(self, group: Group, name: str) -> Scene | None:
        for scene in (await self.scenes.get_or_load()).values():
            if scene.group is not None and scene.group.rid == group.id and scene.name == name:
                return scene
        return None

    async def create_or_update_scene(self, group_id: str, scene_name: str, calls: Sequence[PutCall]) -> str:
        """Keep a bridge scene named ``scene_name`` on the group in sync with ``calls``.

        Lights of the group without a call are stored as off. The scene is only
        written when it is missing or an action changed.
        """
        async with self._scene_lock:
            grouped = await self._grouped_light(group_id)
            group = await self._group_for_reference(grouped.owner)
            actions = await self._scene_actions(group, calls)
            existing = await self._find_scene(group, scene_name)
            if existing is None:
                body = {
                    "type": "scene",
                    "metadata": {"name": scene_name},
                    "group": {"rid": group.id, "rtype": grouped.owner.rtype},  # type: ignore[union-attr]
                    "actions": actions,
                }
                await self._rate_limiter.acquire(GROUP_WRITE_PERMITS)
                response = await self.client.post_json(f"{RESOURCE_PATH}/scene", json_body=body)
                check_error_envelope(response)
                scene_id = _created_id(response)
                if scene_id is None:
                    raise ApiFailure(f"Bridge did not return an id for new scene '{scene_name}'", body=response)
                logger.info("Created scene %s (%s) for group %s", scene_id, scene_name, group_id)
            else:
                scene_id = existing.id
                current = [action.model_dump(mode="json", exclude_none=True) for action in existing.actions]
                if all(action in current for action in actions):
                    return scene_id
                await self._rate_limiter.acquire(GROUP_WRITE_PERMITS)
                response = await self.client.put_json(
                    f"{RESOURCE_PATH}/scene/{scene_id}", json_body={"actions": actions}
                )
                check_error_envelope(response)
                logger.info("Updated scene %s (%s) for group %s", scene_id, scene_name, group_id)
            self.scenes.invalidate()
            return scene_id

    def on_modification(self, rtype: str | None, rid: str | None, content: Any) -> None:
        if rtype is None or rid is None:
            return
        store = self._stores.get(rtype)
        if store is None:
            return
        if content is not None and not isinstance(content, dict):
            logger.warning("Invalidating %s cache after unparseable update for %s", rtype, rid)
            store.invalidate()
            return
        if content is None:
            store.remove(rid)
            store.invalidate()
            return
        store.patch(rid, content)

    def clear_caches(self) -> None:
        for store in self._stores.values():
            store.invalidate()

