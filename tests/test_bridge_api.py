import httpx
import pytest

from hue_access.bridge.api import BridgeApi, adapt_to_capabilities, build_action
from hue_access.color.gamut import GAMUT_C
from hue_access.errors import (
    AmbiguousName,
    ApiFailure,
    AuthenticationFailure,
    EmptyGroup,
    GroupNotFound,
    LightNotFound,
    WriteResult,
)
from hue_access.models import Capability, ColorMode, LightCapabilities, PutCall
from hue_access.rate_limit import RateLimiter


@pytest.mark.asyncio
async def test_legacy_ids_resolve_to_resource_ids(fake_bridge):
    api = fake_bridge.api()
    try:
        light = await api.get_light_identifier("4")
        assert (light.id, light.name) == ("l1", "Desk")
        assert (await api.get_light_identifier("/lights/5")).id == "l2"

        group = await api.get_group_identifier("1")
        assert (group.id, group.name) == ("g1", "Office")

        with pytest.raises(LightNotFound):
            await api.get_light_identifier("99")
        with pytest.raises(GroupNotFound):
            await api.get_group_identifier("99")
    finally:
        await api.close()


@pytest.mark.asyncio
async def test_names_resolve_case_insensitively(fake_bridge):
    api = fake_bridge.api()
    try:
        assert (await api.get_light_identifier_by_name("  desk")).id == "l1"
        assert (await api.get_group_identifier_by_name("OFFICE")).id == "g1"
        with pytest.raises(LightNotFound):
            await api.get_light_identifier_by_name("Nope")
        with pytest.raises(GroupNotFound):
            await api.get_group_identifier_by_name("Nope")
    finally:
        await api.close()


@pytest.mark.asyncio
async def test_duplicate_light_names_are_ambiguous(fake_bridge):
    fake_bridge.resources["light"].append({"id": "l3", "type": "light", "metadata": {"name": "DESK"}})
    api = fake_bridge.api()
    try:
        with pytest.raises(AmbiguousName) as exc:
            await api.get_light_identifier_by_name("Desk")
        assert exc.value.candidates == ["l1", "l3"]
    finally:
        await api.close()


@pytest.mark.asyncio
async def test_group_lights_and_name_come_from_cache(fake_bridge):
    api = fake_bridge.api()
    try:
        assert await api.get_group_lights("g1") == ["l1", "l2"]
        assert await api.get_group_name("g1") == "Office"
        assert await api.get_group_lights("g1") == ["l1", "l2"]

        assert fake_bridge.fetches("room") == 1
        assert fake_bridge.fetches("grouped_light") == 1
        assert fake_bridge.fetches("device") == 1
    finally:
        await api.close()


@pytest.mark.asyncio
async def test_group_without_lights_is_empty(fake_bridge):
    api = fake_bridge.api()
    try:
        with pytest.raises(EmptyGroup):
            await api.get_group_lights("g2")
        with pytest.raises(GroupNotFound):
            await api.get_group_lights("nope")
    finally:
        await api.close()


@pytest.mark.asyncio
async def test_light_state_and_unavailability(fake_bridge):
    api = fake_bridge.api()
    try:
        desk = await api.get_light_state("l1")
        assert desk.on and not desk.unavailable
        assert desk.brightness == 127
        assert desk.color_temperature == 300
        assert (desk.x, desk.y) == (0.4, 0.4)
        assert desk.color_mode is ColorMode.CT
        assert desk.effect is None
        assert not await api.is_light_off("l1")

        shelf = await api.get_light_state("l2")
        assert shelf.unavailable
        assert shelf.brightness == 254
        assert shelf.color_temperature is None
        assert await api.is_light_off("l2")

        states = await api.get_group_states("g1")
        assert [s.id for s in states] == ["l1", "l2"]
        assert not await api.is_group_off("g1")
        assert await api.is_group_off("g2")
    finally:
        await api.close()


@pytest.mark.asyncio
async def test_capabilities(fake_bridge):
    api = fake_bridge.api()
    try:
        desk = await api.get_light_capabilities("l1")
        assert desk.capabilities == frozenset(
            {Capability.ON_OFF, Capability.BRIGHTNESS, Capability.COLOR, Capability.COLOR_TEMPERATURE}
        )
        assert desk.gamut_type == "C"
        assert desk.color_gamut == GAMUT_C
        assert (desk.ct_min, desk.ct_max) == (153, 454)
        assert desk.effects == ("candle", "fire")

        shelf = await api.get_light_capabilities("l2")
        assert not shelf.is_color_supported
        assert shelf.is_ct_supported

        group = await api.get_group_capabilities("g1")
        assert (group.ct_min, group.ct_max) == (153, 500)
        assert group.is_color_supported
        assert group.gamut_type == "C"
    finally:
        await api.close()


@pytest.mark.asyncio
async def test_scene_and_device_relations(fake_bridge):
    api = fake_bridge.api()
    try:
        assert await api.get_scene_name("s1") == "Relax"
        assert await api.get_scene_name("missing") is None
        assert await api.get_affected_ids_by_scene("s1") == ["l1", "g1"]
        assert await api.get_affected_ids_by_scene("missing") == []
        assert await api.get_affected_ids_by_device("d1") == ["l1", "g1"]
        assert await api.get_affected_ids_by_device("missing") == []
        assert await api.get_assigned_groups("l2") == ["g1"]
    finally:
        await api.close()


@pytest.mark.asyncio
async def test_put_state_for_ct_only_light_converts_xy(fake_bridge):
    api = fake_bridge.api()
    try:
        result = await api.put_state(PutCall(id="l2", on=True, bri=254, x=0.4578, y=0.4101, transition_time=10))
        assert result is WriteResult.APPLIED

        ((path, body),) = fake_bridge.puts()
        assert path == "/clip/v2/resource/light/l2"
        assert body["on"] == {"on": True}
        assert body["dynamics"] == {"duration": 1000}
        assert body["dimming"] == {"brightness": 100.0}
        assert "color" not in body
        assert 360 <= body["color_temperature"]["mirek"] <= 375
    finally:
        await api.close()


@pytest.mark.asyncio
async def test_put_state_clamps_ct_and_omits_default_transition(fake_bridge):
    api = fake_bridge.api()
    try:
        await api.put_state(PutCall(id="l1", ct=600, transition_time=4))
        ((_, body),) = fake_bridge.puts()
        assert body == {"color_temperature": {"mirek": 454}}
    finally:
        await api.close()


@pytest.mark.asyncio
async def test_put_state_for_group_uses_grouped_light(fake_bridge):
    api = fake_bridge.api()
    try:
        await api.put_state(PutCall(id="g1", group=True, on=False, bri=100))
        ((path, body),) = fake_bridge.puts()
        assert path == "/clip/v2/resource/grouped_light/g1"
        assert body == {"on": {"on": False}}
    finally:
        await api.close()


@pytest.mark.asyncio
async def test_put_state_reports_light_off(fake_bridge):
    fake_bridge.put_response = [{"error": {"type": 201, "description": "device is set to off"}}]
    api = fake_bridge.api()
    try:
        assert await api.put_state(PutCall(id="l1", bri=10)) is WriteResult.LIGHT_OFF
    finally:
        await api.close()


@pytest.mark.asyncio
async def test_empty_put_state_is_not_sent(fake_bridge):
    api = fake_bridge.api()
    try:
        assert await api.put_state(PutCall(id="l1")) is WriteResult.APPLIED
        assert fake_bridge.requests == []
    finally:
        await api.close()


@pytest.mark.asyncio
async def test_patch_updates_cached_light_without_refetch(fake_bridge):
    api = fake_bridge.api()
    try:
        await api.get_light_state("l1")
        api.on_modification("light", "l1", {"id": "l1", "type": "light", "color_temperature": {"mirek": 250}})

        desk = await api.get_light_state("l1")
        assert desk.color_temperature == 250
        capabilities = await api.get_light_capabilities("l1")
        assert (capabilities.ct_min, capabilities.ct_max) == (153, 454)
        assert fake_bridge.fetches("light") == 1
    finally:
        await api.close()


@pytest.mark.asyncio
async def test_malformed_patch_keeps_cached_value(fake_bridge):
    api = fake_bridge.api()
    try:
        await api.get_light_state("l1")
        api.on_modification("light", "l1", {"on": {"on": "sort of"}})

        assert (await api.get_light_state("l1")).on is True
        assert fake_bridge.fetches("light") == 1
    finally:
        await api.close()


@pytest.mark.asyncio
async def test_null_payload_refetches_once(fake_bridge):
    api = fake_bridge.api()
    try:
        await api.get_light_state("l1")
        api.on_modification("light", "l1", None)

        await api.get_light_state("l1")
        await api.get_light_state("l2")
        assert fake_bridge.fetches("light") == 2
    finally:
        await api.close()


@pytest.mark.asyncio
async def test_unknown_types_and_clear_caches(fake_bridge):
    api = fake_bridge.api()
    try:
        await api.get_light_state("l1")
        api.on_modification("motion", "m1", {"motion": {"motion": True}})
        api.on_modification(None, "l1", None)
        await api.get_light_state("l1")
        assert fake_bridge.fetches("light") == 1

        api.clear_caches()
        await api.get_light_state("l1")
        assert fake_bridge.fetches("light") == 2
    finally:
        await api.close()


def test_host_with_scheme_is_rejected():
    with pytest.raises(ValueError):
        BridgeApi(host="https://bridge.test", application_key="abc", rate_limiter=RateLimiter(permits_per_second=1))


def test_build_action_effect_drops_color():
    body = build_action(PutCall(id="l1", on=True, ct=300, effect="none"), None)
    assert body == {"on": {"on": True}, "effects_v2": {"action": {"effect": "no_effect"}}}


def test_build_action_clamps_xy_into_gamut():
    body = build_action(PutCall(id="l1", x=0.9, y=0.3, bri=1), GAMUT_C)
    assert (body["color"]["xy"]["x"], body["color"]["xy"]["y"]) == GAMUT_C[0]
    assert body["dimming"] == {"brightness": 0.39}


def test_adapt_hs_for_color_light_becomes_xy():
    capabilities = LightCapabilities(
        color_gamut=GAMUT_C,
        capabilities=frozenset({Capability.ON_OFF, Capability.COLOR, Capability.BRIGHTNESS}),
    )
    adapted = adapt_to_capabilities(PutCall(id="l1", hue=0, sat=254, ct=None), capabilities)
    assert adapted.hue is None and adapted.sat is None
    assert adapted.x > 0.6


def test_adapt_strips_unsupported_fields():
    on_off = LightCapabilities(capabilities=frozenset({Capability.ON_OFF}))
    adapted = adapt_to_capabilities(PutCall(id="p1", on=True, bri=100, ct=300), on_off)
    assert adapted == PutCall(id="p1", on=True)


@pytest.mark.asyncio
async def test_error_envelope_on_collection_read_is_not_parsed_as_data():
    envelopes = iter(
        [
            [{"error": {"type": 1, "description": "unauthorized user"}}],
            [{"error": {"type": 3, "description": "resource, /lights, not available"}}],
        ]
    )

    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=next(envelopes))

    api = BridgeApi(
        host="bridge.test",
        application_key="abc",
        rate_limiter=RateLimiter(permits_per_second=10),
        transport=httpx.MockTransport(handler),
    )
    try:
        with pytest.raises(AuthenticationFailure):
            await api.get_light_state("x")
        with pytest.raises(ApiFailure) as exc:
            await api.get_light_state("x")
        assert exc.value.message == "resource, /lights, not available"
    finally:
        await api.close()


@pytest.mark.asyncio
async def test_connectivity_sensor_without_status_is_not_unavailable(fake_bridge):
    del fake_bridge.resources["zigbee_connectivity"][1]["status"]
    api = fake_bridge.api()
    try:
        assert not (await api.get_light_state("l2")).unavailable
    finally:
        await api.close()


@pytest.mark.asyncio
async def test_put_state_on_ct_only_light_with_xy_on_the_singular_line(fake_bridge):
    api = fake_bridge.api()
    try:
        await api.put_state(PutCall(id="l2", on=True, x=0.3, y=0.1858))

        ((_, body),) = fake_bridge.puts()
        assert body["color_temperature"] == {"mirek": 500}
    finally:
        await api.close()


def test_adapt_xy_on_the_singular_line_for_ct_only_light():
    ct_only = LightCapabilities(
        ct_min=153,
        ct_max=454,
        capabilities=frozenset({Capability.ON_OFF, Capability.COLOR_TEMPERATURE, Capability.BRIGHTNESS}),
    )
    adapted = adapt_to_capabilities(PutCall(id="l1", x=0.3, y=0.1858), ct_only)
    assert adapted == PutCall(id="l1", ct=454)


@pytest.mark.asyncio
async def test_create_scene_stores_every_group_light(fake_bridge):
    api = fake_bridge.api()
    try:
        scene_id = await api.create_or_update_scene("g1", "Evening", [PutCall(id="l1", bri=254, ct=300)])

        assert scene_id == "s-new"
        ((path, body),) = fake_bridge.posts()
        assert path == "/clip/v2/resource/scene"
        assert body == {
            "type": "scene",
            "metadata": {"name": "Evening"},
            "group": {"rid": "r1", "rtype": "room"},
            "actions": [
                {
                    "target": {"rid": "l1", "rtype": "light"},
                    "action": {
                        "on": {"on": True},
                        "color_temperature": {"mirek": 300},
                        "dimming": {"brightness": 100.0},
                    },
                },
                {"target": {"rid": "l2", "rtype": "light"}, "action": {"on": {"on": False}}},
            ],
        }
    finally:
        await api.close()


@pytest.mark.asyncio
async def test_unchanged_scene_is_not_written(fake_bridge):
    api = fake_bridge.api()
    try:
        scene_id = await api.create_or_update_scene("g1", "Relax", [PutCall(id="l1", on=True)])

        assert scene_id == "s1"
        assert fake_bridge.posts() == []
        assert fake_bridge.puts() == []
    finally:
        await api.close()


@pytest.mark.asyncio
async def test_changed_scene_is_updated_in_place(fake_bridge):
    api = fake_bridge.api()
    try:
        scene_id = await api.create_or_update_scene("g1", "Relax", [PutCall(id="l1", bri=127)])

        assert scene_id == "s1"
        ((path, body),) = fake_bridge.puts()
        assert path == "/clip/v2/resource/scene/s1"
        assert body["actions"][0]["action"] == {"on": {"on": True}, "dimming": {"brightness": 50.0}}
        assert fake_bridge.posts() == []

        await api.get_scene_name("s1")
        assert fake_bridge.fetches("scene") == 2
    finally:
        await api.close()


@pytest.mark.asyncio
async def test_scene_creation_without_returned_id_fails(fake_bridge):
    fake_bridge.post_response = {"data": [], "errors": []}
    api = fake_bridge.api()
    try:
        with pytest.raises(ApiFailure):
            await api.create_or_update_scene("g1", "Evening", [])
    finally:
        await api.close()
