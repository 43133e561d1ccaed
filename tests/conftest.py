import copy
import json
from typing import Any

import httpx
import pytest

from hue_access.bridge.api import BridgeApi
from hue_access.color.gamut import GAMUT_C
from hue_access.config import AppConfig
from hue_access.hass.api import HassApi
from hue_access.rate_limit import RateLimiter


@pytest.fixture
def config() -> AppConfig:
    return AppConfig(
        port=8000,
        bridge_host="bridge.test",
        application_key="abc",
        hass_origin=None,
        hass_access_token=None,
        bridge_rate_limit_rps=1000.0,
        hass_rate_limit_rps=1000.0,
        event_stream_max_backoff_seconds=30.0,
        scene_ignore_window_seconds=5.0,
    )


def _gamut_c() -> dict[str, Any]:
    red, green, blue = GAMUT_C
    return {
        "red": {"x": red[0], "y": red[1]},
        "green": {"x": green[0], "y": green[1]},
        "blue": {"x": blue[0], "y": blue[1]},
    }


BRIDGE_RESOURCES: dict[str, list[dict[str, Any]]] = {
    "light": [
        {
            "id": "l1",
            "id_v1": "/lights/4",
            "type": "light",
            "owner": {"rid": "d1", "rtype": "device"},
            "metadata": {"name": "Desk"},
            "on": {"on": True},
            "dimming": {"brightness": 50.0},
            "color_temperature": {
                "mirek": 300,
                "mirek_valid": True,
                "mirek_schema": {"mirek_minimum": 153, "mirek_maximum": 454},
            },
            "color": {"xy": {"x": 0.4, "y": 0.4}, "gamut_type": "C", "gamut": _gamut_c()},
            "effects_v2": {"status": {"effect": "no_effect", "effect_values": ["no_effect", "candle", "fire"]}},
        },
        {
            "id": "l2",
            "id_v1": "/lights/5",
            "type": "light",
            "owner": {"rid": "d2", "rtype": "device"},
            "metadata": {"name": "Shelf"},
            "on": {"on": False},
            "dimming": {"brightness": 100.0},
            "color_temperature": {
                "mirek": None,
                "mirek_valid": False,
                "mirek_schema": {"mirek_minimum": 200, "mirek_maximum": 500},
            },
        },
    ],
    "device": [
        {
            "id": "d1",
            "type": "device",
            "metadata": {"name": "Desk lamp"},
            "services": [{"rid": "l1", "rtype": "light"}, {"rid": "zc1", "rtype": "zigbee_connectivity"}],
        },
        {
            "id": "d2",
            "type": "device",
            "metadata": {"name": "Shelf lamp"},
            "services": [{"rid": "l2", "rtype": "light"}, {"rid": "zc2", "rtype": "zigbee_connectivity"}],
        },
    ],
    "zigbee_connectivity": [
        {"id": "zc1", "type": "zigbee_connectivity", "owner": {"rid": "d1", "rtype": "device"}, "status": "connected"},
        {
            "id": "zc2",
            "type": "zigbee_connectivity",
            "owner": {"rid": "d2", "rtype": "device"},
            "status": "connectivity_issue",
        },
    ],
    "room": [
        {
            "id": "r1",
            "id_v1": "/groups/1",
            "type": "room",
            "metadata": {"name": "Office"},
            "children": [{"rid": "d1", "rtype": "device"}, {"rid": "d2", "rtype": "device"}],
            "services": [{"rid": "g1", "rtype": "grouped_light"}],
        }
    ],
    "zone": [
        {
            "id": "z1",
            "id_v1": "/groups/2",
            "type": "zone",
            "metadata": {"name": "Empty corner"},
            "children": [],
            "services": [{"rid": "g2", "rtype": "grouped_light"}],
        }
    ],
    "grouped_light": [
        {"id": "g1", "type": "grouped_light", "owner": {"rid": "r1", "rtype": "room"}, "on": {"on": True}},
        {"id": "g2", "type": "grouped_light", "owner": {"rid": "z1", "rtype": "zone"}, "on": {"on": False}},
    ],
    "scene": [
        {
            "id": "s1",
            "type": "scene",
            "metadata": {"name": "Relax"},
            "group": {"rid": "r1", "rtype": "room"},
            "actions": [
                {"target": {"rid": "l1", "rtype": "light"}, "action": {"on": {"on": True}}},
                {"target": {"rid": "l2", "rtype": "light"}, "action": {"on": {"on": False}}},
            ],
            "status": {"active": "inactive"},
        }
    ],
}


class FakeBridge:
    """Serves CLIP v2 collections from memory and records every request."""

    def __init__(self) -> None:
        self.resources = copy.deepcopy(BRIDGE_RESOURCES)
        self.requests: list[httpx.Request] = []
        self.put_response: Any = {"data": [], "errors": []}
        self.post_response: Any = {"data": [{"rid": "s-new", "rtype": "scene"}], "errors": []}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        assert request.headers.get("hue-application-key") == "abc"
        parts = request.url.path.strip("/").split("/")
        if request.method == "GET" and parts[:3] == ["clip", "v2", "resource"] and len(parts) == 4:
            return httpx.Response(200, json={"errors": [], "data": self.resources.get(parts[3], [])})
        if request.method == "PUT":
            return httpx.Response(200, json=self.put_response)
        if request.method == "POST":
            return httpx.Response(200, json=self.post_response)
        return httpx.Response(404, json={"errors": [{"description": "not found"}]})

    def fetches(self, rtype: str) -> int:
        path = f"/clip/v2/resource/{rtype}"
        return sum(1 for r in self.requests if r.method == "GET" and r.url.path == path)

    def puts(self) -> list[tuple[str, Any]]:
        return [(r.url.path, json.loads(r.content)) for r in self.requests if r.method == "PUT"]

    def posts(self) -> list[tuple[str, Any]]:
        return [(r.url.path, json.loads(r.content)) for r in self.requests if r.method == "POST"]

    def api(self) -> BridgeApi:
        return BridgeApi(
            host="bridge.test",
            application_key="abc",
            rate_limiter=RateLimiter(permits_per_second=1000.0),
            transport=httpx.MockTransport(self.handler),
        )


@pytest.fixture
def fake_bridge() -> FakeBridge:
    return FakeBridge()


HASS_STATES: list[dict[str, Any]] = [
    {
        "entity_id": "light.desk",
        "state": "on",
        "attributes": {
            "friendly_name": "Desk",
            "brightness": 255,
            "color_mode": "xy",
            "xy_color": [0.3, 0.3],
            "supported_color_modes": ["color_temp", "xy"],
            "min_mireds": 153,
            "max_mireds": 500,
            "effect_list": ["None", "colorloop"],
        },
    },
    {
        "entity_id": "light.shelf",
        "state": "off",
        "attributes": {"friendly_name": "Shelf", "supported_color_modes": ["brightness"]},
    },
    {
        "entity_id": "light.kitchen",
        "state": "on",
        "attributes": {"friendly_name": "Kitchen", "entity_id": ["light.desk", "light.shelf"]},
    },
    {
        "entity_id": "light.living",
        "state": "on",
        "attributes": {"friendly_name": "Living", "is_hue_group": True, "lights": ["Desk"]},
    },
    {
        "entity_id": "light.nothing",
        "state": "off",
        "attributes": {"friendly_name": "Nothing", "entity_id": []},
    },
    {
        "entity_id": "scene.relax",
        "state": "2026-10-01T20:00:00+00:00",
        "attributes": {"friendly_name": "Relax", "entity_id": ["light.desk"]},
    },
    {"entity_id": "sensor.temperature", "state": "21.5", "attributes": {"friendly_name": "Temperature"}},
]


class FakeHass:
    """Home Assistant REST endpoints backed by a list of states."""

    def __init__(self) -> None:
        self.states = copy.deepcopy(HASS_STATES)
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        assert request.headers.get("authorization") == "Bearer token"
        path = request.url.path
        if request.method == "GET" and path == "/api/states":
            return httpx.Response(200, json=self.states)
        if request.method == "GET" and path.startswith("/api/states/"):
            entity_id = path[len("/api/states/") :]
            for state in self.states:
                if state["entity_id"] == entity_id:
                    return httpx.Response(200, json=state)
            return httpx.Response(404, json={"message": "Entity not found."})
        if request.method == "POST" and path.startswith("/api/services/"):
            return httpx.Response(200, json=[])
        return httpx.Response(404, json={"message": "not found"})

    def posts(self) -> list[tuple[str, Any]]:
        return [(r.url.path, json.loads(r.content)) for r in self.requests if r.method == "POST"]

    def fetches(self) -> int:
        return sum(1 for r in self.requests if r.method == "GET" and r.url.path == "/api/states")

    def api(self) -> HassApi:
        return HassApi(
            origin="http://hass.test:8123",
            access_token="token",
            rate_limiter=RateLimiter(permits_per_second=1000.0),
            transport=httpx.MockTransport(self.handler),
        )


@pytest.fixture
def fake_hass() -> FakeHass:
    return FakeHass()
