from __future__ import annotations

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse, StreamingResponse

from hue_access.api import LightApi
from hue_access.bridge.api import BridgeApi
from hue_access.bridge.sync import BridgeEventHandler
from hue_access.bridge.sync import event_stream_loop as bridge_event_stream_loop
from hue_access.config import AppConfig
from hue_access.errors import (
    AmbiguousName,
    ApiFailure,
    AuthenticationFailure,
    ConnectionFailure,
    EmptyGroup,
    ResourceNotFound,
    SceneNotFound,
    UnsupportedResourceType,
)
from hue_access.event_hub import EventHub
from hue_access.hass.api import HassApi
from hue_access.hass.sync import HassEventHandler
from hue_access.hass.sync import event_stream_loop as hass_event_stream_loop
from hue_access.listeners import LightEventListener, SceneEventListener
from hue_access.override import ManualOverrideTracker
from hue_access.rate_limit import RateLimiter
from hue_access.schemas import (
    CapabilitiesResponse,
    ErrorResponse,
    GroupResponse,
    HealthResponse,
    IdentifierResponse,
    LightStateResponse,
    OverrideResponse,
    PutStateRequest,
    PutStateResponse,
    ReadinessResponse,
    RecentEventsResponse,
    SceneResponse,
    SceneSyncRequest,
    SceneSyncResponse,
    error_payload,
)

logger = logging.getLogger("hue_access")


@dataclass
class AppState:
    config: AppConfig
    backends: dict[str, LightApi]
    tracker: ManualOverrideTracker
    hub: EventHub
    light_events: dict[str, LightEventListener]
    scene_events: dict[str, SceneEventListener]
    tasks: list[asyncio.Task]


async def _supervise(name: str, run: Callable[[], Awaitable[None]]) -> None:
    try:
        await run()
    except AuthenticationFailure as exc:
        logger.error("%s event stream stopped: %s", name, exc.message)


def _wire_listeners(
    *, api: LightApi, source: str, tracker: ManualOverrideTracker, hub: EventHub, config: AppConfig
) -> tuple[LightEventListener, SceneEventListener]:
    light_events = LightEventListener(
        tracker=tracker,
        affected_ids_by_device=api.get_affected_ids_by_device,
        hub=hub,
        source=source,
    )
    scene_events = SceneEventListener(
        api=api,
        light_events=light_events,
        ignore_window_seconds=config.scene_ignore_window_seconds,
        hub=hub,
        source=source,
    )
    return light_events, scene_events


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = AppConfig.from_env()
    tracker = ManualOverrideTracker()
    hub = EventHub()
    backends: dict[str, LightApi] = {}
    light_events: dict[str, LightEventListener] = {}
    scene_events: dict[str, SceneEventListener] = {}
    tasks: list[asyncio.Task] = []

    if config.bridge_configured:
        bridge = BridgeApi(
            host=config.bridge_host,
            application_key=config.application_key,
            rate_limiter=RateLimiter(permits_per_second=config.bridge_rate_limit_rps),
        )
        backends["bridge"] = bridge
        light_events["bridge"], scene_events["bridge"] = _wire_listeners(
            api=bridge, source="bridge", tracker=tracker, hub=hub, config=config
        )
        bridge_handler = BridgeEventHandler(
            api=bridge, light_events=light_events["bridge"], scene_events=scene_events["bridge"]
        )
        tasks.append(
            asyncio.create_task(
                _supervise(
                    "Bridge",
                    lambda: bridge_event_stream_loop(
                        api=bridge, handler=bridge_handler, max_backoff=config.event_stream_max_backoff_seconds
                    ),
                )
            )
        )

    if config.hass_configured:
        hass = HassApi(
            origin=config.hass_origin,
            access_token=config.hass_access_token,
            rate_limiter=RateLimiter(permits_per_second=config.hass_rate_limit_rps),
        )
        backends["hass"] = hass
        light_events["hass"], scene_events["hass"] = _wire_listeners(
            api=hass, source="hass", tracker=tracker, hub=hub, config=config
        )
        hass_handler = HassEventHandler(
            light_events=light_events["hass"],
            scene_events=scene_events["hass"],
            availability=hass.availability,
        )
        tasks.append(
            asyncio.create_task(
                _supervise(
                    "Home Assistant",
                    lambda: hass_event_stream_loop(
                        origin=config.hass_origin,
                        access_token=config.hass_access_token,
                        handler=hass_handler,
                        api=hass,
                        max_backoff=config.event_stream_max_backoff_seconds,
                    ),
                )
            )
        )

    if not backends:
        logger.warning("No backend configured; set HUE_BRIDGE_HOST/HUE_APPLICATION_KEY or HASS_ORIGIN/HASS_ACCESS_TOKEN")

    app.state.state = AppState(
        config=config,
        backends=backends,
        tracker=tracker,
        hub=hub,
        light_events=light_events,
        scene_events=scene_events,
        tasks=tasks,
    )
    try:
        yield
    finally:
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except BaseException:
                pass
        for backend in backends.values():
            await backend.close()


app = FastAPI(
    title="Hue Access",
    version="0.1.0",
    description=(
        "# Hue Access\n\n"
        "Read-mostly inspection service over the cached light resources of a Hue bridge "
        "(`bridge`) and a Home Assistant hub (`hass`).\n\n"
        "## Endpoints\n"
        "- `GET /healthz` liveness\n"
        "- `GET /readyz` readiness (every configured backend answers)\n"
        "- `GET /v1/{backend}/lights/{id}` current light state\n"
        "- `PUT /v1/{backend}/lights/{id}/state` write a state, adapted to the light's capabilities\n"
        "- `GET /v1/events/stream` SSE stream of light and scene events\n"
    ),
    lifespan=lifespan,
)

_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    401: {"description": "Backend rejected the credentials.", "model": ErrorResponse},
    404: {"description": "Unknown backend, light, group or scene.", "model": ErrorResponse},
    409: {"description": "Ambiguous name or empty group.", "model": ErrorResponse},
    424: {"description": "Backend unreachable.", "model": ErrorResponse},
    502: {"description": "Backend returned an error.", "model": ErrorResponse},
}


@app.exception_handler(ApiFailure)
async def api_failure_handler(request: Request, exc: ApiFailure):
    if isinstance(exc, AmbiguousName):
        payload = error_payload("ambiguous_name", exc.message, candidates=exc.candidates)
        return JSONResponse(payload, status_code=status.HTTP_409_CONFLICT)
    if isinstance(exc, EmptyGroup):
        return JSONResponse(error_payload("empty_group", exc.message), status_code=status.HTTP_409_CONFLICT)
    if isinstance(exc, ResourceNotFound):
        return JSONResponse(error_payload("not_found", exc.message), status_code=status.HTTP_404_NOT_FOUND)
    if isinstance(exc, UnsupportedResourceType):
        return JSONResponse(error_payload("unsupported_type", exc.message), status_code=status.HTTP_404_NOT_FOUND)
    if isinstance(exc, AuthenticationFailure):
        return JSONResponse(error_payload("unauthorized", exc.message), status_code=status.HTTP_401_UNAUTHORIZED)
    if isinstance(exc, ConnectionFailure):
        return JSONResponse(
            error_payload("backend_unreachable", exc.message), status_code=status.HTTP_424_FAILED_DEPENDENCY
        )
    logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(error_payload("backend_error", exc.message), status_code=status.HTTP_502_BAD_GATEWAY)


@app.middleware("http")
async def access_log(request: Request, call_next: Callable[[Request], Awaitable[Response]]):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info("%s %s -> %s (%.1fms)", request.method, request.url.path, response.status_code, duration_ms)
    return response


def _state() -> AppState:
    return app.state.state


def _backend(name: str) -> LightApi:
    api = _state().backends.get(name)
    if api is None:
        raise ResourceNotFound(f"Backend '{name}' is not configured")
    return api


@app.get("/healthz", summary="Liveness check", response_model=HealthResponse, tags=["meta"])
async def healthz() -> HealthResponse:
    return {"ok": True}


@app.get("/readyz", summary="Readiness check", response_model=ReadinessResponse, tags=["meta"])
async def readyz():
    state = _state()
    if not state.backends:
        return JSONResponse(
            {"ready": False, "backends": {}, "reason": "no_backend_configured"}, status_code=503
        )
    results: dict[str, bool] = {}
    for name, api in state.backends.items():
        try:
            await api.assert_connection()
            results[name] = True
        except ApiFailure as exc:
            logger.info("Backend %s not ready: %s", name, exc.message)
            results[name] = False
    if not all(results.values()):
        return JSONResponse({"ready": False, "backends": results, "reason": "backend_unavailable"}, status_code=503)
    return {"ready": True, "backends": results}


@app.get(
    "/v1/{backend}/resolve/light",
    summary="Resolve a light by legacy id or name",
    response_model=IdentifierResponse,
    responses=_ERROR_RESPONSES,
    tags=["lights"],
)
async def resolve_light(backend: str, legacy_id: str | None = None, name: str | None = None):
    api = _backend(backend)
    if name is not None:
        return IdentifierResponse.from_identifier(await api.get_light_identifier_by_name(name))
    if legacy_id is None:
        return JSONResponse(
            error_payload("invalid_request", "Pass either legacy_id or name"), status_code=status.HTTP_400_BAD_REQUEST
        )
    return IdentifierResponse.from_identifier(await api.get_light_identifier(legacy_id))


@app.get(
    "/v1/{backend}/resolve/group",
    summary="Resolve a group by legacy id or name",
    response_model=IdentifierResponse,
    responses=_ERROR_RESPONSES,
    tags=["groups"],
)
async def resolve_group(backend: str, legacy_id: str | None = None, name: str | None = None):
    api = _backend(backend)
    if name is not None:
        return IdentifierResponse.from_identifier(await api.get_group_identifier_by_name(name))
    if legacy_id is None:
        return JSONResponse(
            error_payload("invalid_request", "Pass either legacy_id or name"), status_code=status.HTTP_400_BAD_REQUEST
        )
    return IdentifierResponse.from_identifier(await api.get_group_identifier(legacy_id))


@app.get(
    "/v1/{backend}/lights/{light_id}",
    summary="Current light state",
    response_model=LightStateResponse,
    responses=_ERROR_RESPONSES,
    tags=["lights"],
)
async def get_light(backend: str, light_id: str) -> LightStateResponse:
    return LightStateResponse.from_state(await _backend(backend).get_light_state(light_id))


@app.get(
    "/v1/{backend}/lights/{light_id}/capabilities",
    summary="Light capabilities",
    response_model=CapabilitiesResponse,
    responses=_ERROR_RESPONSES,
    tags=["lights"],
)
async def get_light_capabilities(backend: str, light_id: str) -> CapabilitiesResponse:
    return CapabilitiesResponse.from_capabilities(await _backend(backend).get_light_capabilities(light_id))


@app.get(
    "/v1/{backend}/lights/{light_id}/groups",
    summary="Groups the light belongs to",
    response_model=list[str],
    responses=_ERROR_RESPONSES,
    tags=["lights"],
)
async def get_assigned_groups(backend: str, light_id: str) -> list[str]:
    return await _backend(backend).get_assigned_groups(light_id)


@app.put(
    "/v1/{backend}/lights/{light_id}/state",
    summary="Write a light state",
    response_model=PutStateResponse,
    responses=_ERROR_RESPONSES,
    tags=["lights"],
)
async def put_light_state(backend: str, light_id: str, payload: PutStateRequest) -> PutStateResponse:
    result = await _backend(backend).put_state(payload.to_call(light_id, group=False))
    return PutStateResponse(result=result.value)


@app.get(
    "/v1/{backend}/groups/{group_id}",
    summary="Group summary",
    response_model=GroupResponse,
    responses=_ERROR_RESPONSES,
    tags=["groups"],
)
async def get_group(backend: str, group_id: str) -> GroupResponse:
    api = _backend(backend)
    return GroupResponse(
        id=group_id,
        name=await api.get_group_name(group_id),
        off=await api.is_group_off(group_id),
        lights=await api.get_group_lights(group_id),
    )


@app.get(
    "/v1/{backend}/groups/{group_id}/states",
    summary="States of the group's lights",
    response_model=list[LightStateResponse],
    responses=_ERROR_RESPONSES,
    tags=["groups"],
)
async def get_group_states(backend: str, group_id: str) -> list[LightStateResponse]:
    return [LightStateResponse.from_state(s) for s in await _backend(backend).get_group_states(group_id)]


@app.get(
    "/v1/{backend}/groups/{group_id}/capabilities",
    summary="Union of the group members' capabilities",
    response_model=CapabilitiesResponse,
    responses=_ERROR_RESPONSES,
    tags=["groups"],
)
async def get_group_capabilities(backend: str, group_id: str) -> CapabilitiesResponse:
    return CapabilitiesResponse.from_capabilities(await _backend(backend).get_group_capabilities(group_id))


@app.put(
    "/v1/{backend}/groups/{group_id}/state",
    summary="Write a group state",
    response_model=PutStateResponse,
    responses=_ERROR_RESPONSES,
    tags=["groups"],
)
async def put_group_state(backend: str, group_id: str, payload: PutStateRequest) -> PutStateResponse:
    result = await _backend(backend).put_state(payload.to_call(group_id, group=True))
    return PutStateResponse(result=result.value)


@app.get(
    "/v1/{backend}/scenes/{scene_id}",
    summary="Scene name and the ids it affects",
    response_model=SceneResponse,
    responses=_ERROR_RESPONSES,
    tags=["scenes"],
)
async def get_scene(backend: str, scene_id: str) -> SceneResponse:
    api = _backend(backend)
    name = await api.get_scene_name(scene_id)
    affected = await api.get_affected_ids_by_scene(scene_id)
    if name is None and not affected:
        raise SceneNotFound(f"Scene with id '{scene_id}' was not found!")
    return SceneResponse(id=scene_id, name=name, affectedIds=affected)


@app.put(
    "/v1/{backend}/groups/{group_id}/scenes/{scene_name}",
    summary="Create or update a named scene of a group",
    response_model=SceneSyncResponse,
    responses=_ERROR_RESPONSES,
    tags=["scenes"],
)
async def put_group_scene(
    backend: str, group_id: str, scene_name: str, payload: SceneSyncRequest
) -> SceneSyncResponse:
    scene_id = await _backend(backend).create_or_update_scene(group_id, scene_name, payload.to_calls())
    return SceneSyncResponse(id=scene_id)


@app.get(
    "/v1/overrides/{rid}",
    summary="Manual-override tracking for a light or group",
    response_model=OverrideResponse,
    tags=["overrides"],
)
async def get_override(rid: str) -> OverrideResponse:
    tracker = _state().tracker
    return OverrideResponse(
        id=rid,
        manuallyOverridden=tracker.is_manually_overridden(rid),
        off=tracker.is_off(rid),
        justTurnedOn=tracker.was_just_turned_on(rid),
        enforceSchedule=tracker.should_enforce_schedule(rid),
    )


@app.get(
    "/v1/events/recent",
    summary="Most recent light and scene events",
    response_model=RecentEventsResponse,
    tags=["events"],
)
async def recent_events(limit: int | None = None) -> RecentEventsResponse:
    return {"events": [event.as_dict() for event in _state().hub.recent(limit)]}


@app.get(
    "/v1/events/stream",
    summary="Light and scene event stream (SSE)",
    tags=["events"],
    responses={
        200: {
            "description": "SSE stream (text/event-stream).",
            "content": {"text/event-stream": {"schema": {"type": "string"}}},
        },
    },
)
async def events_stream():
    subscription = await _state().hub.subscribe()

    async def _gen():
        try:
            while True:
                try:
                    event = await asyncio.wait_for(subscription.queue.get(), timeout=15.0)
                    yield f"data: {json.dumps(event.as_dict(), separators=(',', ':'))}\n\n"
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
        finally:
            await subscription.unsubscribe()

    return StreamingResponse(_gen(), media_type="text/event-stream")
