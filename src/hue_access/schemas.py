from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from hue_access.models import Identifier, LightCapabilities, LightState, PutCall


class HealthResponse(BaseModel):
    ok: bool = Field(..., description="Process is alive.")


class ReadinessResponse(BaseModel):
    ready: bool = Field(..., description="True when every configured backend answered.")
    backends: dict[str, bool] = Field(default_factory=dict, description="Per-backend connection result.")
    reason: str | None = Field(
        default=None,
        description="When not ready, a short machine-readable reason (e.g. no_backend_configured).",
    )


class ErrorResponse(BaseModel):
    error: str = Field(..., description="Machine-readable error code.", examples=["not_found"])
    message: str = Field(..., description="Human readable description.")
    candidates: list[str] | None = Field(default=None, description="Matching ids for an ambiguous name.")


class CapabilitiesResponse(BaseModel):
    gamutType: str | None = None
    colorGamut: list[list[float]] | None = Field(default=None, description="Red, green and blue corners in CIE xy.")
    ctMin: int | None = Field(default=None, description="Minimum color temperature in mired.")
    ctMax: int | None = Field(default=None, description="Maximum color temperature in mired.")
    capabilities: list[str] = Field(default_factory=list, examples=[["on_off", "brightness", "color"]])
    effects: list[str] = Field(default_factory=list)

    @classmethod
    def from_capabilities(cls, capabilities: LightCapabilities) -> "CapabilitiesResponse":
        gamut = capabilities.color_gamut
        return cls(
            gamutType=capabilities.gamut_type,
            colorGamut=[list(corner) for corner in gamut] if gamut else None,
            ctMin=capabilities.ct_min,
            ctMax=capabilities.ct_max,
            capabilities=sorted(c.value for c in capabilities.capabilities),
            effects=list(capabilities.effects),
        )


class LightStateResponse(BaseModel):
    id: str
    on: bool
    unavailable: bool
    off: bool = Field(..., description="True when the light is off or unreachable.")
    brightness: int | None = Field(default=None, description="Hue brightness 1-254.")
    colorTemperature: int | None = Field(default=None, description="Color temperature in mired.")
    x: float | None = None
    y: float | None = None
    hue: int | None = None
    sat: int | None = None
    effect: str | None = None
    colorMode: str
    capabilities: CapabilitiesResponse

    @classmethod
    def from_state(cls, state: LightState) -> "LightStateResponse":
        return cls(
            id=state.id,
            on=state.on,
            unavailable=state.unavailable,
            off=state.is_off,
            brightness=state.brightness,
            colorTemperature=state.color_temperature,
            x=state.x,
            y=state.y,
            hue=state.hue,
            sat=state.sat,
            effect=state.effect,
            colorMode=state.color_mode.value,
            capabilities=CapabilitiesResponse.from_capabilities(state.capabilities),
        )


class IdentifierResponse(BaseModel):
    id: str
    name: str | None = None

    @classmethod
    def from_identifier(cls, identifier: Identifier) -> "IdentifierResponse":
        return cls(id=identifier.id, name=identifier.name)


class GroupResponse(BaseModel):
    id: str
    name: str | None = None
    off: bool
    lights: list[str]


class SceneResponse(BaseModel):
    id: str
    name: str | None = None
    affectedIds: list[str]


class OverrideResponse(BaseModel):
    id: str
    manuallyOverridden: bool
    off: bool
    justTurnedOn: bool
    enforceSchedule: bool


class PutStateRequest(BaseModel):
    on: bool | None = Field(default=None, description="Turn on/off.")
    bri: int | None = Field(default=None, ge=1, le=254, description="Hue brightness 1-254.")
    ct: int | None = Field(default=None, gt=0, description="Color temperature in mired.")
    x: float | None = Field(default=None, ge=0.0, le=1.0)
    y: float | None = Field(default=None, ge=0.0, le=1.0)
    hue: int | None = Field(default=None, ge=0, le=65535)
    sat: int | None = Field(default=None, ge=0, le=254)
    effect: str | None = Field(default=None, examples=["candle", "none"])
    transitionTime: int | None = Field(default=None, ge=0, description="Transition in multiples of 100ms.")

    def to_call(self, rid: str, *, group: bool) -> PutCall:
        return PutCall(
            id=rid,
            group=group,
            on=self.on,
            bri=self.bri,
            ct=self.ct,
            x=self.x,
            y=self.y,
            hue=self.hue,
            sat=self.sat,
            effect=self.effect,
            transition_time=self.transitionTime,
        )


class PutStateResponse(BaseModel):
    result: Literal["applied", "light_off"]


class SceneSyncRequest(BaseModel):
    lights: dict[str, PutStateRequest] = Field(
        default_factory=dict, description="Desired state per light id; group lights left out are stored as off."
    )

    def to_calls(self) -> list[PutCall]:
        return [state.to_call(rid, group=False) for rid, state in self.lights.items()]


class SceneSyncResponse(BaseModel):
    id: str


class EventResponse(BaseModel):
    cursor: int
    ts: str
    kind: str
    rid: str
    source: str


class RecentEventsResponse(BaseModel):
    events: list[EventResponse]


def error_payload(code: str, message: str, **extra: Any) -> dict[str, Any]:
    return ErrorResponse(error=code, message=message, **extra).model_dump(exclude_none=True)
