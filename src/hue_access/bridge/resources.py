from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _Wire(BaseModel):
    model_config = ConfigDict(extra="allow")


class ResourceReference(_Wire):
    rid: str
    rtype: str


class Metadata(_Wire):
    name: str | None = None


class On(_Wire):
    on: bool = False


class Dimming(_Wire):
    brightness: float | None = None
    min_dim_level: float | None = None


class MirekSchema(_Wire):
    mirek_minimum: int | None = None
    mirek_maximum: int | None = None


class ColorTemperature(_Wire):
    mirek: int | None = None
    mirek_valid: bool | None = None
    mirek_schema: MirekSchema | None = None


class XYPoint(_Wire):
    x: float
    y: float


class GamutTriangle(_Wire):
    red: XYPoint
    green: XYPoint
    blue: XYPoint


class Color(_Wire):
    xy: XYPoint | None = None
    gamut: GamutTriangle | None = None
    gamut_type: str | None = None


class EffectStatus(_Wire):
    effect: str | None = None
    effect_values: list[str] = Field(default_factory=list)


class EffectsV2(_Wire):
    status: EffectStatus | None = None


class Resource(_Wire):
    id: str
    id_v1: str | None = None
    type: str | None = None
    metadata: Metadata | None = None

    @property
    def name(self) -> str | None:
        return self.metadata.name if self.metadata else None


class Light(Resource):
    owner: ResourceReference | None = None
    on: On | None = None
    dimming: Dimming | None = None
    color_temperature: ColorTemperature | None = None
    color: Color | None = None
    effects_v2: EffectsV2 | None = None


class GroupedLight(Resource):
    owner: ResourceReference | None = None
    on: On | None = None
    dimming: Dimming | None = None


class Group(Resource):
    """A room or zone."""

    children: list[ResourceReference] = Field(default_factory=list)
    services: list[ResourceReference] = Field(default_factory=list)


class Device(Resource):
    services: list[ResourceReference] = Field(default_factory=list)


class ZigbeeConnectivity(Resource):
    owner: ResourceReference | None = None
    status: str | None = None


class SceneAction(_Wire):
    target: ResourceReference
    action: dict[str, Any] = Field(default_factory=dict)


class Scene(Resource):
    group: ResourceReference | None = None
    actions: list[SceneAction] = Field(default_factory=list)
    status: dict[str, Any] | None = None
