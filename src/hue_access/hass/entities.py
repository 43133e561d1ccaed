from __future__ import annotations

import enum

from pydantic import BaseModel, ConfigDict, Field


class SupportedEntityType(str, enum.Enum):
    LIGHT = "light"
    INPUT_BOOLEAN = "input_boolean"
    SWITCH = "switch"
    FAN = "fan"

    @classmethod
    def from_entity_id(cls, entity_id: str) -> "SupportedEntityType | None":
        domain, separator, _ = entity_id.partition(".")
        if not separator:
            return None
        try:
            return cls(domain.lower())
        except ValueError:
            return None


def is_supported_entity(entity_id: str) -> bool:
    return SupportedEntityType.from_entity_id(entity_id) is not None


class StateAttributes(BaseModel):
    model_config = ConfigDict(extra="allow")

    friendly_name: str | None = None
    color_mode: str | None = None
    brightness: int | None = None
    color_temp: int | None = None
    xy_color: list[float] | None = None
    hs_color: list[float] | None = None
    effect: str | None = None
    effect_list: list[str] | None = None
    supported_color_modes: list[str] | None = None
    min_mireds: int | None = None
    max_mireds: int | None = None
    is_hue_group: bool | None = None
    lights: list[str] | None = None
    entity_id: list[str] | None = None
    group_name: str | None = None


class State(BaseModel):
    model_config = ConfigDict(extra="allow")

    entity_id: str
    state: str | None = None
    attributes: StateAttributes = Field(default_factory=StateAttributes)

    @property
    def is_on(self) -> bool:
        return self.state == "on"

    @property
    def is_off(self) -> bool:
        return self.state == "off"

    @property
    def is_unavailable(self) -> bool:
        return self.state == "unavailable"

    @property
    def is_unknown(self) -> bool:
        return self.state == "unknown"

    @property
    def is_scene(self) -> bool:
        return self.entity_id.startswith("scene.")

    @property
    def is_hue_group(self) -> bool:
        return self.attributes.is_hue_group is True

    @property
    def is_hass_group(self) -> bool:
        return self.attributes.entity_id is not None and not self.is_scene

    @property
    def is_group(self) -> bool:
        return self.is_hue_group or self.is_hass_group
