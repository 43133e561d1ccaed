from __future__ import annotations

import enum
from dataclasses import dataclass, field, fields, replace
from typing import Any

XY = tuple[float, float]
Gamut = tuple[XY, XY, XY]


class Capability(str, enum.Enum):
    ON_OFF = "on_off"
    BRIGHTNESS = "brightness"
    COLOR = "color"
    COLOR_TEMPERATURE = "color_temperature"


class ColorMode(str, enum.Enum):
    NONE = "none"
    CT = "ct"
    XY = "xy"
    HS = "hs"


@dataclass(frozen=True)
class LightCapabilities:
    gamut_type: str | None = None
    color_gamut: Gamut | None = None
    ct_min: int | None = None
    ct_max: int | None = None
    capabilities: frozenset[Capability] = frozenset()
    effects: tuple[str, ...] = ()

    @classmethod
    def none(cls) -> "LightCapabilities":
        return cls()

    @property
    def is_color_supported(self) -> bool:
        return Capability.COLOR in self.capabilities

    @property
    def is_ct_supported(self) -> bool:
        return Capability.COLOR_TEMPERATURE in self.capabilities

    @property
    def is_brightness_supported(self) -> bool:
        return Capability.BRIGHTNESS in self.capabilities

    @property
    def is_on_off_supported(self) -> bool:
        return Capability.ON_OFF in self.capabilities

    def clamp_ct(self, ct: int) -> int:
        if self.ct_max is not None and ct > self.ct_max:
            return self.ct_max
        if self.ct_min is not None and ct < self.ct_min:
            return self.ct_min
        return ct


@dataclass(frozen=True)
class PutCall:
    """One pending desired-state change for a light or a group.

    ``None`` means "leave untouched"; such fields never reach the wire.
    """

    id: str
    group: bool = False
    bri: int | None = None
    ct: int | None = None
    x: float | None = None
    y: float | None = None
    hue: int | None = None
    sat: int | None = None
    on: bool | None = None
    effect: str | None = None
    transition_time: int | None = None

    _OPTIONAL = ("bri", "ct", "x", "y", "hue", "sat", "on", "effect", "transition_time")

    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in self._OPTIONAL)

    @property
    def color_mode(self) -> ColorMode:
        if self.ct is not None:
            return ColorMode.CT
        if self.x is not None and self.y is not None:
            return ColorMode.XY
        if self.hue is not None or self.sat is not None:
            return ColorMode.HS
        return ColorMode.NONE

    def with_changes(self, **changes: Any) -> "PutCall":
        return replace(self, **changes)

    def without_color(self) -> "PutCall":
        return replace(self, ct=None, x=None, y=None, hue=None, sat=None)

    def as_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}


@dataclass(frozen=True)
class LightState:
    id: str
    on: bool = False
    unavailable: bool = False
    brightness: int | None = None
    color_temperature: int | None = None
    x: float | None = None
    y: float | None = None
    hue: int | None = None
    sat: int | None = None
    effect: str | None = None
    color_mode: ColorMode = ColorMode.NONE
    capabilities: LightCapabilities = field(default_factory=LightCapabilities)

    @property
    def is_off(self) -> bool:
        return self.unavailable or not self.on


@dataclass(frozen=True)
class Identifier:
    id: str
    name: str | None = None


def widen_capabilities(members: list[LightCapabilities]) -> LightCapabilities:
    """Aggregate member capabilities so the group can do whatever any member can."""
    ct_mins = [c.ct_min for c in members if c.ct_min is not None]
    ct_maxs = [c.ct_max for c in members if c.ct_max is not None]

    gamuts: dict[str | None, Gamut] = {}
    for c in members:
        if c.color_gamut is not None:
            gamuts.setdefault(c.gamut_type, c.color_gamut)
    gamut_type: str | None = None
    gamut: Gamut | None = None
    for candidate in ("C", "B", "A"):
        if candidate in gamuts:
            gamut_type, gamut = candidate, gamuts[candidate]
            break
    else:
        if gamuts:
            gamut_type, gamut = next(iter(gamuts.items()))

    effects: list[str] = []
    for c in members:
        for effect in c.effects:
            if effect not in effects:
                effects.append(effect)

    return LightCapabilities(
        gamut_type=gamut_type,
        color_gamut=gamut,
        ct_min=min(ct_mins) if ct_mins else None,
        ct_max=max(ct_maxs) if ct_maxs else None,
        capabilities=frozenset().union(*(c.capabilities for c in members)),
        effects=tuple(effects),
    )
