from __future__ import annotations

import math

from hue_access.color.gamut import clamp_to_gamut
from hue_access.color.rgb import rgb_to_xy
from hue_access.models import Gamut

MIN_KELVIN = 1000
MAX_KELVIN = 40000

_TABLE_MIN_KELVIN = 1000
_TABLE_MAX_KELVIN = 6700
_TABLE_STEP = 50

_MCCAMY_EPSILON = 1e-6


def _clamp_channel(value: float) -> int:
    return int(min(255.0, max(0.0, value)))


def kelvin_to_rgb(kelvin: int) -> tuple[int, int, int]:
    """Tanner Helland's curve fit, flat outside the ranges each channel was fitted on."""
    kelvin = min(MAX_KELVIN, max(MIN_KELVIN, int(kelvin)))
    temp = kelvin // 100

    if temp <= 66:
        red = 255.0
    else:
        red = 329.698727446 * ((temp - 60) ** -0.1332047592)

    if temp <= 66:
        green = 99.4708025861 * math.log(temp) - 161.1195681661
    else:
        green = 288.1221695283 * ((temp - 60) ** -0.0755148492)

    if temp >= 66:
        blue = 255.0
    elif temp <= 19:
        blue = 0.0
    else:
        blue = 138.5177312231 * math.log(temp - 10) - 305.0447927307

    return _clamp_channel(red), _clamp_channel(green), _clamp_channel(blue)


def mired_to_rgb(mired: int) -> tuple[int, int, int]:
    return kelvin_to_rgb(int(1_000_000.0 / max(1, mired)))


def mired_to_xy(mired: int, gamut: Gamut | None = None) -> tuple[float, float]:
    x, y, _ = rgb_to_xy(*mired_to_rgb(mired), gamut=gamut)
    return x, y


def _build_table() -> tuple[tuple[int, tuple[int, int, int]], ...]:
    return tuple(
        (kelvin, kelvin_to_rgb(kelvin))
        for kelvin in range(_TABLE_MIN_KELVIN, _TABLE_MAX_KELVIN + 1, _TABLE_STEP)
    )


_KELVIN_TABLE = _build_table()


def _weighted_distance(a: tuple[int, int, int], b: tuple[int, int, int]) -> float:
    dr = a[0] - b[0]
    dg = a[1] - b[1]
    db = a[2] - b[2]
    return math.sqrt(0.3 * dr * dr + 0.59 * dg * dg + 0.11 * db * db)


def rgb_to_kelvin(r: int, g: int, b: int) -> int:
    """Nearest kelvin in the lookup table; ties keep the lower temperature."""
    target = (r, g, b)
    best_kelvin, best_rgb = _KELVIN_TABLE[0]
    best_distance = _weighted_distance(target, best_rgb)
    for kelvin, rgb in _KELVIN_TABLE[1:]:
        distance = _weighted_distance(target, rgb)
        if distance < best_distance:
            best_kelvin = kelvin
            best_distance = distance
    return best_kelvin


def rgb_to_mired(r: int, g: int, b: int) -> int:
    return 1_000_000 // rgb_to_kelvin(r, g, b)


def xy_to_mired(x: float, y: float, gamut: Gamut | None = None) -> int:
    """McCamy's approximation of correlated colour temperature."""
    x, y = clamp_to_gamut((x, y), gamut)
    denominator = 0.1858 - y
    if abs(denominator) < _MCCAMY_EPSILON:
        denominator = _MCCAMY_EPSILON if denominator >= 0 else -_MCCAMY_EPSILON
    n = (x - 0.3320) / denominator
    cct = 437 * n**3 + 3601 * n**2 + 6861 * n + 5517
    # Far from the Planckian locus the fit diverges; keep the result a usable temperature.
    cct = min(float(MAX_KELVIN), max(float(MIN_KELVIN), cct))
    return int(1_000_000.0 / cct)
