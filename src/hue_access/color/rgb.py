from __future__ import annotations

import colorsys

from hue_access.color.gamut import clamp_to_gamut
from hue_access.models import XY, Gamut


def _gamma_expand(channel: float) -> float:
    if channel > 0.04045:
        return ((channel + 0.055) / 1.055) ** 2.4
    return channel / 12.92


def _gamma_compress(channel: float) -> float:
    if channel <= 0.0031308:
        return 12.92 * channel
    return 1.055 * channel ** (1.0 / 2.4) - 0.055


def rgb_to_xy(r: int, g: int, b: int, gamut: Gamut | None = None) -> tuple[float, float, int]:
    """Convert 0-255 sRGB into a gamut-clamped xy point and a 0-255 brightness."""
    red = _gamma_expand(r / 255.0)
    green = _gamma_expand(g / 255.0)
    blue = _gamma_expand(b / 255.0)

    X = red * 0.664511 + green * 0.154324 + blue * 0.162028
    Y = red * 0.283881 + green * 0.668433 + blue * 0.047685
    Z = red * 0.000088 + green * 0.072310 + blue * 0.986039

    total = X + Y + Z
    x = X / total if total != 0 else 0.0
    y = Y / total if total != 0 else 0.0
    x, y = clamp_to_gamut((x, y), gamut)
    return x, y, int(Y * 255)


def xy_to_rgb(x: float, y: float, brightness: int = 255, gamut: Gamut | None = None) -> tuple[int, int, int]:
    x, y = clamp_to_gamut((x, y), gamut)
    if brightness <= 0:
        return 0, 0, 0
    if y == 0:
        y = 1e-11

    Y = brightness / 255.0
    X = (Y / y) * x
    Z = (Y / y) * (1 - x - y)

    red = X * 1.656492 - Y * 0.354851 - Z * 0.255038
    green = -X * 0.707196 + Y * 1.655397 + Z * 0.036152
    blue = X * 0.051713 - Y * 0.121364 + Z * 1.011530

    channels = [max(0.0, _gamma_compress(max(0.0, c))) for c in (red, green, blue)]
    peak = max(channels)
    if peak > 1.0:
        channels = [c / peak for c in channels]
    r, g, b = (int(c * 255) for c in channels)
    return r, g, b


def rgb_to_hs(r: int, g: int, b: int) -> tuple[int, int, int]:
    """Return (hue 0-65535, saturation 0-254, brightness 0-254)."""
    h, s, v = colorsys.rgb_to_hsv(r / 255.0, g / 255.0, b / 255.0)
    return int(h * 65535), int(s * 254), int(v * 254)


def hs_to_rgb(hue: int, sat: int, bri: int = 254) -> tuple[int, int, int]:
    h = (hue % 65536) / 65535.0
    s = min(max(sat, 0), 254) / 254.0
    v = min(max(bri, 0), 254) / 254.0
    r, g, b = colorsys.hsv_to_rgb(h, s, v)
    return int(r * 255 + 0.5), int(g * 255 + 0.5), int(b * 255 + 0.5)
