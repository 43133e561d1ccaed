from __future__ import annotations

import math

from hue_access.color.gamut import clamp_to_gamut
from hue_access.models import XY, Gamut

# Below this chroma the hue angle is noise and must not steer interpolation.
CHROMA_MIN = 0.05

Lab = tuple[float, float, float]


def _cbrt(value: float) -> float:
    return math.copysign(abs(value) ** (1.0 / 3.0), value)


def xy_to_oklab(x: float, y: float) -> Lab:
    if y <= 0:
        X = Y = Z = 0.0
    else:
        Y = 1.0
        X = x * Y / y
        Z = (1.0 - x - y) * Y / y

    l = 0.8189330101 * X + 0.3618667424 * Y - 0.1288597137 * Z
    m = 0.0329845436 * X + 0.9293118715 * Y + 0.0361456387 * Z
    s = 0.0482003018 * X + 0.2643662691 * Y + 0.6338517070 * Z

    l_, m_, s_ = _cbrt(l), _cbrt(m), _cbrt(s)
    return (
        0.2104542553 * l_ + 0.7936177850 * m_ - 0.0040720468 * s_,
        1.9779984951 * l_ - 2.4285922050 * m_ + 0.4505937099 * s_,
        0.0259040371 * l_ + 0.7827717662 * m_ - 0.8086757660 * s_,
    )


def oklab_to_xy(lab: Lab) -> XY:
    L, a, b = lab
    l_ = L + 0.3963377774 * a + 0.2158037573 * b
    m_ = L - 0.1055613458 * a - 0.0638541728 * b
    s_ = L - 0.0894841775 * a - 1.2914855480 * b
    l, m, s = l_**3, m_**3, s_**3

    X = 1.2270138511 * l - 0.5577999807 * m + 0.2812561490 * s
    Y = -0.0405801784 * l + 1.1122568696 * m - 0.0716766787 * s
    Z = -0.0763812845 * l - 0.4214819784 * m + 1.5861632204 * s

    total = X + Y + Z
    if total <= 1e-12:
        return 0.0, 0.0
    return X / total, Y / total


def _chroma_hue(lab: Lab) -> tuple[float, float]:
    _, a, b = lab
    return math.hypot(a, b), math.atan2(b, a)


def _lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def _shortest_hue_delta(h0: float, h1: float, c0: float, c1: float) -> float:
    delta = ((h1 - h0 + math.pi) % (2 * math.pi)) - math.pi
    if abs(abs(delta) - math.pi) < 1e-9:
        # Opposite hues: turn towards the more saturated side, or by hue order on a tie.
        if c1 != c0:
            turn_positive = c1 > c0
        else:
            turn_positive = h0 <= h1
        delta = abs(delta) if turn_positive else -abs(delta)
    return delta


def _interpolate_lab(start: Lab, end: Lab, t: float) -> Lab:
    c0, h0 = _chroma_hue(start)
    c1, h1 = _chroma_hue(end)
    if c0 < CHROMA_MIN and c1 < CHROMA_MIN:
        return tuple(_lerp(p, q, t) for p, q in zip(start, end))  # type: ignore[return-value]

    L = _lerp(start[0], end[0], t)
    C = _lerp(c0, c1, t)
    if c0 < CHROMA_MIN:
        h = h1
    elif c1 < CHROMA_MIN:
        h = h0
    else:
        h = h0 + t * _shortest_hue_delta(h0, h1, c0, c1)
    return L, C * math.cos(h), C * math.sin(h)


def interpolate_xy(start: XY, end: XY, t: float, gamut: Gamut | None = None) -> XY:
    """Perceptual blend of two xy colours at ``t`` in [0, 1] via OKLab/OKLCh."""
    start = clamp_to_gamut(start, gamut)
    end = clamp_to_gamut(end, gamut)
    if t <= 0.0:
        return start
    if t >= 1.0:
        return end
    lab = _interpolate_lab(xy_to_oklab(*start), xy_to_oklab(*end), t)
    return clamp_to_gamut(oklab_to_xy(lab), gamut)


def delta_e_oklab(first: XY, second: XY) -> float:
    l1, a1, b1 = xy_to_oklab(*first)
    l2, a2, b2 = xy_to_oklab(*second)
    return math.sqrt((l1 - l2) ** 2 + (a1 - a2) ** 2 + (b1 - b2) ** 2)


def colors_differ(first: XY, second: XY, *, gamut: Gamut | None = None, threshold: float = 0.02) -> bool:
    """Chromaticity-only comparison of two points after clamping both into ``gamut``."""
    return delta_e_oklab(clamp_to_gamut(first, gamut), clamp_to_gamut(second, gamut)) >= threshold
