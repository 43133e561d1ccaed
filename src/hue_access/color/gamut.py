from __future__ import annotations

from hue_access.models import XY, Gamut

# Reference triangles published for the three Hue gamut generations.
GAMUT_A: Gamut = ((0.704, 0.296), (0.2151, 0.7106), (0.138, 0.08))
GAMUT_B: Gamut = ((0.675, 0.322), (0.409, 0.518), (0.167, 0.04))
GAMUT_C: Gamut = ((0.6915, 0.3083), (0.17, 0.7), (0.1532, 0.0475))

GAMUTS_BY_TYPE: dict[str, Gamut] = {"A": GAMUT_A, "B": GAMUT_B, "C": GAMUT_C}


def _cross(a: XY, b: XY) -> float:
    return a[0] * b[1] - a[1] * b[0]


def _closest_on_segment(a: XY, b: XY, p: XY) -> XY:
    ap = (p[0] - a[0], p[1] - a[1])
    ab = (b[0] - a[0], b[1] - a[1])
    ab2 = ab[0] * ab[0] + ab[1] * ab[1]
    if ab2 == 0:
        return a
    t = (ap[0] * ab[0] + ap[1] * ab[1]) / ab2
    t = min(1.0, max(0.0, t))
    return (a[0] + ab[0] * t, a[1] + ab[1] * t)


def _distance(a: XY, b: XY) -> float:
    dx = a[0] - b[0]
    dy = a[1] - b[1]
    return (dx * dx + dy * dy) ** 0.5


def is_in_gamut(point: XY, gamut: Gamut) -> bool:
    red, green, blue = gamut
    v1 = (green[0] - red[0], green[1] - red[1])
    v2 = (blue[0] - red[0], blue[1] - red[1])
    q = (point[0] - red[0], point[1] - red[1])
    denominator = _cross(v1, v2)
    if denominator == 0:
        return False
    s = _cross(q, v2) / denominator
    t = _cross(v1, q) / denominator
    return s >= 0.0 and t >= 0.0 and s + t <= 1.0


def clamp_to_gamut(point: XY, gamut: Gamut | None) -> XY:
    """Return ``point`` if the light can show it, else the closest point on the triangle edge."""
    if gamut is None or is_in_gamut(point, gamut):
        return point
    red, green, blue = gamut
    best = _closest_on_segment(red, green, point)
    best_distance = _distance(point, best)
    for a, b in ((blue, red), (green, blue)):
        candidate = _closest_on_segment(a, b, point)
        candidate_distance = _distance(point, candidate)
        if candidate_distance < best_distance:
            best = candidate
            best_distance = candidate_distance
    return best
