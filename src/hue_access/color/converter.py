from __future__ import annotations

from hue_access.color.kelvin import mired_to_rgb, rgb_to_mired, xy_to_mired
from hue_access.color.rgb import hs_to_rgb, rgb_to_hs, rgb_to_xy, xy_to_rgb
from hue_access.models import ColorMode, Gamut, PutCall


def _convert_from_ct(call: PutCall, gamut: Gamut | None, target: ColorMode) -> PutCall:
    rgb = mired_to_rgb(call.ct)  # type: ignore[arg-type]
    cleared = call.without_color()
    if target is ColorMode.XY:
        x, y, _ = rgb_to_xy(*rgb, gamut=gamut)
        return cleared.with_changes(x=x, y=y)
    hue, sat, _ = rgb_to_hs(*rgb)
    return cleared.with_changes(hue=hue, sat=sat)


def _convert_from_xy(call: PutCall, gamut: Gamut | None, target: ColorMode) -> PutCall:
    cleared = call.without_color()
    if target is ColorMode.CT:
        return cleared.with_changes(ct=xy_to_mired(call.x, call.y, gamut))  # type: ignore[arg-type]
    rgb = xy_to_rgb(call.x, call.y, 255, gamut)  # type: ignore[arg-type]
    hue, sat, _ = rgb_to_hs(*rgb)
    return cleared.with_changes(hue=hue, sat=sat)


def _convert_from_hs(call: PutCall, gamut: Gamut | None, target: ColorMode) -> PutCall:
    rgb = hs_to_rgb(call.hue or 0, call.sat if call.sat is not None else 254, 254)
    cleared = call.without_color()
    if target is ColorMode.XY:
        x, y, _ = rgb_to_xy(*rgb, gamut=gamut)
        return cleared.with_changes(x=x, y=y)
    return cleared.with_changes(ct=rgb_to_mired(*rgb))


_CONVERTERS = {
    ColorMode.CT: _convert_from_ct,
    ColorMode.XY: _convert_from_xy,
    ColorMode.HS: _convert_from_hs,
}


def convert_color_mode(call: PutCall, gamut: Gamut | None, source: ColorMode, target: ColorMode) -> PutCall:
    """Re-express the colour of ``call`` in ``target`` mode.

    Only the target mode's fields are set on the returned call. Calls without a
    colour, or already in the target mode, are returned unchanged.
    """
    if source is target or source is ColorMode.NONE or target is ColorMode.NONE:
        return call
    if call.color_mode is not source:
        return call
    return _CONVERTERS[source](call, gamut, target)
