import pytest

from hue_access.color.converter import convert_color_mode
from hue_access.color.gamut import GAMUT_B, GAMUT_C, clamp_to_gamut, is_in_gamut
from hue_access.color.kelvin import (
    kelvin_to_rgb,
    mired_to_rgb,
    mired_to_xy,
    rgb_to_kelvin,
    rgb_to_mired,
    xy_to_mired,
)
from hue_access.color.oklab import (
    _interpolate_lab,
    colors_differ,
    delta_e_oklab,
    interpolate_xy,
    oklab_to_xy,
    xy_to_oklab,
)
from hue_access.color.rgb import hs_to_rgb, rgb_to_hs, rgb_to_xy, xy_to_rgb
from hue_access.models import ColorMode, PutCall


def test_points_inside_gamut_are_untouched():
    assert clamp_to_gamut((0.3, 0.3), GAMUT_C) == (0.3, 0.3)
    assert clamp_to_gamut((0.9, 0.9), None) == (0.9, 0.9)


def test_point_beyond_a_corner_clamps_to_that_corner():
    assert clamp_to_gamut((0.9, 0.3), GAMUT_C) == GAMUT_C[0]


@pytest.mark.parametrize("point", [(0.8, 0.2), (0.0, 0.0), (0.1, 0.9), (0.45, 0.6)])
def test_clamping_is_idempotent(point):
    once = clamp_to_gamut(point, GAMUT_B)
    twice = clamp_to_gamut(once, GAMUT_B)
    assert twice == pytest.approx(once, abs=1e-9)


def test_is_in_gamut_rejects_points_outside():
    assert is_in_gamut((0.4, 0.4), GAMUT_C)
    assert not is_in_gamut((0.8, 0.2), GAMUT_C)


def test_rgb_to_xy_white_and_red():
    x, y, bri = rgb_to_xy(255, 255, 255)
    assert x == pytest.approx(0.3227, abs=1e-3)
    assert y == pytest.approx(0.329, abs=1e-3)
    assert bri >= 254

    rx, ry, _ = rgb_to_xy(255, 0, 0, gamut=GAMUT_C)
    assert rx > 0.6


def test_xy_to_rgb_keeps_the_dominant_channel():
    r, g, b = xy_to_rgb(0.6915, 0.3083, 255, GAMUT_C)
    assert r == 255
    assert g < 100 and b < 100
    assert xy_to_rgb(0.3, 0.3, 0) == (0, 0, 0)


def test_hs_round_trip():
    hue, sat, bri = rgb_to_hs(*hs_to_rgb(21845, 254))
    assert abs(hue - 21845) <= 200
    assert sat == 254
    assert bri == 254


def test_kelvin_curve_endpoints():
    assert kelvin_to_rgb(6600) == (255, 255, 255)
    assert kelvin_to_rgb(1000) == (255, 67, 0)
    assert kelvin_to_rgb(100) == kelvin_to_rgb(1000)


def test_rgb_to_kelvin_finds_table_entry():
    assert rgb_to_kelvin(*kelvin_to_rgb(2700)) == 2700
    assert rgb_to_mired(*kelvin_to_rgb(2700)) == 370


def test_xy_to_mired_for_warm_white():
    assert 360 <= xy_to_mired(0.4578, 0.4101) <= 375


def test_xy_to_mired_on_the_singular_line_stays_finite():
    assert xy_to_mired(0.3, 0.1858) == 1000
    assert xy_to_mired(0.4, 0.1858) == 25


@pytest.mark.parametrize("point", [(0.2, 0.19), (0.4, 0.2), (0.35, 0.15), (0.3, 0.0), (0.0, 0.0)])
def test_xy_to_mired_for_purples_is_within_kelvin_range(point):
    assert 25 <= xy_to_mired(*point) <= 1000


def test_xy_to_mired_clamps_far_off_locus_points():
    assert xy_to_mired(0.2, 0.19) == 25


def test_mired_to_rgb_accepts_zero():
    assert mired_to_rgb(0) == kelvin_to_rgb(40000)


def test_mired_to_xy_is_warm_for_high_mired():
    x, y = mired_to_xy(454, GAMUT_C)
    assert x > 0.45
    assert clamp_to_gamut((x, y), GAMUT_C) == pytest.approx((x, y), abs=1e-9)


def test_oklab_round_trip():
    assert oklab_to_xy(xy_to_oklab(0.35, 0.4)) == pytest.approx((0.35, 0.4), abs=1e-4)


def test_interpolation_endpoints():
    start, end = (0.6, 0.32), (0.2, 0.6)
    assert interpolate_xy(start, end, 0.0, GAMUT_C) == start
    assert interpolate_xy(start, end, 1.0, GAMUT_C) == end
    assert interpolate_xy(start, end, -1.0, GAMUT_C) == start
    assert interpolate_xy(start, end, 2.0, GAMUT_C) == end


def test_interpolation_midpoint_is_between_and_in_gamut():
    start, end = (0.6, 0.32), (0.2, 0.6)
    middle = interpolate_xy(start, end, 0.5, GAMUT_C)
    assert middle != start and middle != end
    assert delta_e_oklab(middle, start) > 0.01
    assert delta_e_oklab(middle, end) > 0.01
    assert clamp_to_gamut(middle, GAMUT_C) == pytest.approx(middle, abs=1e-9)


def test_interpolation_is_symmetric():
    a, b = (0.55, 0.35), (0.25, 0.3)
    forward = interpolate_xy(a, b, 0.25)
    backward = interpolate_xy(b, a, 0.75)
    assert forward == pytest.approx(backward, abs=1e-6)


def test_opposite_hues_with_equal_chroma_take_the_same_arc_both_ways():
    red_ish, green_ish = (0.6, 0.1, 0.0), (0.6, -0.1, 0.0)
    forward = _interpolate_lab(red_ish, green_ish, 0.25)
    backward = _interpolate_lab(green_ish, red_ish, 0.75)
    assert forward == pytest.approx(backward, abs=1e-9)
    assert forward[2] > 0


def test_interpolating_a_color_with_itself():
    assert interpolate_xy((0.4, 0.4), (0.4, 0.4), 0.5) == pytest.approx((0.4, 0.4), abs=1e-4)


def test_colors_differ():
    assert delta_e_oklab((0.3, 0.3), (0.3, 0.3)) == 0.0
    assert not colors_differ((0.3, 0.3), (0.3001, 0.3001))
    assert colors_differ((0.6, 0.32), (0.2, 0.6))
    # Both points are outside the gamut on the same corner.
    assert not colors_differ((0.9, 0.3), (0.95, 0.3), gamut=GAMUT_C)


def test_convert_ct_to_xy_clears_ct():
    call = PutCall(id="1", ct=300, bri=100, transition_time=4)
    converted = convert_color_mode(call, GAMUT_C, ColorMode.CT, ColorMode.XY)

    assert converted.ct is None
    assert converted.x is not None and converted.y is not None
    assert converted.bri == 100
    assert converted.transition_time == 4
    assert converted.color_mode is ColorMode.XY


def test_convert_ct_to_hs():
    converted = convert_color_mode(PutCall(id="1", ct=153), None, ColorMode.CT, ColorMode.HS)
    assert converted.ct is None
    assert converted.hue is not None and converted.sat is not None
    assert converted.color_mode is ColorMode.HS


def test_convert_xy_to_ct():
    converted = convert_color_mode(PutCall(id="1", x=0.4578, y=0.4101), None, ColorMode.XY, ColorMode.CT)
    assert converted.x is None and converted.y is None
    assert 360 <= converted.ct <= 375


def test_convert_xy_to_ct_off_the_locus():
    converted = convert_color_mode(PutCall(id="1", x=0.2, y=0.19), None, ColorMode.XY, ColorMode.CT)
    assert converted.ct == 25
    converted = convert_color_mode(PutCall(id="1", x=0.3, y=0.1858), None, ColorMode.XY, ColorMode.CT)
    assert converted.ct == 1000


def test_convert_hs_to_xy():
    converted = convert_color_mode(PutCall(id="1", hue=0, sat=254), GAMUT_C, ColorMode.HS, ColorMode.XY)
    assert converted.hue is None and converted.sat is None
    assert converted.x > 0.6


def test_convert_leaves_other_modes_alone():
    call = PutCall(id="1", x=0.3, y=0.3)
    assert convert_color_mode(call, None, ColorMode.XY, ColorMode.XY) is call
    assert convert_color_mode(call, None, ColorMode.CT, ColorMode.XY) is call
    assert convert_color_mode(call, None, ColorMode.NONE, ColorMode.CT) is call
    plain = PutCall(id="1", on=True)
    assert convert_color_mode(plain, None, ColorMode.XY, ColorMode.CT) is plain
