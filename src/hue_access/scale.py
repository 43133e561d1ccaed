from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def decimal_half_up(value: Decimal, places: int) -> Decimal:
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def dimming_to_brightness(dimming: float) -> int:
    """Bridge dimming percentage (0-100) to the 1-254 brightness scale."""
    percent = Decimal(round_half_up(dimming))
    return int(decimal_half_up(percent * 254 / 100, 0))


def brightness_to_dimming(brightness: int) -> float:
    return float(decimal_half_up(Decimal(brightness) * 100 / 254, 2))


def hass_to_hue_brightness(value: int) -> int:
    """Hub brightness (0-255) to bridge brightness (1-254); 0 stays a dim level, not "off"."""
    return round_half_up(value / 255.0 * 253.0 + 1.0)


def hue_to_hass_brightness(value: int) -> int:
    if value == 1:
        return 1
    return round_half_up((value - 1) / 253.0 * 255.0)
