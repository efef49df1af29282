"""Rounding used for exposure, delay and ADU arithmetic."""

from __future__ import annotations

import math


def round_half_away(value: float) -> int:
    """Round to the nearest integer, halves away from zero.

    Python's round() sends halves to the even neighbour, so 20.5 would
    become 20. Exposure and ADU arithmetic rounds 20.5 to 21.
    """
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


__all__ = ["round_half_away"]
