"""Flat frame brightness model.

Used when no live flat source (twilight sky, light panel) is available:
the measured ADU of a flat exposure is replaced by a value predicted from
linear fits of real flats taken with the author's camera and filters.

The fits are keyed by (binning, filter slot). Pairs not in the table use
the first curve.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from theskyx_mcp.observability import get_logger
from theskyx_mcp.utils import round_half_away

logger = get_logger(__name__)

#: 16-bit sensor ceiling.
MAX_ADU = 65535


@dataclass(frozen=True)
class ResponseCurve:
    """Linear fit of ADU against exposure seconds."""

    slope: float
    intercept: float
    label: str = ""

    def value_at(self, exposure: float) -> float:
        return self.slope * exposure + self.intercept


#: (binning, filter slot) -> fit. The first entry is the fallback.
RESPONSE_CURVES: dict[tuple[int, int], ResponseCurve] = {
    (1, 4): ResponseCurve(721.8, 19817.0, "luminance"),
    (2, 1): ResponseCurve(7336.7, -100.48, "red"),
    (2, 2): ResponseCurve(11678.0, -293.09, "green"),
    (2, 3): ResponseCurve(6820.4, 1858.3, "blue"),
    (1, 5): ResponseCurve(67.247, 2632.7, "h-alpha"),
}

FALLBACK_CURVE = RESPONSE_CURVES[(1, 4)]


def curve_for(binning: int, filter_slot: int) -> ResponseCurve:
    """Return the response curve for a binning/filter combination.

    Unknown combinations fall back to FALLBACK_CURVE rather than raising.
    """
    curve = RESPONSE_CURVES.get((binning, filter_slot))
    if curve is None:
        logger.debug(
            "No response curve for combination, using fallback",
            binning=binning,
            filter_slot=filter_slot,
            fallback=FALLBACK_CURVE.label,
        )
        return FALLBACK_CURVE
    return curve


def simulate_flat_adu(
    exposure: float,
    binning: int,
    filter_slot: int,
    noise_fraction: float,
    rng: np.random.Generator,
) -> int:
    """Predict the average ADU of a flat frame, with multiplicative noise.

    Args:
        exposure: Exposure length in seconds.
        binning: Binning factor.
        filter_slot: One-based filter slot.
        noise_fraction: Width of the noise band as a fraction of the
            modeled value. 0 disables noise.
        rng: Random source. Seed it (or use noise_fraction=0) for
            reproducible results.

    Returns:
        Rounded ADU, at most MAX_ADU.

    Example:
        >>> simulate_flat_adu(2.0, 2, 1, 0.0, np.random.default_rng(0))
        14573
        >>> simulate_flat_adu(14.0, 2, 1, 0.0, np.random.default_rng(0))
        65535
    """
    value = curve_for(binning, filter_slot).value_at(exposure)
    draw = rng.random() - 0.5
    noisy = value + noise_fraction * draw * value
    return min(round_half_away(noisy), MAX_ADU)


__all__ = [
    "FALLBACK_CURVE",
    "MAX_ADU",
    "RESPONSE_CURVES",
    "ResponseCurve",
    "curve_for",
    "round_half_away",
    "simulate_flat_adu",
]
