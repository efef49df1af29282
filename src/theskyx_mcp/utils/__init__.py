"""Utility modules for theskyx-mcp.

Shared by drivers and devices, so nothing here may import either package.
"""

from theskyx_mcp.utils.rounding import round_half_away

__all__ = ["round_half_away"]
