"""MCP tool modules."""

from theskyx_mcp.tools import camera

__all__ = ["camera"]
