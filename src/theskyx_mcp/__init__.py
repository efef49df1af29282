"""Control client for TheSkyX camera and filter wheel.

TheSkyX exposes a JavaScript scripting interface on a TCP port. This package
wraps that interface in a small service that can cool the camera, capture
dark, bias and flat calibration frames, and query the filter wheel, plus an
MCP server that exposes the same operations as tools.

Example:
    from theskyx_mcp.devices import TheSkyService
    from theskyx_mcp.drivers import TheSkyXDriver

    service = TheSkyService(TheSkyXDriver())
    service.connect("localhost", 3040)
    service.capture_dark_frame(binning=1, seconds=20.0, download_seconds=5.0)
"""

__version__ = "0.1.0"
