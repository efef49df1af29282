"""Observability module for theskyx-mcp.

Structured logging and capture statistics.

Example:
    from theskyx_mcp.observability import get_logger, LogContext

    logger = get_logger(__name__)

    with LogContext(operation="flat_capture"):
        logger.info("Exposure started", exposure=14.0, binning=2)

Statistics Example:
    from theskyx_mcp.observability import CaptureStats

    stats = CaptureStats()
    service = TheSkyService(driver, stats=stats)
    summary = stats.get_summary("flat")
"""

from theskyx_mcp.observability.logging import (
    JSONFormatter,
    LogContext,
    StructuredFormatter,
    StructuredLogger,
    configure_logging,
    get_logger,
    reset_logging,
)
from theskyx_mcp.observability.stats import (
    CaptureStats,
    StatsSummary,
)

__all__ = [
    # Logging
    "JSONFormatter",
    "LogContext",
    "StructuredFormatter",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
    "reset_logging",
    # Statistics
    "CaptureStats",
    "StatsSummary",
]
