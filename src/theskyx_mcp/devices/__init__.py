"""Logical device layer - capture orchestration and the TheSkyX service."""

from theskyx_mcp.devices.capture import (
    BIAS_PROFILE,
    DARK_PROFILE,
    FLAT_PROFILE,
    CaptureError,
    CaptureKind,
    CaptureOrchestrator,
    CaptureProfile,
    CaptureRequest,
    CaptureTimeoutError,
    InvalidExposureError,
    WaitSchedule,
)
from theskyx_mcp.devices.delay import (
    Clock,
    DelayProvider,
    InstantDelay,
    SystemClock,
    SystemDelay,
)
from theskyx_mcp.devices.filter_wheel import FilterWheelProbe, clean_filter_names
from theskyx_mcp.devices.flat_model import ResponseCurve, simulate_flat_adu
from theskyx_mcp.devices.service import ConnectionNotOpenError, TheSkyService

__all__ = [
    # Service
    "TheSkyService",
    "ConnectionNotOpenError",
    # Capture
    "CaptureError",
    "CaptureKind",
    "CaptureOrchestrator",
    "CaptureProfile",
    "CaptureRequest",
    "CaptureTimeoutError",
    "InvalidExposureError",
    "WaitSchedule",
    "DARK_PROFILE",
    "BIAS_PROFILE",
    "FLAT_PROFILE",
    # Flat model
    "ResponseCurve",
    "simulate_flat_adu",
    # Filter wheel
    "FilterWheelProbe",
    "clean_filter_names",
    # Delay (shared)
    "Clock",
    "DelayProvider",
    "InstantDelay",
    "SystemClock",
    "SystemDelay",
]
