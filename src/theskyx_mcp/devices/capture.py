"""Calibration frame capture orchestration.

Dark, bias and flat captures share one procedure:

    NotStarted -> Exposing -> Polling -> Done
                                     -> TimedOut

1. Ask the command channel to start the exposure.
2. Wait once for the time the exposure cannot finish sooner than
   (exposure + download + a small grace margin, rounded to whole seconds).
3. Poll until the camera reports completion, sleeping a fixed interval
   between polls, and give up once the accumulated nominal wait exceeds
   the maximum for this frame kind.

What differs per kind is captured in a CaptureProfile value (start command,
nominal exposure, timeout floor, post-completion step) instead of three
copies of the loop.

Failures from the channel or the delay provider propagate unchanged and
are never retried: a failed start means the exposure was not accepted, and
blind retries risk a double exposure.

Example:
    orchestrator = CaptureOrchestrator(driver, SystemDelay())
    orchestrator.capture_dark_frame(binning=1, seconds=20.0, download_seconds=5.0)
    adu = orchestrator.capture_and_measure_flat_frame(
        exposure=14.0, binning=2, filter_slot=1, download_seconds=5.0,
        save_image=True,
    )
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import cast

import numpy as np

from theskyx_mcp.devices.delay import Clock, DelayProvider, SystemClock, SystemDelay
from theskyx_mcp.devices.flat_model import simulate_flat_adu
from theskyx_mcp.drivers.types import (
    DEFAULT_NOISE_FRACTION,
    FILTER_SLOT_NO_FILTER,
    CommandChannel,
)
from theskyx_mcp.observability import CaptureStats, LogContext, get_logger
from theskyx_mcp.utils import round_half_away

logger = get_logger(__name__)

# =============================================================================
# Timing constants
# =============================================================================

#: Added to exposure + download before the first poll.
GRACE_SECONDS = 0.5

#: Nominal seconds between completion polls.
POLL_INTERVAL_SECONDS = 2.0

#: Maximum wait as a multiple of exposure + download.
TIMEOUT_FACTOR = 5.0

#: Nominal exposure used for bias frames when computing waits.
BIAS_EXPOSURE_SECONDS = 0.1

#: Lower bound on the maximum wait for darks and flats.
DARK_TIMEOUT_FLOOR_SECONDS = 600.0

#: Lower bound on the maximum wait for bias frames.
BIAS_TIMEOUT_FLOOR_SECONDS = 180.0

TIMEOUT_MESSAGE = "Timeout waiting for capture to finish"


# =============================================================================
# Exceptions
# =============================================================================


class CaptureError(Exception):
    """Base exception raised by the capture orchestrator itself."""

    pass


class CaptureTimeoutError(CaptureError):
    """Camera never reported completion within the maximum wait."""

    def __init__(self, operation: str, waited_seconds: float, max_wait_seconds: float):
        super().__init__(f"{operation}: {TIMEOUT_MESSAGE}")
        self.operation = operation
        self.waited_seconds = waited_seconds
        self.max_wait_seconds = max_wait_seconds


class InvalidExposureError(ValueError):
    """Exposure length that no camera can take (caller bug).

    Raised before any command is sent.
    """

    pass


# =============================================================================
# Value types
# =============================================================================


class CaptureKind(Enum):
    """Calibration frame kinds."""

    DARK = "dark"
    BIAS = "bias"
    FLAT = "flat"


@dataclass(frozen=True)
class CaptureRequest:
    """Parameters of one capture.

    ``exposure`` is ignored for bias frames. ``filter_slot`` and
    ``save_image`` only apply to flats.
    """

    binning: int
    exposure: float
    download_seconds: float
    filter_slot: int = FILTER_SLOT_NO_FILTER
    save_image: bool = True


@dataclass(frozen=True)
class WaitSchedule:
    """Timing of one capture, derived from its nominal exposure."""

    initial_delay: int
    poll_interval: float
    max_wait: float

    @classmethod
    def for_exposure(
        cls, exposure: float, download_seconds: float, timeout_floor: float
    ) -> WaitSchedule:
        """Compute the schedule for an exposure.

        Example:
            >>> WaitSchedule.for_exposure(20.0, 5.0, 600.0)
            WaitSchedule(initial_delay=26, poll_interval=2.0, max_wait=600.0)
        """
        busy = exposure + download_seconds
        return cls(
            initial_delay=round_half_away(busy + GRACE_SECONDS),
            poll_interval=POLL_INTERVAL_SECONDS,
            max_wait=max(TIMEOUT_FACTOR * busy, timeout_floor),
        )

    @property
    def poll_delay(self) -> int:
        """Whole seconds requested from the delay provider between polls."""
        return round_half_away(self.poll_interval)


StartCommand = Callable[[CommandChannel, CaptureRequest], None]
PostStep = Callable[["CaptureOrchestrator", CaptureRequest], int]


def _start_dark(channel: CommandChannel, request: CaptureRequest) -> None:
    channel.start_dark_frame_capture(
        request.binning, request.exposure, request.download_seconds
    )


def _start_bias(channel: CommandChannel, request: CaptureRequest) -> None:
    channel.start_bias_frame_capture(request.binning, request.download_seconds)


def _start_flat(channel: CommandChannel, request: CaptureRequest) -> None:
    channel.start_flat_frame_capture(
        request.binning,
        request.exposure,
        request.filter_slot,
        request.download_seconds,
        request.save_image,
    )


def _measure_flat(orchestrator: CaptureOrchestrator, request: CaptureRequest) -> int:
    return orchestrator.measure_flat(request)


@dataclass(frozen=True)
class CaptureProfile:
    """Everything that differs between frame kinds.

    Attributes:
        kind: Frame kind.
        operation: Name used in logs and the timeout message.
        start: Issues the kind-specific start command.
        timeout_floor: Lower bound on the maximum wait in seconds.
        fixed_exposure: Nominal exposure overriding the request's (bias).
        post_step: Runs after completion and returns the result (flat).
    """

    kind: CaptureKind
    operation: str
    start: StartCommand
    timeout_floor: float
    fixed_exposure: float | None = None
    post_step: PostStep | None = None

    def nominal_exposure(self, request: CaptureRequest) -> float:
        if self.fixed_exposure is not None:
            return self.fixed_exposure
        return request.exposure

    def schedule(self, request: CaptureRequest) -> WaitSchedule:
        return WaitSchedule.for_exposure(
            self.nominal_exposure(request),
            request.download_seconds,
            self.timeout_floor,
        )


DARK_PROFILE = CaptureProfile(
    kind=CaptureKind.DARK,
    operation="capture_dark_frame",
    start=_start_dark,
    timeout_floor=DARK_TIMEOUT_FLOOR_SECONDS,
)

BIAS_PROFILE = CaptureProfile(
    kind=CaptureKind.BIAS,
    operation="capture_bias_frame",
    start=_start_bias,
    timeout_floor=BIAS_TIMEOUT_FLOOR_SECONDS,
    fixed_exposure=BIAS_EXPOSURE_SECONDS,
)

FLAT_PROFILE = CaptureProfile(
    kind=CaptureKind.FLAT,
    operation="capture_and_measure_flat_frame",
    start=_start_flat,
    timeout_floor=DARK_TIMEOUT_FLOOR_SECONDS,
    post_step=_measure_flat,
)


# =============================================================================
# Orchestrator
# =============================================================================


class CaptureOrchestrator:
    """Runs captures against a command channel.

    One capture at a time per instance. Simulation settings are plain
    attributes and may be changed between captures.

    Attributes:
        simulate_flat_capture: Replace measured flat ADU with the model.
        simulation_noise_fraction: Noise band of the flat model.
    """

    def __init__(
        self,
        channel: CommandChannel,
        delay: DelayProvider | None = None,
        *,
        simulate_flat_capture: bool = False,
        simulation_noise_fraction: float = DEFAULT_NOISE_FRACTION,
        rng: np.random.Generator | None = None,
        stats: CaptureStats | None = None,
        clock: Clock | None = None,
    ) -> None:
        """Create an orchestrator.

        Args:
            channel: Command channel the captures run on.
            delay: Delay provider. Defaults to SystemDelay.
            simulate_flat_capture: Override flat ADU with the model.
            simulation_noise_fraction: Noise band for the model.
            rng: Random source for the model. Defaults to an unseeded
                numpy Generator.
            stats: Optional collector; one record per capture attempt.
            clock: Clock for stats durations. Defaults to SystemClock.
        """
        self._channel = channel
        self._delay = delay or SystemDelay()
        self._rng = rng if rng is not None else np.random.default_rng()
        self._stats = stats
        self._clock = clock or SystemClock()
        self.simulate_flat_capture = simulate_flat_capture
        self.simulation_noise_fraction = simulation_noise_fraction

    @property
    def channel(self) -> CommandChannel:
        return self._channel

    @channel.setter
    def channel(self, channel: CommandChannel) -> None:
        self._channel = channel

    # -------------------------------------------------------------------------
    # Public capture operations
    # -------------------------------------------------------------------------

    def capture_dark_frame(
        self, binning: int, seconds: float, download_seconds: float
    ) -> None:
        """Take a dark frame and wait for it to finish.

        Raises:
            CaptureTimeoutError: Camera never reported completion.
            Exception: Channel or delay failures, unchanged.
        """
        self.run(DARK_PROFILE, CaptureRequest(binning, seconds, download_seconds))

    def capture_bias_frame(self, binning: int, download_seconds: float) -> None:
        """Take a bias frame and wait for it to finish.

        Raises:
            CaptureTimeoutError: Camera never reported completion.
            Exception: Channel or delay failures, unchanged.
        """
        self.run(
            BIAS_PROFILE,
            CaptureRequest(binning, BIAS_EXPOSURE_SECONDS, download_seconds),
        )

    def capture_and_measure_flat_frame(
        self,
        exposure: float,
        binning: int,
        filter_slot: int,
        download_seconds: float,
        save_image: bool,
    ) -> int:
        """Take a flat frame and return its average ADU.

        When simulate_flat_capture is set, the camera's measurement is still
        read but the flat model's prediction is returned instead.

        Args:
            exposure: Exposure seconds, must be positive.
            binning: Binning factor.
            filter_slot: One-based slot, or FILTER_SLOT_NO_FILTER.
            download_seconds: Measured download time.
            save_image: Have TheSkyX auto-save the frame.

        Returns:
            Average ADU of the frame (or the simulated value).

        Raises:
            InvalidExposureError: exposure is zero or negative. Nothing is sent.
            CaptureTimeoutError: Camera never reported completion.
            Exception: Channel or delay failures, unchanged.
        """
        if exposure <= 0:
            self._record(FLAT_PROFILE, 0.0, "invalid_exposure")
            raise InvalidExposureError(
                f"{FLAT_PROFILE.operation}: exposure must be positive, got {exposure} "
                f"(binning={binning}, filter_slot={filter_slot})"
            )
        request = CaptureRequest(
            binning, exposure, download_seconds, filter_slot, save_image
        )
        return cast(int, self.run(FLAT_PROFILE, request))

    # -------------------------------------------------------------------------
    # State machine
    # -------------------------------------------------------------------------

    def run(self, profile: CaptureProfile, request: CaptureRequest) -> int | None:
        """Run one capture described by a profile.

        Returns:
            The post step's result, or None for kinds without one.
        """
        started = self._clock.monotonic()
        with LogContext(operation=profile.operation, kind=profile.kind.value):
            try:
                result = self._run(profile, request)
            except CaptureTimeoutError:
                self._record(profile, self._elapsed_ms(started), "timeout")
                raise
            except Exception as e:
                self._record(profile, self._elapsed_ms(started), type(e).__name__)
                raise
        self._record(profile, self._elapsed_ms(started), None)
        return result

    def _run(self, profile: CaptureProfile, request: CaptureRequest) -> int | None:
        schedule = profile.schedule(request)
        logger.debug(
            "Starting exposure",
            binning=request.binning,
            exposure=profile.nominal_exposure(request),
            download_seconds=request.download_seconds,
        )
        profile.start(self._channel, request)

        logger.debug("Exposure started, waiting", delay_seconds=schedule.initial_delay)
        self._delay.delay(schedule.initial_delay)

        waited = 0.0
        while True:
            if self._channel.is_capture_done():
                logger.debug("Capture complete", waited_seconds=waited)
                if profile.post_step is None:
                    return None
                return profile.post_step(self, request)
            if waited > schedule.max_wait:
                logger.warning(
                    "Capture timed out",
                    waited_seconds=waited,
                    max_wait_seconds=schedule.max_wait,
                )
                raise CaptureTimeoutError(profile.operation, waited, schedule.max_wait)
            logger.debug(
                "Camera not finished, delaying", delay_seconds=schedule.poll_delay
            )
            self._delay.delay(schedule.poll_delay)
            # Nominal interval, not what the provider reports
            waited += schedule.poll_interval

    def measure_flat(self, request: CaptureRequest) -> int:
        """Read the flat's ADU, substituting the model when simulating."""
        adu = self._channel.get_adu_value()
        if self.simulate_flat_capture:
            simulated = simulate_flat_adu(
                request.exposure,
                request.binning,
                request.filter_slot,
                self.simulation_noise_fraction,
                self._rng,
            )
            logger.debug("Simulating ADU value", measured=adu, simulated=simulated)
            adu = simulated
        logger.debug("Flat measured", adu=adu)
        return adu

    # -------------------------------------------------------------------------
    # Statistics
    # -------------------------------------------------------------------------

    def _elapsed_ms(self, started: float) -> float:
        return (self._clock.monotonic() - started) * 1000.0

    def _record(
        self, profile: CaptureProfile, duration_ms: float, error_type: str | None
    ) -> None:
        if self._stats is None:
            return
        self._stats.record_capture(
            profile.kind.value,
            duration_ms=duration_ms,
            success=error_type is None,
            error_type=error_type,
        )


__all__ = [
    "BIAS_EXPOSURE_SECONDS",
    "BIAS_PROFILE",
    "BIAS_TIMEOUT_FLOOR_SECONDS",
    "DARK_PROFILE",
    "DARK_TIMEOUT_FLOOR_SECONDS",
    "DEFAULT_NOISE_FRACTION",
    "FLAT_PROFILE",
    "GRACE_SECONDS",
    "POLL_INTERVAL_SECONDS",
    "TIMEOUT_FACTOR",
    "TIMEOUT_MESSAGE",
    "CaptureError",
    "CaptureKind",
    "CaptureOrchestrator",
    "CaptureProfile",
    "CaptureRequest",
    "CaptureTimeoutError",
    "InvalidExposureError",
    "WaitSchedule",
]
