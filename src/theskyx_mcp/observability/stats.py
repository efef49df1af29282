"""Capture statistics collection and reporting.

Tracks calibration frame captures per frame kind (dark, bias, flat):
- Success / failure counts and success rate
- Duration statistics (min, max, avg, p95) over a rolling window
- Failure categories (timeout, invalid_exposure, driver error class)

Thread-safe; one CaptureStats may be shared by several services.

Example:
    stats = CaptureStats()
    stats.record_capture("dark", duration_ms=31_500, success=True)
    stats.record_capture("flat", duration_ms=0, success=False,
                         error_type="timeout")

    summary = stats.get_summary("dark")
    print(f"Success rate: {summary.success_rate:.1%}")
"""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

#: Number of capture records retained per frame kind for duration stats.
#: A night of calibration frames rarely exceeds a few hundred per kind.
DEFAULT_STATS_WINDOW_SIZE: int = 500


def _utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


@dataclass
class StatsSummary:
    """Summary statistics for one frame kind.

    Attributes:
        kind: Frame kind ("dark", "bias" or "flat").
        total_captures: Total capture attempts.
        successful_captures: Captures that completed.
        failed_captures: Captures that raised.
        success_rate: successful / total (0.0 with no captures).
        min_duration_ms: Fastest successful capture in the window.
        max_duration_ms: Slowest successful capture in the window.
        avg_duration_ms: Mean successful capture duration in the window.
        p95_duration_ms: 95th percentile successful duration in the window.
        error_counts: Failure count by error type.
        last_capture_time: UTC time of the most recent attempt.
        uptime_seconds: Seconds since the collector was created or reset.
    """

    kind: str
    total_captures: int = 0
    successful_captures: int = 0
    failed_captures: int = 0
    success_rate: float = 0.0
    min_duration_ms: float = 0.0
    max_duration_ms: float = 0.0
    avg_duration_ms: float = 0.0
    p95_duration_ms: float = 0.0
    error_counts: dict[str, int] = field(default_factory=dict)
    last_capture_time: datetime | None = None
    uptime_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dict (timestamps as ISO strings)."""
        return {
            "kind": self.kind,
            "total_captures": self.total_captures,
            "successful_captures": self.successful_captures,
            "failed_captures": self.failed_captures,
            "success_rate": self.success_rate,
            "min_duration_ms": self.min_duration_ms,
            "max_duration_ms": self.max_duration_ms,
            "avg_duration_ms": self.avg_duration_ms,
            "p95_duration_ms": self.p95_duration_ms,
            "error_counts": self.error_counts.copy(),
            "last_capture_time": (
                self.last_capture_time.isoformat() if self.last_capture_time else None
            ),
            "uptime_seconds": self.uptime_seconds,
        }


@dataclass
class CaptureRecord:
    """Single capture attempt."""

    timestamp: float  # monotonic
    duration_ms: float
    success: bool
    error_type: str | None = None


class CaptureStatsCollector:
    """Statistics for a single frame kind.

    Keeps cumulative counters for the success rate and a bounded deque of
    records for duration statistics.
    """

    def __init__(self, kind: str, window_size: int = DEFAULT_STATS_WINDOW_SIZE) -> None:
        self.kind = kind
        self._records: deque[CaptureRecord] = deque(maxlen=window_size)
        self._error_counts: dict[str, int] = {}
        self._total_captures = 0
        self._successful_captures = 0
        self._start_time = time.monotonic()
        self._last_capture_time: datetime | None = None
        self._lock = threading.Lock()

    def record(
        self,
        duration_ms: float,
        success: bool,
        error_type: str | None = None,
    ) -> None:
        """Record one capture attempt.

        Args:
            duration_ms: Wall-clock duration of the attempt in milliseconds.
            success: True if the capture completed.
            error_type: Failure category; ignored for successes.
        """
        record = CaptureRecord(
            timestamp=time.monotonic(),
            duration_ms=duration_ms,
            success=success,
            error_type=error_type,
        )

        with self._lock:
            self._records.append(record)
            self._total_captures += 1
            if success:
                self._successful_captures += 1
            elif error_type:
                self._error_counts[error_type] = (
                    self._error_counts.get(error_type, 0) + 1
                )
            self._last_capture_time = _utc_now()

    def get_summary(self) -> StatsSummary:
        """Compute a snapshot summary.

        Counters are copied under the lock; sorting for the percentile
        happens outside it.
        """
        with self._lock:
            total = self._total_captures
            successful = self._successful_captures
            error_counts = self._error_counts.copy()
            last_capture_time = self._last_capture_time
            start_time = self._start_time
            durations = [
                r.duration_ms for r in self._records if r.success and r.duration_ms > 0
            ]

        if durations:
            min_dur = min(durations)
            max_dur = max(durations)
            avg_dur = sum(durations) / len(durations)
            p95_dur = _percentile(sorted(durations), 95)
        else:
            min_dur = max_dur = avg_dur = p95_dur = 0.0

        return StatsSummary(
            kind=self.kind,
            total_captures=total,
            successful_captures=successful,
            failed_captures=total - successful,
            success_rate=successful / total if total > 0 else 0.0,
            min_duration_ms=min_dur,
            max_duration_ms=max_dur,
            avg_duration_ms=avg_dur,
            p95_duration_ms=p95_dur,
            error_counts=error_counts,
            last_capture_time=last_capture_time,
            uptime_seconds=time.monotonic() - start_time,
        )

    def reset(self) -> None:
        """Clear records and counters and restart the uptime clock."""
        with self._lock:
            self._records.clear()
            self._error_counts.clear()
            self._total_captures = 0
            self._successful_captures = 0
            self._start_time = time.monotonic()
            self._last_capture_time = None


class CaptureStats:
    """Per-frame-kind capture statistics.

    Collectors are created lazily the first time a kind is recorded or
    queried.

    Usage:
        stats = CaptureStats()
        service = TheSkyService(driver, stats=stats)
        ...
        print(stats.to_dict())
    """

    def __init__(self, window_size: int = DEFAULT_STATS_WINDOW_SIZE) -> None:
        self._window_size = window_size
        self._collectors: dict[str, CaptureStatsCollector] = {}
        self._lock = threading.Lock()

    def _get_collector(self, kind: str) -> CaptureStatsCollector:
        with self._lock:
            if kind not in self._collectors:
                self._collectors[kind] = CaptureStatsCollector(kind, self._window_size)
            return self._collectors[kind]

    def record_capture(
        self,
        kind: str,
        duration_ms: float,
        success: bool,
        error_type: str | None = None,
    ) -> None:
        """Record a capture attempt for the given frame kind.

        Args:
            kind: Frame kind value ("dark", "bias", "flat").
            duration_ms: Attempt duration in milliseconds.
            success: True if the capture completed.
            error_type: Failure category such as "timeout". None on success.

        Example:
            >>> stats = CaptureStats()
            >>> stats.record_capture("bias", 2_100, True)
            >>> stats.get_summary("bias").total_captures
            1
        """
        self._get_collector(kind).record(duration_ms, success, error_type)

    def get_summary(self, kind: str) -> StatsSummary:
        """Summary for one frame kind (all zeros if never recorded)."""
        return self._get_collector(kind).get_summary()

    def get_all_summaries(self) -> dict[str, StatsSummary]:
        """Summaries for every kind seen so far."""
        with self._lock:
            collectors = dict(self._collectors)
        return {kind: c.get_summary() for kind, c in collectors.items()}

    def reset(self, kind: str | None = None) -> None:
        """Reset one kind, or every kind when ``kind`` is None."""
        with self._lock:
            if kind is not None:
                if kind in self._collectors:
                    self._collectors[kind].reset()
            else:
                for collector in self._collectors.values():
                    collector.reset()

    def to_dict(self) -> dict[str, Any]:
        """Export all summaries plus a UTC timestamp."""
        return {
            "kinds": {
                kind: summary.to_dict()
                for kind, summary in self.get_all_summaries().items()
            },
            "timestamp": _utc_now().isoformat(),
        }


def _percentile(sorted_data: list[float], p: float) -> float:
    """Percentile with linear interpolation over pre-sorted data.

    Args:
        sorted_data: Ascending values. Empty input returns 0.0.
        p: Percentile in [0, 100].

    Returns:
        The interpolated percentile value.

    Raises:
        ValueError: If p is outside [0, 100].

    Example:
        >>> _percentile([100.0, 150.0, 200.0], 95)
        195.0
    """
    if not 0 <= p <= 100:
        raise ValueError(f"Percentile must be between 0 and 100, got {p}")

    if not sorted_data:
        return 0.0

    k = (len(sorted_data) - 1) * (p / 100)
    floor_idx = int(k)
    ceil_idx = min(floor_idx + 1, len(sorted_data) - 1)

    if floor_idx == ceil_idx:
        return sorted_data[floor_idx]

    fraction = k - floor_idx
    return sorted_data[floor_idx] * (1 - fraction) + sorted_data[ceil_idx] * fraction
