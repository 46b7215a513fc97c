from __future__ import annotations
from enum import Enum
from typing import Callable, Optional, TypeVar

from .errors import InvalidConfig

T = TypeVar("T")

# Absorbs float noise in accumulated frame timestamps (e.g. 8 * 0.05 - 0.3)
_TIME_EPS = 1e-9


class ScanState(Enum):
    IDLE = "idle"
    SCANNING = "scanning"


class ScanScheduler:
    """Frame-driven scan cadence.

    Each tick either runs one complete scan (when at least ``1/frequency``
    seconds passed since the last one) or does nothing. A frequency above the
    tick rate degrades to one scan per tick.
    """

    def __init__(self, scan_frequency_hz: float, start_time_s: float = 0.0) -> None:
        if not scan_frequency_hz > 0.0:
            raise InvalidConfig(f"scan frequency must be positive, got {scan_frequency_hz!r}")
        self.scan_frequency_hz = float(scan_frequency_hz)
        self.period_s = 1.0 / self.scan_frequency_hz
        self._start_time = float(start_time_s)
        self.last_scan_time = self._start_time
        self.state = ScanState.IDLE
        self.scans_completed = 0

    def due(self, now: float) -> bool:
        return (now - self.last_scan_time) + _TIME_EPS >= self.period_s

    def tick(self, now: float, scan: Callable[[], T]) -> Optional[T]:
        if not self.due(now):
            return None
        self.state = ScanState.SCANNING
        try:
            result = scan()
        finally:
            self.state = ScanState.IDLE
        self.last_scan_time = float(now)
        self.scans_completed += 1
        return result

    def reset(self) -> None:
        self.last_scan_time = self._start_time
        self.state = ScanState.IDLE
        self.scans_completed = 0
