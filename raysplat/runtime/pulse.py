from __future__ import annotations

from typing import Callable, Optional


class OneShotTimer:
    """Cooperative single-shot timer polled from the tick loop.

    Scheduling again replaces any pending callback.
    """

    def __init__(self) -> None:
        self._fire_at: Optional[float] = None
        self._callback: Optional[Callable[[], None]] = None

    @property
    def pending(self) -> bool:
        return self._callback is not None

    def schedule(self, fire_at: float, callback: Callable[[], None]) -> None:
        self._fire_at = float(fire_at)
        self._callback = callback

    def cancel(self) -> None:
        self._fire_at = None
        self._callback = None

    def poll(self, now: float) -> bool:
        if self._callback is None or self._fire_at is None or now < self._fire_at:
            return False
        callback = self._callback
        self.cancel()
        callback()
        return True


class PulseIndicator:
    """Sensor marker that grows briefly whenever a scan completes.

    Purely cosmetic: it only owns its own ``scale``.
    """

    def __init__(self, base_scale: float = 1.0, pulse_scale: float = 1.5, duration_s: float = 0.05) -> None:
        if duration_s < 0.0:
            raise ValueError("duration_s must be non-negative.")
        self.base_scale = float(base_scale)
        self.pulse_scale = float(pulse_scale)
        self.duration_s = float(duration_s)
        self.scale = self.base_scale
        self.pulses = 0
        self._timer = OneShotTimer()

    @property
    def active(self) -> bool:
        return self._timer.pending

    def trigger(self, now: float) -> None:
        self.scale = self.pulse_scale
        self.pulses += 1
        self._timer.schedule(now + self.duration_s, self._restore)

    def update(self, now: float) -> None:
        self._timer.poll(now)

    def reset(self) -> None:
        self._timer.cancel()
        self.scale = self.base_scale
        self.pulses = 0

    def _restore(self) -> None:
        self.scale = self.base_scale
