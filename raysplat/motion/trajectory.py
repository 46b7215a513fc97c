from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np


@dataclass(frozen=True)
class SensorState:
    """Sensor position sampled at ``time_s``; passed explicitly into each scan."""

    position: np.ndarray
    time_s: float = 0.0

    def __post_init__(self) -> None:
        pos = np.array(self.position, dtype=np.float64).reshape(3)
        pos.setflags(write=False)
        object.__setattr__(self, "position", pos)


class MotionPolicy:
    """Base interface for sensor motion, evaluated once per tick."""

    def position_at(self, t: float) -> np.ndarray:
        raise NotImplementedError

    def advance(self, state: SensorState, t: float) -> SensorState:
        return SensorState(position=self.position_at(t), time_s=float(t))

    def initial_state(self, t: float = 0.0) -> SensorState:
        return SensorState(position=self.position_at(t), time_s=float(t))


@dataclass
class StaticMotion(MotionPolicy):
    """Sensor stays at a fixed position."""

    position: Tuple[float, float, float] = (0.0, 0.0, 0.0)

    def position_at(self, t: float) -> np.ndarray:
        return np.asarray(self.position, dtype=np.float64)


@dataclass
class CircularMotion(MotionPolicy):
    """Horizontal orbit around ``center`` with a sinusoidal vertical bob."""

    radius: float = 4.0
    angular_speed: float = 0.5
    height: float = 1.5
    bob_amplitude: float = 1.0
    bob_frequency: float = 1.1
    center: Tuple[float, float] = (0.0, 0.0)

    def __post_init__(self) -> None:
        if self.radius < 0.0:
            raise ValueError("radius must be non-negative.")

    def position_at(self, t: float) -> np.ndarray:
        angle = t * self.angular_speed
        return np.array(
            [
                self.center[0] + np.cos(angle) * self.radius,
                self.center[1] + np.sin(angle) * self.radius,
                self.height + np.sin(t * self.bob_frequency) * self.bob_amplitude,
            ],
            dtype=np.float64,
        )


@dataclass
class SinusoidalMotion(MotionPolicy):
    """Independent sine drift per axis: ``offset + amplitude * sin(t * angular_frequency)``."""

    amplitude: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    angular_frequency: Tuple[float, float, float] = (1.0, 0.25, 1.0 / 3.0)
    offset: Tuple[float, float, float] = (0.0, 0.0, 10.0)

    def position_at(self, t: float) -> np.ndarray:
        amp = np.asarray(self.amplitude, dtype=np.float64)
        freq = np.asarray(self.angular_frequency, dtype=np.float64)
        off = np.asarray(self.offset, dtype=np.float64)
        return off + amp * np.sin(t * freq)


class PolylineMotion(MotionPolicy):
    """Piecewise-linear path through waypoints at constant speed."""

    def __init__(
        self,
        waypoints: Sequence[Sequence[float]],
        speed_mps: float,
        start_time_s: float = 0.0,
        loop: bool = False,
    ) -> None:
        if len(waypoints) < 2:
            raise ValueError("PolylineMotion requires at least two waypoints.")
        if speed_mps <= 0.0:
            raise ValueError("speed_mps must be positive.")

        points = np.asarray(waypoints, dtype=np.float64)
        if loop and not np.allclose(points[0], points[-1]):
            points = np.vstack([points, points[:1]])
        self._points = points
        self._speed = float(speed_mps)
        self._start_time = float(start_time_s)
        self._loop = bool(loop)

        seg_lengths = np.linalg.norm(np.diff(self._points, axis=0), axis=1)
        if np.any(seg_lengths == 0):
            raise ValueError("Consecutive waypoints must be distinct.")

        seg_durations = seg_lengths / self._speed
        self._times = np.concatenate([[0.0], np.cumsum(seg_durations)])

    @property
    def duration_s(self) -> float:
        return float(self._times[-1])

    def position_at(self, t: float) -> np.ndarray:
        local = float(t) - self._start_time
        if self._loop:
            local = local % self.duration_s
        if local <= 0.0:
            return self._points[0].copy()
        if local >= self._times[-1]:
            return self._points[-1].copy()

        idx = np.searchsorted(self._times, local, side="right") - 1
        t0, t1 = self._times[idx], self._times[idx + 1]
        alpha = (local - t0) / max(t1 - t0, 1e-9)
        return (1.0 - alpha) * self._points[idx] + alpha * self._points[idx + 1]
