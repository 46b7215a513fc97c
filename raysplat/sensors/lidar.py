from __future__ import annotations

import math
from dataclasses import dataclass, field

import numpy as np

from ..core.errors import InvalidConfig
from ..core.footprint import DEFAULT_DEPTH, FootprintEstimator
from ..core.intersector import RayBundle
from ..core.raycaster import DEFAULT_NEAR
from ..motion.trajectory import SensorState
from .patterns import SphericalGridPattern

SPEED_OF_LIGHT_M_PER_NS = 0.299792458


@dataclass(frozen=True)
class ScanConfig:
    """Scan parameters; angles in radians, pulse duration in nanoseconds."""

    position: tuple[float, float, float] = (0.0, 0.0, 1.0)
    max_range: float = 15.0
    horizontal_count: int = 50
    vertical_count: int = 50
    horizontal_fov: float = 2.0 * math.pi
    vertical_fov: float = math.pi
    scan_frequency_hz: float = 50.0
    half_divergence: float = math.radians(30.2) / 2.0
    pulse_duration_ns: float = 0.01
    speed_of_light: float = SPEED_OF_LIGHT_M_PER_NS
    point_scale: float = 1.0
    near: float = DEFAULT_NEAR
    footprint_depth: float = DEFAULT_DEPTH

    def __post_init__(self) -> None:
        object.__setattr__(self, "position", tuple(float(c) for c in self.position))
        if len(self.position) != 3:
            raise InvalidConfig("position must have three components.")
        if int(self.horizontal_count) != self.horizontal_count or self.horizontal_count < 1:
            raise InvalidConfig(f"horizontal_count must be >= 1, got {self.horizontal_count!r}")
        if int(self.vertical_count) != self.vertical_count or self.vertical_count < 2:
            raise InvalidConfig(f"vertical_count must be >= 2, got {self.vertical_count!r}")
        if not self.near > 0.0:
            raise InvalidConfig("near must be positive.")
        if not self.max_range > self.near:
            raise InvalidConfig("max_range must exceed near.")
        if not self.scan_frequency_hz > 0.0:
            raise InvalidConfig("scan_frequency_hz must be positive.")
        if not (0.0 <= self.half_divergence < math.pi / 2):
            raise InvalidConfig("half_divergence must lie in [0, pi/2).")
        for name in ("pulse_duration_ns", "speed_of_light", "point_scale", "footprint_depth",
                     "horizontal_fov", "vertical_fov"):
            value = getattr(self, name)
            if not math.isfinite(value) or value < 0.0:
                raise InvalidConfig(f"{name} must be finite and non-negative, got {value!r}")

    @property
    def pulse_length(self) -> float:
        return self.pulse_duration_ns * self.speed_of_light

    @property
    def rays_per_scan(self) -> int:
        return int(self.horizontal_count) * int(self.vertical_count)

    def footprint_estimator(self) -> FootprintEstimator:
        return FootprintEstimator(
            half_divergence_rad=self.half_divergence,
            pulse_length=self.pulse_length,
            point_scale=self.point_scale,
            depth=self.footprint_depth,
        )


@dataclass
class LidarSensor:
    """Emits the fixed sampling grid from the current sensor position."""

    config: ScanConfig
    pattern: SphericalGridPattern = field(init=False)

    def __post_init__(self) -> None:
        cfg = self.config
        self.pattern = SphericalGridPattern(
            horizontal_count=cfg.horizontal_count,
            vertical_count=cfg.vertical_count,
            horizontal_fov=cfg.horizontal_fov,
            vertical_fov=cfg.vertical_fov,
            scan_frequency_hz=cfg.scan_frequency_hz,
        )

    def rays(self, state: SensorState) -> RayBundle:
        sample = self.pattern.sample()
        origins = np.broadcast_to(state.position, sample.directions.shape)
        return RayBundle(
            origins=origins,
            directions=sample.directions,
            near=self.config.near,
            far=self.config.max_range,
            meta=sample.meta,
        )
