from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

import numpy as np

from ..core.errors import InvalidConfig
from ..core.utils import ensure_unit_vectors


def sampling_grid(
    horizontal_count: int,
    vertical_count: int,
    horizontal_fov: float,
    vertical_fov: float,
) -> np.ndarray:
    """Unit ray directions for one scan, shape ``(V * H, 3)``.

    Rows are ordered vertical index outer, horizontal index inner, so row
    ``i * H + j`` holds elevation ``i`` and azimuth ``j``. Elevation spans
    ``[-vertical_fov/2, vertical_fov/2]`` inclusive; azimuth runs from 0 up to
    but excluding ``horizontal_fov``, measured from +X toward +Y with +Z up.
    """
    if int(horizontal_count) != horizontal_count or horizontal_count < 1:
        raise InvalidConfig(f"horizontal ray count must be >= 1, got {horizontal_count!r}")
    if int(vertical_count) != vertical_count or vertical_count < 2:
        raise InvalidConfig(f"vertical ray count must be >= 2, got {vertical_count!r}")
    h = int(horizontal_count)
    v = int(vertical_count)

    phi = vertical_fov * (np.arange(v, dtype=np.float64) / (v - 1)) - vertical_fov / 2.0
    theta = horizontal_fov * (np.arange(h, dtype=np.float64) / h)
    phi_g, theta_g = np.meshgrid(phi, theta, indexing="ij")

    polar = np.pi / 2.0 - phi_g
    dirs = np.column_stack(
        [
            (np.sin(polar) * np.cos(theta_g)).ravel(),
            (np.sin(polar) * np.sin(theta_g)).ravel(),
            np.cos(polar).ravel(),
        ]
    )
    return ensure_unit_vectors(dirs)


@dataclass
class PatternSample:
    """Bundle of unit directions and per-ray metadata from a scan pattern."""

    directions: np.ndarray
    meta: Dict[str, np.ndarray]


class ScanPattern:
    """Base class for generating sensor-frame ray directions."""

    def cadence_s(self) -> float:
        """Duration represented by each pattern sample."""
        raise NotImplementedError

    def sample(self) -> PatternSample:
        raise NotImplementedError


class SphericalGridPattern(ScanPattern):
    """Fixed elevation x azimuth grid swept once per scan."""

    def __init__(
        self,
        horizontal_count: int,
        vertical_count: int,
        horizontal_fov: float,
        vertical_fov: float,
        scan_frequency_hz: float = 10.0,
    ) -> None:
        if not scan_frequency_hz > 0.0:
            raise InvalidConfig("scan_frequency_hz must be positive.")
        self._directions = sampling_grid(horizontal_count, vertical_count, horizontal_fov, vertical_fov)
        self._directions.setflags(write=False)
        self.horizontal_count = int(horizontal_count)
        self.vertical_count = int(vertical_count)
        self.horizontal_fov = float(horizontal_fov)
        self.vertical_fov = float(vertical_fov)
        self.scan_frequency_hz = float(scan_frequency_hz)

        h, v = self.horizontal_count, self.vertical_count
        channel = np.repeat(np.arange(v, dtype=np.uint16), h)
        column = np.tile(np.arange(h, dtype=np.uint32), v)
        self._meta: Dict[str, np.ndarray] = {
            "channel_id": channel,
            "column_id": column,
            "elevation_rad": (self.vertical_fov * channel / (v - 1) - self.vertical_fov / 2.0),
            "azimuth_rad": self.horizontal_fov * column / h,
        }

    @property
    def ray_count(self) -> int:
        return len(self._directions)

    def cadence_s(self) -> float:
        return 1.0 / self.scan_frequency_hz

    def sample(self) -> PatternSample:
        return PatternSample(directions=self._directions, meta=dict(self._meta))
