from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional
import numpy as np

from .errors import InvalidConfig
from .exporter import DisplaySink
from .footprint import FootprintBatch
from .intersector import Intersector, RayBundle
from .raycaster import HitBatch, NearestHitRaycaster
from .ringbuffer import DirtyRange, PointRingBuffer
from .scene import MeshScene
from .scheduler import ScanScheduler
from .utils import get_logger
from ..motion.trajectory import MotionPolicy, SensorState, StaticMotion
from ..runtime.pulse import PulseIndicator
from ..sensors.lidar import LidarSensor, ScanConfig

_log = get_logger()

DEFAULT_SCANS_RETAINED = 100


@dataclass
class ScanResult:
    state: SensorState
    rays: int
    hits: HitBatch
    footprints: FootprintBatch
    dirty_ranges: Optional[List[DirtyRange]] = None


class Simulator:
    """Per-tick driver: motion, scan cadence, raycast, footprints, buffer, sink.

    ``scan`` is a pure pass for a given sensor state. ``step`` advances the
    sensor, asks the scheduler whether a scan is due and, if so, ingests the
    footprints into the ring buffer and forwards the dirty ranges to the sink.
    """

    def __init__(
        self,
        scene: MeshScene,
        config: ScanConfig,
        *,
        intersector: Optional[Intersector] = None,
        motion: Optional[MotionPolicy] = None,
        capacity: Optional[int] = None,
        sink: Optional[DisplaySink] = None,
        pulse: Optional[PulseIndicator] = None,
        batch_size_rays: int = 100_000,
    ) -> None:
        if int(batch_size_rays) != batch_size_rays or batch_size_rays <= 0:
            raise InvalidConfig(f"batch_size_rays must be a positive integer, got {batch_size_rays!r}")
        self.scene = scene
        self.config = config
        self.sensor = LidarSensor(config)
        self.raycaster = NearestHitRaycaster(scene, intersector=intersector, near=config.near)
        self.estimator = config.footprint_estimator()
        self.motion = motion if motion is not None else StaticMotion(config.position)
        if capacity is None:
            capacity = config.rays_per_scan * DEFAULT_SCANS_RETAINED
        self.buffer = PointRingBuffer(capacity)
        self.scheduler = ScanScheduler(config.scan_frequency_hz)
        self.sink = sink
        self.pulse = pulse if pulse is not None else PulseIndicator()
        self.batch_size_rays = int(batch_size_rays)
        self.state = self.motion.initial_state(0.0)
        self.hits_total = 0
        self.ticks = 0
        self.last_tick_s: Optional[float] = None
        _log.info(
            "Simulator ready: %d rays/scan at %.3g Hz, buffer of %d footprints",
            config.rays_per_scan, config.scan_frequency_hz, self.buffer.capacity,
        )

    def _chunks(self, bundle: RayBundle) -> Iterable[tuple[int, RayBundle]]:
        n = len(bundle)
        if n <= self.batch_size_rays:
            yield 0, bundle
            return
        for start in range(0, n, self.batch_size_rays):
            yield start, bundle.slice(start, min(start + self.batch_size_rays, n))

    def cast(self, bundle: RayBundle) -> HitBatch:
        """Nearest hit per ray, in sampling order, casting at most ``batch_size_rays`` at a time."""
        parts: List[HitBatch] = []
        for start, chunk in self._chunks(bundle):
            hits = self.raycaster.cast(chunk)
            if len(hits):
                hits.ray_index = hits.ray_index + start
                parts.append(hits)
        if not parts:
            return HitBatch.empty()
        if len(parts) == 1:
            return parts[0]
        return HitBatch(
            positions=np.vstack([p.positions for p in parts]),
            distances=np.concatenate([p.distances for p in parts]),
            normals=np.vstack([p.normals for p in parts]),
            directions=np.vstack([p.directions for p in parts]),
            ray_index=np.concatenate([p.ray_index for p in parts]),
        )

    def scan(self, state: SensorState) -> ScanResult:
        bundle = self.sensor.rays(state)
        hits = self.cast(bundle)
        footprints = self.estimator.estimate_batch(hits)
        return ScanResult(state=state, rays=len(bundle), hits=hits, footprints=footprints)

    def _scan_and_ingest(self, state: SensorState) -> ScanResult:
        result = self.scan(state)
        result.dirty_ranges = self.buffer.ingest_batch(result.footprints)
        self.hits_total += len(result.hits)
        _log.debug(
            "Scan %d at t=%.3f: %d rays, %d hits, %d active",
            self.scheduler.scans_completed + 1, state.time_s, result.rays, len(result.hits),
            self.buffer.active_count,
        )
        return result

    def step(self, now: float) -> Optional[ScanResult]:
        self.ticks += 1
        self.last_tick_s = float(now)
        self.state = self.motion.advance(self.state, now)
        state = self.state
        result = self.scheduler.tick(now, lambda: self._scan_and_ingest(state))
        if result is not None:
            if self.sink is not None:
                self.sink.update(self.buffer, result.dirty_ranges or [])
            self.pulse.trigger(now)
        self.pulse.update(now)
        return result

    def run(self, duration_s: float, tick_rate_hz: float) -> Dict[str, Any]:
        """Headless loop of fixed-rate ticks for ``duration_s`` of simulated time.

        Ticks fall at ``start + i / tick_rate_hz``. A fresh simulator starts at
        0.0; later runs continue one period after the last tick.
        """
        if not tick_rate_hz > 0.0:
            raise InvalidConfig(f"tick_rate_hz must be positive, got {tick_rate_hz!r}")
        if duration_s < 0.0:
            raise InvalidConfig(f"duration_s must be non-negative, got {duration_s!r}")
        n_ticks = int(round(duration_s * tick_rate_hz))
        start = 0.0 if self.last_tick_s is None else self.last_tick_s + 1.0 / tick_rate_hz
        ticks_before = self.ticks
        scans_before = self.scheduler.scans_completed
        rays_before = self.raycaster.rays_cast
        hits_before = self.hits_total
        for i in range(n_ticks):
            self.step(start + i / tick_rate_hz)

        stats = {
            "ticks": self.ticks - ticks_before,
            "scans": self.scheduler.scans_completed - scans_before,
            "rays": self.raycaster.rays_cast - rays_before,
            "hits": self.hits_total - hits_before,
            "active": self.buffer.active_count,
        }
        _log.info(
            "Simulation finished: %d ticks, %d scans, %d rays → %d hits (%d active)",
            stats["ticks"], stats["scans"], stats["rays"], stats["hits"], stats["active"],
        )
        return stats

    def reset(self) -> None:
        self.buffer.reset()
        self.scheduler.reset()
        self.pulse.reset()
        if self.sink is not None:
            self.sink.reset()
        self.state = self.motion.initial_state(0.0)
        self.hits_total = 0
        self.ticks = 0
        self.last_tick_s = None
        self.raycaster.rays_cast = 0
