from __future__ import annotations
from typing import List, Optional, Tuple
import numpy as np

from .errors import BufferInvariantError, InvalidConfig
from .footprint import FootprintBatch, PointRecord
from .utils import compose_matrices

DirtyRange = Tuple[int, int]


class PointRingBuffer:
    """Fixed-capacity store of footprint transforms with wraparound writes.

    Slot ``cursor`` receives the next record; once ``total_written`` reaches
    the capacity every write evicts the oldest record. Only the ingest
    methods mutate the buffer, and each returns the half-open slot ranges it
    touched so a sink can upload just those.
    """

    def __init__(self, capacity: int) -> None:
        if int(capacity) != capacity or capacity <= 0:
            raise InvalidConfig(f"buffer capacity must be a positive integer, got {capacity!r}")
        self._capacity = int(capacity)
        self._positions = np.zeros((self._capacity, 3), dtype=np.float64)
        self._orientations = np.zeros((self._capacity, 4), dtype=np.float64)
        self._scales = np.zeros((self._capacity, 3), dtype=np.float64)
        self._written = np.zeros((self._capacity,), dtype=bool)
        self._cursor = 0
        self._total_written = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def total_written(self) -> int:
        return self._total_written

    @property
    def active_count(self) -> int:
        return min(self._total_written, self._capacity)

    def _check_cursor(self) -> None:
        if not 0 <= self._cursor < self._capacity:
            raise BufferInvariantError(
                f"write cursor {self._cursor} outside [0, {self._capacity}) after {self._total_written} writes"
            )

    def ingest(self, record: PointRecord) -> List[DirtyRange]:
        self._check_cursor()
        slot = self._cursor
        self._positions[slot] = record.position
        self._orientations[slot] = record.orientation
        self._scales[slot] = record.scale
        self._written[slot] = True
        self._cursor = (self._cursor + 1) % self._capacity
        self._total_written += 1
        return [(slot, slot + 1)]

    def ingest_batch(self, batch: FootprintBatch) -> List[DirtyRange]:
        """Write ``batch`` in order; the slot layout matches one ``ingest`` per record."""
        self._check_cursor()
        n = len(batch)
        if n == 0:
            return []
        start = self._cursor
        # Records older than the last `capacity` writes would be overwritten within this batch
        first = max(0, n - self._capacity)
        slots = (start + np.arange(first, n)) % self._capacity
        self._positions[slots] = batch.positions[first:]
        self._orientations[slots] = batch.orientations[first:]
        self._scales[slots] = batch.scales[first:]
        self._written[slots] = True
        self._cursor = (start + n) % self._capacity
        self._total_written += n
        return self._dirty_ranges(start, n)

    def _dirty_ranges(self, start: int, n: int) -> List[DirtyRange]:
        if n >= self._capacity:
            return [(0, self._capacity)]
        stop = start + n
        if stop <= self._capacity:
            return [(start, stop)]
        return [(start, self._capacity), (0, stop - self._capacity)]

    def record_at(self, slot: int) -> Optional[PointRecord]:
        if not 0 <= slot < self._capacity:
            raise IndexError(f"slot {slot} outside [0, {self._capacity})")
        if not self._written[slot]:
            return None
        return PointRecord(self._positions[slot], self._orientations[slot], self._scales[slot])

    def snapshot(self) -> FootprintBatch:
        """Copies of the records in slots [0, active_count)."""
        n = self.active_count
        return FootprintBatch(
            positions=self._positions[:n].copy(),
            orientations=self._orientations[:n].copy(),
            scales=self._scales[:n].copy(),
        )

    def instance_matrices(self, start: int = 0, stop: Optional[int] = None) -> np.ndarray:
        stop = self.active_count if stop is None else stop
        if not 0 <= start <= stop <= self._capacity:
            raise IndexError(f"range ({start}, {stop}) outside [0, {self._capacity}]")
        return compose_matrices(
            self._positions[start:stop], self._orientations[start:stop], self._scales[start:stop]
        )

    def reset(self) -> None:
        self._positions.fill(0.0)
        self._orientations.fill(0.0)
        self._scales.fill(0.0)
        self._written.fill(False)
        self._cursor = 0
        self._total_written = 0
