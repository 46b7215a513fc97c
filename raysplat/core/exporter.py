from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Sequence, Tuple
import numpy as np
import pathlib

import laspy  # type: ignore
from .footprint import FootprintBatch
from .ringbuffer import DirtyRange, PointRingBuffer
from .utils import get_logger

_log = get_logger()


class DisplaySink(Protocol):
    def update(self, buffer: PointRingBuffer, dirty_ranges: Sequence[DirtyRange]) -> None: ...

    def reset(self) -> None: ...


class InstanceArraySink:
    """In-memory stand-in for an instanced-mesh upload target.

    Keeps one float32 4x4 matrix per buffer slot and copies only the dirty
    ranges on each update. ``count`` mirrors the buffer's active count.
    """

    def __init__(self, capacity: int) -> None:
        self.matrices = np.zeros((int(capacity), 4, 4), dtype=np.float32)
        self.count = 0
        self.updates = 0
        self.slots_uploaded = 0

    def update(self, buffer: PointRingBuffer, dirty_ranges: Sequence[DirtyRange]) -> None:
        if buffer.capacity != len(self.matrices):
            raise ValueError(
                f"sink sized for {len(self.matrices)} instances, buffer holds {buffer.capacity}"
            )
        for start, stop in dirty_ranges:
            self.matrices[start:stop] = buffer.instance_matrices(start, stop)
            self.slots_uploaded += stop - start
        self.count = buffer.active_count
        self.updates += 1

    def reset(self) -> None:
        self.matrices.fill(0.0)
        self.count = 0
        self.updates = 0
        self.slots_uploaded = 0

    def visible(self) -> np.ndarray:
        return self.matrices[: self.count]


def _footprint_axes(batch: FootprintBatch) -> Tuple[np.ndarray, np.ndarray]:
    return batch.scales[:, 0], batch.scales[:, 1]


@dataclass
class LasWriter:
    """Streaming LAS/LAZ writer for footprint records using laspy (v2+).

    The header is created on the first batch so the coordinate offset can be
    taken from the data.
    """
    path: str
    point_format: int = 6
    compress: bool = False
    scale: tuple[float, float, float] = (1e-3, 1e-3, 1e-3)
    offset: Optional[tuple[float, float, float]] = None

    def __post_init__(self) -> None:
        self._fh: Optional[laspy.LasWriter] = None  # type: ignore
        self._header: Optional[laspy.LasHeader] = None  # type: ignore
        self.points_written = 0

    def write_batch(self, batch: FootprintBatch) -> None:
        if len(batch) == 0:
            return
        if self._fh is None:
            self._open(batch)
        assert self._fh is not None and self._header is not None
        self._fh.write_points(self._point_record(batch, self._header))
        self.points_written += len(batch)

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    def _open(self, batch: FootprintBatch) -> None:
        hdr = laspy.LasHeader(point_format=laspy.PointFormat(self.point_format), version="1.4")
        hdr.scales = self.scale
        if self.offset is None:
            mn = np.min(batch.positions, axis=0)
            hdr.offsets = (float(mn[0]), float(mn[1]), float(mn[2]))
        else:
            hdr.offsets = self.offset
        for name in ("FootprintMajor", "FootprintMinor", "NormalX", "NormalY", "NormalZ"):
            hdr.add_extra_dim(laspy.ExtraBytesParams(name=name, type="float32"))

        path = pathlib.Path(self.path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = laspy.open(path, mode="w", header=hdr, do_compress=self.compress)
        self._header = hdr
        _log.info("Opened %s (PF=%d, compress=%s)", path.name, self.point_format, self.compress)

    @staticmethod
    def _point_record(batch: FootprintBatch, header: "laspy.LasHeader") -> "laspy.ScaleAwarePointRecord":
        pts = laspy.ScaleAwarePointRecord.zeros(len(batch), header=header)
        pts.x = batch.positions[:, 0]
        pts.y = batch.positions[:, 1]
        pts.z = batch.positions[:, 2]

        major, minor = _footprint_axes(batch)
        normals = batch.normals.astype(np.float32)
        pts["FootprintMajor"] = major.astype(np.float32)
        pts["FootprintMinor"] = minor.astype(np.float32)
        pts["NormalX"] = normals[:, 0]
        pts["NormalY"] = normals[:, 1]
        pts["NormalZ"] = normals[:, 2]
        return pts


class PlyWriter:
    """ASCII PLY with position, normal and footprint axes, written on close."""

    def __init__(self, path: str) -> None:
        self.path = path
        self._batches: List[FootprintBatch] = []

    def write_batch(self, batch: FootprintBatch) -> None:
        if len(batch):
            self._batches.append(batch)

    def close(self) -> None:
        if not self._batches:
            return
        path = pathlib.Path(self.path)
        path.parent.mkdir(parents=True, exist_ok=True)
        xyz = np.vstack([b.positions for b in self._batches]).astype(np.float32)
        normals = np.vstack([b.normals for b in self._batches]).astype(np.float32)
        axes = np.vstack([b.scales[:, :2] for b in self._batches]).astype(np.float32)
        with open(path, "w", encoding="utf-8") as f:
            f.write("ply\nformat ascii 1.0\n")
            f.write(f"element vertex {len(xyz)}\n")
            for prop in ("x", "y", "z", "nx", "ny", "nz", "major", "minor"):
                f.write(f"property float {prop}\n")
            f.write("end_header\n")
            for p, n, a in zip(xyz, normals, axes):
                f.write(
                    f"{float(p[0])} {float(p[1])} {float(p[2])} "
                    f"{float(n[0])} {float(n[1])} {float(n[2])} "
                    f"{float(a[0])} {float(a[1])}\n"
                )
        self._batches.clear()


class NpzWriter:
    def __init__(self, path: str) -> None:
        self.path = path
        self._batches: List[FootprintBatch] = []

    def write_batch(self, batch: FootprintBatch) -> None:
        if len(batch):
            self._batches.append(batch)

    def close(self) -> None:
        if not self._batches:
            return
        path = pathlib.Path(self.path)
        path.parent.mkdir(parents=True, exist_ok=True)
        merged = FootprintBatch(
            positions=np.vstack([b.positions for b in self._batches]),
            orientations=np.vstack([b.orientations for b in self._batches]),
            scales=np.vstack([b.scales for b in self._batches]),
        )
        major, minor = _footprint_axes(merged)
        out: Dict[str, np.ndarray] = {
            "positions": merged.positions,
            "orientations": merged.orientations,
            "scales": merged.scales,
            "normals": merged.normals,
            "major": major,
            "minor": minor,
        }
        np.savez_compressed(path, **out)
        self._batches.clear()
