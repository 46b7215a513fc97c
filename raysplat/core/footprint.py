from __future__ import annotations
from dataclasses import dataclass
from typing import Iterator, List
import numpy as np

from .raycaster import Hit, HitBatch
from .utils import compose_matrices, ensure_unit_vectors, quaternion_to_rotation, rotation_to_quaternion, row_dot

MIN_COS_INCIDENCE = 0.01
DEGENERATE_TANGENT_SQ = 1e-4
DEFAULT_DEPTH = 0.01


@dataclass(frozen=True)
class PointRecord:
    """Oriented footprint ellipse of one beam return."""
    position: np.ndarray      # (3,)
    orientation: np.ndarray   # (4,) unit quaternion x, y, z, w
    scale: np.ndarray         # (3,) major diameter, minor diameter, depth

    def __post_init__(self) -> None:
        for name, size in (("position", 3), ("orientation", 4), ("scale", 3)):
            arr = np.array(getattr(self, name), dtype=np.float64).reshape(size)
            arr.setflags(write=False)
            object.__setattr__(self, name, arr)

    @property
    def normal(self) -> np.ndarray:
        return self.rotation_matrix()[:, 2]

    def rotation_matrix(self) -> np.ndarray:
        return quaternion_to_rotation(self.orientation)[0]

    def matrix(self) -> np.ndarray:
        return compose_matrices(self.position, self.orientation, self.scale)[0]


@dataclass
class FootprintBatch:
    """Struct-of-arrays form of several PointRecords, in ingestion order."""
    positions: np.ndarray     # (N, 3)
    orientations: np.ndarray  # (N, 4)
    scales: np.ndarray        # (N, 3)

    def __post_init__(self) -> None:
        self.positions = np.asarray(self.positions, dtype=np.float64).reshape(-1, 3)
        self.orientations = np.asarray(self.orientations, dtype=np.float64).reshape(-1, 4)
        self.scales = np.asarray(self.scales, dtype=np.float64).reshape(-1, 3)
        n = len(self.positions)
        if len(self.orientations) != n or len(self.scales) != n:
            raise ValueError("FootprintBatch arrays must have matching lengths.")

    def __len__(self) -> int:
        return len(self.positions)

    def __getitem__(self, i: int) -> PointRecord:
        return PointRecord(self.positions[i], self.orientations[i], self.scales[i])

    def __iter__(self) -> Iterator[PointRecord]:
        for i in range(len(self)):
            yield self[i]

    @property
    def normals(self) -> np.ndarray:
        return quaternion_to_rotation(self.orientations)[:, :, 2]

    def matrices(self) -> np.ndarray:
        return compose_matrices(self.positions, self.orientations, self.scales)

    @staticmethod
    def empty() -> "FootprintBatch":
        return FootprintBatch(np.zeros((0, 3)), np.zeros((0, 4)), np.zeros((0, 3)))

    @staticmethod
    def from_records(records: List[PointRecord]) -> "FootprintBatch":
        if not records:
            return FootprintBatch.empty()
        return FootprintBatch(
            positions=np.array([r.position for r in records]),
            orientations=np.array([r.orientation for r in records]),
            scales=np.array([r.scale for r in records]),
        )


def tangent_basis(normals: np.ndarray, view: np.ndarray) -> np.ndarray:
    """(N,3,3) rotations with columns (tangent, bitangent, normal).

    The tangent is the part of ``view`` orthogonal to the normal. Near normal
    incidence that part vanishes and an axis-aligned tangent is used instead.
    """
    n = ensure_unit_vectors(np.asarray(normals, dtype=np.float64).reshape(-1, 3))
    v = np.asarray(view, dtype=np.float64).reshape(-1, 3)
    tangent = v - row_dot(v, n)[:, None] * n

    degenerate = row_dot(tangent, tangent) < DEGENERATE_TANGENT_SQ
    if np.any(degenerate):
        nd = n[degenerate]
        use_xy = np.abs(nd[:, 0]) > np.abs(nd[:, 2])
        zeros = np.zeros(len(nd))
        alt_xy = np.column_stack([-nd[:, 1], nd[:, 0], zeros])
        alt_yz = np.column_stack([zeros, -nd[:, 2], nd[:, 1]])
        tangent[degenerate] = np.where(use_xy[:, None], alt_xy, alt_yz)

    tangent = ensure_unit_vectors(tangent)
    bitangent = ensure_unit_vectors(np.cross(n, tangent))
    return np.stack([tangent, bitangent, n], axis=2)


class FootprintEstimator:
    """Turns hits into oriented ellipse transforms.

    The minor axis is the beam divergence cone cut at the hit distance; the
    major axis adds the pulse length stretched by the incidence angle. The
    incidence cosine is floored at ``MIN_COS_INCIDENCE`` so grazing hits stay
    bounded.
    """

    def __init__(
        self,
        half_divergence_rad: float,
        pulse_length: float,
        point_scale: float = 1.0,
        depth: float = DEFAULT_DEPTH,
    ) -> None:
        if not (0.0 <= half_divergence_rad < np.pi / 2):
            raise ValueError("half_divergence_rad must lie in [0, pi/2).")
        if pulse_length < 0.0 or point_scale < 0.0 or depth < 0.0:
            raise ValueError("pulse_length, point_scale and depth must be non-negative.")
        self.half_divergence_rad = float(half_divergence_rad)
        self.pulse_length = float(pulse_length)
        self.point_scale = float(point_scale)
        self.depth = float(depth)

    def axis_diameters(self, distances: np.ndarray, cos_incidence: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        distances = np.asarray(distances, dtype=np.float64)
        divergence = 2.0 * distances * np.tan(self.half_divergence_rad)
        cos_clamped = np.maximum(np.abs(np.asarray(cos_incidence, dtype=np.float64)), MIN_COS_INCIDENCE)
        major = self.pulse_length / cos_clamped + divergence
        return major, divergence

    def estimate_batch(self, hits: HitBatch) -> FootprintBatch:
        if len(hits) == 0:
            return FootprintBatch.empty()
        view = -ensure_unit_vectors(hits.directions)
        normals = ensure_unit_vectors(hits.normals)
        major, minor = self.axis_diameters(hits.distances, row_dot(normals, view))

        rotations = tangent_basis(normals, view)
        scales = np.column_stack([major, minor, np.full(len(hits), self.depth)]) * self.point_scale
        return FootprintBatch(
            positions=hits.positions.copy(),
            orientations=rotation_to_quaternion(rotations),
            scales=scales,
        )

    def estimate(self, hit: Hit) -> PointRecord:
        return self.estimate_batch(HitBatch.from_hits([hit]))[0]


def incidence_deg(hits: HitBatch) -> np.ndarray:
    """Angle between the incoming beam and the surface normal, in degrees."""
    if len(hits) == 0:
        return np.zeros((0,), dtype=np.float32)
    cos_t = np.abs(row_dot(-ensure_unit_vectors(hits.directions), ensure_unit_vectors(hits.normals)))
    return np.degrees(np.arccos(np.clip(cos_t, 0.0, 1.0))).astype(np.float32)
