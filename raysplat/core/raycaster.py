from __future__ import annotations
from dataclasses import dataclass
from typing import Iterator, Optional
import numpy as np

from .intersector import AutoIntersector, Intersector, RayBundle, RayHits
from .scene import MeshScene
from .utils import get_logger, normal_matrix

_log = get_logger()

DEFAULT_NEAR = 0.01


@dataclass(frozen=True)
class Hit:
    position: np.ndarray    # (3,)
    distance: float
    normal: np.ndarray      # (3,) unit, world space
    direction: np.ndarray   # (3,) unit ray direction
    ray_index: int = 0


@dataclass
class HitBatch:
    """Closest hit per ray, ordered by ray index (sampling order)."""
    positions: np.ndarray   # (K, 3)
    distances: np.ndarray   # (K,)
    normals: np.ndarray     # (K, 3)
    directions: np.ndarray  # (K, 3)
    ray_index: np.ndarray   # (K,)

    def __len__(self) -> int:
        return len(self.distances)

    def __iter__(self) -> Iterator[Hit]:
        for i in range(len(self)):
            yield self[i]

    def __getitem__(self, i: int) -> Hit:
        return Hit(
            position=self.positions[i],
            distance=float(self.distances[i]),
            normal=self.normals[i],
            direction=self.directions[i],
            ray_index=int(self.ray_index[i]),
        )

    @staticmethod
    def empty() -> "HitBatch":
        return HitBatch(
            positions=np.zeros((0, 3)),
            distances=np.zeros((0,)),
            normals=np.zeros((0, 3)),
            directions=np.zeros((0, 3)),
            ray_index=np.zeros((0,), dtype=np.int64),
        )

    @staticmethod
    def from_hits(hits: list[Hit]) -> "HitBatch":
        if not hits:
            return HitBatch.empty()
        return HitBatch(
            positions=np.array([h.position for h in hits], dtype=np.float64),
            distances=np.array([h.distance for h in hits], dtype=np.float64),
            normals=np.array([h.normal for h in hits], dtype=np.float64),
            directions=np.array([h.direction for h in hits], dtype=np.float64),
            ray_index=np.array([h.ray_index for h in hits], dtype=np.int64),
        )


class NearestHitRaycaster:
    """Closest-hit policy and world-space normals over an intersection provider.

    The provider does the geometric search and may return several candidates
    per ray. This adapter keeps the closest candidate inside ``[near, far]``,
    converts its primitive-local normal to world space and guarantees a finite
    unit normal for every hit (falling back to the direction back toward the
    sensor when the provider has none).
    """

    def __init__(self, scene: MeshScene, intersector: Optional[Intersector] = None, near: float = DEFAULT_NEAR) -> None:
        self.scene = scene
        self.intersector = intersector if intersector is not None else AutoIntersector()
        self.near = float(near)
        self.rays_cast = 0

    def cast(self, bundle: RayBundle) -> HitBatch:
        n_rays = len(bundle)
        self.rays_cast += n_rays
        if n_rays == 0:
            return HitBatch.empty()
        raw = self.intersector.intersect(self.scene, bundle)
        return self._resolve(bundle, raw)

    def cast_ray(self, origin: np.ndarray, direction: np.ndarray, far: float) -> Optional[Hit]:
        bundle = RayBundle(
            origins=np.asarray(origin, dtype=np.float64).reshape(1, 3),
            directions=np.asarray(direction, dtype=np.float64).reshape(1, 3),
            near=self.near,
            far=far,
        )
        hits = self.cast(bundle)
        return hits[0] if len(hits) else None

    def _resolve(self, bundle: RayBundle, raw: RayHits) -> HitBatch:
        near = max(self.near, bundle.near)
        keep = (raw.distances >= near) & (raw.distances <= bundle.far)
        if not np.any(keep):
            return HitBatch.empty()
        idx = np.nonzero(keep)[0]

        # Closest candidate per ray: sort by (ray, distance), keep first of each ray
        order = idx[np.lexsort((raw.distances[idx], raw.ray_index[idx]))]
        _, first = np.unique(raw.ray_index[order], return_index=True)
        sel = order[first]

        ray_index = raw.ray_index[sel]
        positions = raw.points[sel]
        normals = self._world_normals(raw.normals[sel], raw.transforms[sel])

        missing = ~np.all(np.isfinite(normals), axis=1)
        if np.any(missing):
            back = bundle.origins[ray_index[missing]] - positions[missing]
            lens = np.linalg.norm(back, axis=1, keepdims=True)
            back = np.where(lens > 1e-12, back / np.clip(lens, 1e-12, None), -bundle.directions[ray_index[missing]])
            normals[missing] = back
            _log.debug("Raycaster: %d hits without face normal, using sensor-relative fallback.", int(missing.sum()))

        return HitBatch(
            positions=positions,
            distances=raw.distances[sel],
            normals=normals,
            directions=bundle.directions[ray_index],
            ray_index=ray_index,
        )

    @staticmethod
    def _world_normals(local: np.ndarray, transforms: np.ndarray) -> np.ndarray:
        with np.errstate(invalid="ignore"):
            world = np.einsum("kij,kj->ki", normal_matrix(transforms), local)
            lens = np.linalg.norm(world, axis=1, keepdims=True)
            world = np.where(lens > 1e-12, world / np.where(lens > 1e-12, lens, 1.0), np.nan)
        return world
