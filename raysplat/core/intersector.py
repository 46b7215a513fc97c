from __future__ import annotations
from dataclasses import dataclass, field
from typing import Protocol, Optional, List
import numpy as np
from .scene import MeshScene, SceneObject
from .utils import get_logger, ensure_unit_vectors

_log = get_logger()

try:
    import trimesh  # type: ignore
    from trimesh.ray import ray_pyembree  # type: ignore
    _HAVE_EMBREE = True
except Exception:
    ray_pyembree = None  # type: ignore
    _HAVE_EMBREE = False


@dataclass
class RayBundle:
    origins: np.ndarray          # (M, 3)
    directions: np.ndarray       # (M, 3) unit
    near: float = 0.01
    far: float = 1e6
    meta: dict[str, np.ndarray] = field(default_factory=dict)  # per-ray metadata

    def __post_init__(self) -> None:
        self.origins = np.asarray(self.origins, dtype=np.float64).reshape(-1, 3)
        self.directions = np.asarray(self.directions, dtype=np.float64).reshape(-1, 3)
        assert self.origins.shape == self.directions.shape
        self.directions = ensure_unit_vectors(self.directions)

    def __len__(self) -> int:
        return len(self.origins)

    def slice(self, start: int, stop: int) -> "RayBundle":
        n = len(self)
        meta = {k: v[start:stop] if np.ndim(v) >= 1 and len(v) == n else v for k, v in self.meta.items()}
        return RayBundle(
            origins=self.origins[start:stop],
            directions=self.directions[start:stop],
            near=self.near,
            far=self.far,
            meta=meta,
        )


@dataclass
class RayHits:
    points: np.ndarray                 # (K, 3)
    distances: np.ndarray              # (K,)
    ray_index: np.ndarray              # (K,) maps each hit to a source ray
    normals: np.ndarray                # (K, 3) primitive-local face normal, NaN if unknown
    transforms: np.ndarray             # (K, 4, 4) world transform of the hit object

    def __len__(self) -> int:
        return len(self.distances)

    @staticmethod
    def empty() -> "RayHits":
        return RayHits(
            points=np.zeros((0, 3), dtype=np.float64),
            distances=np.zeros((0,), dtype=np.float64),
            ray_index=np.zeros((0,), dtype=np.int64),
            normals=np.zeros((0, 3), dtype=np.float64),
            transforms=np.zeros((0, 4, 4), dtype=np.float64),
        )

    @staticmethod
    def concatenate(parts: List["RayHits"]) -> "RayHits":
        parts = [p for p in parts if len(p)]
        if not parts:
            return RayHits.empty()
        return RayHits(
            points=np.vstack([p.points for p in parts]),
            distances=np.concatenate([p.distances for p in parts]),
            ray_index=np.concatenate([p.ray_index for p in parts]),
            normals=np.vstack([p.normals for p in parts]),
            transforms=np.concatenate([p.transforms for p in parts], axis=0),
        )


class Intersector(Protocol):
    def intersect(self, scene: MeshScene, bundle: RayBundle) -> RayHits: ...


def _object_hits(obj: SceneObject, ray_ids: np.ndarray, tri_ids: np.ndarray,
                 points: np.ndarray, distances: np.ndarray) -> RayHits:
    return RayHits(
        points=np.asarray(points, dtype=np.float64).reshape(-1, 3),
        distances=np.asarray(distances, dtype=np.float64),
        ray_index=np.asarray(ray_ids, dtype=np.int64),
        normals=obj.local_face_normals()[tri_ids],
        transforms=np.broadcast_to(obj.transform, (len(ray_ids), 4, 4)).copy(),
    )


class NumpyIntersector:
    """Pure NumPy intersector using vectorised Moller-Trumbore ray-triangle tests.

    Returns the nearest candidate per ray for each object, so a ray crossing
    several objects yields several candidates.
    """

    def __init__(self, epsilon: float = 1e-12, max_pairs: int = 2_000_000) -> None:
        self.epsilon = float(epsilon)
        self.max_pairs = int(max_pairs)

    def _nearest_on_triangles(
        self,
        origins: np.ndarray,
        dirs: np.ndarray,
        tris: np.ndarray,
        near: float,
        far: float,
    ) -> tuple[np.ndarray, np.ndarray]:
        v0 = tris[:, 0]
        edge1 = tris[:, 1] - v0
        edge2 = tris[:, 2] - v0

        pvec = np.cross(dirs[:, None, :], edge2[None, :, :])          # (R, T, 3)
        det = np.einsum("rtk,tk->rt", pvec, edge1)
        valid = np.abs(det) > self.epsilon
        inv_det = np.where(valid, 1.0 / np.where(valid, det, 1.0), 0.0)

        tvec = origins[:, None, :] - v0[None, :, :]
        u = np.einsum("rtk,rtk->rt", tvec, pvec) * inv_det
        qvec = np.cross(tvec, edge1[None, :, :])
        v = np.einsum("rk,rtk->rt", dirs, qvec) * inv_det
        t = np.einsum("rtk,tk->rt", qvec, edge2) * inv_det

        mask = valid & (u >= 0.0) & (u <= 1.0) & (v >= 0.0) & (u + v <= 1.0) & (t >= near) & (t <= far)
        t = np.where(mask, t, np.inf)
        best = np.argmin(t, axis=1)
        best_t = t[np.arange(len(origins)), best]
        return best, best_t

    def intersect(self, scene: MeshScene, bundle: RayBundle) -> RayHits:
        origins = bundle.origins
        dirs = bundle.directions
        n_rays = len(bundle)
        parts: List[RayHits] = []

        for obj in scene:
            tris = obj.world_triangles()
            if len(tris) == 0 or n_rays == 0:
                continue
            step = max(1, self.max_pairs // len(tris))
            for start in range(0, n_rays, step):
                stop = min(start + step, n_rays)
                best, best_t = self._nearest_on_triangles(
                    origins[start:stop], dirs[start:stop], tris, bundle.near, bundle.far
                )
                hit = np.isfinite(best_t)
                if not np.any(hit):
                    continue
                local_ids = np.nonzero(hit)[0]
                ray_ids = local_ids + start
                dist = best_t[hit]
                points = origins[ray_ids] + dirs[ray_ids] * dist[:, None]
                parts.append(_object_hits(obj, ray_ids, best[hit], points, dist))

        return RayHits.concatenate(parts)


class EmbreeIntersector:
    """Embree via trimesh.ray.ray_pyembree (optional dependency)."""
    def __init__(self) -> None:
        if not _HAVE_EMBREE:
            raise RuntimeError("pyembree not available. pip install trimesh[ray].")
        self._inter: dict[int, object] = {}

    def _ensure_intersector(self, obj: SceneObject) -> object:
        key = id(obj)
        if key not in self._inter:
            tris = obj.world_triangles()
            tm = trimesh.Trimesh(vertices=tris.reshape(-1, 3), faces=np.arange(len(tris) * 3).reshape(-1, 3), process=False)
            self._inter[key] = ray_pyembree.RayMeshIntersector(tm)
        return self._inter[key]

    def intersect(self, scene: MeshScene, bundle: RayBundle) -> RayHits:
        origins = bundle.origins
        dirs = bundle.directions
        parts: List[RayHits] = []
        for obj in scene:
            inter = self._ensure_intersector(obj)
            # Offset origins by near so self-intersections at the sensor are skipped
            locs, idx_ray, tri_ids = inter.intersects_location(
                origins + dirs * bundle.near, dirs, multiple_hits=False, return_id=True
            )
            if len(idx_ray) == 0:
                continue
            idx_ray = np.asarray(idx_ray, dtype=np.int64)
            dists = np.linalg.norm(locs - origins[idx_ray], axis=1)
            mask = (dists >= bundle.near) & (dists <= bundle.far)
            if not np.any(mask):
                continue
            parts.append(_object_hits(obj, idx_ray[mask], np.asarray(tri_ids)[mask], locs[mask], dists[mask]))
        return RayHits.concatenate(parts)


class AutoIntersector:
    """Picks the fastest available backend: Embree if present, else NumPy."""
    def __init__(self) -> None:
        self._impl: Optional[Intersector] = None

    def intersect(self, scene: MeshScene, bundle: RayBundle) -> RayHits:
        if self._impl is None:
            self._impl = self._choose(scene)
        return self._impl.intersect(scene, bundle)

    def _choose(self, scene: MeshScene) -> Intersector:
        if _HAVE_EMBREE:
            _log.info("AutoIntersector: using Embree.")
            return EmbreeIntersector()
        _log.info("AutoIntersector: using NumPy intersector (%d triangles).", scene.triangle_count())
        return NumpyIntersector()


def make_intersector(name: str = "auto") -> Intersector:
    name = name.lower()
    if name == "numpy":
        return NumpyIntersector()
    if name == "embree":
        return EmbreeIntersector()
    if name == "auto":
        return AutoIntersector()
    raise ValueError(f"Unknown intersector '{name}'")
