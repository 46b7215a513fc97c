from typing import Any

import numpy as np
import pytest

from raysplat.core.intersector import NumpyIntersector, RayBundle, RayHits
from raysplat.core.raycaster import HitBatch, NearestHitRaycaster
from raysplat.core.scene import MeshScene, SceneObject
from raysplat.core.utils import normal_matrix
from raysplat.examples.synthetic import plane_object
from raysplat.motion.pose import Pose


def _ground(z: float = -5.0, size: float = 40.0, with_normals: bool = True) -> MeshScene:
    obj = plane_object(size, transform=Pose.from_xyz_rpy((0.0, 0.0, z), (0.0, 0.0, 0.0)).matrix())
    obj.with_normals = with_normals
    return MeshScene([obj])


class CandidateIntersector:
    def __init__(self, hits: RayHits) -> None:
        self._hits = hits

    def intersect(self, scene: Any, bundle: RayBundle) -> RayHits:
        return self._hits


def test_cast_ray_hits_plane_below() -> None:
    caster = NearestHitRaycaster(_ground(), intersector=NumpyIntersector())
    hit = caster.cast_ray([0.3, 0.1, 0.0], [0.0, 0.0, -1.0], far=15.0)
    assert hit is not None
    assert hit.distance == pytest.approx(5.0)
    np.testing.assert_allclose(hit.position, [0.3, 0.1, -5.0], atol=1e-9)
    np.testing.assert_allclose(hit.normal, [0.0, 0.0, 1.0], atol=1e-12)


def test_no_hit_beyond_far_or_pointing_away() -> None:
    caster = NearestHitRaycaster(_ground(), intersector=NumpyIntersector())
    assert caster.cast_ray([0.3, 0.1, 0.0], [0.0, 0.0, -1.0], far=4.0) is None
    assert caster.cast_ray([0.3, 0.1, 0.0], [0.0, 0.0, 1.0], far=15.0) is None
    assert caster.rays_cast == 2


def test_nearest_candidate_inside_near_far_wins() -> None:
    raw = RayHits(
        points=np.array([[0, 0, -0.005], [0, 0, -4.0], [0, 0, -2.0], [1, 0, -7.0]], dtype=np.float64),
        distances=np.array([0.005, 4.0, 2.0, 7.0]),
        ray_index=np.array([0, 0, 0, 1]),
        normals=np.tile([0.0, 0.0, 1.0], (4, 1)),
        transforms=np.tile(np.eye(4), (4, 1, 1)),
    )
    bundle = RayBundle(
        origins=np.zeros((2, 3)),
        directions=np.array([[0.0, 0.0, -1.0], [0.0, 0.0, -1.0]]),
        near=0.01,
        far=6.0,
    )
    caster = NearestHitRaycaster(MeshScene(), intersector=CandidateIntersector(raw))
    hits = caster.cast(bundle)
    assert len(hits) == 1
    assert hits[0].ray_index == 0
    assert hits[0].distance == pytest.approx(2.0)


def test_missing_face_normal_falls_back_to_sensor_direction() -> None:
    caster = NearestHitRaycaster(_ground(with_normals=False), intersector=NumpyIntersector())
    hit = caster.cast_ray([0.3, 0.1, 0.0], [0.6, 0.0, -0.8], far=15.0)
    assert hit is not None
    expected = -np.array([0.6, 0.0, -0.8])
    np.testing.assert_allclose(hit.normal, expected, atol=1e-9)
    assert np.all(np.isfinite(hit.normal))


def test_normal_uses_inverse_transpose_for_scaled_objects() -> None:
    # Local plane x + y = 0; stretching x by 2 tilts the world normal toward y
    vertices = np.array([[-5.0, 5.0, -5.0], [5.0, -5.0, -5.0], [5.0, -5.0, 5.0], [-5.0, 5.0, 5.0]])
    faces = np.array([[0, 1, 2], [0, 2, 3]])
    transform = np.diag([2.0, 1.0, 1.0, 1.0])
    scene = MeshScene([SceneObject(vertices, faces, transform=transform)])
    caster = NearestHitRaycaster(scene, intersector=NumpyIntersector())

    direction = np.array([-1.0, -1.0, 0.0]) / np.sqrt(2.0)
    hit = caster.cast_ray([3.0, 3.0, 0.3], direction, far=15.0)
    assert hit is not None
    np.testing.assert_allclose(hit.position, [0.0, 0.0, 0.3], atol=1e-9)
    expected = np.array([-0.5, -1.0, 0.0]) / np.linalg.norm([-0.5, -1.0, 0.0])
    np.testing.assert_allclose(hit.normal, expected, atol=1e-9)


def test_flattened_object_falls_back_to_sensor_direction() -> None:
    # Zero z-scale leaves the plane intact but makes its transform singular
    flat = Pose.from_xyz_rpy((0.0, 0.0, -5.0), (0.0, 0.0, 0.0)).matrix((1.0, 1.0, 0.0))
    caster = NearestHitRaycaster(MeshScene([plane_object(40.0, transform=flat)]), intersector=NumpyIntersector())

    direction = np.array([1.0, 0.0, -1.0]) / np.sqrt(2.0)
    hit = caster.cast_ray([0.3, 0.1, 0.0], direction, far=15.0)
    assert hit is not None
    np.testing.assert_allclose(hit.position, [5.3, 0.1, -5.0], atol=1e-9)
    np.testing.assert_allclose(hit.normal, [-1.0 / np.sqrt(2.0), 0.0, 1.0 / np.sqrt(2.0)], atol=1e-9)


def test_normal_matrix_marks_singular_transforms() -> None:
    stack = np.stack([np.diag([2.0, 1.0, 1.0, 1.0]), np.diag([1.0, 1.0, 0.0, 1.0])])
    out = normal_matrix(stack)
    assert out.shape == (2, 3, 3)
    np.testing.assert_allclose(out[0], np.diag([0.5, 1.0, 1.0]))
    assert np.all(np.isnan(out[1]))
    np.testing.assert_allclose(normal_matrix(np.eye(4)), np.eye(3))


def test_hit_batch_round_trips_single_hits() -> None:
    caster = NearestHitRaycaster(_ground(), intersector=NumpyIntersector())
    hit = caster.cast_ray([0.3, 0.1, 0.0], [0.0, 0.0, -1.0], far=15.0)
    batch = HitBatch.from_hits([hit, hit])
    assert len(batch) == 2
    assert [h.distance for h in batch] == pytest.approx([5.0, 5.0])
    assert len(HitBatch.from_hits([])) == 0
