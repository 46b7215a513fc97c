import numpy as np
import pytest

import raysplat.core.intersector as intersector_module
from raysplat.core.intersector import (
    AutoIntersector,
    NumpyIntersector,
    RayBundle,
    RayHits,
    make_intersector,
)
from raysplat.core.scene import MeshScene
from raysplat.examples.synthetic import box_object, plane_object


def _scene() -> MeshScene:
    ground = plane_object(20.0, transform=np.array(
        [[1, 0, 0, 0], [0, 1, 0, 0], [0, 0, 1, -1.0], [0, 0, 0, 1]], dtype=np.float64))
    cube = box_object((2.0, 2.0, 2.0), transform=np.array(
        [[1, 0, 0, 0.3], [0, 1, 0, 0.1], [0, 0, 1, -5.0], [0, 0, 0, 1]], dtype=np.float64))
    return MeshScene([ground, cube])


def _down_rays(n: int) -> RayBundle:
    xs = np.linspace(-3.1, 3.35, n)
    origins = np.column_stack([xs, np.full(n, 0.17), np.full(n, 2.0)])
    dirs = np.tile([0.0, 0.0, -1.0], (n, 1))
    return RayBundle(origins=origins, directions=dirs, near=0.01, far=100.0)


def test_numpy_intersector_reports_one_candidate_per_object() -> None:
    bundle = _down_rays(1)
    bundle.origins[0, 0] = 0.3
    hits = NumpyIntersector().intersect(_scene(), bundle)
    assert isinstance(hits, RayHits)
    np.testing.assert_allclose(np.sort(hits.distances), [3.0, 6.0])
    np.testing.assert_array_equal(hits.ray_index, [0, 0])
    assert hits.transforms.shape == (2, 4, 4)


def test_numpy_intersector_chunking_matches_single_pass() -> None:
    scene = _scene()
    bundle = _down_rays(57)
    full = NumpyIntersector().intersect(scene, bundle)
    chunked = NumpyIntersector(max_pairs=24).intersect(scene, bundle)

    def _key(h: RayHits) -> np.ndarray:
        return np.lexsort((h.distances, h.ray_index))

    a, b = _key(full), _key(chunked)
    np.testing.assert_array_equal(full.ray_index[a], chunked.ray_index[b])
    np.testing.assert_allclose(full.distances[a], chunked.distances[b])
    np.testing.assert_allclose(full.points[a], chunked.points[b])


def test_numpy_intersector_respects_near_and_far() -> None:
    bundle = _down_rays(3)
    bundle.far = 2.5
    hits = NumpyIntersector().intersect(_scene(), bundle)
    assert len(hits) == 0


def test_auto_intersector_falls_back_to_numpy(monkeypatch) -> None:
    monkeypatch.setattr(intersector_module, "_HAVE_EMBREE", False)
    auto = AutoIntersector()
    hits = auto.intersect(_scene(), _down_rays(4))
    assert isinstance(auto._impl, NumpyIntersector)
    assert len(hits) > 0


def test_embree_unavailable_raises(monkeypatch) -> None:
    monkeypatch.setattr(intersector_module, "_HAVE_EMBREE", False)
    with pytest.raises(RuntimeError):
        intersector_module.EmbreeIntersector()


def test_make_intersector_names() -> None:
    assert isinstance(make_intersector("numpy"), NumpyIntersector)
    assert isinstance(make_intersector("AUTO"), AutoIntersector)
    with pytest.raises(ValueError):
        make_intersector("vtk")
