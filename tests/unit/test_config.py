from __future__ import annotations

import math
from pathlib import Path

import numpy as np
import pytest
import yaml
from pydantic import ValidationError

from raysplat.config import ScenarioConfig, load_config
from raysplat.config.schema import MeshObjectConfig
from raysplat.examples.synthetic import generate_mesh
from raysplat.motion.trajectory import CircularMotion, PolylineMotion, SinusoidalMotion, StaticMotion
from raysplat.runtime.builders import build_motion, build_scan_config, build_scene, build_simulator


def _dump(path: Path, data: dict) -> Path:
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f)
    return path


def test_defaults_and_relative_paths(tmp_path: Path) -> None:
    generate_mesh("plane", 10.0, tmp_path / "meshes" / "ground.ply")
    cfg_path = _dump(tmp_path / "scenario.yaml", {
        "scene": {"objects": [{"kind": "mesh", "path": "meshes/ground.ply", "xyz": [0.0, 0.0, -2.0]}]},
        "output": {"path": "out/snap.npz"},
    })
    cfg = load_config(cfg_path)
    mesh_cfg = cfg.scene.objects[0]
    assert isinstance(mesh_cfg, MeshObjectConfig)
    assert mesh_cfg.path == (tmp_path / "meshes" / "ground.ply").resolve()
    assert cfg.output.path == (tmp_path / "out" / "snap.npz").resolve()
    assert cfg.sensor.horizontal_rays == 50
    assert cfg.sensor.vertical_rays == 50
    assert cfg.buffer_capacity() == 50 * 50 * 100
    assert cfg.engine == "auto"
    assert cfg.motion.kind == "static"


def test_validation_errors() -> None:
    with pytest.raises(ValidationError):
        ScenarioConfig.model_validate({"scene": {"preset": "demo"}, "sensor": {"vertical_rays": 1}})
    with pytest.raises(ValidationError):
        ScenarioConfig.model_validate({"scene": {}})
    with pytest.raises(ValidationError):
        ScenarioConfig.model_validate({"scene": {"preset": "demo"}, "sensor": {"max_range_m": 0.005}})
    with pytest.raises(ValidationError):
        ScenarioConfig.model_validate({"scene": {"preset": "demo"}, "buffer": {"capacity": 0}})
    with pytest.raises(ValidationError):
        ScenarioConfig.model_validate({"scene": {"objects": [{"kind": "cone"}]}})
    with pytest.raises(ValidationError):
        ScenarioConfig.model_validate({"scene": {"objects": [{"kind": "plane", "scale": [1.0, 1.0, 0.0]}]}})
    with pytest.raises(ValidationError):
        ScenarioConfig.model_validate({"scene": {"objects": [{"kind": "box", "scale": -2.0}]}})
    with pytest.raises(ValidationError):
        ScenarioConfig.model_validate({"scene": {"preset": "demo"}, "output": {"path": "a.laz", "format": "laz", "compress": False}})


def test_load_config_rejects_non_mapping(tmp_path: Path) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(path)


def test_scan_config_conversion() -> None:
    cfg = ScenarioConfig.model_validate({
        "scene": {"preset": "plane"},
        "sensor": {"horizontal_fov_deg": 180.0, "beam_divergence_deg": 30.2, "point_scale": 2.0},
    })
    scan = build_scan_config(cfg)
    assert scan.horizontal_fov == pytest.approx(math.pi)
    assert scan.half_divergence == pytest.approx(math.radians(15.1))
    assert scan.point_scale == 2.0
    assert scan.near == pytest.approx(0.01)


def test_build_scene_from_preset_and_primitives() -> None:
    cfg = ScenarioConfig.model_validate({
        "scene": {
            "preset": "demo",
            "objects": [
                {"kind": "box", "size_m": [1.0, 1.0, 1.0], "xyz": [0.0, 5.0, 0.0], "name": "crate"},
                {"kind": "sphere", "radius_m": 0.5, "segments": 8, "rings": 4, "scale": 2.0},
                {"kind": "plane", "size_m": [4.0, 2.0], "rpy_deg": [90.0, 0.0, 0.0], "with_normals": False},
            ],
        },
    })
    scene = build_scene(cfg)
    assert [obj.name for obj in scene] == ["ground", "cube", "sphere", "crate", "sphere", "plane"]
    crate = scene.objects[3].world_triangles().reshape(-1, 3)
    assert (crate[:, 1].min(), crate[:, 1].max()) == pytest.approx((4.5, 5.5))
    assert scene.objects[4].world_triangles()[..., 0].max() == pytest.approx(1.0)
    assert not scene.objects[5].with_normals
    assert np.all(np.isnan(scene.objects[5].local_face_normals()))


def test_build_motion_kinds() -> None:
    base = {"scene": {"preset": "plane"}, "sensor": {"position": [1.0, 2.0, 3.0]}}
    assert isinstance(build_motion(ScenarioConfig.model_validate(base)), StaticMotion)
    circ = build_motion(ScenarioConfig.model_validate({**base, "motion": {"kind": "circular", "radius_m": 2.0}}))
    assert isinstance(circ, CircularMotion) and circ.radius == 2.0
    sine = build_motion(ScenarioConfig.model_validate({**base, "motion": {"kind": "sinusoidal"}}))
    assert isinstance(sine, SinusoidalMotion)
    np.testing.assert_allclose(sine.position_at(0.0), [1.0, 2.0, 3.0])
    poly = build_motion(ScenarioConfig.model_validate({
        **base, "motion": {"kind": "polyline", "waypoints": [[0, 0, 1], [3, 0, 1]], "speed_mps": 1.5},
    }))
    assert isinstance(poly, PolylineMotion) and poly.duration_s == pytest.approx(2.0)


def test_build_simulator_uses_buffer_settings() -> None:
    cfg = ScenarioConfig.model_validate({
        "scene": {"preset": "plane"},
        "sensor": {"horizontal_rays": 4, "vertical_rays": 3},
        "buffer": {"scans_retained": 5},
        "engine": "numpy",
        "simulation": {"batch_size_rays": 7},
    })
    sim = build_simulator(cfg)
    assert sim.buffer.capacity == 60
    assert sim.batch_size_rays == 7
    cfg.buffer.capacity = 11
    assert build_simulator(cfg).buffer.capacity == 11
