from __future__ import annotations

import math
from typing import Optional

from ..config import ScenarioConfig
from ..config.schema import (
    BoxObjectConfig,
    MeshObjectConfig,
    PlaneObjectConfig,
    SphereObjectConfig,
)
from ..core.exporter import DisplaySink, LasWriter, NpzWriter, PlyWriter
from ..core.intersector import Intersector, make_intersector
from ..core.pipeline import Simulator
from ..core.scene import MeshScene, SceneObject
from ..core.utils import get_logger
from ..examples.synthetic import box_object, demo_scene, plane_object, plane_scene, sphere_object
from ..motion.pose import Pose
from ..motion.trajectory import (
    CircularMotion,
    MotionPolicy,
    PolylineMotion,
    SinusoidalMotion,
    StaticMotion,
)
from ..sensors.lidar import ScanConfig

_log = get_logger()


def build_scene_object(obj_cfg) -> SceneObject:
    transform = Pose.from_xyz_rpy(obj_cfg.xyz, obj_cfg.rpy_deg).matrix(obj_cfg.scale)
    if isinstance(obj_cfg, MeshObjectConfig):
        obj = SceneObject.load(obj_cfg.path, transform=transform, name=obj_cfg.name)
    elif isinstance(obj_cfg, PlaneObjectConfig):
        obj = plane_object(obj_cfg.size_m, transform=transform, name=obj_cfg.name or "plane")
    elif isinstance(obj_cfg, BoxObjectConfig):
        obj = box_object(obj_cfg.size_m, transform=transform, name=obj_cfg.name or "box")
    elif isinstance(obj_cfg, SphereObjectConfig):
        obj = sphere_object(
            obj_cfg.radius_m, obj_cfg.segments, obj_cfg.rings, transform=transform, name=obj_cfg.name or "sphere"
        )
    else:
        raise ValueError(f"Unsupported scene object kind: {getattr(obj_cfg, 'kind', obj_cfg)!r}")
    obj.with_normals = obj_cfg.with_normals
    return obj


def build_scene(cfg: ScenarioConfig) -> MeshScene:
    scene_cfg = cfg.scene
    if scene_cfg.preset == "demo":
        scene = demo_scene()
    elif scene_cfg.preset == "plane":
        scene = plane_scene()
    else:
        scene = MeshScene()
    for obj_cfg in scene_cfg.objects:
        scene.add(build_scene_object(obj_cfg))
    _log.info("Scene: %d objects, %d triangles", len(scene), scene.triangle_count())
    return scene


def build_scan_config(cfg: ScenarioConfig) -> ScanConfig:
    s = cfg.sensor
    return ScanConfig(
        position=s.position,
        max_range=s.max_range_m,
        horizontal_count=s.horizontal_rays,
        vertical_count=s.vertical_rays,
        horizontal_fov=math.radians(s.horizontal_fov_deg),
        vertical_fov=math.radians(s.vertical_fov_deg),
        scan_frequency_hz=s.scan_frequency_hz,
        half_divergence=math.radians(s.beam_divergence_deg) / 2.0,
        pulse_duration_ns=s.pulse_duration_ns,
        speed_of_light=s.speed_of_light_m_per_ns,
        point_scale=s.point_scale,
        near=s.near_m,
        footprint_depth=s.footprint_depth,
    )


def build_motion(cfg: ScenarioConfig) -> MotionPolicy:
    motion_cfg = cfg.motion
    if motion_cfg.kind == "static":
        return StaticMotion(cfg.sensor.position)
    if motion_cfg.kind == "circular":
        return CircularMotion(
            radius=motion_cfg.radius_m,
            angular_speed=motion_cfg.angular_speed_rad_s,
            height=motion_cfg.height_m,
            bob_amplitude=motion_cfg.bob_amplitude_m,
            bob_frequency=motion_cfg.bob_frequency_rad_s,
            center=motion_cfg.center_xy,
        )
    if motion_cfg.kind == "sinusoidal":
        offset = motion_cfg.offset_m if motion_cfg.offset_m is not None else cfg.sensor.position
        return SinusoidalMotion(
            amplitude=motion_cfg.amplitude_m,
            angular_frequency=motion_cfg.angular_frequency_rad_s,
            offset=offset,
        )
    if motion_cfg.kind == "polyline":
        return PolylineMotion(
            motion_cfg.waypoints,
            speed_mps=motion_cfg.speed_mps,
            start_time_s=motion_cfg.start_time_s,
            loop=motion_cfg.loop,
        )
    raise ValueError(f"Unsupported motion kind: {motion_cfg.kind}")


def build_intersector(cfg: ScenarioConfig) -> Intersector:
    return make_intersector(cfg.engine)


def build_writer(cfg: ScenarioConfig):
    out_cfg = cfg.output
    if out_cfg is None:
        raise ValueError("Scenario has no output section.")
    format_lower = out_cfg.format.lower()
    if format_lower in {"las", "laz"}:
        compress = out_cfg.compress
        if compress is None:
            compress = format_lower == "laz"
        return LasWriter(
            str(out_cfg.path),
            point_format=out_cfg.point_format,
            compress=compress,
        )
    if format_lower == "npz":
        return NpzWriter(str(out_cfg.path))
    if format_lower == "ply":
        return PlyWriter(str(out_cfg.path))
    raise ValueError(f"Unsupported output format: {out_cfg.format}")


def build_simulator(
    cfg: ScenarioConfig,
    *,
    scene: Optional[MeshScene] = None,
    intersector: Optional[Intersector] = None,
    sink: Optional[DisplaySink] = None,
) -> Simulator:
    return Simulator(
        scene if scene is not None else build_scene(cfg),
        build_scan_config(cfg),
        intersector=intersector if intersector is not None else build_intersector(cfg),
        motion=build_motion(cfg),
        capacity=cfg.buffer_capacity(),
        sink=sink,
        batch_size_rays=cfg.simulation.batch_size_rays,
    )
