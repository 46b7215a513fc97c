from __future__ import annotations

from pathlib import Path
from typing import Annotated, Literal, Optional, Union, List

import yaml
from pydantic import BaseModel, Field, PositiveFloat, model_validator


class _PlacedObject(BaseModel):
    name: Optional[str] = None
    xyz: tuple[float, float, float] = (0.0, 0.0, 0.0)
    rpy_deg: tuple[float, float, float] = (0.0, 0.0, 0.0)
    scale: Union[PositiveFloat, tuple[PositiveFloat, PositiveFloat, PositiveFloat]] = 1.0
    with_normals: bool = True


class MeshObjectConfig(_PlacedObject):
    kind: Literal["mesh"]
    path: Path


class PlaneObjectConfig(_PlacedObject):
    kind: Literal["plane"]
    size_m: tuple[float, float] = (20.0, 20.0)


class BoxObjectConfig(_PlacedObject):
    kind: Literal["box"]
    size_m: tuple[float, float, float] = (2.0, 2.0, 2.0)


class SphereObjectConfig(_PlacedObject):
    kind: Literal["sphere"]
    radius_m: float = Field(1.0, gt=0.0)
    segments: int = Field(32, ge=3)
    rings: int = Field(16, ge=2)


SceneObjectConfig = Annotated[
    Union[MeshObjectConfig, PlaneObjectConfig, BoxObjectConfig, SphereObjectConfig],
    Field(discriminator="kind"),
]


class SceneConfig(BaseModel):
    preset: Optional[Literal["demo", "plane"]] = None
    objects: List[SceneObjectConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def _require_geometry(self) -> "SceneConfig":
        if self.preset is None and not self.objects:
            raise ValueError("scene needs a preset or at least one object")
        return self


class SensorConfig(BaseModel):
    position: tuple[float, float, float] = (0.0, 0.0, 1.0)
    max_range_m: float = Field(15.0, gt=0.0)
    horizontal_rays: int = Field(50, ge=1)
    vertical_rays: int = Field(50, ge=2)
    horizontal_fov_deg: float = Field(360.0, gt=0.0, le=360.0)
    vertical_fov_deg: float = Field(180.0, gt=0.0, le=180.0)
    scan_frequency_hz: float = Field(50.0, gt=0.0)
    beam_divergence_deg: float = Field(30.2, ge=0.0, lt=180.0)
    pulse_duration_ns: float = Field(0.01, ge=0.0)
    speed_of_light_m_per_ns: float = Field(0.299792458, gt=0.0)
    point_scale: float = Field(1.0, ge=0.0)
    near_m: float = Field(0.01, gt=0.0)
    footprint_depth: float = Field(0.01, ge=0.0)

    @model_validator(mode="after")
    def _check_range(self) -> "SensorConfig":
        if self.max_range_m <= self.near_m:
            raise ValueError("max_range_m must exceed near_m")
        return self


class StaticMotionConfig(BaseModel):
    kind: Literal["static"]


class CircularMotionConfig(BaseModel):
    kind: Literal["circular"]
    radius_m: float = Field(4.0, ge=0.0)
    angular_speed_rad_s: float = 0.5
    height_m: float = 1.5
    bob_amplitude_m: float = 1.0
    bob_frequency_rad_s: float = 1.1
    center_xy: tuple[float, float] = (0.0, 0.0)


class SinusoidalMotionConfig(BaseModel):
    kind: Literal["sinusoidal"]
    amplitude_m: tuple[float, float, float] = (1.0, 1.0, 1.0)
    angular_frequency_rad_s: tuple[float, float, float] = (1.0, 0.25, 1.0 / 3.0)
    offset_m: Optional[tuple[float, float, float]] = None


class PolylineMotionConfig(BaseModel):
    kind: Literal["polyline"]
    waypoints: List[tuple[float, float, float]] = Field(min_length=2)
    speed_mps: float = Field(gt=0.0)
    start_time_s: float = 0.0
    loop: bool = False


MotionConfig = Annotated[
    Union[StaticMotionConfig, CircularMotionConfig, SinusoidalMotionConfig, PolylineMotionConfig],
    Field(discriminator="kind"),
]


class BufferConfig(BaseModel):
    capacity: Optional[int] = Field(None, gt=0)
    scans_retained: int = Field(100, gt=0)


class SimulationConfig(BaseModel):
    duration_s: float = Field(1.0, ge=0.0)
    tick_rate_hz: float = Field(60.0, gt=0.0)
    batch_size_rays: int = Field(100_000, gt=0)


class OutputConfig(BaseModel):
    path: Path
    format: Literal["las", "laz", "npz", "ply"] = "npz"
    compress: Optional[bool] = None
    point_format: int = 6

    @model_validator(mode="after")
    def _validate_format(self) -> "OutputConfig":
        if self.format == "laz" and self.compress is False:
            raise ValueError("format 'laz' implies compress=True")
        return self


class ScenarioConfig(BaseModel):
    scene: SceneConfig
    sensor: SensorConfig = Field(default_factory=SensorConfig)
    motion: MotionConfig = Field(default_factory=lambda: StaticMotionConfig(kind="static"))
    buffer: BufferConfig = Field(default_factory=BufferConfig)
    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
    engine: Literal["auto", "numpy", "embree"] = "auto"
    output: Optional[OutputConfig] = None

    def buffer_capacity(self) -> int:
        if self.buffer.capacity is not None:
            return self.buffer.capacity
        rays = self.sensor.horizontal_rays * self.sensor.vertical_rays
        return rays * self.buffer.scans_retained


def load_config(path: str | Path) -> ScenarioConfig:
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ValueError("Configuration root must be a mapping.")
    cfg = ScenarioConfig.model_validate(data)
    if cfg.output is not None and not cfg.output.path.is_absolute():
        cfg.output.path = (path.parent / cfg.output.path).resolve()
    for obj in cfg.scene.objects:
        if isinstance(obj, MeshObjectConfig) and not obj.path.is_absolute():
            obj.path = (path.parent / obj.path).resolve()
    return cfg
