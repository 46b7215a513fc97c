from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union

from ..config import ScenarioConfig, load_config
from ..config.schema import OutputConfig
from ..runtime.builders import build_simulator, build_writer

_EXTENSIONS = {".las", ".laz", ".npz", ".ply"}


@dataclass(frozen=True)
class SimulationRunResult:
    """Summary of a headless simulation driven by a configuration file."""

    stats: Dict[str, int]
    output_path: Optional[Path]
    config: ScenarioConfig


def apply_output_override(cfg: ScenarioConfig, output: Path) -> None:
    out_path = Path(output).resolve()
    ext = out_path.suffix.lower()
    if ext not in _EXTENSIONS:
        raise ValueError(f"Unsupported output extension '{ext}'")
    if cfg.output is None:
        cfg.output = OutputConfig(path=out_path, format=ext.lstrip("."))
    else:
        cfg.output.path = out_path
        cfg.output.format = ext.lstrip(".")
    if ext == ".las":
        cfg.output.compress = False
    elif ext == ".laz":
        cfg.output.compress = True if cfg.output.compress is None else cfg.output.compress


def simulate_from_config(
    config: Union[str, Path, ScenarioConfig],
    *,
    output: Optional[Path] = None,
    duration_s: Optional[float] = None,
    tick_rate_hz: Optional[float] = None,
    engine: Optional[str] = None,
) -> SimulationRunResult:
    """Run a scenario headlessly and snapshot the retained footprints.

    Parameters
    ----------
    config:
        Path to a YAML file or a pre-loaded :class:`~raysplat.config.schema.ScenarioConfig`.
    output:
        Optional override for the snapshot file. The extension drives the
        format (``.las``, ``.laz``, ``.npz``, or ``.ply``).
    duration_s, tick_rate_hz:
        Optional overrides for the simulation clock.
    engine:
        Optional override for the intersector backend (``auto``, ``numpy``, ``embree``).

    Returns
    -------
    SimulationRunResult
        Run statistics (ticks, scans, rays, hits, active), the resolved output
        path (``None`` when the scenario has no output), and the configuration
        object used for the run.
    """

    cfg = load_config(config) if not isinstance(config, ScenarioConfig) else config.model_copy(deep=True)

    if engine:
        cfg.engine = engine
    if duration_s is not None:
        cfg.simulation.duration_s = duration_s
    if tick_rate_hz is not None:
        cfg.simulation.tick_rate_hz = tick_rate_hz
    if output is not None:
        apply_output_override(cfg, output)

    simulator = build_simulator(cfg)
    stats = simulator.run(cfg.simulation.duration_s, cfg.simulation.tick_rate_hz)

    output_path: Optional[Path] = None
    if cfg.output is not None:
        output_path = Path(cfg.output.path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        writer = build_writer(cfg)
        try:
            writer.write_batch(simulator.buffer.snapshot())
        finally:
            writer.close()

    return SimulationRunResult(stats=stats, output_path=output_path, config=cfg)
