from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

from ..config import load_config
from ..core.footprint import incidence_deg
from ..examples.synthetic import generate_mesh
from ..runtime.builders import build_simulator, build_writer
from ..sdk.run import apply_output_override, simulate_from_config

app = typer.Typer(help="RaySplat lidar footprint simulator")
scene_app = typer.Typer(help="Synthetic scene helpers")
app.add_typer(scene_app, name="scene")

_ENGINES = {"auto", "numpy", "embree"}


def _configure_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=numeric, format="[%(levelname)s] %(message)s")
    logging.getLogger("raysplat").setLevel(numeric)


def _check_output(output: Optional[Path]) -> Optional[Path]:
    if output is None:
        return None
    ext = output.suffix.lower()
    if ext not in {".las", ".laz", ".npz", ".ply"}:
        raise typer.BadParameter(f"Unsupported output extension '{ext}'", param_hint="--output")
    return output.resolve()


@app.command("simulate")
def simulate(
    config: Path = typer.Argument(..., exists=True, readable=True, help="Path to YAML configuration file."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Override snapshot path (extension sets format)."),
    duration_s: Optional[float] = typer.Option(None, "--duration-s", help="Override simulated duration in seconds."),
    tick_rate_hz: Optional[float] = typer.Option(None, "--tick-rate-hz", help="Override tick rate in Hz."),
    engine: Optional[str] = typer.Option(None, "--engine", help="Override intersector backend (auto, numpy, embree)."),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level (e.g. INFO, DEBUG)."),
) -> None:
    """Run a scenario headlessly and write the retained footprints."""

    if engine is not None and engine.lower() not in _ENGINES:
        raise typer.BadParameter(f"engine must be one of {sorted(_ENGINES)}.", param_hint="--engine")
    if duration_s is not None and duration_s < 0.0:
        raise typer.BadParameter("duration must be non-negative.", param_hint="--duration-s")
    if tick_rate_hz is not None and tick_rate_hz <= 0.0:
        raise typer.BadParameter("tick rate must be positive.", param_hint="--tick-rate-hz")
    _configure_logging(log_level)

    result = simulate_from_config(
        config,
        output=_check_output(output),
        duration_s=duration_s,
        tick_rate_hz=tick_rate_hz,
        engine=engine.lower() if engine else None,
    )
    stats = result.stats
    target = result.output_path if result.output_path is not None else "(no output)"
    typer.echo(
        f"Completed {stats['scans']} scans, {stats['hits']} hits from {stats['rays']} rays; "
        f"{stats['active']} footprints retained → {target}"
    )


@app.command("scan")
def scan(
    config: Path = typer.Argument(..., exists=True, readable=True, help="Path to YAML configuration file."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Override output path (extension sets format)."),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level (e.g. INFO, DEBUG)."),
) -> None:
    """Run a single scan from the sensor's start position."""

    _configure_logging(log_level)
    cfg = load_config(config)
    out = _check_output(output)
    if out is not None:
        apply_output_override(cfg, out)
    if cfg.output is None:
        raise typer.BadParameter("No output configured; pass --output.", param_hint="--output")

    simulator = build_simulator(cfg)
    result = simulator.scan(simulator.state)
    cfg.output.path.parent.mkdir(parents=True, exist_ok=True)
    writer = build_writer(cfg)
    try:
        writer.write_batch(result.footprints)
    finally:
        writer.close()
    angles = incidence_deg(result.hits)
    mean_incidence = f"{float(angles.mean()):.1f}°" if len(angles) else "n/a"
    typer.echo(
        f"Completed {len(result.hits)} hits from {result.rays} rays "
        f"(mean incidence {mean_incidence}) → {cfg.output.path}"
    )


@scene_app.command("generate")
def scene_generate(
    output: Path = typer.Argument(..., help="Output mesh path (.ply)."),
    preset: str = typer.Option("demo", "--preset", help="Synthetic scene preset (demo, plane)."),
    size: float = typer.Option(20.0, "--size", help="Ground extent in metres."),
) -> None:
    """Generate a synthetic mesh useful for simulation demos."""

    if size <= 0.0:
        raise typer.BadParameter("size must be positive.", param_hint="--size")
    out = output.resolve()
    try:
        generate_mesh(preset=preset, size=size, path=out)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--preset") from exc
    typer.echo(f"Wrote synthetic mesh to {out}")


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
