from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional

import laspy
import matplotlib
import matplotlib.pyplot as plt
import numpy as np
from matplotlib.collections import EllipseCollection

from raysplat.core.utils import quaternion_to_rotation
from raysplat.sdk.run import simulate_from_config

matplotlib.use("Agg")

IMAGE_DIR = Path("examples/images")


def _load_snapshot(path: Path) -> dict[str, np.ndarray]:
    ext = path.suffix.lower()
    if ext == ".npz":
        with np.load(path) as data:
            return {k: data[k] for k in data.files}
    if ext in {".las", ".laz"}:
        with laspy.open(path) as reader:
            points = reader.read()
            return {
                "positions": np.column_stack([points.x, points.y, points.z]),
                "major": np.asarray(points["FootprintMajor"], dtype=np.float64),
                "minor": np.asarray(points["FootprintMinor"], dtype=np.float64),
            }
    raise ValueError(f"Unsupported snapshot format for rendering: {path}")


def _projected_ellipses(data: dict[str, np.ndarray]) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Top-down widths, heights and angles (degrees) of each footprint."""
    major = data["major"]
    minor = data["minor"]
    if "orientations" not in data:
        # Without orientation only the minor axis is direction independent
        return minor, minor, np.zeros_like(minor)
    rot = quaternion_to_rotation(data["orientations"])
    t_xy = rot[:, :2, 0]
    b_xy = rot[:, :2, 1]
    widths = major * np.linalg.norm(t_xy, axis=1)
    heights = minor * np.linalg.norm(b_xy, axis=1)
    angles = np.degrees(np.arctan2(t_xy[:, 1], t_xy[:, 0]))
    return widths, heights, angles


def render_snapshot(name: str, data: dict[str, np.ndarray], out_dir: Path, max_points: int = 50_000) -> Path:
    xyz = data["positions"]
    if xyz.size == 0:
        raise ValueError(f"No footprints to render for {name}")
    if len(xyz) > max_points:
        idx = np.random.default_rng(0).choice(len(xyz), size=max_points, replace=False)
        data = {k: v[idx] for k, v in data.items()}
        xyz = data["positions"]

    z = xyz[:, 2]
    z_lo, z_hi = np.quantile(z, [0.02, 0.98])
    if np.isclose(z_lo, z_hi):
        colors = np.full_like(z, 0.5, dtype=np.float32)
    else:
        colors = np.clip((z - z_lo) / (z_hi - z_lo), 0.0, 1.0).astype(np.float32, copy=False)

    widths, heights, angles = _projected_ellipses(data)
    fig, ax = plt.subplots(figsize=(8, 8), dpi=150)
    ellipses = EllipseCollection(
        widths, heights, angles, units="xy", offsets=xyz[:, :2], offset_transform=ax.transData,
        cmap="viridis", alpha=0.35, linewidths=0.2,
    )
    ellipses.set_array(colors)
    ax.add_collection(ellipses)
    ax.scatter(xyz[:, 0], xyz[:, 1], c=colors, s=0.5, cmap="viridis")
    ax.set_title(f"{name.replace('_', ' ').title()} – footprints (top-down)")
    ax.set_xlabel("X [m]")
    ax.set_ylabel("Y [m]")
    ax.set_aspect("equal", adjustable="datalim")
    ax.autoscale_view()
    fig.colorbar(ellipses, ax=ax, fraction=0.046, pad=0.04, label="Normalized height")

    fig.tight_layout()
    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / f"{name}.png"
    fig.savefig(out_path)
    plt.close(fig)
    return out_path


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Render a RaySplat footprint snapshot as a top-down image.")
    parser.add_argument("snapshot", type=Path, nargs="?", help="Existing .npz/.las/.laz snapshot.")
    parser.add_argument("--config", type=Path, help="Run this scenario first and render its snapshot.")
    parser.add_argument("--out-dir", type=Path, default=IMAGE_DIR, help="Directory for the PNG.")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO).")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO), format="[%(levelname)s] %(message)s")
    snapshot: Optional[Path] = args.snapshot
    if args.config is not None:
        result = simulate_from_config(args.config, output=snapshot)
        snapshot = result.output_path
    if snapshot is None:
        raise SystemExit("Pass a snapshot path or --config with an output section.")
    image_path = render_snapshot(snapshot.stem, _load_snapshot(snapshot), args.out_dir)
    logging.info("Saved %s", image_path)


if __name__ == "__main__":
    main()
