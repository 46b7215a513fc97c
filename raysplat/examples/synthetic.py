from __future__ import annotations

from pathlib import Path
from typing import Iterable, Sequence, Tuple, Union

import numpy as np

from ..core.scene import MeshScene, SceneObject
from ..motion.pose import Pose

Part = Tuple[np.ndarray, np.ndarray, np.ndarray]


def _grid_plane(size: Union[float, Sequence[float]], divisions: int, z: float = 0.0,
                color: Tuple[int, int, int] = (180, 200, 180)) -> Part:
    sx, sy = np.broadcast_to(np.asarray(size, dtype=np.float64), (2,))
    xs = np.linspace(-sx / 2.0, sx / 2.0, divisions + 1)
    ys = np.linspace(-sy / 2.0, sy / 2.0, divisions + 1)
    xv, yv = np.meshgrid(xs, ys, indexing="ij")
    vertices = np.column_stack([xv.ravel(), yv.ravel(), np.full(xv.size, z)])

    i, j = np.meshgrid(np.arange(divisions), np.arange(divisions), indexing="ij")
    idx0 = (i * (divisions + 1) + j).ravel()
    idx1 = idx0 + 1
    idx2 = idx0 + (divisions + 1)
    idx3 = idx2 + 1
    # Counter-clockwise seen from +Z so face normals point up
    faces = np.vstack([
        np.column_stack([idx0, idx3, idx1]),
        np.column_stack([idx0, idx2, idx3]),
    ]).astype(np.int64)
    colors = np.tile(np.asarray(color, dtype=np.uint8), (len(vertices), 1))
    return vertices, faces, colors


def _box(size: Sequence[float], center: Sequence[float] = (0.0, 0.0, 0.0),
         color: Tuple[int, int, int] = (180, 180, 240)) -> Part:
    cx, cy, cz = center
    hx, hy, hz = (float(s) / 2.0 for s in size)
    vertices = np.array([
        [cx - hx, cy - hy, cz - hz],
        [cx + hx, cy - hy, cz - hz],
        [cx + hx, cy + hy, cz - hz],
        [cx - hx, cy + hy, cz - hz],
        [cx - hx, cy - hy, cz + hz],
        [cx + hx, cy - hy, cz + hz],
        [cx + hx, cy + hy, cz + hz],
        [cx - hx, cy + hy, cz + hz],
    ], dtype=np.float64)

    faces = np.array([
        [0, 2, 1], [0, 3, 2],  # bottom
        [4, 5, 6], [4, 6, 7],  # top
        [0, 1, 5], [0, 5, 4],  # front
        [1, 2, 6], [1, 6, 5],  # right
        [2, 3, 7], [2, 7, 6],  # back
        [3, 0, 4], [3, 4, 7],  # left
    ], dtype=np.int64)
    colors = np.tile(np.asarray(color, dtype=np.uint8), (len(vertices), 1))
    return vertices, faces, colors


def _uv_sphere(radius: float, segments: int = 32, rings: int = 16,
               center: Sequence[float] = (0.0, 0.0, 0.0),
               color: Tuple[int, int, int] = (240, 180, 180)) -> Part:
    """Latitude/longitude sphere with outward winding; poles are single vertices."""
    if segments < 3 or rings < 2:
        raise ValueError("uv sphere needs segments >= 3 and rings >= 2.")
    polar = np.linspace(0.0, np.pi, rings + 1)[1:-1]
    lon = 2.0 * np.pi * np.arange(segments) / segments
    p, l = np.meshgrid(polar, lon, indexing="ij")
    band = np.column_stack([
        (np.sin(p) * np.cos(l)).ravel(),
        (np.sin(p) * np.sin(l)).ravel(),
        np.cos(p).ravel(),
    ])
    vertices = np.vstack([[0.0, 0.0, 1.0], band, [0.0, 0.0, -1.0]]) * radius + np.asarray(center, dtype=np.float64)

    s = np.arange(segments)
    s_next = (s + 1) % segments
    bottom = len(vertices) - 1
    faces = [np.column_stack([np.zeros(segments, dtype=np.int64), 1 + s, 1 + s_next])]
    for k in range(rings - 2):
        a = 1 + k * segments + s
        b = 1 + k * segments + s_next
        c = a + segments
        d = b + segments
        faces.append(np.column_stack([a, c, d]))
        faces.append(np.column_stack([a, d, b]))
    last = 1 + (rings - 2) * segments
    faces.append(np.column_stack([np.full(segments, bottom), last + s_next, last + s]))
    colors = np.tile(np.asarray(color, dtype=np.uint8), (len(vertices), 1))
    return vertices, np.vstack(faces).astype(np.int64), colors


def _merge_parts(parts: Iterable[Part]) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    vertices: list[np.ndarray] = []
    faces: list[np.ndarray] = []
    colors: list[np.ndarray] = []
    offset = 0
    for verts, tri, col in parts:
        vertices.append(verts)
        colors.append(col)
        faces.append(tri + offset)
        offset += verts.shape[0]
    all_vertices = np.vstack(vertices).astype(np.float32, copy=False)
    all_faces = np.vstack(faces).astype(np.int64, copy=False)
    all_colors = np.vstack(colors).astype(np.uint8, copy=False)
    normals = _compute_vertex_normals(all_vertices, all_faces)
    return all_vertices, all_faces, all_colors, normals


def _compute_vertex_normals(vertices: np.ndarray, faces: np.ndarray) -> np.ndarray:
    normals = np.zeros_like(vertices, dtype=np.float32)
    tris = vertices[faces]
    face_normals = np.cross(tris[:, 1] - tris[:, 0], tris[:, 2] - tris[:, 0])
    lens = np.linalg.norm(face_normals, axis=1, keepdims=True)
    face_normals = np.divide(face_normals, np.clip(lens, 1e-8, None), out=np.zeros_like(face_normals), where=lens > 0)
    for k in range(3):
        np.add.at(normals, faces[:, k], face_normals)
    lens = np.linalg.norm(normals, axis=1, keepdims=True)
    normals = np.divide(normals, np.clip(lens, 1e-8, None), out=np.zeros_like(normals), where=lens > 0)
    return normals.astype(np.float32, copy=False)


def _write_ascii_ply(path: Path, vertices: np.ndarray, faces: np.ndarray, colors: np.ndarray, normals: np.ndarray) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write("ply\n")
        f.write("format ascii 1.0\n")
        f.write(f"element vertex {len(vertices)}\n")
        f.write("property float x\nproperty float y\nproperty float z\n")
        f.write("property float nx\nproperty float ny\nproperty float nz\n")
        f.write("property uchar red\nproperty uchar green\nproperty uchar blue\n")
        f.write(f"element face {len(faces)}\n")
        f.write("property list uchar int vertex_indices\n")
        f.write("end_header\n")
        for (x, y, z), (nx, ny, nz), (r, g, b) in zip(vertices, normals, colors):
            f.write(f"{x:.6f} {y:.6f} {z:.6f} {nx:.6f} {ny:.6f} {nz:.6f} {int(r)} {int(g)} {int(b)}\n")
        for tri in faces:
            f.write(f"3 {tri[0]} {tri[1]} {tri[2]}\n")


def plane_object(size: Union[float, Sequence[float]] = 20.0, divisions: int = 1,
                 transform: np.ndarray | None = None, name: str = "plane") -> SceneObject:
    vertices, faces, _ = _grid_plane(size, divisions)
    return SceneObject(vertices, faces, transform=np.eye(4) if transform is None else transform, name=name)


def box_object(size: Sequence[float] = (2.0, 2.0, 2.0), transform: np.ndarray | None = None,
               name: str = "box") -> SceneObject:
    vertices, faces, _ = _box(size)
    return SceneObject(vertices, faces, transform=np.eye(4) if transform is None else transform, name=name)


def sphere_object(radius: float = 1.0, segments: int = 32, rings: int = 16,
                  transform: np.ndarray | None = None, name: str = "sphere") -> SceneObject:
    vertices, faces, _ = _uv_sphere(radius, segments, rings)
    return SceneObject(vertices, faces, transform=np.eye(4) if transform is None else transform, name=name)


def _placed(xyz: Sequence[float]) -> np.ndarray:
    return Pose.from_xyz_rpy(tuple(xyz), (0.0, 0.0, 0.0)).matrix()


def demo_scene() -> MeshScene:
    """Ground plane with a cube and a sphere standing on it."""
    return MeshScene([
        plane_object(20.0, transform=_placed((0.0, 0.0, -1.0)), name="ground"),
        box_object((2.0, 2.0, 2.0), transform=_placed((-3.0, 2.0, 0.0)), name="cube"),
        sphere_object(1.5, transform=_placed((4.0, -1.0, 0.5)), name="sphere"),
    ])


def plane_scene(size: float = 20.0, z: float = 0.0) -> MeshScene:
    return MeshScene([plane_object(size, transform=_placed((0.0, 0.0, z)), name="ground")])


def generate_mesh(preset: str, size: float, path: Path) -> None:
    """Write a synthetic scene as a single ASCII PLY mesh.

    ``demo`` scales the default demo layout so the ground spans ``size`` metres.
    """
    preset = preset.lower()
    if preset == "plane":
        vertices, faces, colors = _grid_plane(size=size, divisions=40)
        normals = _compute_vertex_normals(vertices, faces)
        _write_ascii_ply(path, vertices, faces, colors, normals)
        return

    if preset == "demo":
        k = size / 20.0
        plane = _grid_plane(size=size, divisions=40, z=-1.0 * k)
        cube = _box((2.0 * k, 2.0 * k, 2.0 * k), center=(-3.0 * k, 2.0 * k, 0.0))
        sphere = _uv_sphere(1.5 * k, center=(4.0 * k, -1.0 * k, 0.5 * k))
        vertices, faces, colors, normals = _merge_parts([plane, cube, sphere])
        _write_ascii_ply(path, vertices, faces, colors, normals)
        return

    raise ValueError(f"Unknown synthetic mesh preset '{preset}'.")
