from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional
import numpy as np
import trimesh
from .utils import get_logger

_log = get_logger()


@dataclass
class SceneObject:
    """A collidable triangle mesh placed in the world by a 4x4 transform.

    Vertices and face normals are stored in object-local space; intersection
    providers work against :meth:`world_triangles` and report the local face
    normal together with :attr:`transform`. Set ``with_normals=False`` for
    geometry that carries no usable face normals.
    """
    vertices: np.ndarray                  # (N, 3) local
    faces: np.ndarray                     # (M, 3) int
    transform: np.ndarray = field(default_factory=lambda: np.eye(4))
    name: str = "object"
    with_normals: bool = True

    def __post_init__(self) -> None:
        self.vertices = np.asarray(self.vertices, dtype=np.float64).reshape(-1, 3)
        self.faces = np.asarray(self.faces, dtype=np.int64).reshape(-1, 3)
        self.transform = np.asarray(self.transform, dtype=np.float64).reshape(4, 4)
        if len(self.faces) and (self.faces.min() < 0 or self.faces.max() >= len(self.vertices)):
            raise ValueError(f"Object '{self.name}' has face indices outside its vertex array.")
        self._world_tris: Optional[np.ndarray] = None
        self._local_normals: Optional[np.ndarray] = None

    @classmethod
    def from_trimesh(cls, mesh: "trimesh.Trimesh", transform: Optional[np.ndarray] = None, name: str = "mesh") -> "SceneObject":
        return cls(
            vertices=np.asarray(mesh.vertices, dtype=np.float64),
            faces=np.asarray(mesh.faces, dtype=np.int64),
            transform=np.eye(4) if transform is None else transform,
            name=name,
        )

    @classmethod
    def load(cls, path: str | Path, transform: Optional[np.ndarray] = None, name: Optional[str] = None) -> "SceneObject":
        path = Path(path)
        mesh = trimesh.load(str(path), force="mesh", process=True)
        if not isinstance(mesh, trimesh.Trimesh) or len(mesh.faces) == 0:
            raise RuntimeError(f"'{path}' does not contain a triangle mesh.")
        _log.info("Loaded %s (%d vertices, %d faces)", path.name, len(mesh.vertices), len(mesh.faces))
        return cls.from_trimesh(mesh, transform=transform, name=name or path.stem)

    def world_triangles(self) -> np.ndarray:
        """(M, 3, 3) triangle corners in world space, cached."""
        if self._world_tris is None:
            homo = np.column_stack([self.vertices, np.ones(len(self.vertices))])
            world = (self.transform @ homo.T).T[:, :3]
            self._world_tris = world[self.faces]
        return self._world_tris

    def local_face_normals(self) -> np.ndarray:
        """(M, 3) unit face normals in local space; NaN rows where none is defined."""
        if self._local_normals is None:
            if not self.with_normals:
                self._local_normals = np.full((len(self.faces), 3), np.nan)
            else:
                tris = self.vertices[self.faces]
                n = np.cross(tris[:, 1] - tris[:, 0], tris[:, 2] - tris[:, 0])
                lens = np.linalg.norm(n, axis=1, keepdims=True)
                with np.errstate(invalid="ignore", divide="ignore"):
                    n = np.where(lens > 1e-12, n / lens, np.nan)
                self._local_normals = n
        return self._local_normals


class MeshScene:
    """Collection of collidable objects searched by intersection providers."""

    def __init__(self, objects: Optional[List[SceneObject]] = None) -> None:
        self._objects: List[SceneObject] = list(objects or [])

    def add(self, obj: SceneObject) -> None:
        self._objects.append(obj)

    @property
    def objects(self) -> List[SceneObject]:
        return self._objects

    def __len__(self) -> int:
        return len(self._objects)

    def __iter__(self) -> Iterator[SceneObject]:
        return iter(self._objects)

    def triangle_count(self) -> int:
        return int(sum(len(o.faces) for o in self._objects))
