from __future__ import annotations
from dataclasses import dataclass
from typing import Sequence, Union
import numpy as np


def _axis_rotation(axis: int, angle_rad: float) -> np.ndarray:
    c, s = np.cos(angle_rad), np.sin(angle_rad)
    i, j = [k for k in range(3) if k != axis]
    R = np.eye(3)
    R[i, i], R[i, j] = c, -s
    R[j, i], R[j, j] = s, c
    if axis == 1:
        # Right-handed about Y: z cross x
        R = R.T
    return R


@dataclass(frozen=True)
class Pose:
    """Placement of a scene object: world position plus rotation (Z-up)."""

    position: np.ndarray   # (3,)
    rotation: np.ndarray   # (3,3)

    @staticmethod
    def from_xyz_rpy(xyz: Sequence[float], rpy_deg: Sequence[float]) -> "Pose":
        """Roll about X, then pitch about Y, then yaw about Z."""
        roll, pitch, yaw = np.deg2rad(np.asarray(rpy_deg, dtype=float))
        rotation = _axis_rotation(2, yaw) @ _axis_rotation(1, pitch) @ _axis_rotation(0, roll)
        return Pose(position=np.asarray(xyz, dtype=float).reshape(3), rotation=rotation)

    def matrix(self, scale: Union[float, Sequence[float]] = 1.0) -> np.ndarray:
        """4x4 object-to-world transform: translation * rotation * scale."""
        s = np.broadcast_to(np.asarray(scale, dtype=float), (3,))
        M = np.eye(4)
        M[:3, :3] = self.rotation * s[None, :]
        M[:3, 3] = self.position
        return M
