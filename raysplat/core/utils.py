from __future__ import annotations
import numpy as np
import logging

def get_logger(name: str = "raysplat") -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        fmt = logging.Formatter("[%(levelname)s] %(message)s")
        handler.setFormatter(fmt)
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    return logger

def ensure_unit_vectors(v: np.ndarray, eps: float = 1e-12) -> np.ndarray:
    norms = np.linalg.norm(v, axis=1, keepdims=True)
    norms = np.clip(norms, eps, None)
    return v / norms

def row_dot(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return np.einsum("ij,ij->i", a, b)

def normal_matrix(transform: np.ndarray, eps: float = 1e-12) -> np.ndarray:
    """Inverse-transpose of the linear part of a 4x4 (or stack of 4x4) transform.

    Singular linear parts have no normal matrix and come back as NaN.
    """
    linear = np.asarray(transform, dtype=np.float64)[..., :3, :3]
    flat = linear.reshape(-1, 3, 3)
    out = np.full(flat.shape, np.nan)
    ok = np.abs(np.linalg.det(flat)) > eps
    if np.any(ok):
        out[ok] = np.swapaxes(np.linalg.inv(flat[ok]), -1, -2)
    return out.reshape(linear.shape)

def rotation_to_quaternion(R: np.ndarray) -> np.ndarray:
    """Convert (N,3,3) rotation matrices to (N,4) quaternions ordered x, y, z, w."""
    R = np.asarray(R, dtype=np.float64).reshape(-1, 3, 3)
    m00, m01, m02 = R[:, 0, 0], R[:, 0, 1], R[:, 0, 2]
    m10, m11, m12 = R[:, 1, 0], R[:, 1, 1], R[:, 1, 2]
    m20, m21, m22 = R[:, 2, 0], R[:, 2, 1], R[:, 2, 2]
    trace = m00 + m11 + m22
    q = np.zeros((R.shape[0], 4), dtype=np.float64)

    # Branch on the largest diagonal term for numerical stability
    c0 = trace > 0
    c1 = ~c0 & (m00 > m11) & (m00 > m22)
    c2 = ~c0 & ~c1 & (m11 > m22)
    c3 = ~c0 & ~c1 & ~c2

    s = 0.5 / np.sqrt(np.where(c0, trace, 0.0) + 1.0)
    q[c0] = np.column_stack([(m21 - m12) * s, (m02 - m20) * s, (m10 - m01) * s, 0.25 / s])[c0]

    s = 2.0 * np.sqrt(np.clip(1.0 + m00 - m11 - m22, 1e-12, None))
    q[c1] = np.column_stack([0.25 * s, (m01 + m10) / s, (m02 + m20) / s, (m21 - m12) / s])[c1]

    s = 2.0 * np.sqrt(np.clip(1.0 + m11 - m00 - m22, 1e-12, None))
    q[c2] = np.column_stack([(m01 + m10) / s, 0.25 * s, (m12 + m21) / s, (m02 - m20) / s])[c2]

    s = 2.0 * np.sqrt(np.clip(1.0 + m22 - m00 - m11, 1e-12, None))
    q[c3] = np.column_stack([(m02 + m20) / s, (m12 + m21) / s, 0.25 * s, (m10 - m01) / s])[c3]

    return ensure_unit_vectors(q)

def quaternion_to_rotation(q: np.ndarray) -> np.ndarray:
    q = ensure_unit_vectors(np.asarray(q, dtype=np.float64).reshape(-1, 4))
    x, y, z, w = q[:, 0], q[:, 1], q[:, 2], q[:, 3]
    R = np.empty((q.shape[0], 3, 3), dtype=np.float64)
    R[:, 0, 0] = 1 - 2 * (y * y + z * z)
    R[:, 0, 1] = 2 * (x * y - z * w)
    R[:, 0, 2] = 2 * (x * z + y * w)
    R[:, 1, 0] = 2 * (x * y + z * w)
    R[:, 1, 1] = 1 - 2 * (x * x + z * z)
    R[:, 1, 2] = 2 * (y * z - x * w)
    R[:, 2, 0] = 2 * (x * z - y * w)
    R[:, 2, 1] = 2 * (y * z + x * w)
    R[:, 2, 2] = 1 - 2 * (x * x + y * y)
    return R

def compose_matrices(positions: np.ndarray, quaternions: np.ndarray, scales: np.ndarray) -> np.ndarray:
    """Build (N,4,4) transforms as translation * rotation * scale."""
    R = quaternion_to_rotation(quaternions)
    M = np.zeros((R.shape[0], 4, 4), dtype=np.float64)
    M[:, :3, :3] = R * np.asarray(scales, dtype=np.float64).reshape(-1, 1, 3)
    M[:, :3, 3] = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
    M[:, 3, 3] = 1.0
    return M
