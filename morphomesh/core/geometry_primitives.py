"""
Vector / small-matrix helpers and bounding boxes.

All helpers accept either a single vector or a stack of vectors (last axis = 3)
and rely on numpy broadcasting.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .errors import MeshInputError

DET_EPSILON = 1e-12
TWO_PI = 2.0 * np.pi


def cross(a, b) -> np.ndarray:
    return np.cross(np.asarray(a, dtype=np.float64), np.asarray(b, dtype=np.float64))


def dot(a, b) -> np.ndarray | float:
    """Dot product over the last axis."""
    out = np.sum(np.asarray(a, dtype=np.float64) * np.asarray(b, dtype=np.float64), axis=-1)
    if np.ndim(out) == 0:
        return float(out)
    return out


def normalize(v) -> np.ndarray:
    """
    Unit vector(s) along ``v``.

    Zero-length input stays the zero vector (callers guard this case).
    """
    arr = np.asarray(v, dtype=np.float64)
    norms = np.linalg.norm(arr, axis=-1, keepdims=True)
    safe = np.where(norms == 0, 1.0, norms)
    return arr / safe


def invert_2x2(m) -> np.ndarray:
    """
    Closed-form inverse of a 2x2 matrix (or a (N, 2, 2) stack).

    Matrices with |det| < DET_EPSILON come back filled with NaN.
    """
    arr = np.asarray(m, dtype=np.float64)
    a = arr[..., 0, 0]
    b = arr[..., 0, 1]
    c = arr[..., 1, 0]
    d = arr[..., 1, 1]
    det = a * d - b * c
    singular = np.abs(det) < DET_EPSILON
    with np.errstate(divide="ignore", invalid="ignore"):
        inv_det = np.where(singular, np.nan, 1.0 / np.where(singular, 1.0, det))
    out = np.empty_like(arr)
    out[..., 0, 0] = d * inv_det
    out[..., 0, 1] = -b * inv_det
    out[..., 1, 0] = -c * inv_det
    out[..., 1, 1] = a * inv_det
    return out


def multiply_2x2(a, b) -> np.ndarray:
    """Closed-form 2x2 product (stacks supported)."""
    x = np.asarray(a, dtype=np.float64)
    y = np.asarray(b, dtype=np.float64)
    out = np.empty(np.broadcast_shapes(x.shape, y.shape), dtype=np.float64)
    out[..., 0, 0] = x[..., 0, 0] * y[..., 0, 0] + x[..., 0, 1] * y[..., 1, 0]
    out[..., 0, 1] = x[..., 0, 0] * y[..., 0, 1] + x[..., 0, 1] * y[..., 1, 1]
    out[..., 1, 0] = x[..., 1, 0] * y[..., 0, 0] + x[..., 1, 1] * y[..., 1, 0]
    out[..., 1, 1] = x[..., 1, 0] * y[..., 0, 1] + x[..., 1, 1] * y[..., 1, 1]
    return out


def angle_range_clamp(angle):
    """Fold an angle into [0, 2*pi] by at most one turn (atan2 output in, [0, 2*pi) out)."""
    arr = np.asarray(angle, dtype=np.float64)
    out = np.where(arr > TWO_PI, arr - TWO_PI, arr)
    out = np.where(out < 0.0, out + TWO_PI, out)
    if out.ndim == 0:
        return float(out)
    return out


@dataclass(frozen=True)
class AABB:
    """Axis-aligned bounding box.

    Attributes:
        min: (3,) per-axis minimum
        max: (3,) per-axis maximum
    """

    min: np.ndarray
    max: np.ndarray

    @property
    def extents(self) -> np.ndarray:
        return self.max - self.min

    @property
    def width(self) -> float:
        return float(self.extents[0])

    @property
    def height(self) -> float:
        return float(self.extents[1])

    @property
    def depth(self) -> float:
        return float(self.extents[2])

    @property
    def center(self) -> np.ndarray:
        return 0.5 * (self.min + self.max)

    @property
    def length(self) -> float:
        """Diagonal length."""
        return float(np.linalg.norm(self.extents))

    def as_dict(self) -> dict:
        return {
            "min": [float(x) for x in self.min],
            "max": [float(x) for x in self.max],
            "center": [float(x) for x in self.center],
            "width": self.width,
            "height": self.height,
            "depth": self.depth,
            "length": self.length,
        }


def _as_points(points) -> np.ndarray:
    arr = np.asarray(points, dtype=np.float64)
    if arr.ndim != 2 or arr.shape[1] != 3:
        raise MeshInputError(f"Expected (N, 3) points, got shape {arr.shape}")
    return arr


def compute_aabb(points) -> AABB:
    """Bounding box of an (N, 3) point array. N must be >= 1."""
    pts = _as_points(points)
    if pts.shape[0] == 0:
        raise MeshInputError("compute_aabb requires at least one point")
    return AABB(min=pts.min(axis=0), max=pts.max(axis=0))


def compute_aabb_unwrapped(buffer) -> AABB:
    """Bounding box of a flat xyzxyz... coordinate buffer."""
    flat = np.asarray(buffer, dtype=np.float64).reshape(-1)
    if flat.size % 3 != 0:
        raise MeshInputError(f"Unwrapped buffer length {flat.size} is not a multiple of 3")
    return compute_aabb(flat.reshape(-1, 3))


def center_point_cloud(points, layout: str = "wrapped") -> tuple[np.ndarray, np.ndarray]:
    """
    Translate points so their mean sits on the origin.

    Args:
        points: (N, 3) array ("wrapped") or flat xyz buffer ("unwrapped")
        layout: "wrapped" or "unwrapped"

    Returns:
        (centered copy in the same layout, subtracted center (3,))
    """
    mode = str(layout).strip().lower()
    if mode == "wrapped":
        pts = _as_points(points)
    elif mode == "unwrapped":
        flat = np.asarray(points, dtype=np.float64).reshape(-1)
        if flat.size % 3 != 0:
            raise MeshInputError(f"Unwrapped buffer length {flat.size} is not a multiple of 3")
        pts = flat.reshape(-1, 3)
    else:
        raise ValueError(f"Unknown layout: {layout!r}")

    if pts.shape[0] == 0:
        return np.asarray(points, dtype=np.float64).copy(), np.zeros(3, dtype=np.float64)

    center = pts.mean(axis=0)
    centered = pts - center
    if mode == "unwrapped":
        centered = centered.reshape(-1)
    return centered, center


def unwrap_vector_array(vectors, faces) -> np.ndarray:
    """Per-corner expansion of (V, 3) vectors into a flat (9T,) buffer."""
    v = np.asarray(vectors, dtype=np.float64)
    f = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
    return v[f.reshape(-1)].reshape(-1)


def unwrap_array(values, faces) -> np.ndarray:
    """Per-corner expansion of per-vertex values: (V, ...) -> (3T, ...)."""
    arr = np.asarray(values)
    f = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
    return arr[f.reshape(-1)]
