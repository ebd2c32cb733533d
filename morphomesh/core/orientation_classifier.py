"""
Discretized surface orientation.

Each normal is projected onto a plane (the xy-plane, or the camera image plane
when a rotation is supplied), and its in-plane angle is assigned to one of
ORIENTATION_BINS equal sectors. The sector index k is reported as k / (n - 1),
so the output levels are {0, 1/7, ..., 1}.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from .errors import MeshInputError
from .geometry_primitives import TWO_PI, angle_range_clamp

ORIENTATION_BINS = 8


def orientation_levels(n_bins: int = ORIENTATION_BINS) -> np.ndarray:
    """All values surface_orientation() can produce."""
    return np.arange(int(n_bins), dtype=np.float64) / float(int(n_bins) - 1)


def _as_normals(normals) -> np.ndarray:
    arr = np.asarray(normals, dtype=np.float64)
    if arr.ndim == 1:
        if arr.size % 3 != 0:
            raise MeshInputError(f"Flat normal buffer length {arr.size} is not a multiple of 3")
        arr = arr.reshape(-1, 3)
    if arr.ndim != 2 or arr.shape[1] != 3:
        raise MeshInputError(f"Expected (N, 3) normals, got shape {arr.shape}")
    return arr


def _as_rotation(rotation) -> np.ndarray:
    rot = np.asarray(rotation, dtype=np.float64)
    if rot.size == 16:
        # 4x4 view matrix: use its rotation block
        rot = rot.reshape(4, 4)[:3, :3]
    if rot.shape != (3, 3):
        rot = rot.reshape(-1)
        if rot.size != 9:
            raise MeshInputError(f"Expected a 3x3 rotation, got {np.asarray(rotation).shape}")
        rot = rot.reshape(3, 3)
    return rot


def surface_orientation(normals, rotation: Optional[np.ndarray] = None) -> np.ndarray:
    """
    법선 방향을 8개 구간으로 이산화

    Args:
        normals: (N, 3) 법선 (wrapped 또는 unwrapped), 평탄 버퍼 허용
        rotation: 선택적 3x3 카메라 회전 행렬 R. 주어지면 R @ n의 첫 두 성분 사용

    Returns:
        (N,) float64, 각 값은 k / 7 (k = 0..7)
    """
    n = _as_normals(normals)
    if rotation is not None:
        n = n @ _as_rotation(rotation).T

    xy = n[:, :2]
    length = np.linalg.norm(xy, axis=1, keepdims=True)
    xy = xy / np.where(length == 0, 1.0, length)

    theta = angle_range_clamp(np.arctan2(xy[:, 1], xy[:, 0]))
    theta = np.atleast_1d(theta)
    sector = TWO_PI / ORIENTATION_BINS
    # NaN normals stay NaN
    region = np.mod(np.floor(theta / sector), ORIENTATION_BINS)
    return region / float(ORIENTATION_BINS - 1)


def surface_orientation_about_camera(normals, rotation) -> np.ndarray:
    """Camera-relative orientation bins (rotation is required)."""
    if rotation is None:
        raise MeshInputError("Camera rotation is required")
    return surface_orientation(normals, rotation=rotation)
