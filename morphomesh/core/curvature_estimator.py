"""
Dirichlet normal energy (DNE) per triangle.

For each triangle with edge vectors u, v and normal differences nu, nv:

    G = [[u.u, u.v], [u.v, v.v]]
    H = [[nu.nu, nu.nv], [nu.nv, nv.nv]]
    e = trace(G^-1 H)

Values are clamped, normalized by the largest value and passed through a fixed
contrast curve. Singular G (collinear edges) yields NaN, which is left in the
output.
"""

from __future__ import annotations

import numpy as np

from .errors import MeshInputError
from .geometry_primitives import invert_2x2, multiply_2x2

TRACE_CLAMP = 1000.0
CONTRAST_OFFSET = 2.99572315  # ln(20)
CONTRAST_GAIN = 15.0
CONTRAST_SCALE = 20.0


def _as_corner_array(values, name: str) -> np.ndarray:
    arr = np.asarray(values, dtype=np.float64)
    if arr.ndim == 1:
        if arr.size % 9 != 0:
            raise MeshInputError(f"{name}: flat buffer length {arr.size} is not a multiple of 9")
        arr = arr.reshape(-1, 3)
    if arr.ndim != 2 or arr.shape[1] != 3 or arr.shape[0] % 3 != 0:
        raise MeshInputError(f"{name}: expected (3T, 3) corner array, got shape {arr.shape}")
    return arr


def _gram(u: np.ndarray, v: np.ndarray) -> np.ndarray:
    uv = np.einsum("ij,ij->i", u, v)
    g = np.empty((u.shape[0], 2, 2), dtype=np.float64)
    g[:, 0, 0] = np.einsum("ij,ij->i", u, u)
    g[:, 0, 1] = uv
    g[:, 1, 0] = uv
    g[:, 1, 1] = np.einsum("ij,ij->i", v, v)
    return g


def dirichlet_energy(unwrapped_verts, unwrapped_norms) -> np.ndarray:
    """Raw trace(G^-1 H) per triangle, (T,). No clamping."""
    verts = _as_corner_array(unwrapped_verts, "verts")
    norms = _as_corner_array(unwrapped_norms, "normals")
    if verts.shape != norms.shape:
        raise MeshInputError(
            f"Vertex/normal corner arrays differ in shape: {verts.shape} vs {norms.shape}"
        )

    c = verts.reshape(-1, 3, 3)
    n = norms.reshape(-1, 3, 3)
    g = _gram(c[:, 1] - c[:, 0], c[:, 2] - c[:, 0])
    h = _gram(n[:, 1] - n[:, 0], n[:, 2] - n[:, 0])
    res = multiply_2x2(invert_2x2(g), h)
    return res[:, 0, 0] + res[:, 1, 1]


def contrast_curve(normalized) -> np.ndarray:
    """1 - exp(ln(20) - 15 x) / 20. Maps 0 -> 0, 1 -> ~1."""
    x = np.asarray(normalized, dtype=np.float64)
    return 1.0 - np.exp(CONTRAST_OFFSET - CONTRAST_GAIN * x) / CONTRAST_SCALE


def surface_variation(
    unwrapped_verts,
    unwrapped_norms,
    *,
    return_normalized: bool = False,
) -> np.ndarray:
    """
    곡률(표면 변화량) 계산

    Args:
        unwrapped_verts: (3T, 3) 또는 (9T,) 꼭짓점별 좌표
        unwrapped_norms: (3T, 3) 또는 (9T,) 꼭짓점별 법선
        return_normalized: True이면 대비 곡선 적용 전 [.., 1] 정규화 값 반환

    Returns:
        (3T,) 꼭짓점별 값 (삼각형의 세 꼭짓점은 같은 값)
    """
    energy = dirichlet_energy(unwrapped_verts, unwrapped_norms)
    if energy.size == 0:
        return np.zeros((0,), dtype=np.float64)

    with np.errstate(invalid="ignore"):
        clamped = np.where(energy > TRACE_CLAMP, TRACE_CLAMP, energy)

    finite = clamped[np.isfinite(clamped)]
    if finite.size == 0:
        normalized = np.full_like(clamped, np.nan)
    else:
        largest = float(finite.max())
        if largest > 0.0:
            normalized = clamped / largest
        else:
            # Zero energy everywhere (flat surface)
            normalized = np.where(np.isfinite(clamped), 0.0, clamped)

    per_corner = np.repeat(normalized, 3)
    if return_normalized:
        return per_corner
    return contrast_curve(per_corner)
