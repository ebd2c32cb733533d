"""
Incremental Delaunay triangulation of unordered point clouds.

Bowyer-Watson insertion seeded with a super-triangle. Points are inserted from
the largest x to the smallest, which lets triangles whose circumsphere lies
entirely on the +x side of the sweep be closed early.

The super-triangle lies in the best-fit plane of the cloud, so coplanar clouds
in any orientation come out Delaunay-valid. For curved clouds the in-sphere
test on 3D circumspheres is not a surface triangulation criterion; use
``planar=True`` to triangulate the cloud as projected onto its best-fit plane
(2.5D scans such as tooth crowns or height fields).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .errors import MeshInputError, TriangulationError

logger = logging.getLogger(__name__)

EPSILON = 1.0 / 1048576.0
SUPER_TRIANGLE_SCALE = 10.0
SOLVE_EPSILON = 1e-12

# Coordinate row pairs usable for the 2x2 bisector solve
_ROW_PAIRS = np.array([[0, 1], [0, 2], [1, 2]], dtype=np.int64)


@dataclass(frozen=True)
class Circumsphere:
    center: np.ndarray
    radius_sq: float

    def contains(self, point, eps: float = EPSILON) -> bool:
        """Strictly inside, with ``eps`` slack on the squared radius."""
        diff = np.asarray(point, dtype=np.float64) - self.center
        return bool(self.radius_sq - float(np.dot(diff, diff)) > eps)


def _unit_rows(v: np.ndarray) -> np.ndarray:
    n = np.linalg.norm(v, axis=1, keepdims=True)
    return v / np.where(n == 0, 1.0, n)


def _circumspheres(pts: np.ndarray, tris: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """
    Circumsphere centers (M, 3) and squared radii (M,) for triangles (M, 3).

    Construction: perpendicular bisectors of two edges, both lying in the
    triangle plane, intersected by solving a 2x2 system on the best-conditioned
    pair of coordinate rows. Degenerate triangles yield NaN.
    """
    if tris.shape[0] == 0:
        return np.zeros((0, 3), dtype=np.float64), np.zeros((0,), dtype=np.float64)

    p1 = pts[tris[:, 0]]
    p2 = pts[tris[:, 1]]
    p3 = pts[tris[:, 2]]

    a = p1 - p2
    b = p3 - p1
    n = np.cross(a, b)
    a_mid = p2 + 0.5 * a
    b_mid = p1 + 0.5 * b
    # Unit bisector directions keep the determinant scale-free
    d = _unit_rows(np.cross(n, a))
    e = _unit_rows(np.cross(n, b))

    # a_mid + t*d == b_mid + s*e  ->  [d, -e] [t, s]^T = b_mid - a_mid
    r_idx = _ROW_PAIRS[:, 0]
    s_idx = _ROW_PAIRS[:, 1]
    dets = d[:, r_idx] * (-e[:, s_idx]) - d[:, s_idx] * (-e[:, r_idx])
    best = np.argmax(np.abs(dets), axis=1)
    rows = np.arange(tris.shape[0])
    det = dets[rows, best]
    r = r_idx[best]
    s = s_idx[best]

    rhs = b_mid - a_mid
    rhs_r = rhs[rows, r]
    rhs_s = rhs[rows, s]
    e_r = e[rows, r]
    e_s = e[rows, s]

    singular = ~(np.abs(det) >= SOLVE_EPSILON)
    safe_det = np.where(singular, 1.0, det)
    t = ((-e_s) * rhs_r - (-e_r) * rhs_s) / safe_det
    t = np.where(singular, np.nan, t)

    centers = a_mid + t[:, None] * d
    radius_sq = np.sum((p1 - centers) ** 2, axis=1)
    return centers, radius_sq


def circumsphere(p1, p2, p3) -> Circumsphere:
    """Circumsphere of a single triangle (center lies in the triangle plane)."""
    pts = np.asarray([p1, p2, p3], dtype=np.float64)
    centers, radius_sq = _circumspheres(pts, np.array([[0, 1, 2]], dtype=np.int64))
    return Circumsphere(center=centers[0], radius_sq=float(radius_sq[0]))


def plane_frame(points: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """
    Best-fit plane frame of a point cloud.

    Returns:
        (centroid (3,), rotation (3, 3)) whose rows are e1, e2, e3. e1 is the
        main in-plane axis, e3 the plane normal oriented toward +z (then +y,
        then +x when perpendicular), and e1 x e2 = e3.
    """
    centroid = points.mean(axis=0)
    _u, _s, vh = np.linalg.svd(points - centroid, full_matrices=False)
    e1 = vh[0]
    e3 = np.cross(vh[0], vh[1])
    e3 = e3 / np.linalg.norm(e3)
    for k in (2, 1, 0):
        if abs(float(e3[k])) > 1e-12:
            if e3[k] < 0.0:
                e3 = -e3
            break
    e2 = np.cross(e3, e1)
    return centroid, np.vstack([e1, e2, e3])


def super_triangle(points: np.ndarray, scale: float = SUPER_TRIANGLE_SCALE) -> np.ndarray:
    """
    Three points enclosing ``points`` in their best-fit plane.

    The triangle spans ``scale`` times the largest extent around the middle of
    the projected bounds and is wound counter-clockwise about the plane normal.
    """
    centroid, rot = plane_frame(points)
    local = (points - centroid) @ rot.T
    mn = local.min(axis=0)
    mx = local.max(axis=0)
    mid = 0.5 * (mn + mx)
    dmax = float(max(np.max(mx[:2] - mn[:2]), np.max(points.max(axis=0) - points.min(axis=0))))
    if not dmax > 0.0:
        dmax = 1.0
    k = float(scale) * dmax
    sm, tm, zm = float(mid[0]), float(mid[1]), float(mid[2])
    tri_local = np.array(
        [
            [sm - k, tm - dmax, zm],
            [sm + k, tm - dmax, zm],
            [sm, tm + k, zm],
        ],
        dtype=np.float64,
    )
    return centroid + tri_local @ rot


def _unique_edges(edges: np.ndarray) -> np.ndarray:
    """Keep only edges that occur once (unordered); shared edges are cavity interior."""
    if edges.shape[0] == 0:
        return edges
    key = np.sort(edges, axis=1)
    _, inverse, counts = np.unique(key, axis=0, return_inverse=True, return_counts=True)
    inverse = np.asarray(inverse).reshape(-1)
    return edges[counts[inverse] == 1]


class DelaunayTriangulator:
    """
    점군 Delaunay 삼각분할기

    Args:
        max_points: 허용 최대 점 개수 (None이면 제한 없음). 알고리즘이 O(n^2)이므로
            대용량 점군은 TriangulationError로 거부
        eps: in-sphere 판정 여유값
        planar: True이면 최적 평면에 투영한 좌표로 분할 (곡면 스캔용)
    """

    def __init__(self, max_points: Optional[int] = None, eps: float = EPSILON, planar: bool = False):
        self.max_points = None if max_points is None else int(max_points)
        self.eps = float(eps)
        self.planar = bool(planar)

    def triangulate(self, points) -> np.ndarray:
        """
        Triangulate an (N, 3) point cloud.

        Returns:
            (T, 3) int64 indices into ``points`` (caller order), wound
            counter-clockwise about the cloud's plane normal. Fewer than 3
            points give an empty (0, 3) array.
        """
        pts = np.asarray(points, dtype=np.float64)
        if pts.ndim != 2 or pts.shape[1] != 3:
            raise MeshInputError(f"Expected (N, 3) points, got shape {pts.shape}")
        n = int(pts.shape[0])
        if n < 3:
            return np.zeros((0, 3), dtype=np.int64)
        if self.max_points is not None and n > self.max_points:
            raise TriangulationError(
                f"Point cloud has {n:,} points; triangulation limit is {self.max_points:,}"
            )
        if not np.isfinite(pts).all():
            raise MeshInputError("Point cloud contains non-finite coordinates")

        if self.planar:
            centroid, rot = plane_frame(pts)
            pts = (pts - centroid) @ rot.T
            pts[:, 2] = 0.0

        order = np.argsort(pts[:, 0], kind="stable")
        work = np.vstack([pts[order], super_triangle(pts)])
        tris = self._sweep(work, n)

        logger.debug("Delaunay: %d points -> %d triangles (planar=%s)", n, int(tris.shape[0]), self.planar)
        return order[tris].astype(np.int64, copy=False)

    def _sweep(self, work: np.ndarray, n: int) -> np.ndarray:
        """Insert work[n-1] .. work[0]; work[n:n+3] is the super-triangle."""
        open_tris = np.array([[n, n + 1, n + 2]], dtype=np.int64)
        open_c, open_r = _circumspheres(work, open_tris)
        closed: list[np.ndarray] = []

        for i in range(n - 1, -1, -1):
            p = work[i]
            diff = open_c - p
            inside = (open_r - np.sum(diff * diff, axis=1)) > self.eps
            dx = diff[:, 0]
            done = (~inside) & (dx > 0.0) & (dx * dx > open_r)

            if done.any():
                closed.append(open_tris[done])

            cavity = open_tris[inside]
            keep = ~(inside | done)
            open_tris = open_tris[keep]
            open_c = open_c[keep]
            open_r = open_r[keep]

            if cavity.shape[0] == 0:
                continue

            edges = np.concatenate(
                [cavity[:, [0, 1]], cavity[:, [1, 2]], cavity[:, [2, 0]]],
                axis=0,
            )
            edges = _unique_edges(edges)
            new_tris = np.column_stack(
                [edges, np.full((edges.shape[0],), i, dtype=np.int64)]
            )
            new_c, new_r = _circumspheres(work, new_tris)
            open_tris = np.concatenate([open_tris, new_tris], axis=0)
            open_c = np.concatenate([open_c, new_c], axis=0)
            open_r = np.concatenate([open_r, new_r], axis=0)

        closed.append(open_tris)
        tris = np.concatenate(closed, axis=0)
        return tris[(tris < n).all(axis=1)]


def triangulate(points, *, max_points: Optional[int] = None, planar: bool = False) -> np.ndarray:
    """Functional shortcut for DelaunayTriangulator(...).triangulate(points)."""
    return DelaunayTriangulator(max_points=max_points, planar=planar).triangulate(points)
