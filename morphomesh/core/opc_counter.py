"""
Orientation Patch Count (OPC).

Vertices are flood-filled over the adjacency graph into patches of equal
orientation bin. A patch counts when its size, as a fraction of the model area,
exceeds the caller's threshold.

Two patch-size measures are available:
    - default: the accumulator used by the morphology viewer. While scanning a
      vertex's neighbors, every same-bin edge vector is crossed with the
      previous same-bin edge vector of that vertex and the magnitude is added.
      This correlates with patch area but is not an exact decomposition.
    - exact_area=True: each vertex owns 1/3 of the doubled area of every
      incident triangle; a patch's size is the sum over its vertices.

Both measures use the doubled-area scale of model_area().
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from .adjacency_builder import validate_faces
from .errors import MeshInputError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OpcResult:
    """OPC 결과

    Attributes:
        count: 임계값을 넘은 패치 수
        threshold: 사용된 면적 비율 임계값
        total_area: 정규화 분모 (model_area)
        patch_fractions: (P,) 패치 크기 / total_area (탐색 순서)
        patch_bins: (P,) 패치의 방향 구간 값
        patch_vertex_counts: (P,) 패치 정점 수
        exact_area: 정확 면적 모드 사용 여부
    """

    count: int
    threshold: float
    total_area: float
    patch_fractions: np.ndarray
    patch_bins: np.ndarray
    patch_vertex_counts: np.ndarray
    exact_area: bool = False

    @property
    def n_patches(self) -> int:
        return int(self.patch_fractions.size)

    @property
    def counted_mask(self) -> np.ndarray:
        return self.patch_fractions > float(self.threshold)

    def as_dict(self) -> dict:
        return {
            "count": int(self.count),
            "threshold": float(self.threshold),
            "total_area": float(self.total_area),
            "n_patches": self.n_patches,
            "exact_area": bool(self.exact_area),
            "patch_fractions": [float(x) for x in self.patch_fractions],
            "patch_bins": [float(x) for x in self.patch_bins],
            "patch_vertex_counts": [int(x) for x in self.patch_vertex_counts],
        }


def model_area(verts, faces) -> float:
    """
    Sum of |cross(v0 - v1, v0 - v2)| over all triangles.

    This is twice the geometric surface area; it is the normalization
    denominator for OPC patch sizes.
    """
    v = np.asarray(verts, dtype=np.float64)
    f = validate_faces(faces, v.shape[0] if v.ndim == 2 else 0)
    if f.shape[0] == 0:
        return 0.0
    v0 = v[f[:, 0]]
    r = np.cross(v0 - v[f[:, 1]], v0 - v[f[:, 2]])
    return float(np.linalg.norm(r, axis=1).sum())


def vertex_area_shares(verts, faces) -> np.ndarray:
    """Per-vertex 1/3 share of incident doubled triangle areas, (V,)."""
    v = np.asarray(verts, dtype=np.float64)
    f = validate_faces(faces, v.shape[0])
    shares = np.zeros((v.shape[0],), dtype=np.float64)
    if f.shape[0] == 0:
        return shares
    v0 = v[f[:, 0]]
    doubled = np.linalg.norm(np.cross(v0 - v[f[:, 1]], v0 - v[f[:, 2]]), axis=1)
    third = doubled / 3.0
    for k in range(3):
        np.add.at(shares, f[:, k], third)
    return shares


def _flood_fill_patches(
    verts: np.ndarray,
    adjacency: Sequence[Sequence[int]],
    orientation: np.ndarray,
    shares: Optional[np.ndarray],
) -> tuple[list[float], list[float], list[int]]:
    n = int(verts.shape[0])
    vx = verts.tolist()
    orient = orientation.tolist()
    share_list = shares.tolist() if shares is not None else None
    explored = [False] * n

    sizes: list[float] = []
    bins: list[float] = []
    counts: list[int] = []

    # Every vertex is a seed; vertex 0 is popped first.
    seeds = list(range(n - 1, -1, -1))
    while seeds:
        seed = seeds.pop()
        if explored[seed]:
            continue

        size = 0.0
        members = 0
        inner = [seed]
        while inner:
            k = inner.pop()
            if not explored[k]:
                members += 1
                if share_list is not None:
                    size += share_list[k]
            explored[k] = True

            pk = vx[k]
            ok = orient[k]
            a = None
            b = None
            for nb in adjacency[k]:
                if explored[nb]:
                    continue
                if orient[nb] == ok:
                    if share_list is None:
                        q = vx[nb]
                        b = a
                        a = (q[0] - pk[0], q[1] - pk[1], q[2] - pk[2])
                        if b is not None:
                            cx = a[1] * b[2] - a[2] * b[1]
                            cy = a[2] * b[0] - a[0] * b[2]
                            cz = a[0] * b[1] - a[1] * b[0]
                            size += math.sqrt(cx * cx + cy * cy + cz * cz)
                    inner.append(nb)
                else:
                    seeds.append(nb)

        sizes.append(size)
        bins.append(orient[seed])
        counts.append(members)

    return sizes, bins, counts


def opc_patches(
    verts,
    adjacency: Sequence[Sequence[int]],
    orientation,
    threshold: float,
    total_area: float,
    *,
    exact_area: bool = False,
    faces=None,
) -> OpcResult:
    """
    방향 패치 탐색 및 OPC 계산

    Args:
        verts: (V, 3) wrapped 정점
        adjacency: adjacency_list() 결과 (V개)
        orientation: (V,) 정점별 방향 구간 값
        threshold: 최소 면적 비율 (패치 크기 / total_area 가 이 값보다 커야 함)
        total_area: model_area() 값 (호출마다 재계산하지 않음)
        exact_area: True이면 삼각형 면적 분배 방식 사용 (faces 필요)
        faces: (T, 3) exact_area 모드에서 사용

    Returns:
        OpcResult
    """
    v = np.asarray(verts, dtype=np.float64)
    if v.ndim != 2 or v.shape[1] != 3:
        raise MeshInputError(f"Expected (V, 3) vertices, got shape {v.shape}")
    orient = np.asarray(orientation, dtype=np.float64).reshape(-1)
    if orient.size != v.shape[0]:
        raise MeshInputError(
            f"Orientation has {orient.size} entries for {v.shape[0]} vertices (wrapped layout expected)"
        )
    if len(adjacency) != v.shape[0]:
        raise MeshInputError(f"Adjacency has {len(adjacency)} entries for {v.shape[0]} vertices")

    area = float(total_area)
    if not np.isfinite(area) or area <= 0.0:
        raise MeshInputError(f"Total model area must be positive, got {total_area!r}")

    shares = None
    if exact_area:
        if faces is None:
            raise MeshInputError("exact_area=True requires faces")
        shares = vertex_area_shares(v, faces)

    sizes, bins, counts = _flood_fill_patches(v, adjacency, orient, shares)
    fractions = np.asarray(sizes, dtype=np.float64) / area
    thr = float(threshold)
    count = int(np.count_nonzero(fractions > thr))

    logger.debug(
        "OPC: %d/%d patches above threshold %.4g (exact_area=%s)",
        count,
        len(sizes),
        thr,
        bool(exact_area),
    )
    return OpcResult(
        count=count,
        threshold=thr,
        total_area=area,
        patch_fractions=fractions,
        patch_bins=np.asarray(bins, dtype=np.float64),
        patch_vertex_counts=np.asarray(counts, dtype=np.int64),
        exact_area=bool(exact_area),
    )


def count_orientation_patches(
    verts,
    adjacency: Sequence[Sequence[int]],
    orientation,
    threshold: float,
    total_area: float,
    *,
    exact_area: bool = False,
    faces=None,
) -> int:
    """Number of orientation patches whose area fraction exceeds ``threshold``."""
    return opc_patches(
        verts,
        adjacency,
        orientation,
        threshold,
        total_area,
        exact_area=exact_area,
        faces=faces,
    ).count


opc = count_orientation_patches
