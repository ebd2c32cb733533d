"""
Face and vertex normals.

Face data is indexed by triangle (T, 3) and vertex data by vertex (V, 3); the two
are never stored in the same array.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from .adjacency_builder import validate_faces
from .errors import MeshInputError
from .geometry_primitives import normalize


def _as_vertices(verts) -> np.ndarray:
    v = np.asarray(verts, dtype=np.float64)
    if v.ndim != 2 or v.shape[1] != 3:
        raise MeshInputError(f"Expected (V, 3) vertices, got shape {v.shape}")
    return v


def face_vectors(verts, faces) -> np.ndarray:
    """
    Raw (unnormalized) face vectors: cross(v1 - v0, v2 - v0) per triangle.

    Magnitude is twice the triangle area.
    """
    v = _as_vertices(verts)
    f = validate_faces(faces, v.shape[0])
    if f.shape[0] == 0:
        return np.zeros((0, 3), dtype=np.float64)
    v0 = v[f[:, 0]]
    v1 = v[f[:, 1]]
    v2 = v[f[:, 2]]
    return np.cross(v1 - v0, v2 - v0)


def face_normals(verts, faces, *, per_vertex: bool = False) -> np.ndarray:
    """
    Unit face normals.

    Args:
        verts: (V, 3) 정점 좌표
        faces: (T, 3) 삼각형 인덱스
        per_vertex: True이면 (V, 3) 배열에 각 삼각형의 법선을 세 꼭짓점에
            기록 (마지막으로 쓴 삼각형이 남음, 평균 없음)

    Returns:
        (T, 3) 또는 per_vertex=True일 때 (V, 3)
    """
    fn = normalize(face_vectors(verts, faces))
    if not per_vertex:
        return fn

    v = _as_vertices(verts)
    f = validate_faces(faces, v.shape[0])
    # 정점별 마지막으로 참조한 삼각형 인덱스
    last = np.full((v.shape[0],), -1, dtype=np.int64)
    tri_ids = np.arange(f.shape[0], dtype=np.int64)
    for k in range(3):
        np.maximum.at(last, f[:, k], tri_ids)

    out = np.zeros_like(v)
    used = last >= 0
    out[used] = fn[last[used]]
    return out


def vertex_normals(
    verts,
    faces,
    adjacency: Optional[Sequence[Sequence[int]]] = None,
) -> np.ndarray:
    """
    Area-weighted vertex normals.

    Each vertex sums the raw face vectors of every incident triangle (their
    magnitude already carries the area weight) and the sum is normalized.
    Vertices with a zero sum (isolated, or exactly cancelling faces) keep a
    zero vector.

    Args:
        verts: (V, 3)
        faces: (T, 3)
        adjacency: optional neighbor lists from adjacency_list(). Accepted for
            signature compatibility with the load flow; it is only checked
            to have V entries. V and the sums come from verts and faces.
    """
    v = _as_vertices(verts)
    if adjacency is not None and len(adjacency) != v.shape[0]:
        raise MeshInputError(
            f"Adjacency has {len(adjacency)} entries for {v.shape[0]} vertices"
        )
    f = validate_faces(faces, v.shape[0])
    fv = face_vectors(v, f)

    acc = np.zeros_like(v)
    np.add.at(acc, f[:, 0], fv)
    np.add.at(acc, f[:, 1], fv)
    np.add.at(acc, f[:, 2], fv)
    return normalize(acc)
