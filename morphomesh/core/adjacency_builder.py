"""
Per-vertex neighbor lists built from a triangle list.

Neighbors are NOT deduplicated: a vertex shared by k triangles receives 2k
entries. Downstream weighting relies on this.
"""

from __future__ import annotations

import numpy as np

from .errors import MeshIndexError, MeshInputError


def as_faces(faces) -> np.ndarray:
    """(T, 3) int64 view of a triangle list (flat index buffers accepted)."""
    try:
        arr = np.asarray(faces if faces is not None else np.zeros((0, 3)), dtype=np.int64)
    except (TypeError, ValueError) as e:
        raise MeshInputError(f"Triangle indices are not integer triples: {e}") from e
    if arr.size == 0:
        return np.zeros((0, 3), dtype=np.int64)
    if arr.ndim == 1:
        if arr.size % 3 != 0:
            raise MeshInputError(f"Flat index buffer length {arr.size} is not a multiple of 3")
        arr = arr.reshape(-1, 3)
    if arr.ndim != 2 or arr.shape[1] != 3:
        raise MeshInputError(f"Expected (T, 3) triangle indices, got shape {arr.shape}")
    return arr


def validate_faces(faces, n_vertices: int) -> np.ndarray:
    """Raise MeshIndexError for the first index outside [0, n_vertices)."""
    f = as_faces(faces)
    n = int(n_vertices)
    if f.size == 0:
        return f
    bad = (f < 0) | (f >= n)
    if bad.any():
        face_i, corner = np.argwhere(bad)[0]
        raise MeshIndexError(int(f[face_i, corner]), n, face=int(face_i))
    return f


def adjacency_list(n_vertices: int, faces) -> list[list[int]]:
    """
    삼각형 목록으로부터 정점별 이웃 리스트 생성

    For each triangle (a, b, c): a gets [b, c], b gets [a, c], c gets [a, b].

    Args:
        n_vertices: 정점 개수 V
        faces: (T, 3) 삼각형 인덱스

    Returns:
        V개의 이웃 인덱스 리스트 (중복 허용)

    Raises:
        MeshIndexError: 인덱스가 [0, V) 범위를 벗어남
    """
    f = validate_faces(faces, n_vertices)
    adjacency: list[list[int]] = [[] for _ in range(int(n_vertices))]
    for a, b, c in f.tolist():
        adjacency[a].extend((b, c))
        adjacency[b].extend((a, c))
        adjacency[c].extend((a, b))
    return adjacency
