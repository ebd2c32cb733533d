"""
Error types raised by the analysis core.

Numeric degeneracies (singular Gram matrices, zero-length normals, zero-area
triangles) are not errors: they propagate as NaN/zero values.
"""

from __future__ import annotations


class MeshInputError(ValueError):
    """Malformed mesh input. The current operation is refused."""


class MeshIndexError(MeshInputError, IndexError):
    """A triangle references a vertex index outside [0, V)."""

    def __init__(self, index: int, n_vertices: int, *, face: int | None = None):
        self.index = int(index)
        self.n_vertices = int(n_vertices)
        self.face = None if face is None else int(face)
        where = f" (face {self.face})" if self.face is not None else ""
        super().__init__(f"Vertex index {self.index} out of range for {self.n_vertices} vertices{where}")


class TriangulationError(MeshInputError):
    """Point cloud cannot be triangulated under the current limits."""
