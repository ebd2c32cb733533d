"""
Core processing modules for MorphoMesh
"""

from .errors import MeshInputError, MeshIndexError, TriangulationError
from .geometry_primitives import AABB, compute_aabb, compute_aabb_unwrapped, center_point_cloud
from .adjacency_builder import adjacency_list
from .normal_estimator import face_normals, face_vectors, vertex_normals
from .delaunay_triangulator import DelaunayTriangulator, triangulate
from .curvature_estimator import surface_variation
from .orientation_classifier import surface_orientation, surface_orientation_about_camera
from .opc_counter import OpcResult, count_orientation_patches, model_area, opc
from .mesh_loader import MeshLoader, MeshData
from .morpho_pipeline import MorphoPipeline, RenderBuffers

__all__ = [
    # Errors
    'MeshInputError',
    'MeshIndexError',
    'TriangulationError',
    # Geometry
    'AABB',
    'compute_aabb',
    'compute_aabb_unwrapped',
    'center_point_cloud',
    # Topology / normals
    'adjacency_list',
    'face_vectors',
    'face_normals',
    'vertex_normals',
    # Triangulation
    'DelaunayTriangulator',
    'triangulate',
    # Surface descriptors
    'surface_variation',
    'surface_orientation',
    'surface_orientation_about_camera',
    # OPC
    'OpcResult',
    'count_orientation_patches',
    'model_area',
    'opc',
    # Mesh loading
    'MeshLoader',
    'MeshData',
    # Pipeline
    'MorphoPipeline',
    'RenderBuffers',
]
