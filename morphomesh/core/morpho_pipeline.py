"""
Mesh analysis pipeline.

Holds the current mesh and every field derived from it. A load runs:

    center -> triangulate (point clouds) -> adjacency -> vertex normals
    -> curvature (unwrapped) -> orientation -> AABB -> model area

and commits the results together. If any stage fails the previous state stays
in place.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional, Union

import numpy as np

from .adjacency_builder import adjacency_list
from .curvature_estimator import surface_variation
from .delaunay_triangulator import DelaunayTriangulator
from .errors import MeshInputError
from .geometry_primitives import AABB, center_point_cloud, compute_aabb, unwrap_array, unwrap_vector_array
from .logging_utils import log_once
from .mesh_loader import MeshData, MeshLoader
from .normal_estimator import vertex_normals
from .opc_counter import OpcResult, model_area, opc_patches
from .orientation_classifier import surface_orientation
from .runtime_defaults import DEFAULTS, RuntimeDefaults

_LOGGER = logging.getLogger(__name__)

MeshInput = Union[MeshData, Mapping]


@dataclass(frozen=True)
class RenderBuffers:
    """렌더링 레이어로 넘기는 평탄 float32 버퍼 (꼭짓점 단위, 길이 3T 기준)"""

    unwrapped_vertices: np.ndarray
    unwrapped_normals: np.ndarray
    curvature: np.ndarray
    orientation: np.ndarray

    @property
    def n_corners(self) -> int:
        return int(self.curvature.size)

    def as_dict(self) -> dict:
        return {
            "unwrappedVertices": self.unwrapped_vertices,
            "unwrappedNormals": self.unwrapped_normals,
            "curvature": self.curvature,
            "orientation": self.orientation,
        }


@dataclass(frozen=True)
class _PipelineState:
    mesh: MeshData
    center: np.ndarray
    adjacency: list
    vertex_normals: np.ndarray
    unwrapped_vertices: np.ndarray
    unwrapped_normals: np.ndarray
    curvature: np.ndarray
    orientation: np.ndarray
    aabb: AABB
    model_area: float
    triangulated: bool


class MorphoPipeline:
    """
    형태 분석 파이프라인 (메쉬 + 파생 필드 보관)

    Args:
        center: 로드 시 점군을 원점 중심으로 이동 (None이면 설정값 사용)
        triangulator: 면이 없는 점군용 삼각분할기 (None이면 DelaunayTriangulator)
        defaults: 런타임 설정
        rotation: 초기 카메라 회전 (None이면 xy 평면 기준 방향)
    """

    def __init__(
        self,
        *,
        center: Optional[bool] = None,
        triangulator: Optional[DelaunayTriangulator] = None,
        defaults: RuntimeDefaults = DEFAULTS,
        rotation: Optional[np.ndarray] = None,
    ):
        self.defaults = defaults
        self.center = bool(defaults.center_on_load if center is None else center)
        self.triangulator = triangulator or DelaunayTriangulator(
            max_points=defaults.delaunay_max_points,
            planar=defaults.delaunay_planar,
        )
        self._rotation = None if rotation is None else np.asarray(rotation, dtype=np.float64)
        self._state: Optional[_PipelineState] = None
        self.last_timings: dict[str, float] = {}

    # ------------------------------------------------------------------
    # state access
    # ------------------------------------------------------------------
    @property
    def is_loaded(self) -> bool:
        return self._state is not None

    def _require_state(self) -> _PipelineState:
        if self._state is None:
            raise MeshInputError("No mesh loaded")
        return self._state

    @property
    def mesh(self) -> MeshData:
        return self._require_state().mesh

    @property
    def adjacency(self) -> list:
        return self._require_state().adjacency

    @property
    def vertex_normals(self) -> np.ndarray:
        return self._require_state().vertex_normals

    @property
    def curvature(self) -> np.ndarray:
        return self._require_state().curvature

    @property
    def orientation(self) -> np.ndarray:
        """정점별(wrapped) 방향 구간 값"""
        return self._require_state().orientation

    @property
    def aabb(self) -> AABB:
        return self._require_state().aabb

    @property
    def rotation(self) -> Optional[np.ndarray]:
        return self._rotation

    # ------------------------------------------------------------------
    # loading
    # ------------------------------------------------------------------
    def load_file(self, filepath: Union[str, Path], unit: Optional[str] = None) -> MeshData:
        loader = MeshLoader()
        return self.load(loader.load(filepath, unit=unit))

    def load(self, mesh: MeshInput) -> MeshData:
        """
        메쉬(또는 파서 레코드) 로드 및 모든 파생 필드 계산

        Returns:
            처리된 MeshData (중심 이동/삼각분할 반영)

        Raises:
            MeshInputError: 잘못된 인덱스, 삼각분할 불가(점 3개 미만) 등.
                이 경우 이전 상태가 유지됨
        """
        data = mesh if isinstance(mesh, MeshData) else MeshData.from_record(mesh)
        data.validate()
        if data.n_vertices == 0:
            raise MeshInputError("Mesh has no vertices")

        timings: dict[str, float] = {}
        t0 = time.perf_counter()

        offset = np.zeros(3, dtype=np.float64)
        verts = data.vertices
        if self.center:
            verts, offset = center_point_cloud(verts)
        timings["center"] = time.perf_counter() - t0

        faces = data.faces
        triangulated = False
        if not data.has_faces:
            if data.n_vertices < 3:
                raise MeshInputError(
                    f"Point cloud needs at least 3 points for triangulation, got {data.n_vertices}"
                )
            t1 = time.perf_counter()
            faces = self.triangulator.triangulate(verts)
            timings["triangulate"] = time.perf_counter() - t1
            if faces.shape[0] == 0:
                raise MeshInputError("Triangulation produced no triangles")
            triangulated = True

        processed = data.with_vertices(verts, faces=faces)

        t2 = time.perf_counter()
        adjacency = adjacency_list(processed.n_vertices, processed.faces)
        timings["adjacency"] = time.perf_counter() - t2

        t3 = time.perf_counter()
        if processed.normals is not None:
            normals = processed.normals
        else:
            normals = vertex_normals(processed.vertices, processed.faces, adjacency)
        timings["normals"] = time.perf_counter() - t3

        t4 = time.perf_counter()
        unwrapped_vertices = unwrap_vector_array(processed.vertices, processed.faces)
        unwrapped_normals = unwrap_vector_array(normals, processed.faces)
        curvature = surface_variation(unwrapped_vertices, unwrapped_normals)
        timings["curvature"] = time.perf_counter() - t4
        if curvature.size and not np.isfinite(curvature).all():
            log_once(
                _LOGGER,
                "curvature-non-finite",
                logging.WARNING,
                "Curvature contains %d non-finite values (degenerate triangles)",
                int(np.count_nonzero(~np.isfinite(curvature))),
            )

        t5 = time.perf_counter()
        orientation = surface_orientation(normals, rotation=self._rotation)
        timings["orientation"] = time.perf_counter() - t5

        t6 = time.perf_counter()
        aabb = compute_aabb(processed.vertices)
        area = model_area(processed.vertices, processed.faces)
        timings["aabb_area"] = time.perf_counter() - t6

        self._state = _PipelineState(
            mesh=processed,
            center=offset,
            adjacency=adjacency,
            vertex_normals=normals,
            unwrapped_vertices=unwrapped_vertices,
            unwrapped_normals=unwrapped_normals,
            curvature=curvature,
            orientation=orientation,
            aabb=aabb,
            model_area=area,
            triangulated=triangulated,
        )
        self.last_timings = timings

        _LOGGER.info(
            "Loaded mesh: %d vertices, %d faces (triangulated=%s), area=%.6g",
            processed.n_vertices,
            processed.n_faces,
            triangulated,
            area,
        )
        _LOGGER.debug(
            "Stage timings: %s",
            ", ".join(f"{k}={v:.4f}s" for k, v in timings.items()),
        )
        return processed

    # ------------------------------------------------------------------
    # metrics
    # ------------------------------------------------------------------
    def model_area(self) -> float:
        """Σ|cross| over triangles (twice the surface area), cached per load."""
        return self._require_state().model_area

    def opc_report(self, threshold: Optional[float] = None, *, exact_area: bool = False) -> OpcResult:
        state = self._require_state()
        thr = self.defaults.opc_threshold if threshold is None else float(threshold)
        return opc_patches(
            state.mesh.vertices,
            state.adjacency,
            state.orientation,
            thr,
            state.model_area,
            exact_area=exact_area,
            faces=state.mesh.faces,
        )

    def compute_opc(self, threshold: Optional[float] = None, *, exact_area: bool = False) -> int:
        """
        Orientation patch count at ``threshold`` (fraction of model area).

        The threshold defaults to the MORPHOMESH_OPC_THRESHOLD setting.
        """
        return self.opc_report(threshold, exact_area=exact_area).count

    def recompute_orientation(self, rotation: Optional[np.ndarray]) -> np.ndarray:
        """
        카메라 회전 변경 후 방향 필드 재계산

        Replaces the cached orientation wholesale and returns the new per-corner
        float32 buffer for the rendering side to rebuild with.
        """
        state = self._require_state()
        rot = None if rotation is None else np.asarray(rotation, dtype=np.float64)
        orientation = surface_orientation(state.vertex_normals, rotation=rot)
        self._rotation = rot
        self._state = replace(state, orientation=orientation)
        return unwrap_array(orientation, state.mesh.faces).astype(np.float32)

    def render_buffers(self) -> RenderBuffers:
        state = self._require_state()
        faces = state.mesh.faces
        return RenderBuffers(
            unwrapped_vertices=state.unwrapped_vertices.astype(np.float32),
            unwrapped_normals=state.unwrapped_normals.astype(np.float32),
            curvature=state.curvature.astype(np.float32),
            orientation=unwrap_array(state.orientation, faces).astype(np.float32),
        )

    def summary(self) -> dict:
        """CLI/리포트용 요약 값"""
        state = self._require_state()
        curv = state.curvature[np.isfinite(state.curvature)]
        return {
            "vertices": state.mesh.n_vertices,
            "faces": state.mesh.n_faces,
            "triangulated": bool(state.triangulated),
            "unit": state.mesh.unit,
            "center_offset": [float(x) for x in state.center],
            "model_area": float(state.model_area),
            "surface_area": float(state.model_area) / 2.0,
            "aabb": state.aabb.as_dict(),
            "curvature": {
                "finite": int(curv.size),
                "non_finite": int(state.curvature.size - curv.size),
                "mean": float(curv.mean()) if curv.size else float("nan"),
                "min": float(curv.min()) if curv.size else float("nan"),
                "max": float(curv.max()) if curv.size else float("nan"),
            },
        }

