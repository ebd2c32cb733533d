"""
Mesh Loader Module
메쉬 데이터 컨테이너 및 파일 로딩 어댑터

Decoding is delegated to trimesh. Supports: OBJ, PLY, STL, OFF, GLTF/GLB and
point clouds (PLY/XYZ/CSV without faces).
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Union

import numpy as np
import trimesh

from .adjacency_builder import as_faces, validate_faces
from .errors import MeshInputError


@dataclass
class MeshData:
    """
    3D 메쉬 데이터 컨테이너

    Attributes:
        vertices: (N, 3) 정점 좌표 배열
        faces: (M, 3) 면 인덱스 배열 (점군이면 (0, 3))
        normals: (N, 3) 정점 법선 벡터 (선택)
        scalars: 정점별 스칼라 필드 {이름: (N,) 배열} (선택)
        unit: 좌표 단위 ('mm', 'cm', 'm')
        filepath: 원본 파일 경로
    """
    vertices: np.ndarray
    faces: Optional[np.ndarray] = None
    normals: Optional[np.ndarray] = None
    scalars: Dict[str, np.ndarray] = field(default_factory=dict)
    unit: str = 'mm'
    filepath: Optional[Path] = None

    def __post_init__(self):
        """데이터 검증 및 타입 변환"""
        self.vertices = np.asarray(self.vertices, dtype=np.float64)
        if self.vertices.size == 0:
            self.vertices = self.vertices.reshape(0, 3)
        if self.vertices.ndim != 2 or self.vertices.shape[1] != 3:
            raise MeshInputError(f"Expected (N, 3) vertices, got shape {self.vertices.shape}")

        self.faces = as_faces(self.faces)

        if self.normals is not None:
            self.normals = np.asarray(self.normals, dtype=np.float64)
            if self.normals.shape != self.vertices.shape:
                raise MeshInputError(
                    f"Normals shape {self.normals.shape} does not match vertices {self.vertices.shape}"
                )

        scalars = {}
        for name, values in dict(self.scalars or {}).items():
            arr = np.asarray(values, dtype=np.float64).reshape(-1)
            if arr.size != self.vertices.shape[0]:
                raise MeshInputError(
                    f"Scalar field '{name}' has {arr.size} values for {self.vertices.shape[0]} vertices"
                )
            scalars[str(name)] = arr
        self.scalars = scalars

    @property
    def n_vertices(self) -> int:
        """정점 개수"""
        return len(self.vertices)

    @property
    def n_faces(self) -> int:
        """면 개수"""
        return len(self.faces)

    @property
    def has_faces(self) -> bool:
        return self.n_faces > 0

    @property
    def bounds(self) -> np.ndarray:
        """경계 박스 [[min_x, min_y, min_z], [max_x, max_y, max_z]]"""
        return np.array([self.vertices.min(axis=0), self.vertices.max(axis=0)])

    @property
    def extents(self) -> np.ndarray:
        """경계 박스 크기 [width, height, depth]"""
        return self.bounds[1] - self.bounds[0]

    @property
    def surface_area(self) -> float:
        """총 표면적 (기하학적 면적, model_area의 절반)"""
        if not self.has_faces:
            return 0.0
        v0 = self.vertices[self.faces[:, 0]]
        v1 = self.vertices[self.faces[:, 1]]
        v2 = self.vertices[self.faces[:, 2]]
        cross = np.cross(v1 - v0, v2 - v0)
        return float(np.linalg.norm(cross, axis=1).sum() / 2.0)

    def validate(self) -> 'MeshData':
        """면 인덱스 범위 및 좌표 유한성 검사"""
        validate_faces(self.faces, self.n_vertices)
        if not np.isfinite(self.vertices).all():
            raise MeshInputError("Vertices contain non-finite coordinates")
        return self

    def with_vertices(self, vertices: np.ndarray, faces: Optional[np.ndarray] = None) -> 'MeshData':
        """정점(및 면)을 교체한 새 메쉬 반환"""
        return MeshData(
            vertices=vertices,
            faces=self.faces.copy() if faces is None else faces,
            normals=self.normals.copy() if self.normals is not None else None,
            scalars={k: v.copy() for k, v in self.scalars.items()},
            unit=self.unit,
            filepath=self.filepath,
        )

    @classmethod
    def from_record(cls, record: Mapping, unit: str = 'mm') -> 'MeshData':
        """
        파서 레코드에서 생성

        Keys: 'vertices' (필수), 'triangles' 또는 'faces', 'normals',
        'scalars' (또는 'perVertexScalars').
        """
        if 'vertices' not in record:
            raise MeshInputError("Mesh record has no 'vertices'")
        faces = record.get('triangles')
        if faces is None:
            faces = record.get('faces')
        scalars = record.get('scalars')
        if scalars is None:
            scalars = record.get('perVertexScalars')
        return cls(
            vertices=_points_from_any(record['vertices']),
            faces=_faces_from_any(faces),
            normals=None if record.get('normals') is None else _points_from_any(record['normals']),
            scalars=dict(scalars or {}),
            unit=str(record.get('unit') or unit),
        )

    def to_trimesh(self) -> 'trimesh.Trimesh':
        """trimesh 객체로 변환"""
        return trimesh.Trimesh(
            vertices=self.vertices,
            faces=self.faces,
            vertex_normals=self.normals,
            process=False,
        )

    @classmethod
    def from_trimesh(cls, mesh: Union['trimesh.Trimesh', 'trimesh.PointCloud'],
                     filepath: Optional[Path] = None,
                     unit: str = 'mm') -> 'MeshData':
        """trimesh 객체(Trimesh 또는 PointCloud)에서 생성"""
        if isinstance(mesh, trimesh.PointCloud):
            return cls(
                vertices=np.asarray(mesh.vertices),
                faces=None,
                unit=unit,
                filepath=filepath,
            )

        return cls(
            vertices=np.asarray(mesh.vertices),
            faces=np.asarray(mesh.faces),
            normals=_stored_vertex_normals(mesh),
            unit=unit,
            filepath=filepath,
        )


def _stored_vertex_normals(mesh: 'trimesh.Trimesh') -> Optional[np.ndarray]:
    """
    파일에 저장된 정점 법선 (없으면 None)

    mesh.vertex_normals는 값이 없으면 면 법선으로 계산해 버리므로, 로더가
    넘겨준 값이 캐시에 있는지 먼저 확인한다. 캐시 구조를 찾지 못하면 None이고
    법선은 파이프라인에서 계산된다.
    """
    cache = getattr(mesh, "_cache", None)
    store = getattr(cache, "cache", None)
    if not isinstance(store, dict):
        return None
    cached = store.get("vertex_normals")
    if cached is None:
        return None
    normals = np.asarray(cached, dtype=np.float64)
    if normals.shape != np.shape(mesh.vertices) or not np.isfinite(normals).all():
        return None
    return normals


def _points_from_any(values) -> np.ndarray:
    """[(x, y, z), ...] 또는 [{'x':..,'y':..,'z':..}, ...] -> (N, 3)"""
    if isinstance(values, np.ndarray):
        return np.asarray(values, dtype=np.float64)
    rows = list(values)
    if rows and isinstance(rows[0], Mapping):
        return np.asarray([[p['x'], p['y'], p['z']] for p in rows], dtype=np.float64)
    return np.asarray(rows, dtype=np.float64)


def _faces_from_any(values):
    """[(a, b, c), ...] 또는 [{'i':..,'j':..,'k':..}, ...] -> (T, 3), None은 그대로"""
    if values is None or isinstance(values, np.ndarray):
        return values
    rows = list(values)
    if rows and isinstance(rows[0], Mapping):
        try:
            return np.asarray([[r['i'], r['j'], r['k']] for r in rows], dtype=np.int64)
        except KeyError as e:
            raise MeshInputError(f"Triangle record is missing key {e}") from e
    return rows


class MeshLoader:
    """
    다양한 3D 포맷의 메쉬/점군 파일 로더

    Supported formats:
        - OBJ (Wavefront)
        - PLY (Polygon File Format, 면 없는 점군 포함)
        - STL (Stereolithography)
        - OFF (Object File Format)
        - GLTF/GLB (GL Transmission Format)
        - XYZ (ASCII point cloud)
        - CSV (쉼표 구분 점군, 행마다 x,y,z)
    """

    SUPPORTED_FORMATS = {
        '.obj': 'Wavefront OBJ',
        '.ply': 'Polygon File Format',
        '.stl': 'Stereolithography',
        '.off': 'Object File Format',
        '.gltf': 'GL Transmission Format',
        '.glb': 'GL Transmission Format (Binary)',
        '.xyz': 'ASCII Point Cloud',
        '.csv': 'Delimited Point Cloud',
    }

    # trimesh가 확장자로 판별하지 못하는 포맷의 디코더 지정
    FILE_TYPE_OVERRIDES = {
        '.csv': 'xyz',
    }

    def __init__(self, default_unit: str = 'mm'):
        """
        Args:
            default_unit: 기본 좌표 단위 ('mm', 'cm', 'm')
        """
        self.default_unit = default_unit

    @classmethod
    def get_supported_formats(cls) -> dict:
        """지원 포맷 목록 반환"""
        return cls.SUPPORTED_FORMATS.copy()

    def _check_path(self, filepath: Union[str, Path]) -> Path:
        filepath = Path(filepath)
        if not filepath.exists():
            raise FileNotFoundError(f"File not found: {filepath}")

        ext = filepath.suffix.lower()
        if ext not in self.SUPPORTED_FORMATS:
            raise ValueError(
                f"Unsupported format: {ext}\n"
                f"Supported formats: {list(self.SUPPORTED_FORMATS.keys())}"
            )
        return filepath

    @classmethod
    def _load_geometry(cls, filepath: Path):
        file_type = cls.FILE_TYPE_OVERRIDES.get(filepath.suffix.lower())
        # 정점 순서 보존: 병합/정리(process) 비활성화
        geom = trimesh.load(str(filepath), file_type=file_type, process=False, maintain_order=True)

        # Scene인 경우 단일 메쉬로 병합
        if isinstance(geom, trimesh.Scene):
            meshes = [g for g in geom.geometry.values() if isinstance(g, trimesh.Trimesh)]
            if meshes:
                return trimesh.util.concatenate(meshes)
            clouds = [g for g in geom.geometry.values() if isinstance(g, trimesh.PointCloud)]
            if clouds:
                return trimesh.PointCloud(np.vstack([np.asarray(c.vertices) for c in clouds]))
            raise ValueError(f"No valid mesh found in: {filepath}")
        return geom

    def load(self, filepath: Union[str, Path], unit: Optional[str] = None) -> MeshData:
        """
        메쉬 파일 로드

        Args:
            filepath: 메쉬 파일 경로
            unit: 좌표 단위 (None이면 default_unit 사용)

        Returns:
            MeshData: 로드된 메쉬 데이터 (점군이면 faces가 비어 있음)

        Raises:
            FileNotFoundError: 파일이 존재하지 않음
            ValueError: 지원하지 않는 포맷
        """
        filepath = self._check_path(filepath)
        unit = unit or self.default_unit

        geom = self._load_geometry(filepath)
        if not isinstance(geom, (trimesh.Trimesh, trimesh.PointCloud)):
            raise TypeError(f"Expected trimesh.Trimesh or PointCloud, got {type(geom).__name__}")

        return MeshData.from_trimesh(geom, filepath=filepath, unit=unit)

    def load_multiple(self, filepaths: List[Union[str, Path]],
                      unit: Optional[str] = None) -> List[MeshData]:
        """여러 메쉬 파일 로드"""
        return [self.load(fp, unit) for fp in filepaths]

    def get_file_info(self, filepath: Union[str, Path]) -> dict:
        """
        파일 정보 미리보기

        Args:
            filepath: 메쉬 파일 경로

        Returns:
            dict: 파일 정보 딕셔너리
        """
        filepath = self._check_path(filepath)
        ext = filepath.suffix.lower()
        file_size = filepath.stat().st_size

        info = {
            'filename': filepath.name,
            'format': self.SUPPORTED_FORMATS.get(ext, 'Unknown'),
            'extension': ext,
            'file_size_mb': round(file_size / (1024 * 1024), 2),
        }

        geom = self._load_geometry(filepath)
        info['vertices'] = int(len(geom.vertices))
        if isinstance(geom, trimesh.Trimesh):
            info['faces'] = int(len(geom.faces))
            info['kind'] = 'mesh'
        else:
            info['faces'] = 0
            info['kind'] = 'point cloud'
        return info
