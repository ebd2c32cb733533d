"""
MorphoMesh - Surface morphology descriptors for 3D scan meshes
3D 스캔 메쉬 형태 분석 도구 (법선, 곡률(DNE), 방향, OPC)

Main entry point
"""

import sys
import os
import json
import logging
from pathlib import Path

# Ensure repository root is on sys.path so "morphomesh" is importable.
ROOT_DIR = Path(__file__).resolve().parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from morphomesh.core.runtime_defaults import DEFAULTS
from morphomesh.core.output_paths import report_output_path, buffers_output_path

_LOGGER = logging.getLogger(__name__)
_LOG_PATH = None
DEFAULT_OPC_THRESHOLD = DEFAULTS.opc_threshold
DEFAULT_MESH_UNIT = "mm"


def run_cli(argv=None) -> int:
    """커맨드라인 인터페이스 실행"""
    global _LOG_PATH
    try:
        from morphomesh.core.logging_utils import setup_logging

        _LOG_PATH = setup_logging()
    except Exception as e:
        _LOGGER.debug("Failed to initialize logging: %s", e, exc_info=True)

    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        print_help()
        return 0

    cmd = args[0]

    if cmd == '--help' or cmd == '-h':
        print_help()
        return 0

    if cmd == '--info' and len(args) > 1:
        return show_file_info(args[1])

    if cmd == '--opc' and len(args) > 1:
        return show_opc(args[1], args[2] if len(args) > 2 else None)

    if cmd == '--report' and len(args) > 1:
        return write_report(args[1], args[2] if len(args) > 2 else None)

    if cmd == '--buffers' and len(args) > 1:
        return write_buffers(args[1], args[2] if len(args) > 2 else None)

    # 기본: 파일 분석
    if os.path.exists(cmd):
        return process_mesh(cmd)

    print(f"Error: Unknown command or file not found: {cmd}")
    print("Use --help for usage information")
    return 2


def print_help():
    """도움말 출력"""
    from morphomesh.core.mesh_loader import MeshLoader

    print("=" * 60)
    print("MorphoMesh - Surface morphology descriptors")
    print("3D 스캔 메쉬 형태 분석 도구")
    print("=" * 60)
    print()
    print("Usage:")
    print("  python main.py <mesh_file>                      # Full analysis")
    print("  python main.py --info <mesh_file>               # Show file info")
    print("  python main.py --opc <mesh_file> [threshold]    # Orientation patch count")
    print("  python main.py --report <mesh_file> [out.json]  # Write JSON metrics report")
    print("  python main.py --buffers <mesh_file> [out.npz]  # Save render buffers")
    print()
    print(f"Supported formats: {list(MeshLoader.get_supported_formats().keys())}")
    print(f"Default OPC threshold: {DEFAULT_OPC_THRESHOLD:g} (MORPHOMESH_OPC_THRESHOLD)")
    print()
    print("Examples:")
    print("  python main.py molar.ply")
    print("  python main.py --opc molar.ply 0.005")
    print("  python main.py --report scan.xyz scan_metrics.json")


def _error_text(e: Exception) -> str:
    from morphomesh.core.logging_utils import format_exception_message

    return format_exception_message("Error", str(e), log_path=_LOG_PATH)


def _load_pipeline(filepath: str):
    from morphomesh.core.morpho_pipeline import MorphoPipeline

    pipeline = MorphoPipeline()
    pipeline.load_file(filepath, unit=DEFAULT_MESH_UNIT)
    return pipeline


def _parse_threshold(raw) -> float:
    if raw is None:
        return float(DEFAULT_OPC_THRESHOLD)
    value = float(raw)
    if not (0.0 <= value <= 1.0):
        raise ValueError(f"OPC threshold must be within [0, 1], got {raw}")
    return value


def show_file_info(filepath: str) -> int:
    """파일 정보 표시"""
    from morphomesh.core.mesh_loader import MeshLoader

    print(f"\nFile Info: {filepath}")
    print("-" * 40)

    try:
        loader = MeshLoader(default_unit=DEFAULT_MESH_UNIT)
        info = loader.get_file_info(filepath)
        for key, value in info.items():
            print(f"  {key}: {value}")
    except Exception as e:
        _LOGGER.exception("Failed to read file info: %s", filepath)
        print(f"  {_error_text(e)}")
        return 1
    return 0


def process_mesh(filepath: str) -> int:
    """메쉬 전체 분석 (로드 → 법선/곡률/방향 → OPC)"""
    print(f"\n{'='*60}")
    print(f"Analyzing: {filepath}")
    print(f"{'='*60}")

    try:
        print("\n[1/3] Loading mesh...")
        pipeline = _load_pipeline(filepath)
        summary = pipeline.summary()
        aabb = summary["aabb"]
        unit = summary["unit"]

        print(f"      Vertices: {summary['vertices']:,}")
        print(f"      Faces: {summary['faces']:,}" + ("  (Delaunay)" if summary["triangulated"] else ""))
        print(f"      Surface Area: {summary['surface_area']:,.4f} {unit}^2")
        print(f"      Size: {aabb['width']:.2f} x {aabb['height']:.2f} x {aabb['depth']:.2f} {unit}")

        print("\n[2/3] Surface descriptors...")
        curv = summary["curvature"]
        print(f"      Curvature mean: {curv['mean']:.4f} (min {curv['min']:.4f}, max {curv['max']:.4f})")
        if curv["non_finite"]:
            print(f"      Degenerate triangles: {curv['non_finite'] // 3:,}")

        print("\n[3/3] Orientation patch count...")
        report = pipeline.opc_report(DEFAULT_OPC_THRESHOLD)
        print(f"      Patches: {report.n_patches:,}")
        print(f"      OPC (> {report.threshold:g}): {report.count:,}")

        print(f"\n{'='*60}")
        print("Done!")
        print(f"{'='*60}")
    except Exception as e:
        _LOGGER.exception("Analysis failed: %s", filepath)
        print(f"\n{_error_text(e)}")
        return 1
    return 0


def show_opc(filepath: str, threshold=None) -> int:
    """OPC 값만 출력"""
    try:
        thr = _parse_threshold(threshold)
        pipeline = _load_pipeline(filepath)
        print(pipeline.compute_opc(thr))
    except Exception as e:
        _LOGGER.exception("OPC failed: %s", filepath)
        print(_error_text(e))
        return 1
    return 0


def write_report(filepath: str, output_path: str | None = None) -> int:
    """JSON 리포트 저장"""
    try:
        pipeline = _load_pipeline(filepath)
        report = pipeline.summary()
        report["source"] = str(Path(filepath).resolve())
        report["opc"] = pipeline.opc_report(DEFAULT_OPC_THRESHOLD).as_dict()

        save_path = report_output_path(filepath, output_path)
        save_path.parent.mkdir(parents=True, exist_ok=True)
        save_path.write_text(json.dumps(report, ensure_ascii=False, indent=2), encoding="utf-8")
        print(f"Saved: {save_path}")
    except Exception as e:
        _LOGGER.exception("Report failed: %s", filepath)
        print(_error_text(e))
        return 1
    return 0


def write_buffers(filepath: str, output_path: str | None = None) -> int:
    """렌더링 버퍼(npz) 저장"""
    import numpy as np

    try:
        pipeline = _load_pipeline(filepath)
        buffers = pipeline.render_buffers()

        save_path = buffers_output_path(filepath, output_path)
        save_path.parent.mkdir(parents=True, exist_ok=True)
        with open(save_path, "wb") as fh:
            np.savez_compressed(fh, **buffers.as_dict())
        print(f"Saved: {save_path} ({buffers.n_corners:,} corners)")
    except Exception as e:
        _LOGGER.exception("Buffer export failed: %s", filepath)
        print(_error_text(e))
        return 1
    return 0


if __name__ == '__main__':
    raise SystemExit(run_cli())
