from __future__ import annotations

import argparse
import gc
import json
import sys
import time
import tracemalloc
from pathlib import Path
from typing import Any

import numpy as np
import psutil

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from morphomesh.core.mesh_loader import MeshData, MeshLoader
from morphomesh.core.morpho_pipeline import MorphoPipeline
from morphomesh.core.output_paths import profile_output_path

STAGES = ("center", "triangulate", "adjacency", "normals", "curvature", "orientation", "aabb_area")


def _rss_mb() -> float:
    return float(psutil.Process().memory_info().rss) / (1024.0 * 1024.0)


def _synthetic_height_field(n_points: int, seed: int) -> MeshData:
    """Random samples of a smooth bumpy surface (point cloud, no faces)."""
    rng = np.random.default_rng(int(seed))
    xy = rng.uniform(-1.0, 1.0, size=(int(n_points), 2))
    z = 0.15 * np.sin(3.0 * xy[:, 0]) * np.cos(2.0 * xy[:, 1]) + 0.05 * xy[:, 0] ** 2
    return MeshData(vertices=np.column_stack([xy, z]), faces=None, unit="mm")


def _fmt_sec(x: float) -> str:
    return f"{x:.4f}s"


def _fmt_mb(x: float) -> str:
    if not np.isfinite(x):
        return "n/a"
    return f"{x:.1f}MB"


def run_profile(args: argparse.Namespace) -> dict[str, Any]:
    if args.mesh:
        mesh_path = Path(args.mesh).expanduser().resolve()
        if not mesh_path.exists():
            raise FileNotFoundError(str(mesh_path))
        print(f"[load] mesh={mesh_path}")
        t0 = time.perf_counter()
        mesh = MeshLoader(default_unit=str(args.unit)).load(str(mesh_path))
        read_sec = float(time.perf_counter() - t0)
        source = str(mesh_path)
    else:
        print(f"[load] synthetic height field, points={int(args.synthetic):,}")
        t0 = time.perf_counter()
        mesh = _synthetic_height_field(int(args.synthetic), int(args.seed))
        read_sec = float(time.perf_counter() - t0)
        source = f"synthetic:{int(args.synthetic)}"
    print(f"[load] verts={mesh.n_vertices:,}, faces={mesh.n_faces:,}, time={_fmt_sec(read_sec)}")

    pipeline = MorphoPipeline()
    tracemalloc.start()
    rows: list[dict[str, Any]] = []

    for i in range(int(args.iterations)):
        gc.collect()
        rss_before = _rss_mb()

        t_load = time.perf_counter()
        pipeline.load(mesh)
        load_sec = float(time.perf_counter() - t_load)
        stage = dict(pipeline.last_timings)

        t_opc = time.perf_counter()
        report = pipeline.opc_report(float(args.threshold), exact_area=bool(args.exact_area))
        opc_sec = float(time.perf_counter() - t_opc)

        t_orient = time.perf_counter()
        pipeline.recompute_orientation(np.eye(3))
        orient_sec = float(time.perf_counter() - t_orient)

        rss_after = _rss_mb()
        _, tm_peak = tracemalloc.get_traced_memory()
        tm_peak_mb = float(tm_peak) / (1024.0 * 1024.0)

        row: dict[str, Any] = {
            "iter": i + 1,
            "load_sec": load_sec,
            "opc_sec": opc_sec,
            "recompute_orientation_sec": orient_sec,
            "faces": int(pipeline.mesh.n_faces),
            "opc": int(report.count),
            "patches": int(report.n_patches),
            "rss_before_mb": rss_before,
            "rss_after_mb": rss_after,
            "tracemalloc_peak_mb": tm_peak_mb,
        }
        for name in STAGES:
            row[f"{name}_sec"] = float(stage.get(name, 0.0))
        rows.append(row)
        print(
            f"[iter {i+1}] load={_fmt_sec(load_sec)} "
            f"(tri={_fmt_sec(row['triangulate_sec'])}, curv={_fmt_sec(row['curvature_sec'])}), "
            f"opc={_fmt_sec(opc_sec)} -> {row['opc']:,}/{row['patches']:,}, "
            f"rss={_fmt_mb(rss_before)}->{_fmt_mb(rss_after)}, trace_peak={_fmt_mb(tm_peak_mb)}"
        )

    tracemalloc.stop()

    def _agg(key: str) -> dict[str, float]:
        vals = np.asarray([float(r[key]) for r in rows], dtype=np.float64)
        vals = vals[np.isfinite(vals)]
        if vals.size <= 0:
            nan = float("nan")
            return {"mean": nan, "p95": nan, "max": nan}
        return {
            "mean": float(np.mean(vals)),
            "p95": float(np.percentile(vals, 95.0)),
            "max": float(np.max(vals)),
        }

    metric_keys = ["load_sec", "opc_sec", "recompute_orientation_sec", "tracemalloc_peak_mb", "rss_after_mb"]
    metric_keys += [f"{name}_sec" for name in STAGES]
    return {
        "source": source,
        "read_sec": read_sec,
        "vertices": int(mesh.n_vertices),
        "iterations": int(args.iterations),
        "threshold": float(args.threshold),
        "exact_area": bool(args.exact_area),
        "metrics": {key: _agg(key) for key in metric_keys},
        "rows": rows,
    }


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Profile the morphology pipeline (load stages + OPC + orientation recompute)."
    )
    parser.add_argument("mesh", nargs="?", default=None, help="Mesh or point cloud file (obj/ply/stl/off/xyz).")
    parser.add_argument("--synthetic", type=int, default=0, help="Profile a random height-field cloud of N points.")
    parser.add_argument("--seed", type=int, default=0, help="Random seed for --synthetic.")
    parser.add_argument("--unit", default="mm", help="Default unit for mesh loader.")
    parser.add_argument("--iterations", type=int, default=3, help="Pipeline repeat count.")
    parser.add_argument("--threshold", type=float, default=0.0, help="OPC area-fraction threshold.")
    parser.add_argument("--exact-area", action="store_true", help="Use triangle-share patch areas for OPC.")
    parser.add_argument("--json-out", default="", help="Optional JSON output path ('auto' = next to mesh).")
    args = parser.parse_args(argv)
    if not args.mesh and int(args.synthetic) < 3:
        parser.error("mesh path or --synthetic N (N >= 3) is required.")
    return args


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    result = run_profile(args)
    print(
        "[summary] "
        f"load mean={_fmt_sec(result['metrics']['load_sec']['mean'])}, "
        f"triangulate mean={_fmt_sec(result['metrics']['triangulate_sec']['mean'])}, "
        f"opc mean={_fmt_sec(result['metrics']['opc_sec']['mean'])}, "
        f"trace_peak max={_fmt_mb(result['metrics']['tracemalloc_peak_mb']['max'])}"
    )
    out = str(args.json_out or "").strip()
    if out:
        if out == "auto" and args.mesh:
            out_path = profile_output_path(args.mesh)
        else:
            out_path = Path(out).expanduser().resolve()
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(json.dumps(result, ensure_ascii=False, indent=2), encoding="utf-8")
        print(f"[saved] {out_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
