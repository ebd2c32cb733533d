"""
Runtime defaults for CLI/pipeline processing.

Values can be overridden via environment variables to avoid hardcoded tuning
in multiple entrypoints.
"""

from __future__ import annotations

from dataclasses import dataclass
import os


ENV_OPC_THRESHOLD = "MORPHOMESH_OPC_THRESHOLD"
ENV_DELAUNAY_MAX_POINTS = "MORPHOMESH_DELAUNAY_MAX_POINTS"
ENV_CENTER_ON_LOAD = "MORPHOMESH_CENTER_ON_LOAD"
ENV_DELAUNAY_PLANAR = "MORPHOMESH_DELAUNAY_PLANAR"


@dataclass(frozen=True)
class RuntimeDefaults:
    opc_threshold: float
    delaunay_max_points: int
    center_on_load: bool
    delaunay_planar: bool


def _read_int_env(
    env_name: str,
    default: int,
    *,
    min_value: int | None = None,
    max_value: int | None = None,
) -> int:
    raw = os.environ.get(env_name)
    if raw is None:
        return default
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return default

    if min_value is not None and value < min_value:
        return default
    if max_value is not None and value > max_value:
        return default
    return value


def _read_float_env(
    env_name: str,
    default: float,
    *,
    min_value: float | None = None,
    max_value: float | None = None,
) -> float:
    raw = os.environ.get(env_name)
    if raw is None:
        return default
    try:
        value = float(str(raw).strip())
    except (TypeError, ValueError):
        return default

    if value != value:  # NaN
        return default
    if min_value is not None and value < min_value:
        return default
    if max_value is not None and value > max_value:
        return default
    return value


def load_runtime_defaults() -> RuntimeDefaults:
    return RuntimeDefaults(
        opc_threshold=_read_float_env(ENV_OPC_THRESHOLD, 0.0, min_value=0.0, max_value=1.0),
        delaunay_max_points=_read_int_env(ENV_DELAUNAY_MAX_POINTS, 200_000, min_value=3),
        center_on_load=bool(_read_int_env(ENV_CENTER_ON_LOAD, 1, min_value=0, max_value=1)),
        delaunay_planar=bool(_read_int_env(ENV_DELAUNAY_PLANAR, 1, min_value=0, max_value=1)),
    )


DEFAULTS = load_runtime_defaults()
