"""
Output path helpers for analysis exports.

Centralizes naming conventions so main.py and tools stay in sync.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

PathLike = Union[str, Path]

REPORT_SUFFIX = ".morpho.json"
BUFFERS_SUFFIX = ".buffers.npz"
PROFILE_SUFFIX = ".profile.json"


def _as_path(value: PathLike) -> Path:
    return value if isinstance(value, Path) else Path(value)


def _resolve_output_path(input_path: PathLike, output_path: Optional[PathLike], suffix: str) -> Path:
    if output_path:
        return _as_path(output_path)
    return _as_path(input_path).with_suffix(suffix)


def report_output_path(input_path: PathLike, output_path: Optional[PathLike] = None) -> Path:
    return _resolve_output_path(input_path, output_path, REPORT_SUFFIX)


def buffers_output_path(input_path: PathLike, output_path: Optional[PathLike] = None) -> Path:
    return _resolve_output_path(input_path, output_path, BUFFERS_SUFFIX)


def profile_output_path(input_path: PathLike, output_path: Optional[PathLike] = None) -> Path:
    return _resolve_output_path(input_path, output_path, PROFILE_SUFFIX)
