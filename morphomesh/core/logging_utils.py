"""
Logging helpers.

Analysis runs are batch/CLI jobs: results go to stdout, diagnostics go to a
per-user log file. The level is taken from MORPHOMESH_LOG_LEVEL (default INFO).
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Optional

ENV_LOG_LEVEL = "MORPHOMESH_LOG_LEVEL"
LOG_FILENAME = "morphomesh.log"

_LOG_ONCE_KEYS: set[str] = set()
_LOG_ONCE_LOCK = threading.Lock()


def default_log_dir() -> Path:
    if os.name == "nt":
        base = os.environ.get("LOCALAPPDATA") or os.environ.get("APPDATA") or str(Path.home())
        return Path(base) / "MorphoMesh" / "logs"

    xdg_state_home = os.environ.get("XDG_STATE_HOME")
    if xdg_state_home:
        return Path(xdg_state_home) / "morphomesh" / "logs"

    return Path.home() / ".local" / "state" / "morphomesh" / "logs"


def _env_log_level() -> int:
    value = str(os.environ.get(ENV_LOG_LEVEL) or "").strip().upper()
    resolved = getattr(logging, value, None) if value else None
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(*, log_dir: Optional[str | Path] = None) -> Optional[Path]:
    """
    Attach a UTF-8 file handler for morphomesh.log to the root logger.

    Returns the log path, or None when the directory cannot be created. A
    second call returns the already attached handler's path.
    """
    root = logging.getLogger()
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler):
            return Path(handler.baseFilename)

    level = _env_log_level()
    log_path = (Path(log_dir) if log_dir is not None else default_log_dir()) / LOG_FILENAME
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(str(log_path), encoding="utf-8")
    except OSError:
        return None

    file_handler.setLevel(level)
    file_handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(name)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root.setLevel(level)
    root.addHandler(file_handler)

    logging.captureWarnings(True)
    root.info("Logging initialized: %s (level=%s)", log_path, logging.getLevelName(level))
    return log_path


def format_exception_message(prefix: str, message: str, *, log_path: Optional[Path]) -> str:
    """CLI error line, pointing at the log file when there is one."""
    if log_path is None:
        return f"{prefix}: {message}"
    return f"{prefix}: {message}\n(로그 파일: {log_path})"


def log_once(logger: logging.Logger, key: str, level: int, msg: str, *args) -> bool:
    """
    Logs at most once per process for the given key.

    Numeric-degeneracy warnings would otherwise repeat on every load.
    """
    k = str(key)
    with _LOG_ONCE_LOCK:
        if k in _LOG_ONCE_KEYS:
            return False
        _LOG_ONCE_KEYS.add(k)

    logger.log(level, msg, *args)
    return True
