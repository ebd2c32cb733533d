import logging

from morphomesh.core import logging_utils
from morphomesh.core.logging_utils import (
    ENV_LOG_LEVEL,
    format_exception_message,
    log_once,
    setup_logging,
)


def test_setup_logging_writes_to_file_once(tmp_path, monkeypatch):
    monkeypatch.setenv(ENV_LOG_LEVEL, "debug")
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    for handler in before:
        if isinstance(handler, logging.FileHandler):
            root.removeHandler(handler)
    try:
        path = setup_logging(log_dir=tmp_path / "logs")
        assert path == tmp_path / "logs" / "morphomesh.log"
        assert setup_logging(log_dir=tmp_path / "other") == path

        assert root.level == logging.DEBUG
        logging.getLogger("morphomesh.test").debug("hello from test")
        for handler in root.handlers:
            handler.flush()
        assert "hello from test" in path.read_text(encoding="utf-8")
    finally:
        for handler in list(root.handlers):
            if handler not in before:
                root.removeHandler(handler)
                handler.close()
        for handler in before:
            if handler not in root.handlers:
                root.addHandler(handler)
        root.setLevel(level)


def test_default_log_dir_uses_xdg_state(tmp_path, monkeypatch):
    monkeypatch.setattr(logging_utils.os, "name", "posix")
    monkeypatch.setenv("XDG_STATE_HOME", str(tmp_path))
    assert logging_utils.default_log_dir() == tmp_path / "morphomesh" / "logs"


def test_log_once(caplog, monkeypatch):
    monkeypatch.setattr(logging_utils, "_LOG_ONCE_KEYS", set())
    logger = logging.getLogger("morphomesh.test.once")

    with caplog.at_level(logging.WARNING, logger="morphomesh.test.once"):
        assert log_once(logger, "k", logging.WARNING, "value %d", 1) is True
        assert log_once(logger, "k", logging.WARNING, "value %d", 2) is False

    messages = [r.getMessage() for r in caplog.records if r.name == "morphomesh.test.once"]
    assert messages == ["value 1"]


def test_invalid_env_level_falls_back_to_info(monkeypatch):
    monkeypatch.setenv(ENV_LOG_LEVEL, "loud")
    assert logging_utils._env_log_level() == logging.INFO
    monkeypatch.setenv(ENV_LOG_LEVEL, "basic_format")
    assert logging_utils._env_log_level() == logging.INFO
    monkeypatch.setenv(ENV_LOG_LEVEL, " warning ")
    assert logging_utils._env_log_level() == logging.WARNING


def test_format_exception_message(tmp_path):
    assert format_exception_message("Error", "bad mesh", log_path=None) == "Error: bad mesh"
    text = format_exception_message("Error", "bad mesh", log_path=tmp_path / "morphomesh.log")
    assert text.startswith("Error: bad mesh\n")
    assert str(tmp_path / "morphomesh.log") in text
