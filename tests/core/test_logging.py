from __future__ import annotations

import logging

from tappass.core.logging import _ContainerFormatter, setup_logging


def _record(level: int, msg: str = "scan evaluated") -> logging.LogRecord:
    return logging.LogRecord(
        name="tappass.services.access_session",
        level=level,
        pathname="access_session.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=None,
    )


def test_setup_logging_sets_root_level() -> None:
    setup_logging("debug")
    assert logging.getLogger().level == logging.DEBUG

    setup_logging("warning")
    assert logging.getLogger().level == logging.WARNING


def test_setup_logging_defaults_to_info_for_unknown_level() -> None:
    setup_logging("chatty")
    assert logging.getLogger().level == logging.INFO


def test_setup_logging_replaces_handlers() -> None:
    setup_logging("info")
    setup_logging("info")
    assert len(logging.getLogger().handlers) == 1


def test_setup_logging_quiets_http_libraries_at_debug() -> None:
    setup_logging("debug")
    for name in ("uvicorn", "httpx", "httpcore"):
        assert logging.getLogger(name).level == logging.WARNING


def test_container_formatter_location_only_for_warnings() -> None:
    fmt = _ContainerFormatter()
    assert "[access_session.py:42]" not in fmt.format(_record(logging.INFO))
    assert "[access_session.py:42]" in fmt.format(_record(logging.WARNING))
