"""Tests for the JSON log formatter."""

from __future__ import annotations

import json
import logging
import sys

import pytest
from build_api.middleware.json_formatter import JSONFormatter, install_json_logging


@pytest.fixture
def formatter() -> JSONFormatter:
    return JSONFormatter()


def _record(name: str = "build_api.builds", level: int = logging.INFO, msg: str = "built", exc_info=None):
    return logging.LogRecord(
        name=name,
        level=level,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )


class TestJSONFormatter:
    def test_basic_format(self, formatter: JSONFormatter) -> None:
        data = json.loads(formatter.format(_record()))
        assert data["level"] == "INFO"
        assert data["logger"] == "build_api.builds"
        assert data["message"] == "built"
        assert data["timestamp"].endswith("+00:00")

    def test_single_line_output(self, formatter: JSONFormatter) -> None:
        assert "\n" not in formatter.format(_record(msg="line one\nline two"))

    def test_request_context_included(self, formatter: JSONFormatter) -> None:
        record = _record(name="build_api.access", msg="request completed")
        record.request = {  # type: ignore[attr-defined]
            "method": "POST",
            "path": "/__scenariodb__/remote-build",
            "status_code": 200,
            "duration_ms": 812.5,
        }
        data = json.loads(formatter.format(record))
        assert data["request"]["status_code"] == 200
        assert data["request"]["path"] == "/__scenariodb__/remote-build"

    def test_no_request_key_without_context(self, formatter: JSONFormatter) -> None:
        assert "request" not in json.loads(formatter.format(_record()))

    def test_exception_included(self, formatter: JSONFormatter) -> None:
        try:
            raise RuntimeError("migration exploded")
        except RuntimeError:
            record = _record(level=logging.ERROR, msg="build failed", exc_info=sys.exc_info())
        data = json.loads(formatter.format(record))
        assert "RuntimeError: migration exploded" in data["exc_info"]


class TestInstallJsonLogging:
    def test_replaces_root_handlers(self) -> None:
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            install_json_logging(logging.DEBUG)
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, JSONFormatter)
            assert root.level == logging.DEBUG
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
