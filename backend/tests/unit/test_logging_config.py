"""
Unit tests for the structured logging setup.
"""

import json
import logging

import pytest
from flask import Flask

from warehouse_assignment.core.logging_config import (
    ConsoleFormatter,
    JSONFormatter,
    setup_logging,
)


def _record(message="Usuario asignado", context=None, level=logging.INFO):
    record = logging.LogRecord(
        name="warehouse_assignment.test",
        level=level,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=(),
        exc_info=None,
    )
    if context is not None:
        record.context = context
    return record


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        handler.close()
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


@pytest.mark.unit
class TestFormatters:
    def test_json_formatter_includes_context(self):
        line = JSONFormatter().format(_record(context={"user_id": "u1"}))
        data = json.loads(line)

        assert data["level"] == "INFO"
        assert data["logger"] == "warehouse_assignment.test"
        assert data["message"] == "Usuario asignado"
        assert data["context"] == {"user_id": "u1"}
        assert "timestamp" in data

    def test_json_formatter_serializes_non_json_values(self):
        line = JSONFormatter().format(_record(context={"ids": frozenset({1})}))

        assert json.loads(line)["context"]["ids"] == "frozenset({1})"

    def test_console_formatter_appends_context_without_mutating_record(self):
        record = _record(context={"warehouse_id": 10})
        output = ConsoleFormatter("%(levelname)s %(message)s").format(record)

        assert "Usuario asignado" in output
        assert '"warehouse_id": 10' in output
        assert record.levelname == "INFO"


@pytest.mark.unit
def test_setup_logging_writes_json_files(tmp_path, restore_root_logger):
    setup_logging(log_level="INFO", log_to_file=True, log_dir=tmp_path)
    logger = logging.getLogger("warehouse_assignment.test")

    logger.info("Catalog refreshed", extra={"context": {"count": 3}})
    logger.error("Remote write failed", extra={"context": {"user_id": "u1"}})
    for handler in logging.getLogger().handlers:
        handler.flush()

    app_lines = (tmp_path / "app.log").read_text(encoding="utf-8").splitlines()
    error_lines = (
        (tmp_path / "assignment_errors.log").read_text(encoding="utf-8").splitlines()
    )
    messages = [json.loads(line)["message"] for line in app_lines]
    assert "Catalog refreshed" in messages
    assert [json.loads(line)["message"] for line in error_lines] == [
        "Remote write failed"
    ]


class _ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


@pytest.mark.unit
def test_request_hooks_log_status_and_duration(restore_root_logger):
    app = Flask(__name__)

    @app.route("/ping")
    def ping():
        return "ok"

    setup_logging(app=app, log_to_file=False)
    handler = _ListHandler()
    http_logger = logging.getLogger("warehouse_assignment.http")
    http_logger.addHandler(handler)
    try:
        app.test_client().get("/ping")
    finally:
        http_logger.removeHandler(handler)

    assert [r.getMessage() for r in handler.records] == ["GET /ping 200"]
    context = handler.records[0].context
    assert context["status_code"] == 200
    assert context["duration_ms"] >= 0
