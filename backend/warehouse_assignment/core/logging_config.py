"""
Logging setup for the warehouse assignment service.

Console output is colourised for development or JSON in production; files
are always JSON. Modules log through ``logging.getLogger(__name__)`` and pass
structured data as ``extra={"context": {...}}``.
"""

import json
import logging
import logging.handlers
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

from flask import Flask, g, request

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with the ``context`` extra when present."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        context = getattr(record, "context", None)
        if context is not None:
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """Coloured level names, context appended as compact JSON."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        # Copy: the same record also reaches the JSON file handlers
        shown = logging.makeLogRecord(record.__dict__)
        color = self.LEVEL_COLORS.get(shown.levelname, self.RESET)
        shown.levelname = f"{color}{shown.levelname:8}{self.RESET}"
        line = super().format(shown)
        context = getattr(shown, "context", None)
        if context:
            line += " | " + json.dumps(context, ensure_ascii=False, default=str)
        return line


def _file_handler(path: Path, level: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter())
    return handler


def _register_request_hooks(app: Flask) -> None:
    request_logger = logging.getLogger("warehouse_assignment.http")

    @app.before_request
    def log_request():
        g.request_start_time = time.time()
        g.request_id = f"{g.request_start_time}-{id(request)}"
        request_logger.debug(
            f"{request.method} {request.path}",
            extra={
                "context": {
                    "request_id": g.request_id,
                    "remote_addr": request.remote_addr,
                }
            },
        )

    @app.after_request
    def log_response(response):
        started = g.get("request_start_time")
        if started is not None:
            duration_ms = round((time.time() - started) * 1000, 2)
            request_logger.info(
                f"{request.method} {request.path} {response.status_code}",
                extra={
                    "context": {
                        "request_id": g.get("request_id"),
                        "status_code": response.status_code,
                        "duration_ms": duration_ms,
                    }
                },
            )
        return response


def setup_logging(
    app: Optional[Flask] = None,
    log_level: Union[int, str] = "INFO",
    log_to_file: bool = True,
    use_json_format: bool = False,
    log_dir: Optional[Path] = None,
) -> None:
    """
    Replace the root handlers with the service's console and file handlers.

    Args:
        app: when given, request/response lines are logged for it
        log_level: level name or number
        log_to_file: also write ``app.log`` and ``assignment_errors.log``
        use_json_format: JSON on the console instead of coloured text
        log_dir: directory for the log files (defaults to ``<backend>/logs``)
    """
    if isinstance(log_level, str):
        level = getattr(logging, log_level.upper(), logging.INFO)
    else:
        level = log_level

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    if use_json_format:
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(
            ConsoleFormatter(
                "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
    root_logger.addHandler(console_handler)

    if log_to_file:
        log_dir = log_dir or Path(__file__).resolve().parents[2] / "logs"
        try:
            log_dir.mkdir(exist_ok=True)
            root_logger.addHandler(_file_handler(log_dir / "app.log", level))
            root_logger.addHandler(
                _file_handler(log_dir / "assignment_errors.log", logging.ERROR)
            )
        except OSError as e:
            log_to_file = False
            root_logger.warning(
                "Log files unavailable, logging to console only",
                extra={"context": {"log_dir": str(log_dir), "error": str(e)}},
            )

    if app is not None:
        _register_request_hooks(app)

    logging.getLogger("werkzeug").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    logging.getLogger("warehouse_assignment").info(
        "Logging configured",
        extra={
            "context": {
                "level": logging.getLevelName(level),
                "log_to_file": log_to_file,
                "json_format": use_json_format,
            }
        },
    )
