from __future__ import annotations
import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from .config import app_dir, logs_dir

LOGGER_NAME = "composepilot"
LOG_FILENAME = "composepilot.jsonl"


def _resolve_logs_dir() -> Path:
    """
    <app dir>/logs, or <app dir>/logs-fallback when that one cannot be written
    (e.g. a read-only logs dir left behind by another user).
    """
    primary = logs_dir()
    try:
        primary.mkdir(parents=True, exist_ok=True)
        probe = primary / ".write_test"
        probe.write_text("ok", encoding="utf-8")
        probe.unlink(missing_ok=True)
        return primary
    except OSError:
        fallback = app_dir() / "logs-fallback"
        fallback.mkdir(parents=True, exist_ok=True)
        return fallback


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line: timestamp, level, message, logger, then the
    event props (event name plus e.g. path, policy, counters).
    """
    def format(self, record: logging.LogRecord) -> str:
        data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }
        if hasattr(record, "props") and isinstance(record.props, dict):
            data.update(record.props)
        # Paths and datetimes from candidates end up in props
        return json.dumps(data, default=str)


def setup_logging(verbose: bool = False, log_dir: Optional[Path] = None) -> logging.Logger:
    """
    Called once by the CLI. Engine modules only emit events; nothing is
    written to disk until this runs.
    - stderr: bare messages, INFO (DEBUG with --verbose)
    - <logs dir>/composepilot.jsonl: every event at DEBUG, rotating 5 x 5MB
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)

    # clear existing handlers to avoid duplicates
    if logger.hasHandlers():
        logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(console_handler)

    log_file = (log_dir or _resolve_logs_dir()) / LOG_FILENAME
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=5 * 1024 * 1024,  # 5MB
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(JsonFormatter())
    logger.addHandler(file_handler)

    return logger


def get_logger() -> logging.Logger:
    return logging.getLogger(LOGGER_NAME)


def log_event(event: str, data: Optional[Dict[str, Any]] = None, level: int = logging.INFO) -> None:
    """
    Emit a named event such as "discovery_complete" or "topology_parse_failed".
    `data` is flattened next to the event name in the JSONL line.
    """
    props = {"event": event}
    if data:
        props.update(data)
    get_logger().log(level, event, extra={"props": props})
