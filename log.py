"""Structured logging for Trilingua.

JSON lines on stderr by default; TRILINGUA_LOG_FORMAT=text switches to a
human-readable line with the extra fields appended as key=value pairs.
TRILINGUA_LOG_LEVEL sets verbosity (DEBUG/INFO/WARNING/ERROR).
"""
import logging
import json
import os
import sys
import time
from contextlib import contextmanager
from typing import Any, Iterator

# Fields lifted out of `extra=` into the log entry
EXTRA_KEYS = (
    "component", "detail", "duration_ms", "count", "endpoint", "status_code",
    "model", "mode", "generation", "status", "lang",
)


def _extras(record: logging.LogRecord) -> dict:
    return {key: getattr(record, key) for key in EXTRA_KEYS if getattr(record, key, None) is not None}


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            entry["error"] = str(record.exc_info[1])
            entry["error_type"] = type(record.exc_info[1]).__name__
        entry.update(_extras(record))
        return json.dumps(entry, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    def __init__(self):
        super().__init__("%(asctime)s [%(levelname)s] %(name)s: %(message)s", datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = _extras(record)
        if extras:
            line += " " + " ".join(f"{k}={v}" for k, v in extras.items())
        return line


def _formatter() -> logging.Formatter:
    if os.environ.get("TRILINGUA_LOG_FORMAT", "json").lower() == "text":
        return TextFormatter()
    return JSONFormatter()


def get_logger(name: str = "trilingua") -> logging.Logger:
    """Get or create a structured logger.

    Usage:
        from log import get_logger
        logger = get_logger("trilingua.history")
        logger.info("History loaded", extra={"component": "history", "count": 12})
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        level = os.environ.get("TRILINGUA_LOG_LEVEL", "INFO").upper()
        logger.setLevel(getattr(logging, level, logging.INFO))
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(_formatter())
        logger.addHandler(handler)
        logger.propagate = False
    return logger


@contextmanager
def timed(logger: logging.Logger, msg: str, **fields) -> Iterator[dict]:
    """Log `msg` at DEBUG with duration_ms when the block exits.

    The yielded dict is the `extra` payload; add fields to it inside the block.
    """
    started = time.monotonic()
    try:
        yield fields
    finally:
        fields["duration_ms"] = int((time.monotonic() - started) * 1000)
        logger.debug(msg, extra=fields)
