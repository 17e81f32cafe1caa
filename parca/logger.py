"""Structured loggers writing logfmt or JSON lines to standard error."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, List, Tuple

LOG_FORMAT_LOGFMT = "logfmt"
LOG_FORMAT_JSON = "json"

_LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}

_LEVEL_NAMES = {
    logging.DEBUG: "debug",
    logging.INFO: "info",
    logging.WARNING: "warn",
    logging.ERROR: "error",
    logging.CRITICAL: "error",
}


def _logfmt_value(value: Any) -> str:
    text = value if isinstance(value, str) else str(value)
    if text == "" or any(c in text for c in ' ="\\') or not text.isprintable():
        return json.dumps(text)
    return text


class _StructuredFormatter(logging.Formatter):
    def __init__(self, debug_name: str, as_json: bool) -> None:
        super().__init__()
        self._debug_name = debug_name
        self._as_json = as_json

    def _pairs(self, record: logging.LogRecord) -> List[Tuple[str, Any]]:
        pairs: List[Tuple[str, Any]] = [
            ("level", _LEVEL_NAMES.get(record.levelno, record.levelname.lower()))
        ]
        if self._debug_name:
            pairs.append(("name", self._debug_name))
        ts = datetime.fromtimestamp(record.created, timezone.utc)
        pairs.append(("ts", ts.strftime("%Y-%m-%dT%H:%M:%S.%fZ")))
        pairs.append(("caller", f"{record.filename}:{record.lineno}"))
        pairs.append(("msg", record.getMessage()))
        fields = getattr(record, "fields", None) or {}
        pairs.extend(fields.items())
        if record.exc_info:
            pairs.append(("err", self.formatException(record.exc_info)))
        return pairs

    def format(self, record: logging.LogRecord) -> str:
        pairs = self._pairs(record)
        if self._as_json:
            return json.dumps(dict(pairs), default=str)
        return " ".join(f"{key}={_logfmt_value(value)}" for key, value in pairs)


def new_logger(log_level: str, log_format: str, debug_name: str) -> logging.Logger:
    """Return a logger filtered at the given level, printing to stderr.

    Extra key/value pairs are passed as ``extra={"fields": {...}}``.
    Raises ValueError if the level is not error, warn, info or debug.
    """
    try:
        level = _LEVELS[log_level]
    except KeyError:
        raise ValueError(f"unexpected log level: {log_level!r}") from None

    logger = logging.Logger(debug_name or "parca", level)
    logger.propagate = False
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_StructuredFormatter(debug_name, log_format == LOG_FORMAT_JSON))
    logger.addHandler(handler)
    return logger