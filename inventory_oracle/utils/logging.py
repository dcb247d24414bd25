"""
Logging setup for Inventory Oracle.

Call ``configure_logging(config)`` once at CLI entry, before any service is
built, to set up the root logger with the configured level and optional file
handler.

Library modules only ever use ``logging.getLogger(__name__)``; they never call
``configure_logging`` or ``basicConfig`` themselves.

JSON format (``json_format = true`` in config/default.toml [logging]) writes
one object per line::

    {"ts": "2026-02-24T15:00:00Z", "level": "WARNING", "logger": "...", "msg": "..."}
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from inventory_oracle.config import LoggingConfig

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

_RESERVED_ATTRS = frozenset(vars(logging.makeLogRecord({})).keys()) | {"message", "asctime"}


class JsonLinesFormatter(logging.Formatter):
    """One JSON object per record.

    Fields passed through ``extra=`` (``component_id``, ``supplier``, ...) are
    copied into the object next to ``ts``, ``level``, ``logger`` and ``msg``.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(
                LOG_DATE_FORMAT
            ),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        for key, val in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                payload[key] = val
        return json.dumps(payload, default=str)


# Held at WARNING or above regardless of the configured level.
QUIET_LOGGERS = ("httpx", "httpcore", "tenacity")


def _handler(handler: logging.Handler, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def configure_logging(config: "LoggingConfig") -> None:
    """Configure the root logger from a ``LoggingConfig`` instance.

    Console output goes to stdout. When ``config.log_file`` is set the same
    records are appended to that file, creating its directory first.
    """
    level = getattr(logging, config.level.upper(), logging.INFO)
    formatter = (
        JsonLinesFormatter()
        if config.json_format
        else logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    )

    handlers = [_handler(logging.StreamHandler(sys.stdout), level, formatter)]
    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            _handler(logging.FileHandler(log_path, encoding="utf-8"), level, formatter)
        )

    logging.basicConfig(level=level, handlers=handlers, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
