from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from logging.config import dictConfig
from typing import Any, Iterable, Sequence

from settings import get_settings

_DEFAULT_EXTRA_KEYS = (
    "sensor_id",
    "measurement",
    "unit",
    "method",
    "path",
    "status",
    "reason",
    "count",
    "latency_ms",
    "query_ms",
)

_configured = False


def _collect_context(record: logging.LogRecord, keys: Sequence[str]) -> dict[str, Any]:
    context: dict[str, Any] = {}
    for key in keys:
        value = getattr(record, key, None)
        if value is None:
            continue
        context[key] = value
    return context


class ContextualFormatter(logging.Formatter):
    """Human readable lines with ``key=value`` context appended."""

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: str = "%",
        extra_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        self._extra_keys: Sequence[str] = tuple(extra_keys or _DEFAULT_EXTRA_KEYS)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = _collect_context(record, self._extra_keys)
        if context:
            pairs = " ".join(f"{key}={value}" for key, value in context.items())
            return f"{message} | {pairs}"
        return message


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def __init__(self, extra_keys: Iterable[str] | None = None) -> None:
        super().__init__()
        self._extra_keys: Sequence[str] = tuple(extra_keys or _DEFAULT_EXTRA_KEYS)

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_collect_context(record, self._extra_keys))
        if record.exc_info:
            payload["error"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: str | int | None = None, dev_mode: bool | None = None) -> None:
    """Configure application-wide logging.

    Development mode writes contextual console lines; otherwise every record is
    emitted as a JSON object.
    """
    global _configured
    if _configured:
        return

    settings = get_settings()
    log_level = level if level is not None else settings.log_level
    use_console = settings.dev_mode if dev_mode is None else dev_mode

    formatters: dict[str, dict[str, Any]] = {
        "contextual": {
            "()": "logging_config.ContextualFormatter",
            "fmt": "%(asctime)sZ | %(levelname)s | %(name)s | %(message)s",
            "datefmt": "%Y-%m-%dT%H:%M:%S",
            "style": "%",
            "extra_keys": list(_DEFAULT_EXTRA_KEYS),
        },
        "json": {
            "()": "logging_config.JsonFormatter",
            "extra_keys": list(_DEFAULT_EXTRA_KEYS),
        },
    }

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": formatters,
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "level": log_level,
                    "formatter": "contextual" if use_console else "json",
                }
            },
            "root": {"handlers": ["default"], "level": log_level},
        }
    )

    _configured = True
