from __future__ import annotations

import logging
from datetime import datetime, timezone, tzinfo
from logging.config import dictConfig
from typing import Iterable, Sequence
from zoneinfo import ZoneInfo

from settings import get_settings

_DEFAULT_EXTRA_KEYS = (
    "zone",
    "record_id",
    "kind",
    "reason",
    "pending",
    "record_count",
    "line_number",
)
_DEFAULT_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"

_configured = False


class ContextualFormatter(logging.Formatter):
    """Stamps records in the farm's time zone and appends telemetry context.

    Any of ``extra_keys`` present on a record (``zone``, ``record_id``, ...)
    is rendered after the message as ``key=value``.
    """

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: str = "%",
        extra_keys: Iterable[str] | None = None,
        time_zone: str | None = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        self._extra_keys: Sequence[str] = tuple(extra_keys or _DEFAULT_EXTRA_KEYS)
        self._tz: tzinfo = ZoneInfo(time_zone) if time_zone else timezone.utc

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        moment = datetime.fromtimestamp(record.created, tz=self._tz)
        if datefmt:
            return moment.strftime(datefmt)
        return moment.isoformat(timespec="milliseconds")

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context_parts: list[str] = []
        for key in self._extra_keys:
            value = getattr(record, key, None)
            if value is None:
                continue
            context_parts.append(f"{key}={value}")
        if context_parts:
            return f"{message} | {' '.join(context_parts)}"
        return message


def configure_logging(level: str | int | None = None) -> None:
    """Configure application-wide logging with contextual formatting."""
    global _configured
    if _configured:
        return

    settings = get_settings()
    log_level = level if level is not None else settings.log_level

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "contextual": {
                    "()": "logging_config.ContextualFormatter",
                    "fmt": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                    "datefmt": _DEFAULT_DATEFMT,
                    "style": "%",
                    "extra_keys": list(_DEFAULT_EXTRA_KEYS),
                    "time_zone": settings.time_zone,
                }
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "level": log_level,
                    "formatter": "contextual",
                }
            },
            "loggers": {
                "uvicorn.access": {"level": "WARNING"},
            },
            "root": {"handlers": ["default"], "level": log_level},
        }
    )

    _configured = True
