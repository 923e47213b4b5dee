from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


_ZONES_ENV = "FARM_ZONES"
_REQUIRED_FIELDS_ENV = "FARM_REQUIRED_FIELDS"
_TIME_ZONE_ENV = "FARM_TIME_ZONE"
_TIMESERIES_PATH_ENV = "TIMESERIES_PERSISTENCE_PATH"
_WORKER_COUNT_ENV = "PERSISTENCE_WORKER_COUNT"
_STORAGE_TIMEOUT_ENV = "STORAGE_TIMEOUT_SECONDS"
_LOG_LEVEL_ENV = "LOG_LEVEL"
_DEBUG_ENV = "DEBUG"

DEFAULT_ZONES: Tuple[str, ...] = ("zone1", "zone2", "zone3")
MEASUREMENT_FIELDS: Tuple[str, ...] = (
    "soil_moisture",
    "temperature",
    "humidity",
    "gas_level",
    "light_level",
)
MINIMUM_REQUIRED_FIELDS: Tuple[str, ...] = ("soil_moisture", "temperature", "humidity")


@dataclass(frozen=True)
class Settings:
    zones: Tuple[str, ...]
    required_fields: Tuple[str, ...]
    time_zone: str
    timeseries_persistence_path: Optional[str]
    persistence_workers: int
    storage_timeout: float
    log_level: str
    debug: bool

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.time_zone)


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_list_env(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    value = os.getenv(name)
    if value is None:
        return default
    items = tuple(dict.fromkeys(part.strip() for part in value.split(",") if part.strip()))
    return items or default


def _read_required_fields() -> Tuple[str, ...]:
    requested = _read_list_env(_REQUIRED_FIELDS_ENV, MINIMUM_REQUIRED_FIELDS)
    wanted = set(MINIMUM_REQUIRED_FIELDS) | {
        name for name in requested if name in MEASUREMENT_FIELDS
    }
    return tuple(name for name in MEASUREMENT_FIELDS if name in wanted)


def _read_time_zone(default: str) -> str:
    value = os.getenv(_TIME_ZONE_ENV)
    if value is None or not value.strip():
        return default
    candidate = value.strip()
    try:
        ZoneInfo(candidate)
    except (ZoneInfoNotFoundError, ValueError):
        return default
    return candidate


def _read_worker_count(default: int) -> int:
    value = os.getenv(_WORKER_COUNT_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_timeout(default: float) -> float:
    value = os.getenv(_STORAGE_TIMEOUT_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


def _read_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@lru_cache
def get_settings() -> Settings:
    return Settings(
        zones=_read_list_env(_ZONES_ENV, DEFAULT_ZONES),
        required_fields=_read_required_fields(),
        time_zone=_read_time_zone("UTC"),
        timeseries_persistence_path=_read_optional_env(
            _TIMESERIES_PATH_ENV, "./tmp/timeseries.jsonl"
        ),
        persistence_workers=_read_worker_count(4),
        storage_timeout=_read_timeout(5.0),
        log_level=_read_log_level("INFO"),
        debug=_read_flag(_DEBUG_ENV, False),
    )
