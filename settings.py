from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Optional


_STORAGE_UNITS_ENV = "STORAGE_UNITS"
_DISCONNECT_THRESHOLD_ENV = "DISCONNECT_THRESHOLD_MS"
_CHECK_INTERVAL_ENV = "STALENESS_CHECK_INTERVAL_MS"
_HISTORY_LIMIT_ENV = "HISTORY_LIMIT"
_HISTORY_LOOKBACK_ENV = "HISTORY_LOOKBACK_HOURS"
_WORKER_COUNT_ENV = "PERSISTENCE_WORKER_COUNT"
_DB_PATH_ENV = "REALTIME_DB_PERSISTENCE_PATH"
_THRESHOLDS_PATH_ENV = "STORAGE_THRESHOLDS_PATH"
_LOG_LEVEL_ENV = "LOG_LEVEL"

DEFAULT_STORAGE_UNITS = {"storage_unit_1": "Storage Unit 1"}


@dataclass(frozen=True)
class Settings:
    storage_units: Dict[str, str]
    disconnect_threshold_ms: int
    staleness_check_interval_ms: int
    history_limit: int
    history_lookback_hours: float
    persistence_workers: int
    db_persistence_path: Optional[str]
    thresholds_path: Optional[str]
    log_level: str


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
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


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
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


def _read_storage_units(default: Dict[str, str]) -> Dict[str, str]:
    """Parse ``id=Label,id2=Label 2``; a bare id uses itself as the label."""
    value = os.getenv(_STORAGE_UNITS_ENV)
    if value is None or not value.strip():
        return dict(default)

    units: Dict[str, str] = {}
    for entry in value.split(","):
        unit_id, _, label = entry.partition("=")
        unit_id = unit_id.strip()
        if not unit_id:
            continue
        units[unit_id] = label.strip() or unit_id
    return units or dict(default)


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        storage_units=_read_storage_units(DEFAULT_STORAGE_UNITS),
        disconnect_threshold_ms=_read_positive_int(_DISCONNECT_THRESHOLD_ENV, 15000),
        staleness_check_interval_ms=_read_positive_int(_CHECK_INTERVAL_ENV, 5000),
        history_limit=_read_positive_int(_HISTORY_LIMIT_ENV, 1000),
        history_lookback_hours=_read_positive_float(_HISTORY_LOOKBACK_ENV, 24.0),
        persistence_workers=_read_positive_int(_WORKER_COUNT_ENV, 2),
        db_persistence_path=_read_optional_env(_DB_PATH_ENV, None),
        thresholds_path=_read_optional_env(_THRESHOLDS_PATH_ENV, None),
        log_level=_read_log_level("INFO"),
    )
