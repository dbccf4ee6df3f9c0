"""Domain models shared across services."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional


class Parameter(str, Enum):
    """Monitored storage parameters."""

    temperature = "temperature"
    humidity = "humidity"
    co2 = "co2"
    ammonia = "ammonia"
    methane = "methane"
    ethylene = "ethylene"
    h2s = "h2s"


GAS_PARAMETERS = (
    Parameter.co2,
    Parameter.ammonia,
    Parameter.methane,
    Parameter.ethylene,
    Parameter.h2s,
)


@dataclass(frozen=True, slots=True)
class RawReading:
    """A single telemetry sample pushed by a storage-unit controller."""

    temperature: float
    humidity: float
    co2: float = 0.0
    ammonia: float = 0.0
    methane: float = 0.0
    ethylene: float = 0.0
    h2s: float = 0.0
    timestamp: Optional[int] = None

    def value_of(self, parameter: Parameter) -> float:
        return getattr(self, parameter.value)

    def to_record(self) -> dict[str, Any]:
        record: dict[str, Any] = {p.value: self.value_of(p) for p in Parameter}
        if self.timestamp is not None:
            record["timestamp"] = self.timestamp
        return record


@dataclass(frozen=True, slots=True)
class HistoricalPoint:
    """Down-projected snapshot kept for trend charts."""

    timestamp: int
    temperature: float
    humidity: float

    def to_record(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "temperature": self.temperature,
            "humidity": self.humidity,
        }


REQUIRED_PARAMETERS = (Parameter.temperature, Parameter.humidity)

# Storage controllers publish these gases under upper-case keys.
_FIELD_ALIASES: dict[Parameter, tuple[str, ...]] = {
    Parameter.co2: ("co2", "CO2"),
    Parameter.h2s: ("h2s", "H2S"),
}


def _lookup(record: Mapping[str, Any], parameter: Parameter) -> Any:
    for key in _FIELD_ALIASES.get(parameter, (parameter.value,)):
        raw = record.get(key)
        if raw is not None:
            return raw
    return None


def _parse_number(raw: Any, field_name: str) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float, str)):
        raise ValueError(f"invalid {field_name}")
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"invalid {field_name}") from exc
    if not math.isfinite(value):
        raise ValueError(f"non-finite {field_name}")
    return value


def parse_raw_reading(record: Any) -> RawReading:
    """Validate a raw store record and convert it into a :class:`RawReading`.

    Temperature and humidity are mandatory; absent gases read as zero.
    ``CO2`` and ``H2S`` are accepted alongside their lower-case keys. Humidity and gas
    concentrations must be non-negative; temperature may be below zero for
    cold storage. Controller uptime (``lastUpdate``) is not a capture time
    and is ignored.
    """

    if not isinstance(record, Mapping):
        raise ValueError("record is not an object")

    values: dict[str, float] = {}
    for parameter in Parameter:
        raw = _lookup(record, parameter)
        if raw is None:
            if parameter in REQUIRED_PARAMETERS:
                raise ValueError(f"missing {parameter.value}")
            continue
        value = _parse_number(raw, parameter.value)
        if parameter is not Parameter.temperature and value < 0:
            raise ValueError(f"negative {parameter.value}")
        values[parameter.value] = value

    timestamp: Optional[int] = None
    raw_timestamp = record.get("timestamp")
    if raw_timestamp is not None:
        timestamp = int(_parse_number(raw_timestamp, "timestamp"))
        if timestamp < 0:
            raise ValueError("negative timestamp")

    return RawReading(timestamp=timestamp, **values)
