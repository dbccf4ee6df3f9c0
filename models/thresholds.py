"""Threshold policy used to classify storage parameters."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping

from models.records import Parameter


@dataclass(frozen=True, slots=True)
class Range:
    min: float
    max: float

    def __post_init__(self) -> None:
        if self.min > self.max:
            raise ValueError(f"range minimum {self.min} exceeds maximum {self.max}")

    def __contains__(self, value: float) -> bool:
        return self.min <= value <= self.max

    def covers(self, other: "Range") -> bool:
        return self.min <= other.min and other.max <= self.max


@dataclass(frozen=True, slots=True)
class ParameterThresholds:
    normal: Range
    warning: Range
    unit: str

    def __post_init__(self) -> None:
        if not self.warning.covers(self.normal):
            raise ValueError(
                f"warning range [{self.warning.min}, {self.warning.max}] does not "
                f"contain normal range [{self.normal.min}, {self.normal.max}]"
            )


ThresholdPolicy = Mapping[Parameter, ParameterThresholds]


def _thresholds(normal: tuple[float, float], warning: tuple[float, float], unit: str) -> ParameterThresholds:
    return ParameterThresholds(normal=Range(*normal), warning=Range(*warning), unit=unit)


DEFAULT_THRESHOLDS: Dict[Parameter, ParameterThresholds] = {
    Parameter.temperature: _thresholds((15, 25), (10, 30), "°C"),
    Parameter.humidity: _thresholds((50, 70), (40, 80), "%"),
    Parameter.co2: _thresholds((0, 1000), (0, 1500), "ppm"),
    Parameter.ammonia: _thresholds((0, 25), (0, 50), "ppm"),
    Parameter.methane: _thresholds((0, 100), (0, 200), "ppm"),
    Parameter.ethylene: _thresholds((0, 10), (0, 20), "ppm"),
    Parameter.h2s: _thresholds((0, 10), (0, 20), "ppm"),
}


def validate_policy(policy: ThresholdPolicy) -> Dict[Parameter, ParameterThresholds]:
    """Ensure every parameter has a threshold entry; returns a plain copy."""
    missing = [parameter.value for parameter in Parameter if parameter not in policy]
    if missing:
        raise ValueError(f"threshold policy missing parameters: {', '.join(missing)}")
    return {parameter: policy[parameter] for parameter in Parameter}


def _parse_entry(name: str, payload: Any) -> ParameterThresholds:
    try:
        normal = payload["normal"]
        warning = payload["warning"]
        return ParameterThresholds(
            normal=Range(float(normal["min"]), float(normal["max"])),
            warning=Range(float(warning["min"]), float(warning["max"])),
            unit=str(payload.get("unit", DEFAULT_THRESHOLDS[Parameter(name)].unit)),
        )
    except (KeyError, TypeError) as exc:
        raise ValueError(f"malformed thresholds for {name!r}") from exc


def load_policy(path: Path | None = None) -> Dict[Parameter, ParameterThresholds]:
    """Load a threshold policy, overlaying a JSON file onto the defaults.

    The file maps parameter names to ``{"normal": {"min", "max"},
    "warning": {"min", "max"}, "unit"}``. Invalid content raises ``ValueError``.
    """

    policy = dict(DEFAULT_THRESHOLDS)
    if path is None:
        return validate_policy(policy)

    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as exc:
        raise ValueError(f"unable to read threshold policy from {path}") from exc
    if not isinstance(data, dict):
        raise ValueError("threshold policy must be a JSON object")

    for name, payload in data.items():
        try:
            parameter = Parameter(name)
        except ValueError as exc:
            raise ValueError(f"unknown parameter {name!r} in threshold policy") from exc
        policy[parameter] = _parse_entry(name, payload)

    return validate_policy(policy)
