"""Dashboard alerts and fleet-wide roll-ups derived from snapshots."""

from __future__ import annotations

from typing import Iterable, List, Mapping

from app.schemas import Alert, FleetSummary, ParameterStatus, SpoilageRisk, StorageSnapshot
from models.thresholds import DEFAULT_THRESHOLDS, ThresholdPolicy
from models.records import Parameter

RISK_SCORES = {
    SpoilageRisk.low: 1,
    SpoilageRisk.medium: 2,
    SpoilageRisk.high: 3,
    SpoilageRisk.critical: 4,
}


def _direction(value: float, parameter: Parameter, policy: ThresholdPolicy) -> str:
    return "high" if value > policy[parameter].normal.max else "low"


def build_alerts(
    unit_id: str,
    snapshot: StorageSnapshot,
    policy: ThresholdPolicy = DEFAULT_THRESHOLDS,
) -> List[Alert]:
    alerts: List[Alert] = []

    def _add(suffix: str, kind: ParameterStatus, message: str) -> None:
        alerts.append(
            Alert(
                id=f"{unit_id}-{suffix}",
                type=kind,
                message=message,
                timestamp=snapshot.timestamp,
                storage_unit=snapshot.storage_unit,
            )
        )

    temperature = snapshot.temperature
    if temperature.status is ParameterStatus.critical:
        direction = _direction(temperature.value, Parameter.temperature, policy)
        _add(
            "temp-critical",
            ParameterStatus.critical,
            f"Temperature critically {direction}: {temperature.value:g}{temperature.unit}",
        )
    elif temperature.status is ParameterStatus.warning:
        _add(
            "temp-warning",
            ParameterStatus.warning,
            f"Temperature approaching limits: {temperature.value:g}{temperature.unit}",
        )

    humidity = snapshot.humidity
    if humidity.status is ParameterStatus.critical:
        direction = _direction(humidity.value, Parameter.humidity, policy)
        _add(
            "humidity-critical",
            ParameterStatus.critical,
            f"Humidity critically {direction}: {humidity.value:g}{humidity.unit}",
        )

    if snapshot.spoilage_risk in (SpoilageRisk.high, SpoilageRisk.critical):
        kind = (
            ParameterStatus.critical
            if snapshot.spoilage_risk is SpoilageRisk.critical
            else ParameterStatus.warning
        )
        _add("spoilage", kind, "High spoilage risk detected - immediate attention required")

    return alerts


def average_risk(risks: Iterable[SpoilageRisk]) -> SpoilageRisk | None:
    scores = [RISK_SCORES[risk] for risk in risks]
    if not scores:
        return None
    mean = sum(scores) / len(scores)
    if mean <= 1.5:
        return SpoilageRisk.low
    if mean <= 2.5:
        return SpoilageRisk.medium
    if mean <= 3.5:
        return SpoilageRisk.high
    return SpoilageRisk.critical


def summarize_units(snapshots: Mapping[str, StorageSnapshot]) -> FleetSummary:
    """Roll up the latest snapshot of every unit that currently has data."""
    critical = 0
    warnings = 0
    for snapshot in snapshots.values():
        statuses = (snapshot.temperature.status, snapshot.humidity.status)
        if ParameterStatus.critical in statuses or snapshot.spoilage_risk is SpoilageRisk.critical:
            critical += 1
        if ParameterStatus.warning in statuses or snapshot.spoilage_risk is SpoilageRisk.high:
            warnings += 1

    return FleetSummary(
        total_units=len(snapshots),
        critical_alerts=critical,
        warnings_active=warnings,
        average_risk=average_risk(s.spoilage_risk for s in snapshots.values()),
    )
