"""Unit tests for dashboard alerts and fleet summaries."""

from __future__ import annotations

from app.schemas import ParameterStatus, SpoilageRisk
from models.records import RawReading
from models.thresholds import DEFAULT_THRESHOLDS
from services.alerts import average_risk, build_alerts, summarize_units
from services.snapshot_builder import SnapshotBuilder


def _snapshot(**values: float):
    reading = RawReading(**{"temperature": 20.0, "humidity": 60.0, **values})
    return SnapshotBuilder(DEFAULT_THRESHOLDS).build(reading, "Wheat Storage B", now_ms=1000)


def test_normal_snapshot_has_no_alerts() -> None:
    assert build_alerts("unit-1", _snapshot()) == []


def test_critical_temperature_and_spoilage_alerts() -> None:
    alerts = build_alerts("unit-1", _snapshot(temperature=32.0, humidity=85.0))

    assert [alert.id for alert in alerts] == [
        "unit-1-temp-critical",
        "unit-1-humidity-critical",
        "unit-1-spoilage",
    ]
    assert alerts[0].message == "Temperature critically high: 32°C"
    assert alerts[1].message == "Humidity critically high: 85%"
    assert alerts[2].type is ParameterStatus.critical
    assert all(alert.storage_unit == "Wheat Storage B" for alert in alerts)
    assert all(alert.timestamp == 1000 for alert in alerts)


def test_cold_storage_is_reported_as_low() -> None:
    alerts = build_alerts("unit-1", _snapshot(temperature=5.0))

    assert alerts[0].message == "Temperature critically low: 5°C"
    assert alerts[-1].type is ParameterStatus.warning


def test_warning_temperature_alert() -> None:
    alerts = build_alerts("unit-1", _snapshot(temperature=27.0))

    assert [alert.id for alert in alerts] == ["unit-1-temp-warning"]
    assert alerts[0].message == "Temperature approaching limits: 27°C"


def test_average_risk_buckets() -> None:
    assert average_risk([]) is None
    assert average_risk([SpoilageRisk.low, SpoilageRisk.medium]) is SpoilageRisk.low
    assert average_risk([SpoilageRisk.low, SpoilageRisk.high]) is SpoilageRisk.medium
    assert average_risk([SpoilageRisk.high, SpoilageRisk.critical]) is SpoilageRisk.high
    assert average_risk([SpoilageRisk.critical, SpoilageRisk.critical]) is SpoilageRisk.critical
    assert average_risk([SpoilageRisk.medium, SpoilageRisk.critical]) is SpoilageRisk.high


def test_summarize_units_counts_critical_and_warning_units() -> None:
    summary = summarize_units(
        {
            "unit-1": _snapshot(),
            "unit-2": _snapshot(temperature=32.0),
            "unit-3": _snapshot(humidity=75.0),
        }
    )

    assert summary.total_units == 3
    assert summary.critical_alerts == 1
    assert summary.warnings_active == 2
    assert summary.average_risk is SpoilageRisk.medium


def test_summary_of_no_units() -> None:
    summary = summarize_units({})

    assert summary.total_units == 0
    assert summary.average_risk is None
