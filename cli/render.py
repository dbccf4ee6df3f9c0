from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List

import typer

_STATUS_COLORS = {
    "normal": typer.colors.GREEN,
    "warning": typer.colors.YELLOW,
    "critical": typer.colors.RED,
    "low": typer.colors.GREEN,
    "medium": typer.colors.YELLOW,
    "high": typer.colors.BRIGHT_RED,
}


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def format_timestamp(value: Any) -> str:
    if not isinstance(value, (int, float)):
        return "unknown"
    moment = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    return moment.isoformat(timespec="seconds").replace("+00:00", "Z")


def _echo_status(label: str, value: Any, unit: str, status: str) -> None:
    typer.echo(f"{label}: {value}{unit} ", nl=False)
    typer.secho(f"[{status}]", fg=_STATUS_COLORS.get(status))


def render_snapshot(payload: Dict[str, Any]) -> None:
    echo_heading("Storage Unit")
    echo_key_values(
        [
            ("unit_id", payload.get("unit_id")),
            ("storage_unit", payload.get("storage_unit")),
            ("connection", payload.get("connection")),
        ]
    )

    snapshot = payload.get("snapshot")
    typer.echo()
    if not snapshot:
        typer.secho("No live data - sensor offline or not yet reporting.", fg=typer.colors.YELLOW)
        return

    echo_heading("Snapshot")
    echo_key_values([("timestamp", format_timestamp(snapshot.get("timestamp")))])
    for name in ("temperature", "humidity"):
        reading = snapshot.get(name) or {}
        _echo_status(name, reading.get("value"), reading.get("unit", ""), reading.get("status", ""))
    for gas, reading in (snapshot.get("gases") or {}).items():
        _echo_status(gas, reading.get("value"), " ppm", reading.get("status", ""))

    risk = snapshot.get("spoilage_risk", "")
    typer.echo("spoilage_risk: ", nl=False)
    typer.secho(risk, fg=_STATUS_COLORS.get(risk), bold=True)

    typer.echo()
    echo_heading("Recommendations")
    for recommendation in snapshot.get("recommendations") or []:
        typer.echo(f"  - {recommendation}")


def render_history(payload: Dict[str, Any]) -> None:
    points: List[Dict[str, Any]] = payload.get("points") or []
    echo_heading(f"History ({payload.get('hours')}h, {len(points)} points)")
    if not points:
        typer.echo("No historical data available.")
        return
    for point in points:
        typer.echo(
            f"  {format_timestamp(point.get('timestamp'))}  "
            f"temperature={point.get('temperature')}  humidity={point.get('humidity')}"
        )


def render_alerts(alerts: List[Dict[str, Any]]) -> None:
    echo_heading("Alerts")
    if not alerts:
        typer.echo("No active alerts.")
        return
    for alert in alerts:
        kind = alert.get("type", "")
        typer.secho(f"  [{kind}] {alert.get('message')}", fg=_STATUS_COLORS.get(kind))


def render_summary(payload: Dict[str, Any]) -> None:
    echo_heading("Fleet Summary")
    echo_key_values(
        [
            ("total_units", payload.get("total_units")),
            ("critical_alerts", payload.get("critical_alerts")),
            ("warnings_active", payload.get("warnings_active")),
            ("average_risk", payload.get("average_risk") or "n/a"),
        ]
    )
