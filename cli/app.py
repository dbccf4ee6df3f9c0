from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_alerts, render_history, render_snapshot, render_summary


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the storage environment monitor.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


def generate_sample_reading(drift: bool = False) -> Dict[str, Any]:
    """Random reading around the normal bands; ``drift`` pushes it warm and humid."""
    temperature = random.uniform(16, 24)
    humidity = random.uniform(52, 68)
    if drift:
        temperature += random.uniform(5, 10)
        humidity += random.uniform(8, 15)
    return {
        "temperature": round(temperature, 1),
        "humidity": round(humidity, 1),
        "co2": random.randint(400, 900),
        "ammonia": round(random.uniform(1, 20), 1),
        "methane": round(random.uniform(5, 80), 1),
        "ethylene": round(random.uniform(0.5, 9), 1),
        "h2s": round(random.uniform(0, 5), 1),
        "timestamp": int(time.time() * 1000),
    }


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Monitor API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    unit: Optional[str] = typer.Option(
        None,
        "--unit",
        "-u",
        help="Storage unit id (defaults to CLI_UNIT_ID env or storage_unit_1).",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, unit_id=unit)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("push")
def push_command(
    ctx: typer.Context,
    temperature: float = typer.Option(..., "--temperature", "-t", help="Temperature in °C."),
    humidity: float = typer.Option(..., "--humidity", help="Relative humidity in %."),
    co2: Optional[float] = typer.Option(None, "--co2", help="CO2 in ppm."),
    ammonia: Optional[float] = typer.Option(None, "--ammonia", help="Ammonia in ppm."),
    methane: Optional[float] = typer.Option(None, "--methane", help="Methane in ppm."),
    ethylene: Optional[float] = typer.Option(None, "--ethylene", help="Ethylene in ppm."),
    h2s: Optional[float] = typer.Option(None, "--h2s", help="Hydrogen sulfide in ppm."),
) -> None:
    """Push a single reading for the selected unit."""
    state = _get_state(ctx)
    reading = {
        key: value
        for key, value in {
            "temperature": temperature,
            "humidity": humidity,
            "co2": co2,
            "ammonia": ammonia,
            "methane": methane,
            "ethylene": ethylene,
            "h2s": h2s,
        }.items()
        if value is not None
    }
    key = state.client.push_reading(state.config.unit_id, reading)
    typer.secho(f"Reading accepted. key={key}", fg=typer.colors.GREEN)


@app.command("simulate")
def simulate_command(
    ctx: typer.Context,
    count: int = typer.Option(10, "--count", "-n", min=1, help="Number of readings to send."),
    interval: Optional[float] = typer.Option(
        None,
        "--interval",
        help="Seconds between readings (defaults to CLI_SIMULATE_INTERVAL env or 2).",
    ),
    drift: bool = typer.Option(
        False,
        "--drift/--no-drift",
        help="Send readings outside the normal bands to exercise alerts.",
    ),
) -> None:
    """Send randomized sample readings, as a storage controller would."""
    state = _get_state(ctx)
    pause = interval if interval is not None else state.config.simulate_interval
    for index in range(count):
        reading = generate_sample_reading(drift=drift)
        state.client.push_reading(state.config.unit_id, reading)
        typer.echo(
            f"[{index + 1}/{count}] temperature={reading['temperature']} "
            f"humidity={reading['humidity']} co2={reading['co2']}"
        )
        if index + 1 < count:
            time.sleep(pause)


@app.command("snapshot")
def snapshot_command(ctx: typer.Context) -> None:
    """Show the latest classified snapshot and alerts for the selected unit."""
    state = _get_state(ctx)
    payload = state.client.get_snapshot(state.config.unit_id)
    render_snapshot(payload)
    typer.echo()
    render_alerts(state.client.get_alerts(state.config.unit_id))


@app.command("history")
def history_command(
    ctx: typer.Context,
    hours: Optional[float] = typer.Option(
        None,
        "--hours",
        min=0.001,
        help="Lookback window in hours (defaults to the server's HISTORY_LOOKBACK_HOURS).",
    ),
) -> None:
    """List temperature and humidity history for the selected unit."""
    state = _get_state(ctx)
    render_history(state.client.get_history(state.config.unit_id, hours))


@app.command("summary")
def summary_command(ctx: typer.Context) -> None:
    """Show fleet-wide risk summary."""
    state = _get_state(ctx)
    render_summary(state.client.get_summary())
