from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import List, Optional
from uuid import uuid4

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_measurement, render_sensor, render_summary

MIN_TEMPERATURE = 15.0
MAX_TEMPERATURE = 45.0


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the sensor telemetry service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Telemetry API base URL (defaults to API_BASE_URL env or http://localhost:3000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="HTTP timeout in seconds.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("create-sensor")
def create_sensor_command(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Sensor name."),
    longitude: float = typer.Option(..., "--longitude", min=-180.0, max=180.0),
    latitude: float = typer.Option(..., "--latitude", min=-90.0, max=90.0),
    tags: List[str] = typer.Option(..., "--tag", "-t", help="Tag; repeat for several."),
) -> None:
    """Register a sensor."""
    state = _get_state(ctx)
    payload = state.client.create_sensor(name, longitude, latitude, list(tags))
    typer.secho(f"Sensor created. id={payload.get('id')}", fg=typer.colors.GREEN)
    render_sensor(payload)


@app.command("get-sensor")
def get_sensor_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Sensor identifier."),
) -> None:
    """Show a sensor by identifier."""
    render_sensor(_get_state(ctx).client.get_sensor(sensor_id))


@app.command("find-sensor")
def find_sensor_command(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Sensor name."),
) -> None:
    """Show a sensor by name."""
    render_sensor(_get_state(ctx).client.find_sensor(name))


@app.command("nearest")
def nearest_command(
    ctx: typer.Context,
    latitude: float = typer.Option(..., "--latitude", min=-90.0, max=90.0),
    longitude: float = typer.Option(..., "--longitude", min=-180.0, max=180.0),
    max_distance: float = typer.Option(
        ..., "--max-distance", min=0.0, help="Search radius in meters."
    ),
) -> None:
    """Find the closest sensor to a point."""
    payload = _get_state(ctx).client.nearest_sensor(latitude, longitude, max_distance)
    if payload is None:
        typer.secho("No sensor found within the specified distance.", fg=typer.colors.YELLOW)
        raise typer.Exit(code=1)
    render_sensor(payload)


@app.command("record")
def record_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Sensor identifier."),
    name: str = typer.Option(..., "--name", help="Metric name, e.g. temperature."),
    unit: str = typer.Option(..., "--unit"),
    value: float = typer.Option(..., "--value"),
) -> None:
    """Append a measurement to a sensor."""
    payload = _get_state(ctx).client.record_measurement(sensor_id, name, unit, value)
    render_measurement(payload)


@app.command("summary")
def summary_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Sensor identifier."),
    measurement: str = typer.Option(..., "--measurement"),
    unit: str = typer.Option(..., "--unit"),
    start: str = typer.Option(..., "--start", help="RFC 3339 timestamp."),
    end: str = typer.Option(..., "--end", help="RFC 3339 timestamp."),
) -> None:
    """Summarize a sensor's measurements over a time range."""
    payload = _get_state(ctx).client.get_summary(sensor_id, measurement, unit, start, end)
    render_summary(payload)


@app.command("simulate")
def simulate_command(
    ctx: typer.Context,
    count: int = typer.Option(0, "--count", min=0, help="Measurements to post; 0 runs forever."),
    interval: Optional[float] = typer.Option(
        None, "--interval", help="Seconds between measurements."
    ),
    seed: Optional[int] = typer.Option(None, "--seed", help="Random seed."),
) -> None:
    """Act as a fake temperature sensor posting readings in Celsius."""
    state = _get_state(ctx)
    rng = random.Random(seed)
    delay = interval if interval is not None else state.config.simulation_interval

    typer.echo("Creating sensor...")
    sensor = state.client.create_sensor(
        f"sensor-{uuid4().hex[:8]}",
        round(rng.uniform(-180.0, 180.0), 6),
        round(rng.uniform(-90.0, 90.0), 6),
        ["simulated", "temperature"],
    )
    typer.secho(f"Sensor created. id={sensor['id']}", fg=typer.colors.GREEN)

    posted = 0
    while count == 0 or posted < count:
        temperature = MIN_TEMPERATURE + rng.random() * (MAX_TEMPERATURE - MIN_TEMPERATURE)
        measurement = state.client.record_measurement(
            sensor["id"], "temperature", "Celsius", temperature
        )
        posted += 1
        typer.echo(f"Measurement posted: {measurement.get('value'):.2f} {measurement.get('unit')}")
        if count == 0 or posted < count:
            time.sleep(delay)
