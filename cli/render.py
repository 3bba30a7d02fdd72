from __future__ import annotations

from typing import Any, Dict, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_sensor(payload: Dict[str, Any]) -> None:
    echo_heading("Sensor")
    location = payload.get("location") or {}
    echo_key_values(
        [
            ("id", payload.get("id")),
            ("name", payload.get("name")),
            ("longitude", location.get("longitude")),
            ("latitude", location.get("latitude")),
            ("tags", ", ".join(payload.get("tags") or [])),
        ]
    )


def render_measurement(payload: Dict[str, Any]) -> None:
    echo_heading("Measurement")
    echo_key_values(
        [
            ("sensor_id", payload.get("sensor_id")),
            ("name", payload.get("name")),
            ("value", payload.get("value")),
            ("unit", payload.get("unit")),
            ("timestamp", payload.get("timestamp")),
        ]
    )


def render_summary(payload: Dict[str, Any]) -> None:
    echo_heading("Measurement Summary")
    if not payload.get("count"):
        typer.echo("No measurements found for the specified time range.")
        return
    echo_key_values(
        [
            ("count", payload.get("count")),
            ("unit", payload.get("unit")),
            ("min_value", payload.get("min_value")),
            ("max_value", payload.get("max_value")),
            ("mean_value", payload.get("mean_value")),
            ("median_value", payload.get("average_value")),
        ]
    )
