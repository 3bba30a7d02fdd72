from __future__ import annotations

from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
import typer

from cli.config import CLIConfig


def _segment(value: str) -> str:
    return quote(value, safe="")


class ApiClient:
    """Minimal HTTP client for the telemetry service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def create_sensor(
        self, name: str, longitude: float, latitude: float, tags: List[str]
    ) -> Dict[str, Any]:
        body = {
            "name": name,
            "location": {"longitude": longitude, "latitude": latitude},
            "tags": tags,
        }
        return self._request("POST", "/sensors", json=body)

    def get_sensor(self, sensor_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/sensors/{_segment(sensor_id)}")

    def find_sensor(self, name: str) -> Dict[str, Any]:
        return self._request("GET", f"/sensors/name/{_segment(name)}")

    def nearest_sensor(
        self, latitude: float, longitude: float, max_distance: float
    ) -> Optional[Dict[str, Any]]:
        params = {
            "latitude": latitude,
            "longitude": longitude,
            "maxDistance": max_distance,
        }
        response = self._client.get("/sensors/nearest", params=params)
        if response.status_code == 404:
            return None
        return self._decode(response)

    def record_measurement(
        self, sensor_id: str, name: str, unit: str, value: float
    ) -> Dict[str, Any]:
        body = {"name": name, "unit": unit, "value": value}
        return self._request("POST", f"/sensors/{_segment(sensor_id)}/measurements", json=body)

    def get_summary(
        self, sensor_id: str, measurement: str, unit: str, start: str, end: str
    ) -> Dict[str, Any]:
        params = {"measurement": measurement, "unit": unit, "start": start, "end": end}
        return self._request(
            "GET", f"/sensors/{_segment(sensor_id)}/measurements/summary", params=params
        )

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        response = self._client.request(method, path, **kwargs)
        return self._decode(response)

    def _decode(self, response: httpx.Response) -> Dict[str, Any]:
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("error")
            details = data.get("details") or {}
            if details:
                fields = ", ".join(f"{key}: {value}" for key, value in details.items())
                detail = f"{detail} ({fields})"
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
