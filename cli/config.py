from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_BASE_URL = "http://localhost:3000"
DEFAULT_TIMEOUT = 30.0
DEFAULT_SIMULATION_INTERVAL = 0.1

_BASE_URL_ENV = "API_BASE_URL"
_TIMEOUT_ENV = "CLI_HTTP_TIMEOUT"
_INTERVAL_ENV = "CLI_SIMULATION_INTERVAL"


@dataclass(frozen=True)
class CLIConfig:
    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_TIMEOUT
    simulation_interval: float = DEFAULT_SIMULATION_INTERVAL


def _read_float(value: Optional[str], default: float) -> float:
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


def load_config(
    base_url: Optional[str] = None,
    timeout: Optional[float] = None,
    simulation_interval: Optional[float] = None,
) -> CLIConfig:
    url = base_url or os.getenv(_BASE_URL_ENV) or DEFAULT_BASE_URL
    if timeout is None:
        timeout = _read_float(os.getenv(_TIMEOUT_ENV), DEFAULT_TIMEOUT)
    if simulation_interval is None:
        simulation_interval = _read_float(
            os.getenv(_INTERVAL_ENV), DEFAULT_SIMULATION_INTERVAL
        )
    return CLIConfig(
        base_url=url.rstrip("/"),
        timeout=timeout,
        simulation_interval=simulation_interval,
    )
