from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv


_API_HOST_ENV = "API__HOST"
_API_PORT_ENV = "API__PORT"
_MONGODB_URI_ENV = "MONGODB__URI"
_MONGODB_DATABASE_ENV = "MONGODB__DATABASE"
_MOCK_MONGODB_PATH_ENV = "MOCK_MONGODB_PERSISTENCE_PATH"
_INFLUXDB_URL_ENV = "INFLUXDB__SERVER_URL"
_INFLUXDB_ORG_ENV = "INFLUXDB__ORG"
_INFLUXDB_BUCKET_ENV = "INFLUXDB__BUCKET"
_INFLUXDB_TOKEN_ENV = "INFLUXDB__TOKEN"
_MOCK_INFLUXDB_PATH_ENV = "MOCK_INFLUXDB_PERSISTENCE_PATH"
_LOG_LEVEL_ENV = "LOG_LEVEL"
_DEV_MODE_ENV = "DEV_MODE"


@dataclass(frozen=True)
class Settings:
    api_host: str
    api_port: int
    mongodb_uri: Optional[str]
    mongodb_database: str
    mock_mongodb_path: Optional[str]
    influxdb_url: Optional[str]
    influxdb_org: str
    influxdb_bucket: str
    influxdb_token: str
    mock_influxdb_path: Optional[str]
    log_level: str
    dev_mode: bool


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_port(default: int) -> int:
    value = os.getenv(_API_PORT_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if 0 < parsed < 65536 else default


def _read_bool_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if not candidate:
        return default
    return candidate in {"1", "true", "yes", "on"}


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    load_dotenv()
    return Settings(
        api_host=_read_str_env(_API_HOST_ENV, "0.0.0.0"),
        api_port=_read_port(3000),
        mongodb_uri=_read_optional_env(_MONGODB_URI_ENV, None),
        mongodb_database=_read_str_env(_MONGODB_DATABASE_ENV, "telemetry"),
        mock_mongodb_path=_read_optional_env(_MOCK_MONGODB_PATH_ENV, "./tmp/sensors.json"),
        influxdb_url=_read_optional_env(_INFLUXDB_URL_ENV, None),
        influxdb_org=_read_str_env(_INFLUXDB_ORG_ENV, "telemetry"),
        influxdb_bucket=_read_str_env(_INFLUXDB_BUCKET_ENV, "measurements"),
        influxdb_token=_read_str_env(_INFLUXDB_TOKEN_ENV, ""),
        mock_influxdb_path=_read_optional_env(
            _MOCK_INFLUXDB_PATH_ENV, "./tmp/measurements.json"
        ),
        log_level=_read_log_level("INFO"),
        dev_mode=_read_bool_env(_DEV_MODE_ENV, False),
    )
