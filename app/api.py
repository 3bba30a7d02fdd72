"""HTTP route definitions for the service."""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query, Request, status

from app.errors import ApiError, ParseError, validate_payload
from app.schemas import (
    ErrorResponse,
    MeasurementPayload,
    MeasurementResponse,
    MeasurementSummaryResponse,
    SensorPayload,
    SensorResponse,
)
from models.records import Sensor
from services.errors import InvalidInputError, NotFoundError, QueryError, StorageError
from services.measurements import MeasurementStore
from services.sensors import SensorStore

logger = logging.getLogger(__name__)

router = APIRouter()

_ERROR_RESPONSES: Dict[int | str, Dict[str, Any]] = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
}


def get_sensor_store(request: Request) -> SensorStore:
    return request.app.state.sensor_store


def get_measurement_store(request: Request) -> MeasurementStore:
    return request.app.state.measurement_store


def _store_failure(message: str, exc: Exception, **context: Any) -> ApiError:
    logger.error(message, exc_info=exc, extra=context)
    return ApiError(message, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


def _lookup_sensor(sensors: SensorStore, sensor_id: str) -> Sensor:
    try:
        return sensors.get_sensor_by_id(sensor_id)
    except InvalidInputError as exc:
        raise ApiError("invalid sensor id", status_code=status.HTTP_400_BAD_REQUEST) from exc
    except NotFoundError as exc:
        raise ApiError("sensor not found", status_code=status.HTTP_404_NOT_FOUND) from exc
    except StorageError as exc:
        raise _store_failure("failed to get sensor", exc, sensor_id=sensor_id) from exc


def _parse_float(name: str, raw: Optional[str]) -> float:
    try:
        value = float((raw or "").strip())
    except ValueError as exc:
        raise ParseError(f"failed to parse {name}") from exc
    if not math.isfinite(value):
        raise ParseError(f"failed to parse {name}")
    return value


def parse_timestamp(name: str, raw: str) -> datetime:
    """Parse an RFC 3339 timestamp such as ``2024-01-01T00:00:00Z``."""

    candidate = raw.strip()
    if candidate.endswith(("Z", "z")):
        candidate = candidate[:-1] + "+00:00"

    try:
        if "T" not in candidate.upper():
            raise ValueError("missing date/time separator")
        parsed = datetime.fromisoformat(candidate)
        if parsed.tzinfo is None:
            raise ValueError("missing UTC offset")
    except ValueError as exc:
        raise ParseError(f"failed to parse {name} query parameter") from exc
    return parsed


@router.post(
    "/sensors",
    status_code=status.HTTP_201_CREATED,
    response_model=SensorResponse,
    responses=_ERROR_RESPONSES,
    summary="Register a new sensor.",
)
def create_sensor(
    payload: Dict[str, Any] = Body(...),
    sensors: SensorStore = Depends(get_sensor_store),
) -> SensorResponse:
    request = validate_payload(SensorPayload, payload, "invalid sensor")
    try:
        sensor = sensors.create_sensor(request.to_sensor())
    except StorageError as exc:
        raise _store_failure("failed to create sensor", exc) from exc
    return SensorResponse.from_sensor(sensor)


@router.get(
    "/sensors/nearest",
    response_model=SensorResponse,
    responses=_ERROR_RESPONSES,
    summary="Find the closest sensor within a distance in meters.",
)
def get_nearest_sensor(
    latitude: Optional[str] = Query(None),
    longitude: Optional[str] = Query(None),
    max_distance: Optional[str] = Query(None, alias="maxDistance"),
    sensors: SensorStore = Depends(get_sensor_store),
) -> SensorResponse:
    lat = _parse_float("latitude", latitude)
    lon = _parse_float("longitude", longitude)
    distance = _parse_float("maxDistance", max_distance)
    if not -90.0 <= lat <= 90.0:
        raise ParseError("latitude must be between -90 and 90")
    if not -180.0 <= lon <= 180.0:
        raise ParseError("longitude must be between -180 and 180")
    if distance < 0:
        raise ParseError("maxDistance must not be negative")

    try:
        sensor = sensors.get_nearest_sensor(lat, lon, distance)
    except StorageError as exc:
        raise _store_failure("failed to get nearest sensor", exc) from exc
    if sensor is None:
        raise ApiError(
            "no sensor found within the specified distance",
            status_code=status.HTTP_404_NOT_FOUND,
        )
    return SensorResponse.from_sensor(sensor)


@router.get(
    "/sensors/name/{name}",
    response_model=SensorResponse,
    responses=_ERROR_RESPONSES,
    summary="Look a sensor up by name.",
)
def get_sensor_by_name(
    name: str,
    sensors: SensorStore = Depends(get_sensor_store),
) -> SensorResponse:
    try:
        sensor = sensors.get_sensor_by_name(name)
    except NotFoundError as exc:
        raise ApiError("sensor not found", status_code=status.HTTP_404_NOT_FOUND) from exc
    except StorageError as exc:
        raise _store_failure("failed to get sensor", exc) from exc
    return SensorResponse.from_sensor(sensor)


@router.get(
    "/sensors/{sensor_id}",
    response_model=SensorResponse,
    responses=_ERROR_RESPONSES,
    summary="Look a sensor up by identifier.",
)
def get_sensor_by_id(
    sensor_id: str,
    sensors: SensorStore = Depends(get_sensor_store),
) -> SensorResponse:
    return SensorResponse.from_sensor(_lookup_sensor(sensors, sensor_id))


@router.put(
    "/sensors/{sensor_id}",
    response_model=SensorResponse,
    responses=_ERROR_RESPONSES,
    summary="Replace a sensor's name, location and tags.",
)
def update_sensor(
    sensor_id: str,
    payload: Dict[str, Any] = Body(...),
    sensors: SensorStore = Depends(get_sensor_store),
) -> SensorResponse:
    request = validate_payload(SensorPayload, payload, "invalid sensor")
    try:
        sensor = sensors.update_sensor(sensor_id, request.to_sensor())
    except InvalidInputError as exc:
        raise ApiError("invalid sensor id", status_code=status.HTTP_400_BAD_REQUEST) from exc
    except NotFoundError as exc:
        raise ApiError("sensor not found", status_code=status.HTTP_404_NOT_FOUND) from exc
    except StorageError as exc:
        raise _store_failure("failed to update sensor", exc, sensor_id=sensor_id) from exc
    return SensorResponse.from_sensor(sensor)


@router.post(
    "/sensors/{sensor_id}/measurements",
    status_code=status.HTTP_201_CREATED,
    response_model=MeasurementResponse,
    responses=_ERROR_RESPONSES,
    summary="Append a measurement to a sensor.",
)
def create_measurement(
    sensor_id: str,
    payload: Dict[str, Any] = Body(...),
    sensors: SensorStore = Depends(get_sensor_store),
    measurements: MeasurementStore = Depends(get_measurement_store),
) -> MeasurementResponse:
    request = validate_payload(MeasurementPayload, payload, "invalid measurement")
    sensor = _lookup_sensor(sensors, sensor_id)
    assert sensor.id is not None

    try:
        measurement = measurements.create_measurement(request.to_measurement(sensor.id))
    except StorageError as exc:
        raise _store_failure(
            "failed to create measurement", exc, sensor_id=sensor.id
        ) from exc
    return MeasurementResponse.from_measurement(measurement)


@router.get(
    "/sensors/{sensor_id}/measurements/summary",
    response_model=MeasurementSummaryResponse,
    responses=_ERROR_RESPONSES,
    summary="Summarize a sensor's measurements over a time range.",
)
def get_measurement_summary(
    sensor_id: str,
    measurement: Optional[str] = Query(None),
    unit: Optional[str] = Query(None),
    start: Optional[str] = Query(None, description="RFC 3339 timestamp."),
    end: Optional[str] = Query(None, description="RFC 3339 timestamp."),
    sensors: SensorStore = Depends(get_sensor_store),
    measurements: MeasurementStore = Depends(get_measurement_store),
) -> MeasurementSummaryResponse:
    sensor = _lookup_sensor(sensors, sensor_id)
    assert sensor.id is not None

    if not measurement:
        raise ParseError("measurement query parameter is required")
    if not unit:
        raise ParseError("unit query parameter is required")
    if not start or not end:
        raise ParseError("start and end query parameters are required")

    start_time = parse_timestamp("start", start)
    end_time = parse_timestamp("end", end)
    # Rejected here as a client error; the store raises QueryError for the same range.
    if start_time >= end_time:
        raise ParseError("start must be before end")

    try:
        summary = measurements.get_measurement_summary(
            sensor.id, measurement, unit, start_time, end_time
        )
    except QueryError as exc:
        raise _store_failure(
            "failed to get measurement summary",
            exc,
            sensor_id=sensor.id,
            measurement=measurement,
            unit=unit,
        ) from exc
    return MeasurementSummaryResponse.from_summary(summary)


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
