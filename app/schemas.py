"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_core import PydanticCustomError

from models.records import GeoPoint, Measurement, MeasurementSummary, Sensor


def _blank() -> PydanticCustomError:
    return PydanticCustomError("required", "cannot be blank")


def _check_bounds(value: float, low: float, high: float) -> float:
    if value == 0:
        raise _blank()
    if value < low:
        raise PydanticCustomError("min", "must be no less than {low}", {"low": low})
    if value > high:
        raise PydanticCustomError("max", "must be no greater than {high}", {"high": high})
    return value


class LocationPayload(BaseModel):
    """Inbound location; zero coordinates count as missing."""

    model_config = ConfigDict(validate_default=True, allow_inf_nan=False)

    longitude: float = 0.0
    latitude: float = 0.0

    @field_validator("longitude")
    @classmethod
    def _longitude_in_range(cls, value: float) -> float:
        return _check_bounds(value, -180.0, 180.0)

    @field_validator("latitude")
    @classmethod
    def _latitude_in_range(cls, value: float) -> float:
        return _check_bounds(value, -90.0, 90.0)


class SensorPayload(BaseModel):
    """Body of POST /sensors and PUT /sensors/{id}. A client ``id`` is ignored."""

    model_config = ConfigDict(validate_default=True)

    id: Optional[Any] = None
    name: str = ""
    # A missing location validates as a zero location so each coordinate is flagged.
    location: Optional[LocationPayload] = Field(default_factory=dict)
    tags: List[str] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _name_required(cls, value: str) -> str:
        if not value.strip():
            raise _blank()
        return value

    @field_validator("location")
    @classmethod
    def _location_required(cls, value: Optional[LocationPayload]) -> LocationPayload:
        if value is None:
            raise _blank()
        return value

    @field_validator("tags")
    @classmethod
    def _tags_required(cls, value: List[str]) -> List[str]:
        if not value:
            raise _blank()
        return value

    def to_sensor(self) -> Sensor:
        assert self.location is not None
        return Sensor(
            name=self.name,
            location=GeoPoint(
                longitude=self.location.longitude, latitude=self.location.latitude
            ),
            tags=list(self.tags),
        )


class MeasurementPayload(BaseModel):
    """Body of POST /sensors/{id}/measurements.

    ``sensor_id`` and ``timestamp`` are accepted but ignored: the sensor comes
    from the path and the timestamp is assigned at write time.
    """

    model_config = ConfigDict(validate_default=True, allow_inf_nan=False)

    name: str = ""
    sensor_id: Optional[Any] = None
    unit: str = ""
    value: Optional[float] = None
    timestamp: Optional[Any] = None

    @field_validator("name", "unit")
    @classmethod
    def _text_required(cls, value: str) -> str:
        if not value.strip():
            raise _blank()
        return value

    @field_validator("value")
    @classmethod
    def _value_required(cls, value: Optional[float]) -> float:
        if value is None:
            raise _blank()
        return value

    def to_measurement(self, sensor_id: str) -> Measurement:
        assert self.value is not None
        return Measurement(
            name=self.name, sensor_id=sensor_id, unit=self.unit, value=self.value
        )


class Location(BaseModel):
    longitude: float
    latitude: float


class SensorResponse(BaseModel):
    id: str
    name: str
    location: Location
    tags: List[str]

    @classmethod
    def from_sensor(cls, sensor: Sensor) -> "SensorResponse":
        return cls(
            id=sensor.id or "",
            name=sensor.name,
            location=Location(
                longitude=sensor.location.longitude, latitude=sensor.location.latitude
            ),
            tags=list(sensor.tags),
        )


class MeasurementResponse(BaseModel):
    name: str
    sensor_id: str
    unit: str
    value: float
    timestamp: datetime

    @classmethod
    def from_measurement(cls, measurement: Measurement) -> "MeasurementResponse":
        assert measurement.timestamp is not None
        return cls(
            name=measurement.name,
            sensor_id=measurement.sensor_id,
            unit=measurement.unit,
            value=measurement.value,
            timestamp=measurement.timestamp,
        )


class MeasurementSummaryResponse(BaseModel):
    """Summary statistics; the median is published under ``average_value``."""

    model_config = ConfigDict(populate_by_name=True)

    min_value: float = 0.0
    max_value: float = 0.0
    median_value: float = Field(default=0.0, serialization_alias="average_value")
    mean_value: float = 0.0
    unit: str = ""
    count: int = Field(default=0, ge=0)

    @classmethod
    def from_summary(cls, summary: MeasurementSummary) -> "MeasurementSummaryResponse":
        return cls(
            min_value=summary.min_value,
            max_value=summary.max_value,
            median_value=summary.median_value,
            mean_value=summary.mean_value,
            unit=summary.unit,
            count=summary.count,
        )


class ErrorResponse(BaseModel):
    error: str
    details: Optional[Dict[str, str]] = None
