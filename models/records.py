"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass(slots=True)
class GeoPoint:
    """GeoJSON point; coordinates are always ``[longitude, latitude]``."""

    longitude: float
    latitude: float

    def to_document(self) -> Dict[str, Any]:
        return {"type": "Point", "coordinates": [self.longitude, self.latitude]}

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "GeoPoint":
        longitude, latitude = document["coordinates"][:2]
        return cls(longitude=float(longitude), latitude=float(latitude))


@dataclass(slots=True)
class Sensor:
    """A named, geolocated source of measurements."""

    name: str
    location: GeoPoint
    tags: List[str] = field(default_factory=list)
    id: Optional[str] = None


@dataclass(slots=True)
class Measurement:
    """One numeric sample tied to a sensor and a unit."""

    name: str
    sensor_id: str
    unit: str
    value: float
    timestamp: Optional[datetime] = None


@dataclass
class MeasurementSummary:
    """Aggregate statistics over a sensor's measurements in a time window."""

    min_value: float = 0.0
    max_value: float = 0.0
    mean_value: float = 0.0
    median_value: float = 0.0
    unit: str = ""
    count: int = 0
