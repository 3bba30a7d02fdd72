"""Sensor persistence and geospatial lookup over a document collection."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from bson import ObjectId
from pymongo.errors import PyMongoError

from datastore.mock_mongodb import MockDocumentCollection
from datastore.mongodb import MongoDocumentCollection
from models.records import GeoPoint, Sensor
from services.errors import InvalidInputError, NotFoundError, StorageError
from settings import get_settings

logger = logging.getLogger(__name__)

SENSORS_COLLECTION = "sensors"
LOCATION_FIELD = "location"


class DocumentCollection(Protocol):
    def create_geo_index(self, field: str) -> None: ...

    def insert_one(self, document: Dict[str, Any]) -> str: ...

    def find_one(self, query: Dict[str, Any]) -> Optional[Dict[str, Any]]: ...

    def find_nearest(
        self, field: str, longitude: float, latitude: float, max_distance: float
    ) -> Optional[Dict[str, Any]]: ...

    def update_one(self, document_id: str, fields: Dict[str, Any]) -> int: ...

    def close(self) -> None: ...


def _to_document(sensor: Sensor) -> Dict[str, Any]:
    return {
        "name": sensor.name,
        LOCATION_FIELD: sensor.location.to_document(),
        "tags": list(sensor.tags),
    }


def _from_document(document: Dict[str, Any]) -> Sensor:
    return Sensor(
        id=str(document["_id"]),
        name=document["name"],
        location=GeoPoint.from_document(document[LOCATION_FIELD]),
        tags=list(document.get("tags") or []),
    )


def _require_object_id(sensor_id: str) -> str:
    if not ObjectId.is_valid(sensor_id):
        raise InvalidInputError(f"{sensor_id!r} is not a valid sensor identifier.")
    return sensor_id


class SensorStore:
    """CRUD and nearest-neighbour search for sensors.

    The 2dsphere index on ``location`` is created once at construction;
    backends treat repeated creation as a no-op.
    """

    def __init__(self, collection: DocumentCollection) -> None:
        self.collection = collection
        try:
            self.collection.create_geo_index(LOCATION_FIELD)
        except PyMongoError as exc:
            raise StorageError("failed to create the location index") from exc

    def create_sensor(self, sensor: Sensor) -> Sensor:
        try:
            sensor_id = self.collection.insert_one(_to_document(sensor))
        except PyMongoError as exc:
            raise StorageError("failed to insert sensor") from exc
        sensor.id = sensor_id
        logger.info("sensor created", extra={"sensor_id": sensor_id})
        return sensor

    def get_sensor_by_id(self, sensor_id: str) -> Sensor:
        _require_object_id(sensor_id)
        document = self._find_one({"_id": sensor_id})
        if document is None:
            raise NotFoundError(f"Sensor {sensor_id!r} not found.")
        return _from_document(document)

    def get_sensor_by_name(self, name: str) -> Sensor:
        document = self._find_one({"name": name})
        if document is None:
            raise NotFoundError(f"Sensor named {name!r} not found.")
        return _from_document(document)

    def get_nearest_sensor(
        self, latitude: float, longitude: float, max_distance: float
    ) -> Optional[Sensor]:
        """Return the closest sensor within ``max_distance`` meters, or ``None``."""
        try:
            document = self.collection.find_nearest(
                LOCATION_FIELD, longitude, latitude, max_distance
            )
        except PyMongoError as exc:
            raise StorageError("failed to run nearest sensor query") from exc
        if document is None:
            return None
        return _from_document(document)

    def update_sensor(self, sensor_id: str, sensor: Sensor) -> Sensor:
        _require_object_id(sensor_id)
        try:
            matched = self.collection.update_one(sensor_id, _to_document(sensor))
        except PyMongoError as exc:
            raise StorageError("failed to update sensor") from exc
        if matched == 0:
            raise NotFoundError(f"Sensor {sensor_id!r} not found.")
        sensor.id = sensor_id
        return sensor

    def close(self) -> None:
        self.collection.close()

    def _find_one(self, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            return self.collection.find_one(query)
        except PyMongoError as exc:
            raise StorageError("failed to look up sensor") from exc


@lru_cache
def build_default_sensor_store() -> SensorStore:
    """Wire a sensor store from settings: pymongo when a URI is set, else the mock."""
    settings = get_settings()
    if settings.mongodb_uri:
        collection: DocumentCollection = MongoDocumentCollection.from_uri(
            settings.mongodb_uri, settings.mongodb_database, SENSORS_COLLECTION
        )
    else:
        path = settings.mock_mongodb_path
        collection = MockDocumentCollection(
            name=SENSORS_COLLECTION, persistence_path=Path(path) if path else None
        )
    return SensorStore(collection)
