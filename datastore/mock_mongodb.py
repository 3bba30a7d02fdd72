from __future__ import annotations
import copy
import json
import math
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Optional, Set

from bson import ObjectId
from pymongo.errors import OperationFailure

EARTH_RADIUS_METERS = 6378100.0


def spherical_distance(
    longitude_a: float, latitude_a: float, longitude_b: float, latitude_b: float
) -> float:
    """Great-circle distance in meters between two lon/lat points."""

    phi_a = math.radians(latitude_a)
    phi_b = math.radians(latitude_b)
    delta_phi = phi_b - phi_a
    delta_lambda = math.radians(longitude_b - longitude_a)
    h = (
        math.sin(delta_phi / 2) ** 2
        + math.cos(phi_a) * math.cos(phi_b) * math.sin(delta_lambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_METERS * math.asin(min(1.0, math.sqrt(h)))


class MockDocumentCollection:
    """In-process stand-in for a MongoDB collection of GeoJSON documents."""

    def __init__(self, name: str, persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self._documents: Dict[str, Dict[str, Any]] = {}
        self._geo_indexes: Set[str] = set()
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def create_geo_index(self, field: str) -> None:
        with self._lock:
            self._geo_indexes.add(field)

    def insert_one(self, document: Dict[str, Any]) -> str:
        document_id = str(ObjectId())
        stored = copy.deepcopy(document)
        stored["_id"] = document_id
        with self._lock:
            self._documents[document_id] = stored
            self._persist()
        return document_id

    def find_one(self, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with self._lock:
            for document in self._documents.values():
                if all(document.get(key) == value for key, value in query.items()):
                    return copy.deepcopy(document)
        return None

    def find_nearest(
        self, field: str, longitude: float, latitude: float, max_distance: float
    ) -> Optional[Dict[str, Any]]:
        with self._lock:
            if field not in self._geo_indexes:
                raise OperationFailure(
                    f"unable to find index for $geoNear query on {field!r}", code=291
                )
            best: Optional[Dict[str, Any]] = None
            best_distance = math.inf
            for document in self._documents.values():
                point = document.get(field) or {}
                coordinates = point.get("coordinates")
                if not coordinates:
                    continue
                distance = spherical_distance(
                    longitude, latitude, coordinates[0], coordinates[1]
                )
                if distance <= max_distance and distance < best_distance:
                    best, best_distance = document, distance
            return copy.deepcopy(best) if best is not None else None

    def update_one(self, document_id: str, fields: Dict[str, Any]) -> int:
        with self._lock:
            document = self._documents.get(document_id)
            if document is None:
                return 0
            document.update(copy.deepcopy(fields))
            self._persist()
            return 1

    def close(self) -> None:
        """Nothing to release; kept for parity with the pymongo backend."""

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        self.persistence_path.write_text(
            json.dumps(self._documents, indent=2, sort_keys=True)
        )

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = {}

        for document_id, document in data.items():
            document["_id"] = document_id
            self._documents[document_id] = document
