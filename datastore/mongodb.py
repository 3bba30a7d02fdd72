from __future__ import annotations

from typing import Any, Dict, Optional

from bson import ObjectId
from pymongo import GEOSPHERE, MongoClient


class MongoDocumentCollection:
    """pymongo-backed collection exposing the same surface as the mock."""

    def __init__(self, client: MongoClient, database: str, name: str) -> None:
        self.name = name
        self._client = client
        self._collection = client[database][name]

    @classmethod
    def from_uri(cls, uri: str, database: str, name: str) -> "MongoDocumentCollection":
        return cls(MongoClient(uri, tz_aware=True), database, name)

    def create_geo_index(self, field: str) -> None:
        self._collection.create_index([(field, GEOSPHERE)])

    def insert_one(self, document: Dict[str, Any]) -> str:
        result = self._collection.insert_one(dict(document))
        return str(result.inserted_id)

    def find_one(self, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if "_id" in query:
            query = {**query, "_id": ObjectId(query["_id"])}
        return self._normalize(self._collection.find_one(query))

    def find_nearest(
        self, field: str, longitude: float, latitude: float, max_distance: float
    ) -> Optional[Dict[str, Any]]:
        document = self._collection.find_one(
            {
                field: {
                    "$near": {
                        "$geometry": {"type": "Point", "coordinates": [longitude, latitude]},
                        "$maxDistance": max_distance,
                    }
                }
            }
        )
        return self._normalize(document)

    def update_one(self, document_id: str, fields: Dict[str, Any]) -> int:
        result = self._collection.update_one(
            {"_id": ObjectId(document_id)}, {"$set": dict(fields)}
        )
        return result.matched_count

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def _normalize(document: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if document is None:
            return None
        document["_id"] = str(document["_id"])
        return document
