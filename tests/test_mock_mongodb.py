"""Unit tests for the mock document collection."""

from __future__ import annotations

import json

import pytest
from bson import ObjectId
from pymongo.errors import OperationFailure

from datastore.mock_mongodb import MockDocumentCollection, spherical_distance


def _sensor_document(name: str, longitude: float, latitude: float) -> dict:
    return {
        "name": name,
        "location": {"type": "Point", "coordinates": [longitude, latitude]},
        "tags": ["a"],
    }


def test_insert_assigns_object_id_and_find_returns_deep_copy() -> None:
    collection = MockDocumentCollection(name="sensors")

    document_id = collection.insert_one(_sensor_document("s1", 1.0, 1.0))

    assert ObjectId.is_valid(document_id)
    fetched = collection.find_one({"_id": document_id})
    assert fetched is not None
    assert fetched["name"] == "s1"

    fetched["tags"].append("mutated")
    again = collection.find_one({"_id": document_id})
    assert again is not None
    assert again["tags"] == ["a"]


def test_find_one_by_name_and_missing() -> None:
    collection = MockDocumentCollection(name="sensors")
    collection.insert_one(_sensor_document("alpha", 1.0, 1.0))

    assert collection.find_one({"name": "alpha"}) is not None
    assert collection.find_one({"name": "beta"}) is None


def test_find_nearest_requires_geo_index() -> None:
    collection = MockDocumentCollection(name="sensors")
    collection.insert_one(_sensor_document("s1", 1.0, 1.0))

    with pytest.raises(OperationFailure):
        collection.find_nearest("location", 1.0, 1.0, 1000.0)


def test_find_nearest_picks_closest_within_distance() -> None:
    collection = MockDocumentCollection(name="sensors")
    collection.create_geo_index("location")
    collection.create_geo_index("location")
    collection.insert_one(_sensor_document("far", 10.0, 10.0))
    collection.insert_one(_sensor_document("near", 1.0, 1.0))

    nearest = collection.find_nearest("location", 0.9, 0.9, 50_000.0)
    assert nearest is not None
    assert nearest["name"] == "near"

    assert collection.find_nearest("location", 0.9, 0.9, 1_000.0) is None


def test_spherical_distance_matches_known_values() -> None:
    assert spherical_distance(0.0, 0.0, 0.0, 0.0) == 0.0
    one_degree = spherical_distance(0.0, 0.0, 1.0, 0.0)
    assert one_degree == pytest.approx(111_319.5, rel=1e-3)


def test_update_one_reports_matches() -> None:
    collection = MockDocumentCollection(name="sensors")
    document_id = collection.insert_one(_sensor_document("s1", 1.0, 1.0))

    assert collection.update_one(document_id, {"name": "renamed"}) == 1
    assert collection.update_one(str(ObjectId()), {"name": "ghost"}) == 0

    updated = collection.find_one({"_id": document_id})
    assert updated is not None
    assert updated["name"] == "renamed"


def test_persists_to_disk_and_reloads(tmp_path) -> None:
    path = tmp_path / "sensors.json"
    collection = MockDocumentCollection(name="sensors", persistence_path=path)
    document_id = collection.insert_one(_sensor_document("s1", 2.0, 3.0))

    payload = json.loads(path.read_text())
    assert payload[document_id]["name"] == "s1"

    reloaded = MockDocumentCollection(name="sensors", persistence_path=path)
    document = reloaded.find_one({"_id": document_id})
    assert document is not None
    assert document["location"]["coordinates"] == [2.0, 3.0]
