from __future__ import annotations

from typing import Iterable, Iterator

import pytest

from datastore.mock_mongodb import MockDocumentCollection
from services.measurements import build_default_measurement_store
from services.sensors import build_default_sensor_store
from settings import get_settings
from storage.influxdb import InfluxTimeSeriesBucket
from storage.mock_influxdb import MockTimeSeriesBucket

_CACHES = (get_settings, build_default_sensor_store, build_default_measurement_store)


def _clear_caches(caches: Iterable) -> None:
    for cache in caches:
        cache.cache_clear()


@pytest.fixture(autouse=True)
def fresh_caches(monkeypatch) -> Iterator[None]:
    for name in ("MONGODB__URI", "INFLUXDB__SERVER_URL", "API__PORT", "DEV_MODE", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    _clear_caches(_CACHES)
    yield
    _clear_caches(_CACHES)


def test_environment_overrides_apply(monkeypatch, tmp_path) -> None:
    sensors_path = tmp_path / "sensors.json"
    measurements_path = tmp_path / "measurements.json"

    monkeypatch.setenv("MOCK_MONGODB_PERSISTENCE_PATH", str(sensors_path))
    monkeypatch.setenv("MOCK_INFLUXDB_PERSISTENCE_PATH", str(measurements_path))
    monkeypatch.setenv("INFLUXDB__BUCKET", "custom-bucket")
    monkeypatch.setenv("API__PORT", "8080")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("DEV_MODE", "true")

    settings = get_settings()
    sensor_store = build_default_sensor_store()
    measurement_store = build_default_measurement_store()

    assert settings.api_port == 8080
    assert settings.log_level == "DEBUG"
    assert settings.dev_mode is True
    assert isinstance(sensor_store.collection, MockDocumentCollection)
    assert sensor_store.collection.persistence_path == sensors_path
    assert isinstance(measurement_store.bucket, MockTimeSeriesBucket)
    assert measurement_store.bucket.name == "custom-bucket"
    assert measurement_store.bucket.persistence_path == measurements_path


def test_invalid_values_fall_back_to_defaults(monkeypatch) -> None:
    monkeypatch.setenv("API__PORT", "not-a-port")
    monkeypatch.setenv("MONGODB__DATABASE", "   ")

    settings = get_settings()

    assert settings.api_port == 3000
    assert settings.mongodb_database == "telemetry"
    assert settings.api_host == "0.0.0.0"


def test_mongodb_uri_selects_pymongo_backend(monkeypatch) -> None:
    calls = []

    def fake_from_uri(uri: str, database: str, name: str) -> MockDocumentCollection:
        calls.append((uri, database, name))
        return MockDocumentCollection(name=name)

    monkeypatch.setenv("MONGODB__URI", "mongodb://db:27017")
    monkeypatch.setenv("MONGODB__DATABASE", "fleet")
    monkeypatch.setattr("services.sensors.MongoDocumentCollection.from_uri", fake_from_uri)

    build_default_sensor_store()

    assert calls == [("mongodb://db:27017", "fleet", "sensors")]


def test_influxdb_url_selects_influx_backend(monkeypatch) -> None:
    monkeypatch.setenv("INFLUXDB__SERVER_URL", "http://influx:8086")
    monkeypatch.setenv("INFLUXDB__ORG", "acme")
    monkeypatch.setenv("INFLUXDB__TOKEN", "secret")

    store = build_default_measurement_store()
    try:
        assert isinstance(store.bucket, InfluxTimeSeriesBucket)
        assert store.bucket.org == "acme"
        assert store.bucket.name == "measurements"
    finally:
        store.close()
