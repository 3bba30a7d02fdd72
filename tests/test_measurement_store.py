"""Tests for measurement writes and summary assembly."""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone
from typing import List

import pytest
from influxdb_client.client.exceptions import InfluxDBError
from influxdb_client.rest import ApiException

from models.records import Measurement, MeasurementSummary
from services.errors import QueryError, StorageError
from services.measurements import SUMMARY_PASSES, MeasurementStore
from storage.mock_influxdb import MockTimeSeriesBucket
from storage.timeseries import AggregateQuery, Reducer, ResultRow, TimeSeriesPoint

UTC = timezone.utc


class FixedClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now


class StubBucket:
    def __init__(self, rows: List[ResultRow] | None = None, error: Exception | None = None) -> None:
        self.rows = rows or []
        self.error = error
        self.queries: List[AggregateQuery] = []

    def write_point(self, point: TimeSeriesPoint) -> None:
        if self.error is not None:
            raise self.error

    def query(self, query: AggregateQuery) -> List[ResultRow]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return self.rows

    def close(self) -> None:
        pass


def _measurement(value: float, sensor_id: str = "sensor-1") -> Measurement:
    return Measurement(name="temperature", sensor_id=sensor_id, unit="celsius", value=value)


def test_create_measurement_stamps_server_time() -> None:
    clock = FixedClock(datetime(2024, 5, 1, 12, 30, tzinfo=UTC))
    store = MeasurementStore(MockTimeSeriesBucket(name="m"), clock=clock)
    measurement = _measurement(15.3)
    measurement.timestamp = datetime(1999, 1, 1, tzinfo=UTC)

    written = store.create_measurement(measurement)

    assert written.timestamp == clock.now


def test_summary_combines_daily_windows() -> None:
    clock = FixedClock(datetime(2024, 1, 1, 8, tzinfo=UTC))
    store = MeasurementStore(MockTimeSeriesBucket(name="m"), clock=clock)
    for when, value in [
        (datetime(2024, 1, 1, 8, tzinfo=UTC), 10.0),
        (datetime(2024, 1, 1, 20, tzinfo=UTC), 20.0),
        (datetime(2024, 1, 2, 9, tzinfo=UTC), 40.0),
    ]:
        clock.now = when
        store.create_measurement(_measurement(value))

    summary = store.get_measurement_summary(
        "sensor-1",
        "temperature",
        "celsius",
        datetime(2024, 1, 1, tzinfo=UTC),
        datetime(2024, 1, 3, tzinfo=UTC),
    )

    assert summary.count == 3
    assert summary.min_value == 10.0
    assert summary.max_value == 40.0
    # Mean of the daily means (15 and 40), not the flat mean of all samples.
    assert summary.mean_value == pytest.approx(27.5)
    assert summary.median_value == pytest.approx(27.5)
    assert summary.unit == "celsius"


def test_summary_of_ten_random_measurements() -> None:
    store = MeasurementStore(MockTimeSeriesBucket(name="m"))
    rng = random.Random(7)
    for _ in range(10):
        store.create_measurement(_measurement(15 + rng.random() * (45 - 15), "fresh"))

    now = datetime.now(UTC)
    summary = store.get_measurement_summary(
        "fresh", "temperature", "celsius", now - timedelta(hours=1), now + timedelta(hours=1)
    )

    assert summary.count == 10
    assert 15.0 <= summary.min_value <= summary.max_value <= 45.0
    assert 15.0 <= summary.mean_value <= 45.0
    assert 15.0 <= summary.median_value <= 45.0
    assert summary.unit == "celsius"


def test_summary_with_no_matches_is_all_zero() -> None:
    store = MeasurementStore(MockTimeSeriesBucket(name="m"))
    now = datetime.now(UTC)

    summary = store.get_measurement_summary(
        "nobody", "temperature", "celsius", now - timedelta(hours=1), now
    )

    assert summary == MeasurementSummary()


@pytest.mark.parametrize("offset", [timedelta(0), timedelta(hours=-1)])
def test_summary_rejects_empty_or_inverted_range(offset: timedelta) -> None:
    bucket = StubBucket()
    store = MeasurementStore(bucket)
    start = datetime(2024, 1, 1, tzinfo=UTC)

    with pytest.raises(QueryError, match="empty range"):
        store.get_measurement_summary("s", "temperature", "celsius", start, start + offset)
    assert bucket.queries == []


def test_summary_query_plan_has_five_named_passes() -> None:
    store = MeasurementStore(StubBucket())
    query = store.build_summary_query(
        "s1",
        "temperature",
        "celsius",
        datetime(2024, 1, 1, tzinfo=UTC),
        datetime(2024, 1, 2, tzinfo=UTC),
    )

    assert [(p.name, p.reducer) for p in query.passes] == [
        ("mean", Reducer.mean),
        ("median", Reducer.median),
        ("count", Reducer.count),
        ("min", Reducer.min),
        ("max", Reducer.max),
    ]
    assert query.passes[0].every == timedelta(days=1)
    assert query.passes[3].every is None
    assert query.tags == {"sensor_id": "s1", "unit": "celsius"}
    assert query.passes == list(SUMMARY_PASSES)


def test_unknown_result_label_is_a_query_error() -> None:
    rows = [ResultRow(result="average", value=1.0, tags={"unit": "celsius"})]
    store = MeasurementStore(StubBucket(rows=rows))
    start = datetime(2024, 1, 1, tzinfo=UTC)

    with pytest.raises(QueryError, match="unexpected result name: average"):
        store.get_measurement_summary("s", "t", "celsius", start, start + timedelta(days=1))


def test_unexpected_value_type_is_a_query_error() -> None:
    with pytest.raises(QueryError, match="count"):
        MeasurementStore.assemble_summary([ResultRow(result="count", value=2.5)])
    with pytest.raises(QueryError, match="min"):
        MeasurementStore.assemble_summary([ResultRow(result="min", value="cold")])


def test_unit_is_taken_from_first_row_that_has_one() -> None:
    summary = MeasurementStore.assemble_summary(
        [
            ResultRow(result="count", value=2),
            ResultRow(result="min", value=1.0, tags={"unit": "kelvin"}),
            ResultRow(result="max", value=3.0, tags={"unit": "ignored"}),
        ]
    )

    assert summary.unit == "kelvin"
    assert summary.min_value == 1.0
    assert summary.max_value == 3.0


def test_transport_failures_map_to_store_errors() -> None:
    failing = MeasurementStore(StubBucket(error=InfluxDBError(message="connection refused")))
    start = datetime(2024, 1, 1, tzinfo=UTC)

    with pytest.raises(StorageError):
        failing.create_measurement(_measurement(1.0))
    with pytest.raises(QueryError, match="failed to query measurement summary"):
        failing.get_measurement_summary("s", "t", "u", start, start + timedelta(days=1))


def test_rejected_query_maps_to_query_error() -> None:
    rejected = MeasurementStore(StubBucket(error=ApiException(status=400, reason="bad flux")))
    start = datetime(2024, 1, 1, tzinfo=UTC)

    with pytest.raises(QueryError, match="failed to query measurement summary"):
        rejected.get_measurement_summary("s", "t", "u", start, start + timedelta(days=1))
