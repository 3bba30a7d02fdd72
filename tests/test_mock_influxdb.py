"""Unit tests for the mock time-series bucket."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from influxdb_client.rest import ApiException

from storage.mock_influxdb import MockTimeSeriesBucket
from storage.timeseries import AggregatePass, AggregateQuery, Reducer, TimeSeriesPoint

UTC = timezone.utc


def _point(value: float, when: datetime, sensor_id: str = "s1", unit: str = "celsius") -> TimeSeriesPoint:
    return TimeSeriesPoint(
        measurement="temperature",
        tags={"sensor_id": sensor_id, "unit": unit},
        fields={"value": value},
        time=when,
    )


def _query(*passes: AggregatePass, sensor_id: str = "s1") -> AggregateQuery:
    return AggregateQuery(
        measurement="temperature",
        start=datetime(2024, 1, 1, tzinfo=UTC),
        stop=datetime(2024, 1, 3, tzinfo=UTC),
        tags={"sensor_id": sensor_id, "unit": "celsius"},
        passes=list(passes),
    )


@pytest.fixture
def bucket() -> MockTimeSeriesBucket:
    bucket = MockTimeSeriesBucket(name="measurements")
    bucket.write_point(_point(10.0, datetime(2024, 1, 1, 8, tzinfo=UTC)))
    bucket.write_point(_point(20.0, datetime(2024, 1, 1, 20, tzinfo=UTC)))
    bucket.write_point(_point(40.0, datetime(2024, 1, 2, 9, tzinfo=UTC)))
    bucket.write_point(_point(99.0, datetime(2024, 1, 2, 9, tzinfo=UTC), sensor_id="other"))
    bucket.write_point(_point(-5.0, datetime(2024, 1, 3, tzinfo=UTC)))
    return bucket


def test_windowed_pass_emits_one_row_per_non_empty_day(bucket: MockTimeSeriesBucket) -> None:
    rows = bucket.query(_query(AggregatePass("mean", Reducer.mean, every=timedelta(days=1))))

    assert [row.value for row in rows] == [15.0, 40.0]
    assert [row.time for row in rows] == [
        datetime(2024, 1, 2, tzinfo=UTC),
        datetime(2024, 1, 3, tzinfo=UTC),
    ]
    assert all(row.result == "mean" for row in rows)
    assert rows[0].tags == {"sensor_id": "s1", "unit": "celsius"}


def test_whole_range_passes(bucket: MockTimeSeriesBucket) -> None:
    rows = bucket.query(
        _query(
            AggregatePass("count", Reducer.count),
            AggregatePass("min", Reducer.min),
            AggregatePass("max", Reducer.max),
        )
    )

    by_name = {row.result: row.value for row in rows}
    # The point at 2024-01-03T00:00Z sits on the exclusive stop bound.
    assert by_name == {"count": 3, "min": 10.0, "max": 40.0}
    assert isinstance(by_name["count"], int)


def test_no_matching_points_returns_no_rows(bucket: MockTimeSeriesBucket) -> None:
    rows = bucket.query(_query(AggregatePass("count", Reducer.count), sensor_id="missing"))

    assert rows == []


def test_empty_range_is_rejected(bucket: MockTimeSeriesBucket) -> None:
    query = _query(AggregatePass("count", Reducer.count))
    query.start, query.stop = query.stop, query.start

    with pytest.raises(ApiException) as excinfo:
        bucket.query(query)

    assert "cannot query an empty range" in str(excinfo.value)


def test_persists_to_disk_and_reloads(tmp_path) -> None:
    path = tmp_path / "measurements.json"
    bucket = MockTimeSeriesBucket(name="measurements", persistence_path=path)
    bucket.write_point(_point(21.5, datetime(2024, 1, 1, 12, tzinfo=UTC)))

    reloaded = MockTimeSeriesBucket(name="measurements", persistence_path=path)
    rows = reloaded.query(_query(AggregatePass("max", Reducer.max)))

    assert [row.value for row in rows] == [21.5]
