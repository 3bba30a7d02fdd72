"""Append-only measurement writes and windowed summary queries."""

from __future__ import annotations

import logging
import statistics
import time
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Protocol

from influxdb_client.client.exceptions import InfluxDBError
from influxdb_client.rest import ApiException

from models.records import Measurement, MeasurementSummary
from services.errors import QueryError, StorageError
from settings import get_settings
from storage.influxdb import InfluxTimeSeriesBucket
from storage.mock_influxdb import MockTimeSeriesBucket
from storage.timeseries import (
    AggregatePass,
    AggregateQuery,
    Reducer,
    ResultRow,
    TimeSeriesPoint,
)

logger = logging.getLogger(__name__)

VALUE_FIELD = "value"
DAILY = timedelta(days=1)

MEAN_RESULT = "mean"
MEDIAN_RESULT = "median"
COUNT_RESULT = "count"
MIN_RESULT = "min"
MAX_RESULT = "max"

SUMMARY_PASSES = (
    AggregatePass(MEAN_RESULT, Reducer.mean, every=DAILY),
    AggregatePass(MEDIAN_RESULT, Reducer.median, every=DAILY),
    AggregatePass(COUNT_RESULT, Reducer.count),
    AggregatePass(MIN_RESULT, Reducer.min),
    AggregatePass(MAX_RESULT, Reducer.max),
)


class TimeSeriesBucket(Protocol):
    def write_point(self, point: TimeSeriesPoint) -> None: ...

    def query(self, query: AggregateQuery) -> List[ResultRow]: ...

    def close(self) -> None: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class _SummaryAccumulator:
    """Collects rows per result stream and folds them into one summary."""

    def __init__(self) -> None:
        self.unit = ""
        self.streams: Dict[str, List[float]] = {
            MEAN_RESULT: [],
            MEDIAN_RESULT: [],
            COUNT_RESULT: [],
            MIN_RESULT: [],
            MAX_RESULT: [],
        }

    def add(self, row: ResultRow) -> None:
        values = self.streams.get(row.result)
        if values is None:
            raise QueryError(f"unexpected result name: {row.result}")

        if row.result == COUNT_RESULT:
            if not isinstance(row.value, int) or isinstance(row.value, bool):
                raise QueryError(f"unexpected type for count value: {type(row.value).__name__}")
        elif not _is_number(row.value):
            raise QueryError(
                f"unexpected type for {row.result} value: {type(row.value).__name__}"
            )

        if not self.unit:
            unit = row.tags.get("unit")
            if unit is not None:
                if not isinstance(unit, str):
                    raise QueryError(f"unexpected type for unit value: {type(unit).__name__}")
                self.unit = unit

        values.append(row.value)

    def summary(self) -> MeasurementSummary:
        count = int(sum(self.streams[COUNT_RESULT]))
        if count == 0:
            return MeasurementSummary()

        means = self.streams[MEAN_RESULT]
        medians = self.streams[MEDIAN_RESULT]
        minimums = self.streams[MIN_RESULT]
        maximums = self.streams[MAX_RESULT]
        return MeasurementSummary(
            min_value=float(min(minimums)) if minimums else 0.0,
            max_value=float(max(maximums)) if maximums else 0.0,
            mean_value=statistics.fmean(means) if means else 0.0,
            median_value=float(statistics.median(medians)) if medians else 0.0,
            unit=self.unit,
            count=count,
        )


class MeasurementStore:
    """Writes measurement points and answers summary queries against a bucket."""

    def __init__(
        self,
        bucket: TimeSeriesBucket,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.bucket = bucket
        self._clock = clock or _utcnow

    def create_measurement(self, measurement: Measurement) -> Measurement:
        """Write one point stamped with the current server time.

        Any timestamp already on ``measurement`` is replaced.
        """
        timestamp = _as_utc(self._clock())
        point = TimeSeriesPoint(
            measurement=measurement.name,
            tags={"unit": measurement.unit, "sensor_id": measurement.sensor_id},
            fields={VALUE_FIELD: float(measurement.value)},
            time=timestamp,
        )
        try:
            self.bucket.write_point(point)
        except (InfluxDBError, ApiException) as exc:
            raise StorageError("failed to write the measurement point") from exc

        measurement.timestamp = timestamp
        return measurement

    def build_summary_query(
        self,
        sensor_id: str,
        metric_name: str,
        unit: str,
        start: datetime,
        end: datetime,
    ) -> AggregateQuery:
        return AggregateQuery(
            measurement=metric_name,
            start=_as_utc(start),
            stop=_as_utc(end),
            tags={"sensor_id": sensor_id, "unit": unit},
            field_key=VALUE_FIELD,
            passes=list(SUMMARY_PASSES),
        )

    def get_measurement_summary(
        self,
        sensor_id: str,
        metric_name: str,
        unit: str,
        start: datetime,
        end: datetime,
    ) -> MeasurementSummary:
        query = self.build_summary_query(sensor_id, metric_name, unit, start, end)
        if query.start >= query.stop:
            raise QueryError("cannot query an empty range: start must be before end")

        started = time.perf_counter()
        try:
            rows = self.bucket.query(query)
        except (InfluxDBError, ApiException) as exc:
            raise QueryError(f"failed to query measurement summary: {exc}") from exc

        summary = self.assemble_summary(rows)
        logger.info(
            "measurement summary computed",
            extra={
                "sensor_id": sensor_id,
                "measurement": metric_name,
                "unit": unit,
                "count": summary.count,
                "query_ms": int((time.perf_counter() - started) * 1000),
            },
        )
        return summary

    @staticmethod
    def assemble_summary(rows: Iterable[ResultRow]) -> MeasurementSummary:
        accumulator = _SummaryAccumulator()
        for row in rows:
            accumulator.add(row)
        return accumulator.summary()

    def close(self) -> None:
        self.bucket.close()


@lru_cache
def build_default_measurement_store() -> MeasurementStore:
    """Wire a measurement store from settings: InfluxDB when a URL is set, else the mock."""
    settings = get_settings()
    if settings.influxdb_url:
        bucket: TimeSeriesBucket = InfluxTimeSeriesBucket.from_url(
            settings.influxdb_url,
            settings.influxdb_token,
            settings.influxdb_org,
            settings.influxdb_bucket,
        )
    else:
        path = settings.mock_influxdb_path
        bucket = MockTimeSeriesBucket(
            name=settings.influxdb_bucket, persistence_path=Path(path) if path else None
        )
    return MeasurementStore(bucket)
