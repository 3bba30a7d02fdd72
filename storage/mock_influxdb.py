from __future__ import annotations
import json
import statistics
from datetime import datetime, timedelta, timezone
from pathlib import Path
from threading import Lock
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from influxdb_client.rest import ApiException

from storage.timeseries import (
    AggregatePass,
    AggregateQuery,
    Reducer,
    ResultRow,
    TimeSeriesPoint,
)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_REDUCERS: Dict[Reducer, Callable[[Sequence[float]], float | int]] = {
    Reducer.mean: statistics.fmean,
    Reducer.median: statistics.median,
    Reducer.count: len,
    Reducer.min: min,
    Reducer.max: max,
}


class MockTimeSeriesBucket:
    """In-process stand-in for an InfluxDB bucket that evaluates query plans."""

    def __init__(self, name: str, persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self._points: List[TimeSeriesPoint] = []
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def write_point(self, point: TimeSeriesPoint) -> None:
        with self._lock:
            self._points.append(point)
            self._persist()

    def query(self, query: AggregateQuery) -> List[ResultRow]:
        if query.start >= query.stop:
            raise ApiException(
                status=400,
                reason="invalid: error in building plan while starting program: "
                "cannot query an empty range",
            )

        with self._lock:
            matching = [
                point
                for point in self._points
                if self._matches(point, query)
            ]

        if not matching:
            return []

        matching.sort(key=lambda point: point.time)
        tags = {key: matching[0].tags[key] for key in sorted(matching[0].tags)}
        rows: List[ResultRow] = []
        for aggregate in query.passes:
            rows.extend(self._evaluate(aggregate, matching, query, tags))
        return rows

    def close(self) -> None:
        """Nothing to release; kept for parity with the influxdb-client backend."""

    @staticmethod
    def _matches(point: TimeSeriesPoint, query: AggregateQuery) -> bool:
        if point.measurement != query.measurement:
            return False
        if query.field_key not in point.fields:
            return False
        if not query.start <= point.time < query.stop:
            return False
        return all(point.tags.get(key) == value for key, value in query.tags.items())

    def _evaluate(
        self,
        aggregate: AggregatePass,
        points: Sequence[TimeSeriesPoint],
        query: AggregateQuery,
        tags: Dict[str, str],
    ) -> Iterable[ResultRow]:
        reducer = _REDUCERS[aggregate.reducer]
        if aggregate.every is None:
            values = [point.fields[query.field_key] for point in points]
            yield ResultRow(
                result=aggregate.name, value=reducer(values), tags=dict(tags), time=query.stop
            )
            return

        for window_stop, values in self._windows(points, aggregate.every, query):
            yield ResultRow(
                result=aggregate.name, value=reducer(values), tags=dict(tags), time=window_stop
            )

    @staticmethod
    def _windows(
        points: Sequence[TimeSeriesPoint], every: timedelta, query: AggregateQuery
    ) -> List[Tuple[datetime, List[float]]]:
        buckets: Dict[int, List[float]] = {}
        for point in points:
            index = (point.time - _EPOCH) // every
            buckets.setdefault(index, []).append(point.fields[query.field_key])
        windows = []
        for index in sorted(buckets):
            window_stop = min(_EPOCH + every * (index + 1), query.stop)
            windows.append((window_stop, buckets[index]))
        return windows

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = [
            {
                "measurement": point.measurement,
                "tags": point.tags,
                "fields": point.fields,
                "time": point.time.isoformat(),
            }
            for point in self._points
        ]
        self.persistence_path.write_text(json.dumps(payload, indent=2))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "[]"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = []

        for item in data:
            self._points.append(
                TimeSeriesPoint(
                    measurement=item["measurement"],
                    tags=dict(item["tags"]),
                    fields={key: float(value) for key, value in item["fields"].items()},
                    time=datetime.fromisoformat(item["time"]),
                )
            )
