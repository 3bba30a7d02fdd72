from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List

from influxdb_client import InfluxDBClient, Point, WritePrecision
from influxdb_client.client.exceptions import InfluxDBError
from influxdb_client.client.write_api import SYNCHRONOUS
from urllib3.exceptions import HTTPError

from storage.timeseries import AggregatePass, AggregateQuery, ResultRow, TimeSeriesPoint

_RESERVED_COLUMNS = frozenset(
    {"result", "table", "_start", "_stop", "_time", "_value", "_field", "_measurement"}
)


def flux_string(value: str) -> str:
    """Quote ``value`` as a Flux string literal."""

    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("${", "\\${")
    return f'"{escaped}"'


def flux_time(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def flux_duration(value: timedelta) -> str:
    seconds = int(value.total_seconds())
    if seconds % 86400 == 0:
        return f"{seconds // 86400}d"
    if seconds % 3600 == 0:
        return f"{seconds // 3600}h"
    if seconds % 60 == 0:
        return f"{seconds // 60}m"
    return f"{seconds}s"


def _render_pass(aggregate: AggregatePass) -> str:
    if aggregate.every is None:
        reduce = f"  |> {aggregate.reducer.value}()"
    else:
        reduce = (
            f"  |> aggregateWindow(every: {flux_duration(aggregate.every)}, "
            f"fn: {aggregate.reducer.value}, createEmpty: false)"
        )
    return f"base\n{reduce}\n  |> yield(name: {flux_string(aggregate.name)})"


def render_flux(bucket: str, query: AggregateQuery) -> str:
    """Render an aggregate query plan as a Flux script with one yield per pass."""

    lines = [
        f"base = from(bucket: {flux_string(bucket)})",
        f"  |> range(start: {flux_time(query.start)}, stop: {flux_time(query.stop)})",
        f'  |> filter(fn: (r) => r["_measurement"] == {flux_string(query.measurement)})',
    ]
    for key, value in query.tags.items():
        lines.append(f"  |> filter(fn: (r) => r[{flux_string(key)}] == {flux_string(value)})")
    lines.append(f'  |> filter(fn: (r) => r["_field"] == {flux_string(query.field_key)})')
    blocks = ["\n".join(lines)]
    blocks.extend(_render_pass(aggregate) for aggregate in query.passes)
    return "\n\n".join(blocks)


class InfluxTimeSeriesBucket:
    """influxdb-client backed bucket exposing the same surface as the mock."""

    def __init__(self, client: InfluxDBClient, org: str, bucket: str) -> None:
        self.name = bucket
        self.org = org
        self._client = client
        self._write_api = client.write_api(write_options=SYNCHRONOUS)
        self._query_api = client.query_api()

    @classmethod
    def from_url(cls, url: str, token: str, org: str, bucket: str) -> "InfluxTimeSeriesBucket":
        return cls(InfluxDBClient(url=url, token=token, org=org), org, bucket)

    def write_point(self, point: TimeSeriesPoint) -> None:
        record = Point(point.measurement).time(point.time, WritePrecision.NS)
        for key, value in point.tags.items():
            record = record.tag(key, value)
        for key, value in point.fields.items():
            record = record.field(key, float(value))
        try:
            self._write_api.write(bucket=self.name, org=self.org, record=record)
        except HTTPError as exc:
            raise InfluxDBError(message=f"write transport failed: {exc}") from exc

    def query(self, query: AggregateQuery) -> List[ResultRow]:
        flux = render_flux(self.name, query)
        try:
            tables = self._query_api.query(flux, org=self.org)
        except HTTPError as exc:
            raise InfluxDBError(message=f"query transport failed: {exc}") from exc

        rows: List[ResultRow] = []
        for table in tables:
            for record in table.records:
                values = record.values
                tags = {
                    key: value
                    for key, value in values.items()
                    if key not in _RESERVED_COLUMNS and isinstance(value, str)
                }
                rows.append(
                    ResultRow(
                        result=values.get("result", ""),
                        value=record.get_value(),
                        tags=tags,
                        time=values.get("_time"),
                    )
                )
        return rows

    def close(self) -> None:
        self._client.close()
