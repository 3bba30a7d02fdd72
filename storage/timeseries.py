"""Backend-neutral point, query-plan and result-row types for time-series buckets."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional


class Reducer(str, Enum):
    mean = "mean"
    median = "median"
    count = "count"
    min = "min"
    max = "max"


@dataclass(slots=True)
class TimeSeriesPoint:
    measurement: str
    tags: Dict[str, str]
    fields: Dict[str, float]
    time: datetime


@dataclass(frozen=True, slots=True)
class AggregatePass:
    """One named result stream: a reducer, optionally applied per window."""

    name: str
    reducer: Reducer
    every: Optional[timedelta] = None


@dataclass(slots=True)
class AggregateQuery:
    """Several aggregate passes over one filtered base set of points.

    The base set is ``start <= time < stop`` for ``measurement`` with every tag
    in ``tags`` matching and ``field_key`` present.
    """

    measurement: str
    start: datetime
    stop: datetime
    tags: Dict[str, str] = field(default_factory=dict)
    field_key: str = "value"
    passes: List[AggregatePass] = field(default_factory=list)


@dataclass(slots=True)
class ResultRow:
    """A single output row, labelled with the pass that produced it."""

    result: str
    value: Any
    tags: Dict[str, str] = field(default_factory=dict)
    time: Optional[datetime] = None
