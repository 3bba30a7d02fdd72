"""Domain errors raised by the sensor and measurement stores."""

from __future__ import annotations


class TelemetryError(Exception):
    """Base class for store-level failures."""


class InvalidInputError(TelemetryError):
    """An argument is malformed, e.g. an identifier that is not an ObjectId."""


class NotFoundError(TelemetryError):
    """The referenced record does not exist."""


class StorageError(TelemetryError):
    """A write or lookup against the backing store failed."""


class QueryError(TelemetryError):
    """An aggregation query was rejected or returned unusable rows."""
