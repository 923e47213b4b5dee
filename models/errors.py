"""Error taxonomy raised by the telemetry services."""

from __future__ import annotations


class TelemetryError(Exception):
    """Base class for errors that carry a stable, machine-readable kind."""

    kind = "TelemetryError"
    title = "Telemetry error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidPayload(TelemetryError):
    kind = "InvalidPayload"
    title = "Invalid payload"


class InvalidZone(TelemetryError):
    kind = "InvalidZone"
    title = "Invalid zone"


class InvalidDate(TelemetryError):
    kind = "InvalidDate"
    title = "Invalid date format"


class InvalidYear(TelemetryError):
    kind = "InvalidYear"
    title = "Invalid year"


class InvalidMonth(TelemetryError):
    kind = "InvalidMonth"
    title = "Invalid month"


class NotFound(TelemetryError):
    kind = "NotFound"
    title = "Zone not found"


class StorageUnavailable(TelemetryError):
    """The time-series backend could not be reached in time."""

    kind = "StorageUnavailable"
    title = "Storage unavailable"
