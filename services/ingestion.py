"""Ingestion orchestration: validate, update snapshots, persist in the background."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_all
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Mapping, Optional, Tuple
from uuid import uuid4

from datastore.snapshot import ZoneSnapshotStore
from models.errors import InvalidPayload, StorageUnavailable, TelemetryError
from models.records import Reading, TimeSeriesRecord
from services.validator import ReadingValidator
from settings import Settings, get_settings
from storage.timeseries import TimeSeriesStore

logger = logging.getLogger(__name__)


@dataclass
class IngestOutcome:
    """Which zones of a payload updated their snapshot and which were skipped."""

    accepted: List[str] = field(default_factory=list)
    rejected: Dict[str, str] = field(default_factory=dict)


class IngestionCoordinator:
    """Accepts device payloads for one or many zones.

    Each valid zone reading updates the snapshot store before ``ingest``
    returns; the durable append is submitted to a worker pool and never
    awaited. Multi-zone payloads are handled best-effort per zone, while a
    single-zone payload that fails validation fails the whole call.
    """

    def __init__(
        self,
        validator: ReadingValidator,
        snapshots: ZoneSnapshotStore,
        timeseries: TimeSeriesStore,
        workers: int = 4,
    ) -> None:
        self.validator = validator
        self.snapshots = snapshots
        self.timeseries = timeseries
        self.executor = ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="timeseries-append"
        )
        self._futures: Dict[str, Future[TimeSeriesRecord]] = {}
        self._futures_lock = Lock()

    def ingest(self, payload: Any) -> IngestOutcome:
        if not isinstance(payload, Mapping) or not payload:
            raise InvalidPayload("Payload must be a non-empty JSON object.")

        if "zone" in payload:
            return self._ingest_single(payload)
        return self._ingest_multi(payload)

    def pending(self) -> int:
        with self._futures_lock:
            return len(self._futures)

    def wait_for_pending(self, timeout: Optional[float] = None) -> bool:
        """Block until every submitted append finished; ``False`` on timeout."""
        with self._futures_lock:
            futures = list(self._futures.values())
        _, not_done = wait_all(futures, timeout=timeout)
        return not not_done

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting appends; by default flush the ones already queued."""
        pending = self.pending()
        if pending:
            logger.info("Flushing queued time-series appends", extra={"pending": pending})
        self.executor.shutdown(wait=wait)
        if wait:
            self.timeseries.close()

    def _ingest_single(self, payload: Mapping[str, Any]) -> IngestOutcome:
        zone = payload.get("zone")
        try:
            reading = self.validator.validate(zone, payload)
        except InvalidPayload as exc:
            logger.warning(
                "Rejected zone reading", extra={"zone": zone, "reason": exc.message}
            )
            raise
        self._accept(reading)
        return IngestOutcome(accepted=[reading.zone])

    def _ingest_multi(self, payload: Mapping[str, Any]) -> IngestOutcome:
        outcome = IngestOutcome()
        readings: List[Reading] = []
        for zone, zone_payload in payload.items():
            # Devices attach scalar metadata (e.g. last_updated) next to the zones.
            if not isinstance(zone_payload, Mapping):
                continue
            try:
                readings.append(self.validator.validate(zone, zone_payload))
            except InvalidPayload as exc:
                outcome.rejected[str(zone)] = exc.message
                logger.warning(
                    "Rejected zone reading", extra={"zone": zone, "reason": exc.message}
                )

        if not readings:
            reasons = "; ".join(f"{zone}: {reason}" for zone, reason in outcome.rejected.items())
            raise InvalidPayload(reasons or "Payload contains no zone readings.")

        for reading in readings:
            self._accept(reading)
            outcome.accepted.append(reading.zone)
        return outcome

    def _accept(self, reading: Reading) -> None:
        self.snapshots.put(reading.zone, reading)
        logger.debug("Snapshot updated", extra={"zone": reading.zone})
        self._submit_append(reading)

    def _submit_append(self, reading: Reading) -> None:
        task_id = uuid4().hex
        try:
            future = self.executor.submit(self.timeseries.append, reading)
        except RuntimeError:
            logger.error(
                "Persistence worker pool is shut down; reading not recorded",
                extra={"zone": reading.zone},
            )
            return
        with self._futures_lock:
            self._futures[task_id] = future
        future.add_done_callback(
            lambda f, tid=task_id, zone=reading.zone: self._on_append_done(tid, zone, f)
        )

    def _on_append_done(self, task_id: str, zone: str, future: Future) -> None:
        with self._futures_lock:
            self._futures.pop(task_id, None)
        if future.cancelled():
            logger.error("Time-series append cancelled", extra={"zone": zone})
            return
        exc = future.exception()
        if exc is None:
            record: TimeSeriesRecord = future.result()
            logger.debug(
                "Reading persisted", extra={"zone": zone, "record_id": record.record_id}
            )
        elif isinstance(exc, StorageUnavailable):
            logger.error(
                "Time-series store unavailable; reading kept in snapshot only",
                extra={"zone": zone, "kind": exc.kind, "reason": exc.message},
            )
        elif isinstance(exc, TelemetryError):
            logger.error(
                "Time-series append rejected",
                extra={"zone": zone, "kind": exc.kind, "reason": exc.message},
            )
        else:
            logger.error(
                "Unexpected error while persisting reading",
                exc_info=(type(exc), exc, exc.__traceback__),
                extra={"zone": zone},
            )


def build_stores(settings: Settings) -> Tuple[ZoneSnapshotStore, TimeSeriesStore]:
    path = settings.timeseries_persistence_path
    timeseries = TimeSeriesStore(
        zones=settings.zones,
        persistence_path=Path(path) if path else None,
        timeout=settings.storage_timeout,
    )
    return ZoneSnapshotStore(settings.zones), timeseries


def build_default_coordinator(settings: Optional[Settings] = None) -> IngestionCoordinator:
    """Factory that wires the coordinator from environment settings."""
    settings = settings or get_settings()
    snapshots, timeseries = build_stores(settings)
    validator = ReadingValidator(
        zones=settings.zones,
        required_fields=settings.required_fields,
        tz=settings.tzinfo,
    )
    return IngestionCoordinator(
        validator=validator,
        snapshots=snapshots,
        timeseries=timeseries,
        workers=settings.persistence_workers,
    )
