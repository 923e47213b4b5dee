"""Append-only time-series storage for zone readings."""

from __future__ import annotations

import json
import logging
import math
import os
import time
from bisect import bisect_left, bisect_right, insort
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as WriteTimeout
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Dict, Iterable, Iterator, List, Optional, Tuple
from uuid import uuid4

from models.errors import NotFound, StorageUnavailable
from models.records import Reading, TimeSeriesRecord

logger = logging.getLogger(__name__)

# (timestamp, append sequence, record); the sequence keeps ties in append order
# and guarantees records themselves are never compared.
_Entry = Tuple[datetime, int, TimeSeriesRecord]


class TimeSeriesStore:
    """Durable reading log indexed by (zone, timestamp) and by timestamp alone.

    When ``persistence_path`` is set every record is appended to a JSON-lines
    file before it becomes visible to queries, and the file is replayed on
    construction. Every operation waits at most ``timeout`` seconds for the
    store lock and raises :class:`StorageUnavailable` otherwise; an append
    spends that same budget on the lock and the disk write together.

    A write that outlives the budget cannot be cancelled. It is never
    indexed, but it may still land in the file and reappear after a reload.
    """

    def __init__(
        self,
        zones: Iterable[str],
        persistence_path: Optional[Path] = None,
        timeout: float = 5.0,
    ) -> None:
        self.zones: Tuple[str, ...] = tuple(zones)
        self.persistence_path = persistence_path
        self.timeout = timeout
        self._lock = Lock()
        self._by_zone: Dict[str, List[_Entry]] = {zone: [] for zone in self.zones}
        self._by_time: List[_Entry] = []
        self._sequence = 0
        self._writer: Optional[ThreadPoolExecutor] = None
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()
            self._writer = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="timeseries-writer"
            )

    def append(self, reading: Reading) -> TimeSeriesRecord:
        if reading.zone not in self._by_zone:
            raise NotFound(f"Zone {reading.zone!r} is not configured.")

        record = TimeSeriesRecord(
            record_id=uuid4().hex,
            reading=reading,
            persisted_at=datetime.now(timezone.utc),
        )
        deadline = time.monotonic() + self.timeout
        with self._locked():
            self._persist(record, deadline)
            self._index(record)
        return record

    def query_range(
        self, zone: str, start: datetime, end: datetime
    ) -> List[TimeSeriesRecord]:
        """Records of ``zone`` with ``start <= timestamp <= end``, oldest first."""

        entries = self._by_zone.get(zone)
        if entries is None:
            raise NotFound(f"Zone {zone!r} is not configured.")
        return self._scan(entries, start, end)

    def query_range_all_zones(
        self, start: datetime, end: datetime
    ) -> List[TimeSeriesRecord]:
        return self._scan(self._by_time, start, end)

    def ping(self) -> bool:
        """Report whether the store can currently serve reads and writes."""

        try:
            with self._locked():
                pass
        except StorageUnavailable:
            return False
        if self.persistence_path:
            return os.access(self.persistence_path.parent, os.W_OK)
        return True

    def close(self) -> None:
        """Wait for in-flight disk writes and stop the writer thread."""
        if self._writer is not None:
            self._writer.shutdown(wait=True)

    def __len__(self) -> int:
        with self._locked():
            return len(self._by_time)

    @contextmanager
    def _locked(self) -> Iterator[None]:
        if not self._lock.acquire(timeout=self.timeout):
            raise StorageUnavailable(
                f"Timed out after {self.timeout}s waiting for the time-series store."
            )
        try:
            yield
        finally:
            self._lock.release()

    def _scan(
        self, entries: List[_Entry], start: datetime, end: datetime
    ) -> List[TimeSeriesRecord]:
        if start.tzinfo is None or end.tzinfo is None:
            raise ValueError("Range bounds must be timezone-aware.")
        if start > end:
            return []
        with self._locked():
            lo = bisect_left(entries, (start,))
            hi = bisect_right(entries, (end, math.inf))
            return [entry[2] for entry in entries[lo:hi]]

    def _index(self, record: TimeSeriesRecord) -> None:
        entry: _Entry = (record.timestamp, self._sequence, record)
        self._sequence += 1
        insort(self._by_zone[record.zone], entry)
        insort(self._by_time, entry)

    def _persist(self, record: TimeSeriesRecord, deadline: float) -> None:
        if self._writer is None:
            return
        try:
            future = self._writer.submit(self._write_to_disk, record)
        except RuntimeError as exc:
            raise StorageUnavailable("The time-series store is closed.") from exc
        try:
            future.result(timeout=max(deadline - time.monotonic(), 0.0))
        except WriteTimeout as exc:
            raise StorageUnavailable(
                f"Timed out after {self.timeout}s writing to the time-series store."
            ) from exc

    def _write_to_disk(self, record: TimeSeriesRecord) -> None:
        if not self.persistence_path:
            return
        line = json.dumps(record.to_dict(), sort_keys=True)
        try:
            with self.persistence_path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
                handle.flush()
                os.fsync(handle.fileno())
        except OSError as exc:
            raise StorageUnavailable(
                f"Could not append to {self.persistence_path.name}: {exc}"
            ) from exc

    def _load_from_disk(self) -> None:
        assert self.persistence_path is not None
        if not self.persistence_path.exists():
            return

        with self.persistence_path.open("r", encoding="utf-8") as handle:
            for line_number, line in enumerate(handle, start=1):
                if not line.strip():
                    continue
                try:
                    record = TimeSeriesRecord.from_dict(json.loads(line))
                except (ValueError, KeyError, TypeError):
                    logger.warning(
                        "Skipping unreadable time-series line",
                        extra={"line_number": line_number},
                    )
                    continue
                if record.zone not in self._by_zone:
                    logger.warning(
                        "Skipping record for unconfigured zone",
                        extra={"line_number": line_number, "zone": record.zone},
                    )
                    continue
                self._index(record)

        logger.info(
            "Loaded time-series records from disk",
            extra={"record_count": len(self._by_time)},
        )
