from __future__ import annotations

from threading import Lock
from typing import Dict, Iterable, Optional, Tuple

from models.errors import NotFound
from models.records import Reading


class _Slot:
    __slots__ = ("lock", "reading")

    def __init__(self) -> None:
        self.lock = Lock()
        self.reading: Optional[Reading] = None


class ZoneSnapshotStore:
    """Latest reading per zone; one slot and one lock per configured zone."""

    def __init__(self, zones: Iterable[str]) -> None:
        self.zones: Tuple[str, ...] = tuple(zones)
        self._slots: Dict[str, _Slot] = {zone: _Slot() for zone in self.zones}

    def put(self, zone: str, reading: Reading) -> None:
        slot = self._slot(zone)
        with slot.lock:
            slot.reading = reading

    def get(self, zone: str) -> Optional[Reading]:
        slot = self._slot(zone)
        with slot.lock:
            return slot.reading

    def get_all(self) -> Dict[str, Optional[Reading]]:
        """Return the current reading of every zone, ``None`` where none arrived yet."""

        return {zone: self.get(zone) for zone in self.zones}

    def _slot(self, zone: str) -> _Slot:
        slot = self._slots.get(zone)
        if slot is None:
            raise NotFound(f"Zone {zone!r} is not configured.")
        return slot
