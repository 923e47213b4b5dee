"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class ActuatorState(str, Enum):
    """Whether a zone's motor/relay is engaged."""

    ON = "ON"
    OFF = "OFF"


@dataclass(frozen=True, slots=True)
class Reading:
    """One validated telemetry sample for one zone at one instant."""

    zone: str
    soil_moisture: float
    temperature: float
    humidity: float
    gas_level: Optional[float]
    light_level: Optional[float]
    actuator_state: ActuatorState
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "zone": self.zone,
            "soil_moisture": self.soil_moisture,
            "temperature": self.temperature,
            "humidity": self.humidity,
            "gas_level": self.gas_level,
            "light_level": self.light_level,
            "actuator_state": self.actuator_state.value,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Reading":
        return cls(
            zone=data["zone"],
            soil_moisture=float(data["soil_moisture"]),
            temperature=float(data["temperature"]),
            humidity=float(data["humidity"]),
            gas_level=None if data.get("gas_level") is None else float(data["gas_level"]),
            light_level=None if data.get("light_level") is None else float(data["light_level"]),
            actuator_state=ActuatorState(data["actuator_state"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


@dataclass(frozen=True, slots=True)
class TimeSeriesRecord:
    """A persisted reading plus the metadata assigned by the store."""

    record_id: str
    reading: Reading
    persisted_at: datetime

    @property
    def zone(self) -> str:
        return self.reading.zone

    @property
    def timestamp(self) -> datetime:
        return self.reading.timestamp

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "persisted_at": self.persisted_at.isoformat(),
            "reading": self.reading.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimeSeriesRecord":
        return cls(
            record_id=data["record_id"],
            reading=Reading.from_dict(data["reading"]),
            persisted_at=datetime.fromisoformat(data["persisted_at"]),
        )
