"""Normalisation and validation of incoming zone payloads."""

from __future__ import annotations

import math
from datetime import datetime, timezone, tzinfo
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple

from models.errors import InvalidPayload
from models.records import ActuatorState, Reading
from settings import MEASUREMENT_FIELDS, MINIMUM_REQUIRED_FIELDS

# Devices in the field send several historic key spellings; first match wins.
FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "soil_moisture": ("soilMoisture", "soil_moisture", "soil", "moisture"),
    "temperature": ("temperature", "temp"),
    "humidity": ("humidity", "hum"),
    "gas_level": ("gasLevel", "gas_level", "gas"),
    "light_level": ("lightLevel", "light_level", "light"),
}
ACTUATOR_ALIASES: Tuple[str, ...] = ("actuatorState", "actuator_state", "motor", "relay")

Clock = Callable[[], datetime]


def _lookup(payload: Mapping[str, Any], aliases: Iterable[str]) -> Any:
    for alias in aliases:
        if alias in payload and payload[alias] is not None:
            return payload[alias]
    return None


class ReadingValidator:
    """Turns a raw per-zone payload into a canonical :class:`Reading`."""

    def __init__(
        self,
        zones: Iterable[str],
        required_fields: Iterable[str] = MINIMUM_REQUIRED_FIELDS,
        tz: tzinfo = timezone.utc,
        clock: Optional[Clock] = None,
    ) -> None:
        self.zones: Tuple[str, ...] = tuple(zones)
        required = set(required_fields) | set(MINIMUM_REQUIRED_FIELDS)
        unknown = required - set(MEASUREMENT_FIELDS)
        if unknown:
            raise ValueError(f"Unknown measurement fields: {', '.join(sorted(unknown))}")
        self.required_fields = tuple(name for name in MEASUREMENT_FIELDS if name in required)
        self.tz = tz
        self._clock = clock or (lambda: datetime.now(self.tz))

    def now(self) -> datetime:
        return self._clock().astimezone(self.tz)

    def is_known_zone(self, zone: Any) -> bool:
        return isinstance(zone, str) and zone in self.zones

    def validate(self, zone: Any, payload: Any) -> Reading:
        if zone is None or (isinstance(zone, str) and not zone.strip()):
            raise InvalidPayload("missing zone identifier")
        if not self.is_known_zone(zone):
            raise InvalidPayload(f"unknown zone {zone!r}")
        if not isinstance(payload, Mapping):
            raise InvalidPayload(f"payload for {zone} must be an object")

        values: Dict[str, Optional[float]] = {}
        for name in MEASUREMENT_FIELDS:
            raw = _lookup(payload, FIELD_ALIASES[name])
            if raw is None:
                if name in self.required_fields:
                    raise InvalidPayload(f"missing {name}")
                values[name] = None
                continue
            values[name] = self._parse_number(name, raw)

        return Reading(
            zone=zone,
            soil_moisture=values["soil_moisture"],  # type: ignore[arg-type]
            temperature=values["temperature"],  # type: ignore[arg-type]
            humidity=values["humidity"],  # type: ignore[arg-type]
            gas_level=values["gas_level"],
            light_level=values["light_level"],
            actuator_state=self._parse_actuator(_lookup(payload, ACTUATOR_ALIASES)),
            timestamp=self._parse_timestamp(payload.get("timestamp")),
        )

    @staticmethod
    def _parse_number(name: str, value: Any) -> float:
        # bool is an int subclass; a device sending true/false is a bug.
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise InvalidPayload(f"invalid numeric value for {name}")
        try:
            parsed = float(value)
        except OverflowError as exc:
            raise InvalidPayload(f"invalid numeric value for {name}") from exc
        if not math.isfinite(parsed):
            raise InvalidPayload(f"invalid numeric value for {name}")
        return parsed

    @staticmethod
    def _parse_actuator(value: Any) -> ActuatorState:
        if value is None:
            return ActuatorState.OFF
        if not isinstance(value, str):
            raise InvalidPayload("actuator state must be ON or OFF")
        try:
            return ActuatorState(value.strip().upper())
        except ValueError as exc:
            raise InvalidPayload("actuator state must be ON or OFF") from exc

    def _parse_timestamp(self, value: Any) -> datetime:
        if value is None:
            return self.now()

        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            try:
                parsed = datetime.fromtimestamp(value, tz=timezone.utc)
            except (OverflowError, OSError, ValueError) as exc:
                raise InvalidPayload("invalid timestamp") from exc
        elif isinstance(value, str):
            candidate = value.strip()
            if candidate.endswith("Z"):
                candidate = candidate[:-1] + "+00:00"
            try:
                parsed = datetime.fromisoformat(candidate)
            except ValueError as exc:
                raise InvalidPayload("invalid timestamp") from exc
        else:
            raise InvalidPayload("invalid timestamp")

        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=self.tz)
        return parsed.astimezone(self.tz)
