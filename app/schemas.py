"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from models.records import ActuatorState, Reading
from services.aggregator import (
    DailyAggregate,
    DailySummary,
    DayRollup,
    MonthlyAggregate,
    MonthlySummary,
)


class _ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ReadingOut(_ApiModel):
    """A single zone reading as exposed to dashboards."""

    zone: str
    soil_moisture: float = Field(serialization_alias="soilMoisture")
    temperature: float
    humidity: float
    gas_level: Optional[float] = Field(default=None, serialization_alias="gasLevel")
    light_level: Optional[float] = Field(default=None, serialization_alias="lightLevel")
    actuator_state: ActuatorState = Field(serialization_alias="actuatorState")
    timestamp: datetime

    @classmethod
    def from_reading(cls, reading: Reading) -> "ReadingOut":
        return cls(
            zone=reading.zone,
            soil_moisture=reading.soil_moisture,
            temperature=reading.temperature,
            humidity=reading.humidity,
            gas_level=reading.gas_level,
            light_level=reading.light_level,
            actuator_state=reading.actuator_state,
            timestamp=reading.timestamp,
        )


class IngestResponse(_ApiModel):
    status: str = "success"
    accepted: List[str] = Field(default_factory=list)
    rejected: Dict[str, str] = Field(default_factory=dict)


class DailySummaryOut(_ApiModel):
    avg_soil: Optional[float] = Field(serialization_alias="avgSoil")
    avg_temp: Optional[float] = Field(serialization_alias="avgTemp")
    avg_hum: Optional[float] = Field(serialization_alias="avgHum")
    avg_gas: Optional[float] = Field(serialization_alias="avgGas")
    avg_light: Optional[float] = Field(serialization_alias="avgLight")
    max_temp: Optional[float] = Field(serialization_alias="maxTemp")
    min_temp: Optional[float] = Field(serialization_alias="minTemp")
    max_hum: Optional[float] = Field(serialization_alias="maxHum")
    min_hum: Optional[float] = Field(serialization_alias="minHum")
    total_readings: int = Field(serialization_alias="totalReadings")

    @classmethod
    def from_summary(cls, summary: Optional[DailySummary]) -> Optional["DailySummaryOut"]:
        if summary is None:
            return None
        return cls(**vars(summary))


class DailyResponse(_ApiModel):
    zone: str
    date: date
    data: List[ReadingOut]
    summary: Optional[DailySummaryOut] = None

    @classmethod
    def from_aggregate(cls, aggregate: DailyAggregate) -> "DailyResponse":
        return cls(
            zone=aggregate.zone,
            date=aggregate.date,
            data=[ReadingOut.from_reading(reading) for reading in aggregate.records],
            summary=DailySummaryOut.from_summary(aggregate.summary),
        )


class AllZonesDailyResponse(_ApiModel):
    date: date
    zones: Dict[str, DailyResponse]


class DayRollupOut(_ApiModel):
    date: date
    avg_soil: Optional[float] = Field(serialization_alias="avgSoil")
    avg_temp: Optional[float] = Field(serialization_alias="avgTemp")
    avg_hum: Optional[float] = Field(serialization_alias="avgHum")
    avg_gas: Optional[float] = Field(serialization_alias="avgGas")
    avg_light: Optional[float] = Field(serialization_alias="avgLight")
    max_temp: Optional[float] = Field(serialization_alias="maxTemp")
    min_temp: Optional[float] = Field(serialization_alias="minTemp")
    max_hum: Optional[float] = Field(serialization_alias="maxHum")
    min_hum: Optional[float] = Field(serialization_alias="minHum")
    readings: int

    @classmethod
    def from_rollup(cls, rollup: DayRollup) -> "DayRollupOut":
        return cls(**vars(rollup))


class MonthlySummaryOut(_ApiModel):
    total_days: int = Field(serialization_alias="totalDays")
    overall_avg_temp: Optional[float] = Field(serialization_alias="overallAvgTemp")
    overall_avg_hum: Optional[float] = Field(serialization_alias="overallAvgHum")
    overall_avg_soil: Optional[float] = Field(serialization_alias="overallAvgSoil")
    max_temp: Optional[float] = Field(serialization_alias="maxTemp")
    min_temp: Optional[float] = Field(serialization_alias="minTemp")
    total_readings: int = Field(serialization_alias="totalReadings")


class MonthlyResponse(_ApiModel):
    zone: str
    year: int
    month: int
    data: List[DayRollupOut]
    summary: Optional[MonthlySummaryOut] = None

    @classmethod
    def from_aggregate(cls, aggregate: MonthlyAggregate) -> "MonthlyResponse":
        summary: Optional[MonthlySummary] = aggregate.summary
        return cls(
            zone=aggregate.zone,
            year=aggregate.year,
            month=aggregate.month,
            data=[DayRollupOut.from_rollup(day) for day in aggregate.days],
            summary=MonthlySummaryOut(**vars(summary)) if summary else None,
        )


class AllZonesMonthlyResponse(_ApiModel):
    year: int
    month: int
    zones: Dict[str, MonthlyResponse]


class ErrorResponse(_ApiModel):
    """Body of every non-2xx response."""

    kind: str
    error: str
    message: str


class HealthResponse(_ApiModel):
    status: str
    storage: str
    pending_writes: int = Field(default=0, serialization_alias="pendingWrites")
