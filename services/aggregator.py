"""Aggregation logic for zone readings."""

from __future__ import annotations

import calendar
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone, tzinfo
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from models.errors import InvalidDate, InvalidMonth, InvalidYear, InvalidZone
from models.records import Reading, TimeSeriesRecord
from settings import MEASUREMENT_FIELDS
from storage.timeseries import TimeSeriesStore

MIN_YEAR = 2000
MAX_YEAR = 2100

_TWO_PLACES = Decimal("0.01")
_END_OF_DAY = time(23, 59, 59, 999000)

DateInput = Union[date, str, None]
IntInput = Union[int, str, None]


def round_half_up(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    return float(Decimal(repr(value)).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP))


def day_window(day: date, tz: tzinfo) -> Tuple[datetime, datetime]:
    """Inclusive bounds of ``day``: local midnight to 23:59:59.999."""

    return (
        datetime.combine(day, time.min, tzinfo=tz),
        datetime.combine(day, _END_OF_DAY, tzinfo=tz),
    )


def month_window(year: int, month: int, tz: tzinfo) -> Tuple[datetime, datetime]:
    last_day = calendar.monthrange(year, month)[1]
    start, _ = day_window(date(year, month, 1), tz)
    _, end = day_window(date(year, month, last_day), tz)
    return start, end


@dataclass
class FieldAccumulator:
    """Running count, sum, min and max of one numeric field."""

    count: int = 0
    total: float = 0.0
    minimum: Optional[float] = None
    maximum: Optional[float] = None

    def add(self, value: Optional[float]) -> None:
        if value is None:
            return
        self.count += 1
        self.total += value
        if self.minimum is None or value < self.minimum:
            self.minimum = value
        if self.maximum is None or value > self.maximum:
            self.maximum = value

    @property
    def mean(self) -> Optional[float]:
        if not self.count:
            return None
        return self.total / self.count


@dataclass
class ReadingAccumulator:
    count: int = 0
    fields: Dict[str, FieldAccumulator] = field(
        default_factory=lambda: {name: FieldAccumulator() for name in MEASUREMENT_FIELDS}
    )

    def add(self, reading: Reading) -> None:
        self.count += 1
        for name, accumulator in self.fields.items():
            accumulator.add(getattr(reading, name))

    def mean(self, name: str) -> Optional[float]:
        return self.fields[name].mean


@dataclass
class DailySummary:
    avg_soil: Optional[float]
    avg_temp: Optional[float]
    avg_hum: Optional[float]
    avg_gas: Optional[float]
    avg_light: Optional[float]
    max_temp: Optional[float]
    min_temp: Optional[float]
    max_hum: Optional[float]
    min_hum: Optional[float]
    total_readings: int


@dataclass
class DailyAggregate:
    zone: str
    date: date
    records: List[Reading]
    summary: Optional[DailySummary]


@dataclass
class DayRollup:
    date: date
    avg_soil: Optional[float]
    avg_temp: Optional[float]
    avg_hum: Optional[float]
    avg_gas: Optional[float]
    avg_light: Optional[float]
    max_temp: Optional[float]
    min_temp: Optional[float]
    max_hum: Optional[float]
    min_hum: Optional[float]
    readings: int


@dataclass
class MonthlySummary:
    total_days: int
    overall_avg_temp: Optional[float]
    overall_avg_hum: Optional[float]
    overall_avg_soil: Optional[float]
    max_temp: Optional[float]
    min_temp: Optional[float]
    total_readings: int


@dataclass
class MonthlyAggregate:
    zone: str
    year: int
    month: int
    days: List[DayRollup]
    summary: Optional[MonthlySummary]


class Aggregator:
    """Computes daily series and monthly rollups straight from the store.

    Nothing is cached: every call rescans the requested window, so repeated
    calls without intervening ingestion return identical results.
    """

    def __init__(
        self,
        store: TimeSeriesStore,
        tz: tzinfo = timezone.utc,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.zones: Tuple[str, ...] = store.zones
        self.tz = tz
        self._clock = clock or (lambda: datetime.now(self.tz))

    def today(self) -> date:
        return self._clock().astimezone(self.tz).date()

    # Daily

    def get_daily(self, zone: str, day: DateInput = None) -> DailyAggregate:
        self.validate_zone(zone)
        target = self.resolve_date(day)
        start, end = day_window(target, self.tz)
        readings = [record.reading for record in self.store.query_range(zone, start, end)]
        return DailyAggregate(
            zone=zone, date=target, records=readings, summary=self.summarize(readings)
        )

    def get_daily_all_zones(self, day: DateInput = None) -> Dict[str, DailyAggregate]:
        target = self.resolve_date(day)
        start, end = day_window(target, self.tz)
        by_zone = self._group_by_zone(self.store.query_range_all_zones(start, end))
        return {
            zone: DailyAggregate(
                zone=zone,
                date=target,
                records=by_zone[zone],
                summary=self.summarize(by_zone[zone]),
            )
            for zone in self.zones
        }

    def summarize(self, readings: Iterable[Reading]) -> Optional[DailySummary]:
        totals = ReadingAccumulator()
        for reading in readings:
            totals.add(reading)
        if not totals.count:
            return None

        temperature = totals.fields["temperature"]
        humidity = totals.fields["humidity"]
        return DailySummary(
            avg_soil=round_half_up(totals.mean("soil_moisture")),
            avg_temp=round_half_up(totals.mean("temperature")),
            avg_hum=round_half_up(totals.mean("humidity")),
            avg_gas=round_half_up(totals.mean("gas_level")),
            avg_light=round_half_up(totals.mean("light_level")),
            max_temp=temperature.maximum,
            min_temp=temperature.minimum,
            max_hum=humidity.maximum,
            min_hum=humidity.minimum,
            total_readings=totals.count,
        )

    # Monthly

    def get_monthly(
        self, zone: str, year: IntInput = None, month: IntInput = None
    ) -> MonthlyAggregate:
        self.validate_zone(zone)
        target_year, target_month = self.resolve_month(year, month)
        start, end = month_window(target_year, target_month, self.tz)
        readings = [record.reading for record in self.store.query_range(zone, start, end)]
        days, summary = self.rollup_month(readings)
        return MonthlyAggregate(
            zone=zone, year=target_year, month=target_month, days=days, summary=summary
        )

    def get_monthly_all_zones(
        self, year: IntInput = None, month: IntInput = None
    ) -> Dict[str, MonthlyAggregate]:
        target_year, target_month = self.resolve_month(year, month)
        start, end = month_window(target_year, target_month, self.tz)
        by_zone = self._group_by_zone(self.store.query_range_all_zones(start, end))
        result: Dict[str, MonthlyAggregate] = {}
        for zone in self.zones:
            days, summary = self.rollup_month(by_zone[zone])
            result[zone] = MonthlyAggregate(
                zone=zone, year=target_year, month=target_month, days=days, summary=summary
            )
        return result

    def rollup_month(
        self, readings: Iterable[Reading]
    ) -> Tuple[List[DayRollup], Optional[MonthlySummary]]:
        """Group readings by local calendar day and summarise the month.

        Overall averages are the mean of the unrounded per-day means, so a
        day with many readings weighs the same as a day with few.
        """
        per_day: Dict[date, ReadingAccumulator] = defaultdict(ReadingAccumulator)
        for reading in readings:
            per_day[reading.timestamp.astimezone(self.tz).date()].add(reading)

        if not per_day:
            return [], None

        daily_temp = FieldAccumulator()
        daily_hum = FieldAccumulator()
        daily_soil = FieldAccumulator()
        extremes = FieldAccumulator()
        total_readings = 0
        days: List[DayRollup] = []

        for day in sorted(per_day):
            totals = per_day[day]
            temperature = totals.fields["temperature"]
            humidity = totals.fields["humidity"]
            days.append(
                DayRollup(
                    date=day,
                    avg_soil=round_half_up(totals.mean("soil_moisture")),
                    avg_temp=round_half_up(totals.mean("temperature")),
                    avg_hum=round_half_up(totals.mean("humidity")),
                    avg_gas=round_half_up(totals.mean("gas_level")),
                    avg_light=round_half_up(totals.mean("light_level")),
                    max_temp=temperature.maximum,
                    min_temp=temperature.minimum,
                    max_hum=humidity.maximum,
                    min_hum=humidity.minimum,
                    readings=totals.count,
                )
            )
            daily_temp.add(totals.mean("temperature"))
            daily_hum.add(totals.mean("humidity"))
            daily_soil.add(totals.mean("soil_moisture"))
            extremes.add(temperature.minimum)
            extremes.add(temperature.maximum)
            total_readings += totals.count

        summary = MonthlySummary(
            total_days=len(days),
            overall_avg_temp=round_half_up(daily_temp.mean),
            overall_avg_hum=round_half_up(daily_hum.mean),
            overall_avg_soil=round_half_up(daily_soil.mean),
            max_temp=extremes.maximum,
            min_temp=extremes.minimum,
            total_readings=total_readings,
        )
        return days, summary

    # Validation

    def validate_zone(self, zone: str) -> None:
        if zone not in self.zones:
            raise InvalidZone(f"Zone must be one of: {', '.join(self.zones)}")

    def resolve_date(self, value: DateInput) -> date:
        if value is None:
            return self.today()
        if isinstance(value, datetime):
            return value.astimezone(self.tz).date()
        if isinstance(value, date):
            return value
        candidate = value.strip()
        if not candidate:
            return self.today()
        try:
            return datetime.strptime(candidate, "%Y-%m-%d").date()
        except ValueError as exc:
            raise InvalidDate("Date must be in YYYY-MM-DD format") from exc

    def resolve_month(self, year: IntInput, month: IntInput) -> Tuple[int, int]:
        today = self.today()
        target_year = _parse_int(year, today.year)
        if target_year is None or not MIN_YEAR <= target_year <= MAX_YEAR:
            raise InvalidYear(f"Year must be between {MIN_YEAR} and {MAX_YEAR}")
        target_month = _parse_int(month, today.month)
        if target_month is None or not 1 <= target_month <= 12:
            raise InvalidMonth("Month must be between 1 and 12")
        return target_year, target_month

    def _group_by_zone(self, records: Iterable[TimeSeriesRecord]) -> Dict[str, List[Reading]]:
        grouped: Dict[str, List[Reading]] = {zone: [] for zone in self.zones}
        for record in records:
            grouped[record.zone].append(record.reading)
        return grouped


def _parse_int(value: IntInput, default: int) -> Optional[int]:
    """Parse an integer query value; ``None`` marks a malformed one."""

    if value is None:
        return default
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    candidate = value.strip()
    if not candidate:
        return default
    try:
        return int(candidate)
    except ValueError:
        return None
